"""
Session reconciler tests.

Verifies:
- An expired temporary grant leaves the cache after one more tick, with a
  single notification
- Unchanged server state produces no cache writes and no notifications
- Overlapping ticks are dropped, failures are swallowed
- stop() tears down the thread and listeners
- RegionAccessClient parsing and error mapping
"""

import threading
from datetime import timedelta

import httpx
import pytest

from app.client import (
    RegionAccessClient,
    RegionReconciler,
    RegionSyncError,
    ReconcilerSettings,
    ReconcilerState,
    SessionRegionCache,
)
from app.models import TemporaryRegionAccess
from app.services import grant_service
from app.time_utils import utcnow


# =============================================================================
# FAKES
# =============================================================================


class StaticClient:
    """Returns a fixed region set, or raises the configured error."""

    def __init__(self, regions=(), error=None):
        self.regions = frozenset(regions)
        self.error = error
        self.calls = 0

    def get_effective_regions(self, user_id):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.regions


class StoreBackedClient:
    """Reads the real grant store at a controllable instant."""

    def __init__(self, now):
        self.now = now
        self.calls = 0

    def get_effective_regions(self, user_id):
        self.calls += 1
        return frozenset(grant_service.get_effective_regions(user_id, self.now))


class BlockingClient:
    """Holds the check open until released."""

    def __init__(self, regions):
        self.regions = frozenset(regions)
        self.entered = threading.Event()
        self.release = threading.Event()
        self.calls = 0

    def get_effective_regions(self, user_id):
        self.calls += 1
        self.entered.set()
        self.release.wait(timeout=5)
        return self.regions


def _logged_in_cache(regions, user_id=7):
    cache = SessionRegionCache()
    cache.login(user_id, "Technician", regions)
    return cache


# =============================================================================
# CONVERGENCE AND IDEMPOTENCE
# =============================================================================


class TestConvergence:

    def test_expired_grant_removed_after_one_tick(self, seed):
        tech, admin = seed["technician"], seed["admin"]
        now = utcnow()
        grant_service.grant_permanent(tech.id, "Maharashtra", admin.id)
        grant_service.grant_temporary(tech.id, "Delhi", now + timedelta(minutes=2), admin.id, now=now)

        cache = _logged_in_cache(grant_service.get_effective_regions(tech.id, now), user_id=tech.id)
        client = StoreBackedClient(now)
        reconciler = RegionReconciler(client, cache)
        changes = []
        reconciler.add_listener(lambda previous, current: changes.append((previous, current)))

        assert reconciler.tick() is False
        assert cache.assigned_regions == {"Maharashtra", "Delhi"}

        client.now = now + timedelta(minutes=3)
        assert reconciler.tick() is True
        assert cache.assigned_regions == {"Maharashtra"}
        assert changes == [(frozenset({"Maharashtra", "Delhi"}), frozenset({"Maharashtra"}))]

        assert reconciler.tick() is False
        assert len(changes) == 1
        assert reconciler.state == ReconcilerState.IDLE

    def test_unchanged_regions_cause_no_writes(self):
        cache = _logged_in_cache(["Delhi", "Goa"])
        client = StaticClient(["Goa", "Delhi"])
        reconciler = RegionReconciler(client, cache)
        changes = []
        reconciler.add_listener(lambda previous, current: changes.append(current))
        version = cache.version

        assert reconciler.tick() is False
        assert reconciler.tick() is False

        assert client.calls == 2
        assert cache.version == version
        assert changes == []

    def test_added_region_also_updates_cache(self):
        cache = _logged_in_cache(["Delhi"])
        reconciler = RegionReconciler(StaticClient(["Delhi", "Kerala"]), cache)

        assert reconciler.check_now() is True
        assert cache.assigned_regions == {"Delhi", "Kerala"}


# =============================================================================
# GUARDS
# =============================================================================


class TestGuards:

    def test_skipped_when_logged_out(self):
        client = StaticClient(["Delhi"])
        reconciler = RegionReconciler(client, SessionRegionCache())

        assert reconciler.tick() is None
        assert client.calls == 0

    def test_skipped_when_no_regions(self):
        client = StaticClient(["Delhi"])
        reconciler = RegionReconciler(client, _logged_in_cache([]))

        assert reconciler.tick() is None
        assert client.calls == 0

    def test_overlapping_tick_is_dropped(self):
        cache = _logged_in_cache(["Delhi", "Goa"])
        client = BlockingClient(["Delhi"])
        reconciler = RegionReconciler(client, cache)
        results = []

        worker = threading.Thread(target=lambda: results.append(reconciler.tick()))
        worker.start()
        assert client.entered.wait(timeout=5)

        assert reconciler.state == ReconcilerState.CHECKING
        assert reconciler.tick() is None

        client.release.set()
        worker.join(timeout=5)

        assert results == [True]
        assert client.calls == 1
        assert cache.assigned_regions == {"Delhi"}

    def test_failure_is_swallowed(self):
        cache = _logged_in_cache(["Delhi"])
        client = StaticClient(error=RegionSyncError("HTTP 503", status_code=503))
        reconciler = RegionReconciler(client, cache)

        assert reconciler.tick() is False
        assert cache.assigned_regions == {"Delhi"}
        assert reconciler.state == ReconcilerState.IDLE

        # Next tick proceeds normally
        client.error = None
        client.regions = frozenset()
        assert reconciler.tick() is True
        assert cache.assigned_regions == frozenset()

    def test_failing_listener_does_not_block_others(self):
        cache = _logged_in_cache(["Delhi", "Goa"])
        reconciler = RegionReconciler(StaticClient(["Goa"]), cache)
        seen = []

        def broken(previous, current):
            raise ValueError("render failed")

        reconciler.add_listener(broken)
        reconciler.add_listener(lambda previous, current: seen.append(current))

        assert reconciler.tick() is True
        assert seen == [frozenset({"Goa"})]

    def test_removed_listener_is_not_notified(self):
        cache = _logged_in_cache(["Delhi", "Goa"])
        reconciler = RegionReconciler(StaticClient(["Goa"]), cache)
        kept, removed = [], []
        reconciler.add_listener(lambda previous, current: kept.append(current))
        listener = reconciler.add_listener(lambda previous, current: removed.append(current))

        reconciler.remove_listener(listener)
        reconciler.remove_listener(listener)

        assert reconciler.listener_count == 1
        assert reconciler.tick() is True
        assert kept == [frozenset({"Goa"})]
        assert removed == []

    def test_result_discarded_when_session_changes_mid_check(self):
        cache = _logged_in_cache(["Delhi", "Goa"])

        class LogoutDuringCheck(StaticClient):
            def get_effective_regions(self, user_id):
                cache.clear()
                return super().get_effective_regions(user_id)

        reconciler = RegionReconciler(LogoutDuringCheck(["Goa"]), cache)
        changes = []
        reconciler.add_listener(lambda previous, current: changes.append(current))

        assert reconciler.tick() is False
        assert not cache.is_authenticated
        assert changes == []


# =============================================================================
# LIFECYCLE
# =============================================================================


class TestLifecycle:

    def test_start_polls_and_stop_tears_down(self):
        cache = _logged_in_cache(["Delhi", "Goa"])
        client = StaticClient(["Delhi"])
        settings = ReconcilerSettings(interval_seconds=0.01, initial_delay_seconds=0.01)
        reconciler = RegionReconciler(client, cache, settings)
        updated = threading.Event()
        reconciler.add_listener(lambda previous, current: updated.set())

        reconciler.start()
        assert reconciler.is_running
        assert updated.wait(timeout=5)

        reconciler.stop()

        assert not reconciler.is_running
        assert reconciler.listener_count == 0
        assert cache.assigned_regions == {"Delhi"}

    def test_stop_without_start_is_safe(self):
        reconciler = RegionReconciler(StaticClient(), SessionRegionCache())
        reconciler.stop()
        assert not reconciler.is_running

    def test_waits_initial_delay_then_interval_between_checks(self):
        client = StaticClient(["Delhi"])
        reconciler = RegionReconciler(client, _logged_in_cache(["Delhi"]), ReconcilerSettings())

        class RecordingStopEvent:
            def __init__(self):
                self.timeouts = []

            def wait(self, timeout=None):
                self.timeouts.append(timeout)
                return len(self.timeouts) > 3

        stop_event = RecordingStopEvent()
        reconciler._stop_event = stop_event

        reconciler._run_loop()

        assert stop_event.timeouts == [5.0, 60.0, 60.0, 60.0]
        assert client.calls == 3

    def test_settings_from_config(self, app):
        settings = ReconcilerSettings.from_mapping(app.config)
        assert settings.interval_seconds == 60
        assert settings.initial_delay_seconds == 5
        assert settings.timeout_seconds == 5


# =============================================================================
# HTTP CLIENT
# =============================================================================


class TestRegionAccessClient:

    def test_parses_regions_and_sends_token(self):
        seen = {}

        def handler(request):
            seen["auth"] = request.headers.get("Authorization")
            seen["user_id"] = request.url.params.get("userId")
            return httpx.Response(200, json={"success": True, "regions": [{"name": "Delhi"}, {"name": "Goa"}]})

        client = RegionAccessClient("http://api.test/", token="abc", transport=httpx.MockTransport(handler))

        assert client.get_effective_regions(12) == {"Delhi", "Goa"}
        assert seen == {"auth": "Bearer abc", "user_id": "12"}
        client.close()

    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(500, json={"error": "Internal server error"}),
            httpx.Response(401, json={"error": "Invalid or expired token"}),
            httpx.Response(200, json={"success": False}),
            httpx.Response(200, json={"success": True}),
            httpx.Response(200, text="<html>not json</html>"),
        ],
    )
    def test_bad_responses_raise(self, response):
        client = RegionAccessClient("http://api.test", transport=httpx.MockTransport(lambda request: response))
        with pytest.raises(RegionSyncError):
            client.get_effective_regions(1)

    def test_transport_error_raises(self):
        def handler(request):
            raise httpx.ConnectTimeout("timed out", request=request)

        with RegionAccessClient("http://api.test", transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(RegionSyncError):
                client.get_effective_regions(1)


class TestAgainstBackend:

    def test_reconciler_sees_expiry_through_the_api(self, app, seed, db_session):
        tech, admin = seed["technician"], seed["admin"]
        grant_service.grant_permanent(tech.id, "Maharashtra", admin.id)
        grant = grant_service.grant_temporary(tech.id, "Delhi", utcnow() + timedelta(hours=1), admin.id)

        client = RegionAccessClient("http://testserver", transport=httpx.WSGITransport(app=app))
        cache = SessionRegionCache()
        cache.login_from_payload(client.login("asha", "Password123!")["user"])
        assert cache.assigned_regions == {"Maharashtra", "Delhi"}

        reconciler = RegionReconciler(client, cache)
        changes = []
        reconciler.add_listener(lambda previous, current: changes.append(current))

        assert reconciler.tick() is False

        # Expire the grant in place
        db_session.get(TemporaryRegionAccess, grant.id).expires_at = utcnow() - timedelta(seconds=1)
        db_session.commit()

        assert reconciler.tick() is True
        assert cache.assigned_regions == {"Maharashtra"}
        assert changes == [frozenset({"Maharashtra"})]

        client.logout()
        cache.clear()
        reconciler.stop()
        client.close()
