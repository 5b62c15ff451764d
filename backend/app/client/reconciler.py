# Overview: Background loop that patches a session's cached regions as temporary grants expire.

"""
Region Reconciler

Polls the backend for the session user's effective regions and overwrites
the cache when the server's set differs, so an expired or revoked
temporary grant disappears without a new login.

State machine per tick:
    IDLE -> CHECKING -> IDLE              (no change, or the check failed)
    IDLE -> CHECKING -> UPDATED -> IDLE   (cache overwritten, listeners fired)

Lifecycle follows the usual daemon-thread pattern: start() / stop(), the
thread waits on a stop Event between ticks. A tick only runs while the
session is authenticated and holds at least one region. A tick that
arrives while another check is in flight is dropped, not queued.

Timing: the first check runs initial_delay_seconds after start(). Each
later check runs interval_seconds after the previous one finishes, so
with the defaults (5 s, 60 s) checks land at about 5 s, 65 s, 125 s.
check_now() runs a check immediately without moving that schedule.

Failures are logged and swallowed; the next scheduled tick proceeds as
normal.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Mapping, Optional

from .api_client import DEFAULT_TIMEOUT_SECONDS, RegionAccessClient
from .session_cache import SessionRegionCache


logger = logging.getLogger(__name__)

AccessChangedListener = Callable[[frozenset, frozenset], None]


class ReconcilerState:
    IDLE = "idle"
    CHECKING = "checking"
    UPDATED = "updated"


@dataclass
class ReconcilerSettings:
    interval_seconds: float = 60.0
    initial_delay_seconds: float = 5.0
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS

    @classmethod
    def from_mapping(cls, config: Mapping) -> "ReconcilerSettings":
        """Read the RECONCILER_* keys used by the backend Config."""
        return cls(
            interval_seconds=float(config.get("RECONCILER_INTERVAL_SECONDS", cls.interval_seconds)),
            initial_delay_seconds=float(config.get("RECONCILER_INITIAL_DELAY_SECONDS", cls.initial_delay_seconds)),
            timeout_seconds=float(config.get("RECONCILER_TIMEOUT_SECONDS", cls.timeout_seconds)),
        )


class RegionReconciler:

    def __init__(
        self,
        client: RegionAccessClient,
        cache: SessionRegionCache,
        settings: Optional[ReconcilerSettings] = None,
    ) -> None:
        self._client = client
        self._cache = cache
        self._settings = settings or ReconcilerSettings()

        self._listeners: list[AccessChangedListener] = []
        self._listeners_lock = threading.Lock()

        # Held for the duration of one check
        self._check_lock = threading.Lock()

        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.state = ReconcilerState.IDLE

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def add_listener(self, listener: AccessChangedListener) -> AccessChangedListener:
        """Register on_access_changed(previous, current)."""
        with self._listeners_lock:
            self._listeners.append(listener)
        return listener

    def remove_listener(self, listener: AccessChangedListener) -> None:
        with self._listeners_lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    @property
    def listener_count(self) -> int:
        with self._listeners_lock:
            return len(self._listeners)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start polling on a daemon thread. No-op when already running."""
        if self.is_running:
            logger.debug("Region reconciler already running")
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_loop,
            name="RegionReconciler",
            daemon=True,
        )
        self._thread.start()
        logger.info(
            "Region reconciler started (every %ss, first check in %ss)",
            self._settings.interval_seconds,
            self._settings.initial_delay_seconds,
        )

    def stop(self, timeout: float = 10.0) -> None:
        """
        Tear down the loop on logout.

        Clears the timer thread and every registered listener so nothing
        leaks into the next login. Safe to call when not running.
        """
        self._stop_event.set()

        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=timeout)
            if thread.is_alive():
                logger.warning("Region reconciler thread did not terminate within %ss", timeout)
        self._thread = None

        with self._listeners_lock:
            self._listeners.clear()
        self.state = ReconcilerState.IDLE

    def _run_loop(self) -> None:
        delay = self._settings.initial_delay_seconds
        try:
            while not self._stop_event.wait(timeout=delay):
                self.tick()
                delay = self._settings.interval_seconds
        except Exception:
            logger.error("Region reconciler thread terminated due to unhandled exception", exc_info=True)

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------

    def check_now(self) -> bool:
        """Run one check immediately. True when the cache was updated."""
        return bool(self.tick())

    def tick(self) -> Optional[bool]:
        """
        One guarded check-and-patch cycle.

        Returns None when the tick was dropped (check in flight) or skipped
        (logged out, no regions), True when the cache was updated and False
        otherwise.
        """
        if not self._check_lock.acquire(blocking=False):
            logger.debug("Region check already in flight; tick dropped")
            return None
        try:
            return self._check()
        finally:
            self.state = ReconcilerState.IDLE
            self._check_lock.release()

    def _check(self) -> Optional[bool]:
        snapshot = self._cache.snapshot()
        if not snapshot.is_authenticated or not snapshot.assigned_regions:
            return None

        self.state = ReconcilerState.CHECKING
        try:
            current = frozenset(self._client.get_effective_regions(snapshot.user_id))
        except Exception:
            logger.warning("Region check failed for user %s", snapshot.user_id, exc_info=True)
            return False

        previous = snapshot.assigned_regions
        if current == previous:
            return False

        if not self._cache.replace_regions(current, expected_version=snapshot.version):
            # Session changed while the request was in flight
            logger.debug("Session changed during region check; result discarded")
            return False

        self.state = ReconcilerState.UPDATED
        logger.info(
            "Region access changed for user %s: removed=%s added=%s",
            snapshot.user_id,
            sorted(previous - current),
            sorted(current - previous),
        )
        self._notify(previous, current)
        return True

    def _notify(self, previous: frozenset, current: frozenset) -> None:
        with self._listeners_lock:
            listeners = list(self._listeners)

        for listener in listeners:
            try:
                listener(previous, current)
            except Exception:
                logger.warning("Access changed listener failed", exc_info=True)
