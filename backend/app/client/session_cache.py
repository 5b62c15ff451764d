# Overview: Versioned, thread-safe cache of the logged-in user's effective regions.

"""
Session Region Cache

One instance per logged-in session, passed explicitly to whoever needs it
(UI bindings, the reconciler). The cached regions are a convenience copy
for display; the backend evaluator remains the only authority.

Every change bumps `version`, so a writer holding an older snapshot can
detect that the session moved on (re-login, logout) while it was busy.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Iterable, Optional


@dataclass(frozen=True)
class SessionSnapshot:
    user_id: Optional[int] = None
    role: Optional[str] = None
    assigned_regions: frozenset = field(default_factory=frozenset)
    version: int = 0

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None


class SessionRegionCache:

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._snapshot = SessionSnapshot()

    def snapshot(self) -> SessionSnapshot:
        with self._lock:
            return self._snapshot

    @property
    def user_id(self) -> Optional[int]:
        return self.snapshot().user_id

    @property
    def role(self) -> Optional[str]:
        return self.snapshot().role

    @property
    def assigned_regions(self) -> frozenset:
        return self.snapshot().assigned_regions

    @property
    def version(self) -> int:
        return self.snapshot().version

    @property
    def is_authenticated(self) -> bool:
        return self.snapshot().is_authenticated

    def login(self, user_id: int, role: Optional[str], regions: Iterable[str]) -> SessionSnapshot:
        with self._lock:
            self._snapshot = SessionSnapshot(
                user_id=user_id,
                role=role,
                assigned_regions=frozenset(regions),
                version=self._snapshot.version + 1,
            )
            return self._snapshot

    def login_from_payload(self, user: dict) -> SessionSnapshot:
        """Populate from the `user` object returned by /api/auth/login or /api/auth/me."""
        return self.login(user["id"], user.get("role"), user.get("assigned_regions") or [])

    def replace_regions(self, regions: Iterable[str], *, expected_version: Optional[int] = None) -> bool:
        """
        Overwrite the cached regions.

        Returns False (and changes nothing) when logged out or when
        expected_version no longer matches.
        """
        with self._lock:
            current = self._snapshot
            if not current.is_authenticated:
                return False
            if expected_version is not None and current.version != expected_version:
                return False
            self._snapshot = SessionSnapshot(
                user_id=current.user_id,
                role=current.role,
                assigned_regions=frozenset(regions),
                version=current.version + 1,
            )
            return True

    def clear(self) -> None:
        """Logout."""
        with self._lock:
            self._snapshot = SessionSnapshot(version=self._snapshot.version + 1)
