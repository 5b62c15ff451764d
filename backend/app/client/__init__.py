# Overview: Client-side helpers that keep a logged-in session's region list in sync with the backend.

from .api_client import RegionAccessClient, RegionSyncError
from .session_cache import SessionRegionCache, SessionSnapshot
from .reconciler import RegionReconciler, ReconcilerSettings, ReconcilerState

__all__ = [
    "RegionAccessClient",
    "RegionSyncError",
    "SessionRegionCache",
    "SessionSnapshot",
    "RegionReconciler",
    "ReconcilerSettings",
    "ReconcilerState",
]
