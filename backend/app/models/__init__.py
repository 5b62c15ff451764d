from .auth import User, SessionToken
from .regions import Region, UserRegion, TemporaryRegionAccess, RegionAccessRequest
from .audit import AuditEvent

__all__ = [
    'User', 'SessionToken',
    'Region', 'UserRegion', 'TemporaryRegionAccess', 'RegionAccessRequest',
    'AuditEvent',
]
