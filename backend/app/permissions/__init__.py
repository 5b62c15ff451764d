# Overview: Permission system package.
# Re-exports the catalog, role map and lookup helpers.

from .categories import PermissionCategory
from .definitions import (
    PERMISSION_DEFINITIONS,
    REGION_PERMISSIONS,
    REQUEST_PERMISSIONS,
    USER_PERMISSIONS,
    AUDIT_PERMISSIONS,
)
from .roles import RoleName, DEFAULT_ROLE_PERMISSIONS, normalize_role
from .helpers import (
    get_all_permission_codes,
    get_permission_definition,
    validate_permission_code,
    describe_permission,
)

__all__ = [
    "PermissionCategory",
    "PERMISSION_DEFINITIONS",
    "REGION_PERMISSIONS",
    "REQUEST_PERMISSIONS",
    "USER_PERMISSIONS",
    "AUDIT_PERMISSIONS",
    "RoleName",
    "DEFAULT_ROLE_PERMISSIONS",
    "normalize_role",
    "get_all_permission_codes",
    "get_permission_definition",
    "validate_permission_code",
    "describe_permission",
]
