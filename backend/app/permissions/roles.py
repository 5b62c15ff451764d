# Overview: Role names and the permission codes each role carries.

from .helpers import get_all_permission_codes


class RoleName:
    ADMIN = "Admin"
    MANAGER = "Manager"
    TECHNICIAN = "Technician"
    USER = "User"

    ALL = (ADMIN, MANAGER, TECHNICIAN, USER)


# Admin also bypasses region checks entirely (see access_service).
DEFAULT_ROLE_PERMISSIONS = {
    RoleName.ADMIN: get_all_permission_codes(),
    RoleName.MANAGER: [
        "VIEW_USERS",
        "VIEW_ALL_REGION_ACCESS",
        "ASSIGN_REGIONS",
        "GRANT_TEMPORARY_ACCESS",
        "REQUEST_REGION_ACCESS",
        "REVIEW_REGION_REQUESTS",
        "VIEW_AUDIT_LOG",
    ],
    RoleName.TECHNICIAN: [
        "REQUEST_REGION_ACCESS",
    ],
    RoleName.USER: [
        "REQUEST_REGION_ACCESS",
    ],
}


def normalize_role(value):
    """Map any casing of a role name to its canonical form, or None."""
    if not value:
        return None
    lowered = str(value).strip().lower()
    for role in RoleName.ALL:
        if role.lower() == lowered:
            return role
    return None
