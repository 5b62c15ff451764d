# Overview: Service-layer operations for permission; role-based checks with an audit trail.

"""
Role-Based Permission Checking

WHY: Keep every "may this caller do X" decision in one place. Routes
declare the permission they need; nothing else re-implements role logic.

DESIGN PRINCIPLES:
- Fail closed: unknown roles carry no permissions
- Log denials only: permission grants are not logged
- Region-level decisions live in access_service, not here
"""

from ..models import User
from ..permissions import DEFAULT_ROLE_PERMISSIONS, RoleName, describe_permission, normalize_role
from . import audit_service


class PermissionDeniedError(Exception):
    """Raised when user lacks required permission."""
    pass


def get_role_permissions(role: str | None) -> set[str]:
    canonical = normalize_role(role)
    if canonical is None:
        return set()
    return set(DEFAULT_ROLE_PERMISSIONS.get(canonical, []))


def get_user_permissions(user: User) -> set[str]:
    """
    Get all permission codes for a user.

    Inactive users hold nothing.
    """
    if user is None or not user.is_active:
        return set()
    return get_role_permissions(user.role)


def user_has_permission(user: User, permission_code: str) -> bool:
    return permission_code in get_user_permissions(user)


def is_admin(user: User | None) -> bool:
    return user is not None and normalize_role(user.role) == RoleName.ADMIN


def is_reviewer(user: User | None) -> bool:
    """Admin or Manager."""
    return user is not None and normalize_role(user.role) in (RoleName.ADMIN, RoleName.MANAGER)


def require_permission(
    user: User,
    permission_code: str,
    resource: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> None:
    """
    Require user to have permission, raise PermissionDeniedError if not.

    Denials are written to the audit trail as PERMISSION_DENIED.

    Usage:
        require_permission(g.current_user, "GRANT_TEMPORARY_ACCESS", resource=request.path)
    """
    if user_has_permission(user, permission_code):
        return

    audit_service.log_event(
        user.id if user else None,
        "PERMISSION_DENIED",
        False,
        severity="warning",
        action=permission_code,
        reason=f"Missing permission: {describe_permission(permission_code)}",
        details={"resource": resource, "role": user.role if user else None},
        ip_address=ip_address,
        user_agent=user_agent,
    )
    raise PermissionDeniedError(f"Permission denied: {describe_permission(permission_code)}")
