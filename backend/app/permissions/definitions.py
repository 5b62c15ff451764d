# Overview: All permission definitions organized by category.
# Each permission is defined as: (code, name, description, category)

from .categories import PermissionCategory


# -- REGIONS --

REGION_PERMISSIONS = [
    (
        "VIEW_ALL_REGION_ACCESS",
        "View Region Access",
        "View effective regions and temporary grants of other users",
        PermissionCategory.REGIONS,
    ),
    (
        "ASSIGN_REGIONS",
        "Assign Regions",
        "Grant and revoke permanent region access, including bulk assignment",
        PermissionCategory.REGIONS,
    ),
    (
        "GRANT_TEMPORARY_ACCESS",
        "Grant Temporary Access",
        "Grant, extend and revoke time-boxed region access",
        PermissionCategory.REGIONS,
    ),
]


# -- REQUESTS --

REQUEST_PERMISSIONS = [
    (
        "REQUEST_REGION_ACCESS",
        "Request Region Access",
        "Submit and cancel own region access requests",
        PermissionCategory.REQUESTS,
    ),
    (
        "REVIEW_REGION_REQUESTS",
        "Review Region Requests",
        "Approve or reject pending region access requests",
        PermissionCategory.REQUESTS,
    ),
    (
        "DELETE_REGION_REQUESTS",
        "Delete Region Requests",
        "Delete any region access request regardless of status",
        PermissionCategory.REQUESTS,
    ),
]


# -- USERS --

USER_PERMISSIONS = [
    (
        "VIEW_USERS",
        "View Users",
        "View user accounts and their roles",
        PermissionCategory.USERS,
    ),
]


# -- AUDIT --

AUDIT_PERMISSIONS = [
    (
        "VIEW_AUDIT_LOG",
        "View Audit Log",
        "View region access audit events and statistics",
        PermissionCategory.AUDIT,
    ),
    (
        "PURGE_AUDIT_LOG",
        "Purge Audit Log",
        "Bulk delete audit events older than a cutoff",
        PermissionCategory.AUDIT,
    ),
]


PERMISSION_DEFINITIONS = (
    REGION_PERMISSIONS
    + REQUEST_PERMISSIONS
    + USER_PERMISSIONS
    + AUDIT_PERMISSIONS
)
