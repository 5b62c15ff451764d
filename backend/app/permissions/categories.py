# Overview: Permission category constants for grouping related permissions.


class PermissionCategory:
    """Permission categories for organization and UI display."""
    REGIONS = "REGIONS"
    REQUESTS = "REQUESTS"
    USERS = "USERS"
    AUDIT = "AUDIT"
