# Overview: Lookups over the permission catalog; used by decorators and denial messages.

from .definitions import PERMISSION_DEFINITIONS


_BY_CODE = {perm[0]: perm for perm in PERMISSION_DEFINITIONS}


def get_all_permission_codes():
    return list(_BY_CODE)


def get_permission_definition(code):
    """Full definition for a permission code, or None."""
    perm = _BY_CODE.get(code)
    if perm is None:
        return None
    return {
        "code": perm[0],
        "name": perm[1],
        "description": perm[2],
        "category": perm[3],
    }


def validate_permission_code(code):
    return code in _BY_CODE


def describe_permission(code):
    """Display label such as "Assign Regions (ASSIGN_REGIONS)"."""
    definition = get_permission_definition(code)
    if definition is None:
        return code
    return f"{definition['name']} ({code})"
