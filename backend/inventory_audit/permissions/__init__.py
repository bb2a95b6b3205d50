# Overview: Permission system package.
# Re-exports all public APIs for convenient imports.

from .definitions import ACTIONS, PERMISSION_DEFINITIONS, RESOURCES, permission_code
from .roles import DEFAULT_ROLE_DESCRIPTIONS, DEFAULT_ROLE_PERMISSIONS
from .helpers import (
    get_all_permission_codes,
    get_permission_definition,
    get_permissions_by_resource,
    validate_permission,
)

__all__ = [
    "ACTIONS",
    "RESOURCES",
    "PERMISSION_DEFINITIONS",
    "DEFAULT_ROLE_DESCRIPTIONS",
    "DEFAULT_ROLE_PERMISSIONS",
    "permission_code",
    "get_all_permission_codes",
    "get_permission_definition",
    "get_permissions_by_resource",
    "validate_permission",
]
