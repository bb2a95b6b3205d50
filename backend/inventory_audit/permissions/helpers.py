# Overview: Utility functions for permission lookups and validation.

from .definitions import ACTIONS, PERMISSION_DEFINITIONS, RESOURCES, permission_code


def get_all_permission_codes():
    """Get list of all permission codes."""
    return [permission_code(resource, action) for resource, action, _ in PERMISSION_DEFINITIONS]


def get_permissions_by_resource(resource):
    return [perm for perm in PERMISSION_DEFINITIONS if perm[0] == resource]


def get_permission_definition(code):
    """Get full definition for a permission code."""
    for resource, action, description in PERMISSION_DEFINITIONS:
        if permission_code(resource, action) == code:
            return {
                "name": code,
                "resource": resource,
                "action": action,
                "description": description,
            }
    return None


def validate_permission(resource, action):
    """Check if a (resource, action) pair is a known permission."""
    return resource in RESOURCES and action in ACTIONS
