# Overview: Default role-to-permission mappings.

from .definitions import ACTIONS, RESOURCES, permission_code


def _grant(resources, actions):
    return [permission_code(r, a) for r in resources for a in actions]


DEFAULT_ROLE_DESCRIPTIONS = {
    "ADMIN": "Full access to every resource",
    "MANAGER": "Create, read and update everything; no deletes",
    "AUDITOR": "Runs audits and counts items; read-only reference data",
    "VIEWER": "Read-only access",
}

DEFAULT_ROLE_PERMISSIONS = {
    "ADMIN": _grant(RESOURCES, ACTIONS),
    "MANAGER": _grant(RESOURCES, ("create", "read", "update")),
    "AUDITOR": (
        _grant(("audit", "item_details"), ("create", "read", "update"))
        + _grant(("room", "item", "history"), ("read",))
    ),
    "VIEWER": _grant(RESOURCES, ("read",)),
}
