# Overview: All permission definitions, one per (resource, action) pair.
# Each permission is defined as: (resource, action, description)

RESOURCES = (
    "user",
    "role",
    "permission",
    "audit",
    "item_details",
    "asset_purchase",
    "room",
    "item",
    "history",
)

ACTIONS = ("create", "read", "update", "delete")

_RESOURCE_LABELS = {
    "user": "users",
    "role": "roles",
    "permission": "permissions",
    "audit": "audits",
    "item_details": "audit item details",
    "asset_purchase": "asset purchases",
    "room": "rooms",
    "item": "items",
    "history": "activity history",
}


def permission_code(resource: str, action: str) -> str:
    return f"{resource}:{action}"


PERMISSION_DEFINITIONS = [
    (resource, action, f"{action.capitalize()} {_RESOURCE_LABELS[resource]}")
    for resource in RESOURCES
    for action in ACTIONS
]
