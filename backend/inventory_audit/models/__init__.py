from .auth import User, Role, Permission, RolePermission
from .catalog import Room, Item
from .audits import Audit, ItemDetails, audit_participants
from .purchases import AssetPurchase
from .activity import RecentActivityHistory

__all__ = [
    'User', 'Role', 'Permission', 'RolePermission',
    'Room', 'Item',
    'Audit', 'ItemDetails', 'audit_participants',
    'AssetPurchase',
    'RecentActivityHistory',
]
