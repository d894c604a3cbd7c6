"""
Access control for SpaceSync.

This module handles:
- The static role -> permission table
- Per-space membership records
- Permission checks run before every mutation
"""

from .membership import MembershipStore
from .permissions import (
    ROLE_PERMISSIONS,
    Permission,
    PermissionTable,
    Role,
    get_permission_table,
)

__all__ = [
    "MembershipStore",
    "Permission",
    "PermissionTable",
    "ROLE_PERMISSIONS",
    "Role",
    "get_permission_table",
]
