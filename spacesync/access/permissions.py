"""
Static role/permission table for spaces.

Each member of a space holds one role, and each role grants a fixed set of
permissions. The table is built once at import time and never mutated.

Invariants:
    - Higher roles include every permission of the roles below them
    - owner is the only role with set_space_owner and delete_space
    - guest grants no permissions (read access comes from membership alone)

How to change safely:
    - New permissions must be additive; never drop one from an existing role
    - Stored role strings must stay valid Role values
"""

from __future__ import annotations

import logging
from enum import Enum
from types import MappingProxyType
from typing import Mapping

logger = logging.getLogger(__name__)


class Role(Enum):
    """Roles a user can hold within a space."""

    OWNER = "owner"
    ADMIN = "admin"
    MODERATOR = "moderator"
    MEMBER = "member"
    GUEST = "guest"


class Permission(Enum):
    """Actions gated by role."""

    ADD_SPACE_INVITE = "add_space_invite"
    EDIT_SPACE_INVITE = "edit_space_invite"
    DELETE_SPACE_INVITE = "delete_space_invite"
    EDIT_SPACE_MEMBER = "edit_space_member"
    DELETE_SPACE_MEMBER = "delete_space_member"
    SET_SPACE_OWNER = "set_space_owner"
    EDIT_SPACE = "edit_space"
    DELETE_SPACE = "delete_space"
    ADD_SPACE_BOARD = "add_space_board"
    EDIT_SPACE_BOARD = "edit_space_board"
    DELETE_SPACE_BOARD = "delete_space_board"
    ADD_SPACE_NOTE = "add_space_note"
    EDIT_SPACE_NOTE = "edit_space_note"
    DELETE_SPACE_NOTE = "delete_space_note"


_MEMBER = frozenset(
    {
        Permission.ADD_SPACE_BOARD,
        Permission.EDIT_SPACE_BOARD,
        Permission.DELETE_SPACE_BOARD,
        Permission.ADD_SPACE_NOTE,
        Permission.EDIT_SPACE_NOTE,
        Permission.DELETE_SPACE_NOTE,
    }
)
_MODERATOR = _MEMBER | {
    Permission.ADD_SPACE_INVITE,
    Permission.EDIT_SPACE_INVITE,
    Permission.DELETE_SPACE_INVITE,
}
_ADMIN = _MODERATOR | {
    Permission.EDIT_SPACE_MEMBER,
    Permission.DELETE_SPACE_MEMBER,
    Permission.EDIT_SPACE,
}
_OWNER = _ADMIN | {
    Permission.SET_SPACE_OWNER,
    Permission.DELETE_SPACE,
}

ROLE_PERMISSIONS: Mapping[Role, frozenset[Permission]] = MappingProxyType(
    {
        Role.GUEST: frozenset(),
        Role.MEMBER: _MEMBER,
        Role.MODERATOR: frozenset(_MODERATOR),
        Role.ADMIN: frozenset(_ADMIN),
        Role.OWNER: frozenset(_OWNER),
    }
)


class PermissionTable:
    """Resolves stored role names to their permission sets.

    Thread safety:
        Read-only after construction.

    Example:
        >>> table = PermissionTable()
        >>> table.role_has_permission("admin", Permission.EDIT_SPACE)
        True
        >>> table.role_has_permission("member", Permission.DELETE_SPACE)
        False
    """

    def __init__(self, role_permissions: Mapping[Role, frozenset[Permission]] = ROLE_PERMISSIONS) -> None:
        self._role_permissions = MappingProxyType(dict(role_permissions))

    def permissions_for(self, role: str | Role) -> frozenset[Permission]:
        """Get the permission set for a role.

        Unknown role names resolve to an empty set.
        """
        if not isinstance(role, Role):
            try:
                role = Role(role)
            except ValueError:
                logger.warning(f"Unknown space role: {role}")
                return frozenset()
        return self._role_permissions.get(role, frozenset())

    def role_has_permission(self, role: str | Role, permission: Permission) -> bool:
        return permission in self.permissions_for(role)


_default_table: PermissionTable | None = None


def get_permission_table() -> PermissionTable:
    """Get the process-wide permission table."""
    global _default_table
    if _default_table is None:
        _default_table = PermissionTable()
    return _default_table
