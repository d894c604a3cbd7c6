"""
Per-space membership records and permission checks.

A membership record (spaces_users row) links a user to a space with a role.
Having any record in a space grants read access to everything in it; writes
are gated by the permissions of the record's role.

Invariants:
    - At most one record per (space_id, user_id)
    - No record means no access, regardless of the permission asked for
    - Permission checks happen before any storage write

How to change safely:
    - user_has_permission must only swallow ForbiddenError
    - Keep get_space_user_ids cheap; it runs on every fanout
"""

from __future__ import annotations

import logging
from typing import Any

from ..errors import ForbiddenError
from ..store import Database
from .permissions import Permission, PermissionTable, Role, get_permission_table

logger = logging.getLogger(__name__)


class MembershipStore:
    """Answers "may user X do Y in space Z" from spaces_users rows.

    Example:
        >>> members = MembershipStore(db)
        >>> await members.create_space_user_record("s1", 42, Role.OWNER)
        >>> await members.permissions_check(42, "s1", Permission.EDIT_SPACE)
        True
    """

    def __init__(self, db: Database, table: PermissionTable | None = None) -> None:
        self.db = db
        self.table = table or get_permission_table()

    async def get_space_user_record(self, user_id: int, space_id: str) -> dict[str, Any] | None:
        """Get the space <--> user link record (which carries the role)."""
        return await self.db.first(
            "SELECT * FROM spaces_users WHERE space_id = :space_id AND user_id = :user_id",
            {"space_id": space_id, "user_id": user_id},
        )

    async def permissions_check(self, user_id: int, space_id: str, permission: Permission) -> bool:
        """Make sure the user may perform an action in a space.

        Args:
            user_id: Acting user
            space_id: Space the action targets
            permission: Required permission

        Returns:
            True

        Raises:
            ForbiddenError: If the user has no record in the space, or their
                role lacks the permission
        """
        record = await self.get_space_user_record(user_id, space_id)
        if not record:
            raise ForbiddenError(
                f"you don't have access to space {space_id}",
                permission=permission.value,
                space_id=space_id,
            )
        if self.table.role_has_permission(record["role"], permission):
            return True

        logger.debug(
            "Permission denied",
            extra={"user_id": user_id, "space_id": space_id, "permission": permission.value},
        )
        raise ForbiddenError(
            f"you don't have `{permission.value}` permissions on space {space_id}",
            permission=permission.value,
            space_id=space_id,
        )

    async def user_has_permission(self, user_id: int, space_id: str, permission: Permission) -> bool:
        """Boolean form of permissions_check. Other errors propagate."""
        try:
            return await self.permissions_check(user_id, space_id, permission)
        except ForbiddenError:
            return False

    async def user_is_in_space(self, user_id: int, space_id: str) -> dict[str, Any] | None:
        """Get the user's record in the space if they have any access at all."""
        return await self.get_space_user_record(user_id, space_id)

    async def member_exists(self, space_id: str, email: str) -> bool:
        """Check whether a user (by email) is already in the space."""
        record = await self.db.first(
            """
            SELECT su.id
            FROM spaces_users su, users u
            WHERE su.space_id = :space_id
              AND su.user_id = u.id
              AND u.username = :email
            LIMIT 1
            """,
            {"space_id": space_id, "email": email},
        )
        return record is not None

    async def get_space_user_ids(self, space_id: str) -> list[int]:
        """Get the ids of every user with a record in the space.

        This is the recipient set for most sync fanouts.
        """
        rows = await self.db.query(
            "SELECT user_id FROM spaces_users WHERE space_id = :space_id ORDER BY id",
            {"space_id": space_id},
        )
        return [row["user_id"] for row in rows]

    async def get_members_from_users_spaces(self, user_id: int) -> list[dict[str, Any]]:
        """Get (user_id, space_id) for everyone sharing a space with the user."""
        return await self.db.query(
            """
            SELECT su.user_id, su.space_id
            FROM spaces_users su
            WHERE su.space_id IN (
                SELECT su2.space_id FROM spaces_users su2 WHERE su2.user_id = :user_id
            )
            """,
            {"user_id": user_id},
        )

    async def get_by_space_ids(self, space_ids: list[str]) -> list[dict[str, Any]]:
        """Get every membership record for a set of spaces."""
        return await self.db.by_ids("spaces_users", space_ids, id_field="space_id")

    async def create_space_user_record(
        self,
        space_id: str,
        user_id: int,
        role: Role | str,
    ) -> dict[str, Any]:
        """Create (or re-role) a user's record in a space."""
        role_value = role.value if isinstance(role, Role) else Role(role).value
        return await self.db.upsert(
            "spaces_users",
            {"space_id": space_id, "user_id": user_id, "role": role_value},
            ("space_id", "user_id"),
        )
