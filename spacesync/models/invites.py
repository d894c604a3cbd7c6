"""
Pending space invites.

An invite is a not-yet-accepted membership grant addressed to an email or
username. Delivery (email etc.) happens elsewhere.

Invite records are synced to the space's members and, when the address
belongs to an existing account, to the invited user.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any

from ..access import MembershipStore, Permission
from ..errors import BadRequestError, NotFoundError
from ..store import Database
from ..sync import SyncAction, SyncLedger
from .pipeline import MutationResult
from .users import UserDirectory

logger = logging.getLogger(__name__)


class InviteStore:
    """Permission-checked invite mutations plus invite reads."""

    def __init__(
        self,
        db: Database,
        members: MembershipStore,
        ledger: SyncLedger,
        users: UserDirectory,
    ) -> None:
        self.db = db
        self.members = members
        self.ledger = ledger
        self.users = users

    async def _fanout(self, user_id: int, invite: dict[str, Any], action: SyncAction) -> list[int]:
        recipients = await self.members.get_space_user_ids(invite["space_id"])
        for user in await self.users.get_by_emails([invite["to_user"]]):
            if user["id"] not in recipients:
                recipients.append(user["id"])
        return await self.ledger.add_record(recipients, user_id, "invite", invite["id"], action)

    async def add(
        self,
        user_id: int,
        space_id: str,
        to_user: str,
        data: dict[str, Any] | None = None,
        invite_id: str | None = None,
    ) -> MutationResult:
        """Invite someone into a space.

        Raises:
            ForbiddenError: Caller lacks add_space_invite
            BadRequestError: The address already belongs to a member
        """
        await self.members.permissions_check(user_id, space_id, Permission.ADD_SPACE_INVITE)
        if await self.members.member_exists(space_id, to_user):
            raise BadRequestError("that user is already a member of this space", space_id=space_id)

        invite = await self.db.insert(
            "spaces_invites",
            {
                "id": invite_id or str(uuid.uuid4()),
                "space_id": space_id,
                "from_user_id": user_id,
                "to_user": to_user,
                "data": data or {},
            },
        )
        sync_ids = await self._fanout(user_id, invite, SyncAction.ADD)

        logger.info("Created invite", extra={"space_id": space_id, "invite_id": invite["id"]})
        return MutationResult(data=invite, sync_ids=sync_ids)

    async def edit(self, user_id: int, invite_id: str, data: dict[str, Any]) -> MutationResult:
        """Replace an invite's data.

        Raises:
            NotFoundError: No such invite
            ForbiddenError: Caller lacks edit_space_invite in the invite's space
        """
        invite = await self.get_by_id(invite_id)
        if not invite:
            raise NotFoundError(
                f"invite {invite_id} does not exist",
                resource_type="invite",
                resource_id=invite_id,
            )
        await self.members.permissions_check(
            user_id, invite["space_id"], Permission.EDIT_SPACE_INVITE
        )

        invite = await self.db.update("spaces_invites", invite_id, {"data": data})
        sync_ids = await self._fanout(user_id, invite, SyncAction.EDIT)
        return MutationResult(data=invite, sync_ids=sync_ids)

    async def delete(self, user_id: int, invite_id: str) -> MutationResult:
        """Withdraw an invite. Withdrawing a missing invite is a no-op."""
        invite = await self.get_by_id(invite_id)
        if not invite:
            return MutationResult()
        await self.members.permissions_check(
            user_id, invite["space_id"], Permission.DELETE_SPACE_INVITE
        )

        await self.db.delete("spaces_invites", invite_id)
        sync_ids = await self._fanout(user_id, invite, SyncAction.DELETE)
        return MutationResult(sync_ids=sync_ids)

    async def get_by_id(self, invite_id: str) -> dict[str, Any] | None:
        return await self.db.by_id("spaces_invites", invite_id)

    async def get_by_space_id(self, space_id: str) -> list[dict[str, Any]]:
        return await self.db.query(
            "SELECT * FROM spaces_invites WHERE space_id = :space_id",
            {"space_id": space_id},
        )

    async def get_by_spaces_ids(self, space_ids: list[str]) -> list[dict[str, Any]]:
        return await self.db.by_ids("spaces_invites", space_ids, id_field="space_id")
