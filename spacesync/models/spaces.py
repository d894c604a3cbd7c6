"""
Space aggregate operations.

A space owns boards, notes, invites, keychain entries and the membership
records that grant access to all of them. This module covers the space's
own lifecycle (create, edit, cascading delete, ownership transfer) and the
member-management operations, each emitting the sync records that keep
every member's devices in step.

Invariants:
    - Every space has exactly one owner membership record
    - The owner can only change through set_owner
    - Deleting a space removes its notes, boards, invites, memberships and
      keychain entries, and syncs every removal
    - Deleting a space that is already gone is a no-op

How to change safely:
    - Keep the delete cascade's emission order; clients rely on seeing
      `unshare` before the final `delete`
    - Capture recipients before removing membership rows
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from ..access import MembershipStore, Permission, Role
from ..errors import BadRequestError, ForbiddenError, NotFoundError
from ..store import Database
from ..sync import SyncAction, SyncLedger
from .boards import BoardModel
from .invites import InviteStore
from .keychain import KeychainStore
from .notes import NoteModel
from .pipeline import MutationResult
from .users import UserDirectory
from .validator import validate

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SpaceModel:
    """Space lifecycle and membership operations.

    Example:
        >>> spaces = SpaceModel(db, members, ledger, users, keychain, invites, boards, notes)
        >>> result = await spaces.add(42, {"id": "s1", "body": "..."})
        >>> await spaces.set_owner(42, "s1", 43)
        >>> await spaces.delete(43, "s1")
    """

    def __init__(
        self,
        db: Database,
        members: MembershipStore,
        ledger: SyncLedger,
        users: UserDirectory,
        keychain: KeychainStore,
        invites: InviteStore,
        boards: BoardModel,
        notes: NoteModel,
        delete_concurrency: int = 8,
    ) -> None:
        self.db = db
        self.members = members
        self.ledger = ledger
        self.users = users
        self.keychain = keychain
        self.invites = invites
        self.boards = boards
        self.notes = notes
        self.delete_concurrency = delete_concurrency

        ledger.register(
            "space",
            {
                "add": self.add,
                "edit": self.edit,
                "delete": self.delete,
                "link": self._link_handler,
            },
        )

    async def _fanout(self, user_id: int, space_id: str, action: SyncAction) -> list[int]:
        user_ids = await self.members.get_space_user_ids(space_id)
        return await self.ledger.add_record(user_ids, user_id, "space", space_id, action)

    async def populate_members(
        self,
        spaces: list[dict[str, Any]],
        skip_invites: bool = False,
    ) -> list[dict[str, Any]]:
        """Attach member (with usernames) and invite lists to space rows.

        Members whose account no longer exists are left out.

        Args:
            spaces: Space rows ({"id", "data"}); their data dicts are updated
            skip_invites: Don't load invites

        Returns:
            The same rows
        """
        if not spaces:
            return spaces

        space_ids = [space["id"] for space in spaces]
        members = await self.members.get_by_space_ids(space_ids)
        users = await self.users.get_by_ids(list({m["user_id"] for m in members}))
        user_idx = {user["id"]: user for user in users}
        invites = [] if skip_invites else await self.invites.get_by_spaces_ids(space_ids)

        space_idx = {}
        for space in spaces:
            space["data"]["members"] = []
            space["data"]["invites"] = []
            space_idx[space["id"]] = space

        for member in members:
            user = user_idx.get(member["user_id"])
            space = space_idx.get(member["space_id"])
            if not user or not space:
                continue
            space["data"]["members"].append({**member, "username": user["username"]})

        for invite in invites:
            space = space_idx.get(invite["space_id"])
            if space:
                space["data"]["invites"].append(invite)

        return spaces

    async def get_by_id(
        self,
        space_id: str,
        populate: bool = False,
        raw: bool = False,
    ) -> dict[str, Any] | None:
        """Get a space.

        Args:
            space_id: Space id
            populate: Attach members and invites
            raw: Return the whole row instead of its data

        Returns:
            Space data (or row), None if missing
        """
        space = await self.db.by_id("spaces", space_id)
        if not space:
            return None
        if populate:
            await self.populate_members([space])
        if raw:
            return space
        return space["data"]

    async def get_by_user_id(self, user_id: int, role: Role | None = None) -> list[dict[str, Any]]:
        """Get every space a user is in (optionally only with a given role)."""
        sql = """
            SELECT s.*
            FROM spaces s, spaces_users su
            WHERE s.id = su.space_id AND su.user_id = :user_id
        """
        params: dict[str, Any] = {"user_id": user_id}
        if role is not None:
            sql += " AND su.role = :role"
            params["role"] = role.value
        spaces = await self.populate_members(await self.db.query(sql, params))
        return [space["data"] for space in spaces]

    async def get_data_tree(
        self,
        space_id: str,
        skip_invites: bool = False,
    ) -> tuple[dict[str, Any] | None, list[dict[str, Any]], list[dict[str, Any]]]:
        """Get a space with everything in it.

        Returns:
            (space data or None, boards, notes)
        """
        space = await self.db.by_id("spaces", space_id)
        space_data = None
        if space:
            await self.populate_members([space], skip_invites=skip_invites)
            space_data = space["data"]
        boards, notes = await asyncio.gather(
            self.boards.get_by_space_id(space_id),
            self.notes.get_by_space_id(space_id),
        )
        return space_data, boards, notes

    async def update_member(
        self,
        user_id: int,
        space_id: str,
        member_user_id: int,
        data: dict[str, Any],
    ) -> MutationResult:
        """Change a member's role.

        Raises:
            ValidationError: Bad payload
            ForbiddenError: Caller lacks edit_space_member
            NotFoundError: No such member
            BadRequestError: Target is the owner, or the new role is owner
        """
        data = validate("space-member", data)
        await self.members.permissions_check(user_id, space_id, Permission.EDIT_SPACE_MEMBER)

        member = await self.members.get_space_user_record(member_user_id, space_id)
        if not member:
            raise NotFoundError(
                "that member wasn't found",
                resource_type="space-member",
                resource_id=member_user_id,
            )
        if member["role"] == Role.OWNER.value:
            raise BadRequestError("you cannot edit the owner", space_id=space_id)
        if data["role"] == Role.OWNER.value:
            raise BadRequestError("use set_owner to change the owner", space_id=space_id)

        member = await self.db.update("spaces_users", member["id"], {"role": data["role"]})
        user = await self.users.get_by_id(member["user_id"])
        if user:
            member["username"] = user["username"]

        sync_ids = await self._fanout(user_id, space_id, SyncAction.EDIT)
        return MutationResult(data=member, sync_ids=sync_ids)

    async def delete_member(self, user_id: int, space_id: str, member_user_id: int) -> MutationResult:
        """Remove a member from a space (or leave it, when removing oneself).

        The member's keychain entries for the space are removed too.

        Raises:
            ForbiddenError: Caller lacks delete_space_member and isn't the member
            NotFoundError: No such member
            BadRequestError: Target is the owner
        """
        has_perm = await self.members.user_has_permission(
            user_id, space_id, Permission.DELETE_SPACE_MEMBER
        )
        if not has_perm and user_id != member_user_id:
            raise ForbiddenError(
                "you do not have permission to remove that user",
                permission=Permission.DELETE_SPACE_MEMBER.value,
                space_id=space_id,
            )

        member = await self.members.get_space_user_record(member_user_id, space_id)
        if not member:
            raise NotFoundError(
                "that member wasn't found",
                resource_type="space-member",
                resource_id=member_user_id,
            )
        if member["role"] == Role.OWNER.value:
            raise BadRequestError("you cannot delete the owner", space_id=space_id)

        await self.db.delete("spaces_users", member["id"])

        sync_ids = await self.keychain.delete_by_user_item(member_user_id, space_id, actor_id=user_id)
        sync_ids.extend(await self._fanout(user_id, space_id, SyncAction.EDIT))
        sync_ids.extend(
            await self.ledger.add_record(
                [member_user_id], user_id, "space", space_id, SyncAction.UNSHARE
            )
        )

        logger.info(
            "Removed space member",
            extra={"space_id": space_id, "member_user_id": member_user_id},
        )
        return MutationResult(sync_ids=sync_ids)

    async def set_owner(self, user_id: int, space_id: str, new_user_id: int) -> MutationResult:
        """Hand ownership to another member. The old owner becomes admin.

        Raises:
            ForbiddenError: Caller lacks set_space_owner
            NotFoundError: Space, current owner record or target member missing
        """
        await self.members.permissions_check(user_id, space_id, Permission.SET_SPACE_OWNER)

        space = await self.get_by_id(space_id)
        cur_owner = await self.members.get_space_user_record(user_id, space_id)
        new_owner = await self.members.get_space_user_record(new_user_id, space_id)
        if not space:
            raise NotFoundError("that space was not found", resource_type="space", resource_id=space_id)
        if not cur_owner:
            raise NotFoundError(
                "that space owner was not found", resource_type="space-member", resource_id=user_id
            )
        if not new_owner:
            raise NotFoundError(
                "that space member was not found",
                resource_type="space-member",
                resource_id=new_user_id,
            )

        space["user_id"] = new_user_id
        row = await self.db.update("spaces", space_id, {"data": space})
        await self.db.update("spaces_users", cur_owner["id"], {"role": Role.ADMIN.value})
        await self.db.update("spaces_users", new_owner["id"], {"role": Role.OWNER.value})

        sync_ids = await self._fanout(user_id, space_id, SyncAction.EDIT)
        await self.populate_members([row])

        logger.info(
            "Transferred space ownership",
            extra={"space_id": space_id, "from_user_id": user_id, "to_user_id": new_user_id},
        )
        return MutationResult(data=row["data"], sync_ids=sync_ids)

    async def add(self, user_id: int, data: dict[str, Any]) -> MutationResult:
        """Create a space owned by the caller.

        Re-sending the add for a space the caller already owns updates it in
        place; a space id owned by someone else is refused.
        """
        data = validate("space", {**data, "user_id": user_id})
        space_id = data["id"]

        existing = await self.get_by_id(space_id)
        if existing and existing.get("user_id") != user_id:
            raise ForbiddenError(
                f"space {space_id} belongs to another user",
                permission=Permission.EDIT_SPACE.value,
                space_id=space_id,
            )

        space = await self.db.upsert("spaces", {"id": space_id, "data": data}, "id")
        await self.members.create_space_user_record(space_id, user_id, Role.OWNER)
        sync_ids = await self.ledger.add_record([user_id], user_id, "space", space_id, SyncAction.ADD)
        await self.populate_members([space])

        logger.info("Created space", extra={"space_id": space_id, "user_id": user_id})
        return MutationResult(data=space["data"], sync_ids=sync_ids)

    async def edit(self, user_id: int, data: dict[str, Any]) -> MutationResult:
        """Edit a space. The stored owner is kept whatever the payload says."""
        data = validate("space", data)
        space_id = data["id"]
        await self.members.permissions_check(user_id, space_id, Permission.EDIT_SPACE)

        existing = await self.get_by_id(space_id)
        if not existing:
            raise NotFoundError("that space was not found", resource_type="space", resource_id=space_id)
        data["user_id"] = existing["user_id"]

        space = await self.db.update("spaces", space_id, {"data": data})
        sync_ids = await self._fanout(user_id, space_id, SyncAction.EDIT)
        await self.populate_members([space])
        return MutationResult(data=space["data"], sync_ids=sync_ids)

    async def _gather_bounded(self, calls: list[Callable[[], Awaitable[T]]]) -> list[T]:
        """Run calls with at most delete_concurrency in flight.

        Every call finishes before the first failure (if any) is raised.
        """
        semaphore = asyncio.Semaphore(self.delete_concurrency)

        async def run(call: Callable[[], Awaitable[T]]) -> T:
            async with semaphore:
                return await call()

        results = await asyncio.gather(*(run(call) for call in calls), return_exceptions=True)
        errors = [r for r in results if isinstance(r, BaseException)]
        if errors:
            logger.error(
                "Cascade step failed",
                extra={"failed": len(errors), "total": len(results)},
            )
            raise errors[0]
        return results

    async def delete(self, user_id: int, space_id: str) -> MutationResult:
        """Delete a space and everything in it.

        Emission order:
            1. note/board deletes (via their own delete operations)
            2. invite `delete` to each invited user that has an account
            3. space `unshare` to current members
            4. keychain `delete` to each entry's owner
            5. space `delete` to the members captured before the cascade

        Sub-steps are not rolled back if a later one fails. If a note or board
        delete fails, the remaining ones still run and the cascade stops there
        (the space and its memberships stay).

        Returns:
            MutationResult whose sync_ids are the final space delete records
            (empty if the space was already gone)
        """
        space = await self.db.by_id("spaces", space_id)
        if not space:
            return MutationResult()
        await self.members.permissions_check(user_id, space_id, Permission.DELETE_SPACE)

        affected_user_ids = await self.members.get_space_user_ids(space_id)
        params = {"space_id": space_id}

        notes = await self.db.query("SELECT id FROM notes WHERE space_id = :space_id", params)
        boards = await self.db.query("SELECT id FROM boards WHERE space_id = :space_id", params)
        calls: list[Callable[[], Awaitable[MutationResult]]] = []
        calls.extend(
            lambda note_id=note["id"]: self.notes.delete_note(user_id, note_id) for note in notes
        )
        calls.extend(
            lambda board_id=board["id"]: self.boards.delete_board(user_id, board_id)
            for board in boards
        )
        await self._gather_bounded(calls)

        # invited users without an account are not notified
        invites = await self.invites.get_by_space_id(space_id)
        invite_idx = {invite["to_user"]: invite for invite in invites}
        for user in await self.users.get_by_emails(list(invite_idx)):
            await self.ledger.add_record(
                [user["id"]], user_id, "invite", invite_idx[user["username"]]["id"], SyncAction.DELETE
            )

        await self._fanout(user_id, space_id, SyncAction.UNSHARE)

        await self.db.query("DELETE FROM spaces_users WHERE space_id = :space_id", params)
        await self.db.query("DELETE FROM spaces_invites WHERE space_id = :space_id", params)
        await self.db.delete("spaces", space_id)

        for entry in await self.keychain.get_by_item_id(space_id):
            await self.keychain.delete_entry(user_id, entry)

        sync_ids = await self.ledger.add_record(
            affected_user_ids, user_id, "space", space_id, SyncAction.DELETE
        )

        logger.info(
            "Deleted space",
            extra={
                "space_id": space_id,
                "notes": len(notes),
                "boards": len(boards),
                "invites": len(invites),
            },
        )
        return MutationResult(sync_ids=sync_ids)

    delete_space = delete

    async def link(self, ids: list[str]) -> list[dict[str, Any]]:
        """Get several spaces (with members) by id. Read only."""
        spaces = await self.db.by_ids("spaces", ids, fields=["id", "data"])
        await self.populate_members(spaces)
        return [space["data"] for space in spaces]

    async def _link_handler(self, user_id: int, ids: list[str]) -> list[dict[str, Any]]:
        return await self.link(ids)

    async def get_space_size(self, space_id: str) -> int:
        """Size of a space in bytes: note bodies plus attached file sizes."""
        rows = await self.db.query(
            """
            SELECT
                LENGTH(CAST(json_extract(n.data, '$.body') AS BLOB)) AS nsize,
                CAST(json_extract(n.data, '$.file.size') AS INTEGER) AS fsize
            FROM notes n
            WHERE n.space_id = :space_id
            """,
            {"space_id": space_id},
        )
        return sum(int(row["nsize"] or 0) + int(row["fsize"] or 0) for row in rows)
