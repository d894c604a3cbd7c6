"""
Generic permission-checked mutations for objects that live in a space.

Boards, notes (and any future space-scoped type) share the same skeleton:
validate -> check permission in the space -> write the row -> fan out sync
records to the space's members. The factories here build that skeleton once,
parameterized by an ObjectType descriptor.

Invariants:
    - Validation runs before any storage access
    - Permission checks run before any storage write
    - Edits keep the stored user_id/space_id, never the payload's
    - Adds never change the space of an existing item
    - Deleting a missing item is a no-op with no sync records
    - Moving an item to the space it is already in is a no-op
    - Sync fanout happens after the row write

How to change safely:
    - make_item must be a pure function of its arguments
    - post_move hooks must return the sync ids they create
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from ..access import MembershipStore, Permission
from ..errors import ForbiddenError, NotFoundError
from ..store import Database
from ..sync import SyncAction, SyncLedger
from .validator import validate

logger = logging.getLogger(__name__)

# Sync action per partition when an item changes spaces
MOVE_ACTIONS = MappingProxyType(
    {
        "same": SyncAction.EDIT,
        "old": SyncAction.DELETE,
        "new": SyncAction.ADD,
    }
)

PostMoveHook = Callable[[int, dict[str, Any], str, str], Awaitable[list[int]]]


@dataclass(frozen=True)
class ObjectType:
    """Describes a space-scoped object type to the pipeline factories.

    Attributes:
        sync_type: Sync type tag, also the validation schema name
        table: Storage table
        get_by_id: Loads the item's data by id (None if missing)
        make_item: Builds the row to write from validated data
            (and, for edits, the existing item's data)
    """

    sync_type: str
    table: str
    get_by_id: Callable[[str], Awaitable[dict[str, Any] | None]]
    make_item: Callable[..., dict[str, Any]]


@dataclass
class MutationResult:
    """Outcome of a mutation.

    Attributes:
        data: The object's data after the mutation (None for deletes)
        sync_ids: Ids of every sync record the mutation produced
    """

    data: dict[str, Any] | None = None
    sync_ids: list[int] = field(default_factory=list)


class MutationPipeline:
    """Builds add/edit/delete/move operations for space-scoped objects.

    Example:
        >>> pipeline = MutationPipeline(db, members, ledger)
        >>> add_board = pipeline.simple_add(board_type, Permission.ADD_SPACE_BOARD)
        >>> result = await add_board(42, {"id": "b1", "space_id": "s1"})
        >>> result.sync_ids
        [17, 18]
    """

    def __init__(
        self,
        db: Database,
        members: MembershipStore,
        ledger: SyncLedger,
        validate_fn: Callable[[str, Any], dict[str, Any]] = validate,
    ) -> None:
        self.db = db
        self.members = members
        self.ledger = ledger
        self.validate = validate_fn

    async def _fanout(
        self,
        user_id: int,
        space_id: str,
        obj: ObjectType,
        item_id: str,
        action: SyncAction,
    ) -> list[int]:
        user_ids = await self.members.get_space_user_ids(space_id)
        return await self.ledger.add_record(user_ids, user_id, obj.sync_type, item_id, action)

    def simple_add(
        self,
        obj: ObjectType,
        permission: Permission,
    ) -> Callable[[int, dict[str, Any]], Awaitable[MutationResult]]:
        """Build an add operation: validate, check, upsert, fan out `add`.

        Re-adding an existing item in its own space updates it in place and
        keeps its creator. An id that lives in another space is refused;
        changing spaces goes through move_space.
        """

        async def add(user_id: int, data: dict[str, Any]) -> MutationResult:
            data = self.validate(obj.sync_type, {**data, "user_id": user_id})
            space_id = data["space_id"]
            await self.members.permissions_check(user_id, space_id, permission)

            existing = await obj.get_by_id(data["id"])
            if existing:
                if existing["space_id"] != space_id:
                    raise ForbiddenError(
                        f"{obj.sync_type} {data['id']} belongs to another space",
                        permission=permission.value,
                        space_id=existing["space_id"],
                    )
                data["user_id"] = existing["user_id"]

            row = await self.db.upsert(obj.table, obj.make_item(data), "id")
            sync_ids = await self._fanout(user_id, space_id, obj, row["id"], SyncAction.ADD)

            logger.debug(
                "Added item",
                extra={"sync_type": obj.sync_type, "item_id": row["id"], "space_id": space_id},
            )
            return MutationResult(data=row["data"], sync_ids=sync_ids)

        return add

    def simple_edit(
        self,
        obj: ObjectType,
        permission: Permission,
    ) -> Callable[[int, dict[str, Any]], Awaitable[MutationResult]]:
        """Build an edit operation.

        Provenance (user_id, space_id) is copied from the stored item, and the
        permission is checked against the stored item's space, so a payload
        can't move or re-attribute an item.
        """

        async def edit(user_id: int, data: dict[str, Any]) -> MutationResult:
            data = self.validate(obj.sync_type, data)
            item_id = data["id"]
            existing = await obj.get_by_id(item_id)
            if not existing:
                raise NotFoundError(
                    f"{obj.sync_type} {item_id} does not exist",
                    resource_type=obj.sync_type,
                    resource_id=item_id,
                )

            data["user_id"] = existing["user_id"]
            data["space_id"] = existing["space_id"]
            space_id = data["space_id"]
            await self.members.permissions_check(user_id, space_id, permission)

            row = await self.db.update(obj.table, item_id, obj.make_item(data, existing))
            if row is None:
                raise NotFoundError(
                    f"{obj.sync_type} {item_id} does not exist",
                    resource_type=obj.sync_type,
                    resource_id=item_id,
                )
            sync_ids = await self._fanout(user_id, space_id, obj, item_id, SyncAction.EDIT)
            return MutationResult(data=row["data"], sync_ids=sync_ids)

        return edit

    def simple_delete(
        self,
        obj: ObjectType,
        permission: Permission,
    ) -> Callable[[int, str], Awaitable[MutationResult]]:
        """Build a delete operation. Deleting a missing item succeeds quietly."""

        async def delete(user_id: int, item_id: str) -> MutationResult:
            existing = await obj.get_by_id(item_id)
            if not existing:
                return MutationResult()

            space_id = existing["space_id"]
            await self.members.permissions_check(user_id, space_id, permission)

            await self.db.delete(obj.table, item_id)
            sync_ids = await self._fanout(user_id, space_id, obj, item_id, SyncAction.DELETE)
            return MutationResult(sync_ids=sync_ids)

        return delete

    def simple_move_space(
        self,
        obj: ObjectType,
        perm_delete: Permission,
        perm_add: Permission,
        post_move: PostMoveHook | None = None,
    ) -> Callable[[int, dict[str, Any]], Awaitable[MutationResult]]:
        """Build an operation that moves an item from one space to another.

        The caller needs perm_delete in the source space and perm_add in the
        destination. Members of both spaces get `edit`, members only of the
        source get `delete`, members only of the destination get `add`.

        Args:
            obj: Object type
            perm_delete: Permission required in the source space
            perm_add: Permission required in the destination space
            post_move: Optional hook run after the move, called with
                (user_id, moved item data, old space id, new space id);
                its sync ids are appended to the result (ex. a board moving
                its notes along with it)
        """

        async def move_space(user_id: int, data: dict[str, Any]) -> MutationResult:
            data = self.validate(obj.sync_type, data)
            item_id = data["id"]
            current = await obj.get_by_id(item_id)
            if not current:
                raise NotFoundError(
                    f"{obj.sync_type} {item_id} does not exist",
                    resource_type=obj.sync_type,
                    resource_id=item_id,
                )

            old_space_id = current["space_id"]
            new_space_id = data["space_id"]
            if old_space_id == new_space_id:
                return MutationResult(data=current, sync_ids=[])

            await self.members.permissions_check(user_id, old_space_id, perm_delete)
            await self.members.permissions_check(user_id, new_space_id, perm_add)

            current["space_id"] = new_space_id
            # keys are encrypted per space, so the old ones are useless now
            if "keys" in data:
                current["keys"] = data["keys"]
            else:
                current.pop("keys", None)

            row = await self.db.update(
                obj.table,
                item_id,
                {"space_id": new_space_id, "data": current},
            )
            if row is None:
                raise NotFoundError(
                    f"{obj.sync_type} {item_id} does not exist",
                    resource_type=obj.sync_type,
                    resource_id=item_id,
                )

            old_user_ids = await self.members.get_space_user_ids(old_space_id)
            new_user_ids = await self.members.get_space_user_ids(new_space_id)
            split = self.ledger.split_same_users(old_user_ids, new_user_ids)
            sync_ids = await self.ledger.add_records_from_split(
                user_id, split, MOVE_ACTIONS, obj.sync_type, item_id
            )
            result = MutationResult(data=row["data"], sync_ids=sync_ids)

            if post_move is not None:
                result.sync_ids.extend(
                    await post_move(user_id, result.data, old_space_id, new_space_id)
                )

            logger.info(
                "Moved item between spaces",
                extra={
                    "sync_type": obj.sync_type,
                    "item_id": item_id,
                    "old_space_id": old_space_id,
                    "new_space_id": new_space_id,
                },
            )
            return result

        return move_space
