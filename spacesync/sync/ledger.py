"""
Append-only sync ledger for SpaceSync.

Every mutation writes one sync record per affected user. Clients read their
own records (in id order) to learn which objects changed and converge on the
same state.

The ledger also keeps the registry of sync handlers: incoming client sync
items are routed by (type, action) to the model operation that applies them.

Invariants:
    - One record per recipient per emission
    - Records are never updated or deleted by this module
    - Emission happens after the primary write it describes

How to change safely:
    - New actions must be added to SyncAction; clients switch on them
    - Keep add_records_from_split partition order (same, old, new) stable
"""

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ..errors import BadRequestError
from ..store import Database

logger = logging.getLogger(__name__)

SyncHandler = Callable[..., Awaitable[Any]]


class SyncAction(Enum):
    """What happened to an object, from the recipient's point of view."""

    ADD = "add"
    EDIT = "edit"
    DELETE = "delete"
    UNSHARE = "unshare"


@dataclass
class SyncRecord:
    """A single per-recipient change notification.

    Attributes:
        id: Ledger sequence id
        recipient_id: User the record is addressed to
        user_id: Actor who made the change
        type: Object type tag (space, board, note, invite, keychain)
        item_id: Id of the changed object
        action: add, edit, delete or unshare
        created: Creation timestamp (Unix ms)
    """

    id: int
    recipient_id: int
    user_id: int
    type: str
    item_id: str
    action: SyncAction
    created: int

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> SyncRecord:
        return cls(
            id=row["id"],
            recipient_id=row["recipient_id"],
            user_id=row["user_id"],
            type=row["type"],
            item_id=row["item_id"],
            action=SyncAction(row["action"]),
            created=row["created"],
        )


@dataclass
class UserSplit:
    """Two membership sets partitioned for a cross-space move.

    Attributes:
        same: Users in both the old and new space
        old: Users only in the old space (they lose the object)
        new: Users only in the new space (they gain the object)
    """

    same: list[int] = field(default_factory=list)
    old: list[int] = field(default_factory=list)
    new: list[int] = field(default_factory=list)


def split_same_users(old_user_ids: Iterable[int], new_user_ids: Iterable[int]) -> UserSplit:
    """Partition old/new member id sets by intersection and difference."""
    old_ids = list(dict.fromkeys(old_user_ids))
    new_ids = list(dict.fromkeys(new_user_ids))
    old_set = set(old_ids)
    new_set = set(new_ids)
    return UserSplit(
        same=[uid for uid in old_ids if uid in new_set],
        old=[uid for uid in old_ids if uid not in new_set],
        new=[uid for uid in new_ids if uid not in old_set],
    )


class SyncLedger:
    """Writes and reads sync records, and routes client sync items.

    Example:
        >>> ledger = SyncLedger(db)
        >>> ids = await ledger.add_record([1, 2], 1, "space", "s1", SyncAction.EDIT)
        >>> len(ids)
        2
    """

    def __init__(self, db: Database) -> None:
        self.db = db
        self._handlers: dict[str, dict[str, SyncHandler]] = {}

    async def add_record(
        self,
        user_ids: Iterable[int],
        actor_id: int,
        sync_type: str,
        item_id: str,
        action: SyncAction | str,
    ) -> list[int]:
        """Write one sync record per recipient.

        Args:
            user_ids: Recipients
            actor_id: User who made the change
            sync_type: Object type tag
            item_id: Changed object id
            action: What happened

        Returns:
            Ids of the created records, in recipient order
        """
        action = SyncAction(action)
        now = int(time.time() * 1000)
        sync_ids = []
        for recipient_id in user_ids:
            row = await self.db.insert(
                "sync",
                {
                    "item_id": item_id,
                    "type": sync_type,
                    "action": action.value,
                    "user_id": actor_id,
                    "recipient_id": recipient_id,
                    "created": now,
                },
            )
            sync_ids.append(row["id"])

        logger.debug(
            "Added sync records",
            extra={
                "sync_type": sync_type,
                "item_id": item_id,
                "action": action.value,
                "recipients": len(sync_ids),
            },
        )
        return sync_ids

    def split_same_users(self, old_user_ids: Iterable[int], new_user_ids: Iterable[int]) -> UserSplit:
        return split_same_users(old_user_ids, new_user_ids)

    async def add_records_from_split(
        self,
        actor_id: int,
        split: UserSplit,
        action_map: Mapping[str, SyncAction | str],
        sync_type: str,
        item_id: str,
    ) -> list[int]:
        """Emit records for each partition of a split with its own action.

        Args:
            actor_id: User who made the change
            split: Partitioned recipients
            action_map: Action per partition name ("same", "old", "new")
            sync_type: Object type tag
            item_id: Changed object id

        Returns:
            Concatenated record ids (same, then old, then new)
        """
        sync_ids: list[int] = []
        for part in ("same", "old", "new"):
            user_ids = getattr(split, part)
            action = action_map.get(part)
            if not user_ids or action is None:
                continue
            sync_ids.extend(await self.add_record(user_ids, actor_id, sync_type, item_id, action))
        return sync_ids

    async def records_for_user(
        self,
        user_id: int,
        after_id: int = 0,
        limit: int = 1000,
    ) -> list[SyncRecord]:
        """Get a recipient's records newer than after_id, oldest first."""
        rows = await self.db.query(
            """
            SELECT * FROM sync
            WHERE recipient_id = :user_id AND id > :after_id
            ORDER BY id ASC
            LIMIT :limit
            """,
            {"user_id": user_id, "after_id": after_id, "limit": limit},
        )
        return [SyncRecord.from_row(row) for row in rows]

    async def records_for_item(self, sync_type: str, item_id: str) -> list[SyncRecord]:
        """Get every record written about one object, oldest first."""
        rows = await self.db.query(
            "SELECT * FROM sync WHERE type = :type AND item_id = :item_id ORDER BY id ASC",
            {"type": sync_type, "item_id": item_id},
        )
        return [SyncRecord.from_row(row) for row in rows]

    def register(self, sync_type: str, handlers: Mapping[str, SyncHandler]) -> None:
        """Register the operations that apply client sync items of a type.

        Args:
            sync_type: Object type tag
            handlers: Map of action name (add, edit, delete, ...) to handler
        """
        self._handlers.setdefault(sync_type, {}).update(handlers)
        logger.debug(f"Registered sync handlers for {sync_type}: {sorted(handlers)}")

    async def dispatch(self, user_id: int, sync_type: str, action: str, payload: Any) -> Any:
        """Apply one incoming client sync item through its registered handler.

        Raises:
            BadRequestError: If no handler exists for (sync_type, action)
        """
        handler = self._handlers.get(sync_type, {}).get(action)
        if handler is None:
            raise BadRequestError(
                f"no sync handler for {sync_type}.{action}",
                sync_type=sync_type,
                action=action,
            )
        return await handler(user_id, payload)
