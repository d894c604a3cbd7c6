"""
Keychain entries: per-user encryption keys for shared items.

Key material itself is opaque here; this module only tracks which user holds
an entry for which item so entries can be removed (and synced) when access
to the item goes away.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any

from ..store import Database
from ..sync import SyncAction, SyncLedger

logger = logging.getLogger(__name__)


class KeychainStore:
    """Keychain rows plus the sync records their removal produces."""

    def __init__(self, db: Database, ledger: SyncLedger) -> None:
        self.db = db
        self.ledger = ledger

    async def add_entry(
        self,
        user_id: int,
        item_id: str,
        data: dict[str, Any] | None = None,
        entry_id: str | None = None,
    ) -> dict[str, Any]:
        entry_id = entry_id or str(uuid.uuid4())
        return await self.db.upsert(
            "keychain",
            {"id": entry_id, "user_id": user_id, "item_id": item_id, "data": data or {}},
            "id",
        )

    async def get_by_item_id(self, item_id: str) -> list[dict[str, Any]]:
        """Get every user's entry for an item."""
        return await self.db.by_ids("keychain", [item_id], id_field="item_id")

    async def get_by_user_item(self, user_id: int, item_id: str) -> list[dict[str, Any]]:
        return await self.db.query(
            "SELECT * FROM keychain WHERE user_id = :user_id AND item_id = :item_id",
            {"user_id": user_id, "item_id": item_id},
        )

    async def delete_entry(self, actor_id: int, entry: dict[str, Any]) -> list[int]:
        """Remove one entry and tell its owner it is gone."""
        await self.db.delete("keychain", entry["id"])
        return await self.ledger.add_record(
            [entry["user_id"]], actor_id, "keychain", entry["id"], SyncAction.DELETE
        )

    async def delete_by_user_item(
        self,
        user_id: int,
        item_id: str,
        actor_id: int | None = None,
    ) -> list[int]:
        """Remove a user's entries for an item.

        Args:
            user_id: Owner of the entries
            item_id: Item the entries unlock
            actor_id: User causing the removal (default: the owner)

        Returns:
            Sync ids of the keychain delete records
        """
        actor_id = user_id if actor_id is None else actor_id
        sync_ids = []
        for entry in await self.get_by_user_item(user_id, item_id):
            sync_ids.extend(await self.delete_entry(actor_id, entry))
        return sync_ids
