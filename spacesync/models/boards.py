"""
Boards: groupings of notes within a space, built on the mutation pipeline.

A board that changes spaces takes its notes with it.
"""

from __future__ import annotations

import logging
from typing import Any

from ..access import MembershipStore, Permission
from ..store import Database
from ..sync import SyncLedger
from .notes import NoteModel
from .pipeline import MOVE_ACTIONS, MutationPipeline, ObjectType

logger = logging.getLogger(__name__)


def make_board(data: dict[str, Any], existing: dict[str, Any] | None = None) -> dict[str, Any]:
    return {
        "id": data["id"],
        "space_id": data["space_id"],
        "user_id": data["user_id"],
        "data": data,
    }


class BoardModel:
    """Board operations plus the note cascade for cross-space moves."""

    def __init__(
        self,
        db: Database,
        members: MembershipStore,
        ledger: SyncLedger,
        pipeline: MutationPipeline,
        notes: NoteModel,
    ) -> None:
        self.db = db
        self.members = members
        self.ledger = ledger
        self.notes = notes
        self.type = ObjectType(
            sync_type="board",
            table="boards",
            get_by_id=self.get_by_id,
            make_item=make_board,
        )
        self.add = pipeline.simple_add(self.type, Permission.ADD_SPACE_BOARD)
        self.edit = pipeline.simple_edit(self.type, Permission.EDIT_SPACE_BOARD)
        self.delete_board = pipeline.simple_delete(self.type, Permission.DELETE_SPACE_BOARD)
        self.move_space = pipeline.simple_move_space(
            self.type,
            Permission.DELETE_SPACE_BOARD,
            Permission.ADD_SPACE_BOARD,
            post_move=self.move_notes,
        )

        ledger.register(
            "board",
            {
                "add": self.add,
                "edit": self.edit,
                "delete": self.delete_board,
                "move-space": self.move_space,
            },
        )

    async def get_by_id(self, board_id: str) -> dict[str, Any] | None:
        row = await self.db.by_id("boards", board_id)
        return row["data"] if row else None

    async def get_by_space_id(self, space_id: str) -> list[dict[str, Any]]:
        rows = await self.db.by_ids("boards", [space_id], id_field="space_id")
        return [row["data"] for row in rows]

    async def move_notes(
        self,
        user_id: int,
        board: dict[str, Any],
        old_space_id: str,
        new_space_id: str,
    ) -> list[int]:
        """Point the moved board's notes from the old space at the new one.

        Notes of the board that sit in some other space are left alone.

        Returns:
            Sync ids for the moved notes
        """
        old_user_ids = await self.members.get_space_user_ids(old_space_id)
        new_user_ids = await self.members.get_space_user_ids(new_space_id)
        split = self.ledger.split_same_users(old_user_ids, new_user_ids)

        sync_ids: list[int] = []
        for note in await self.notes.get_by_board_id(board["id"]):
            if note["space_id"] != old_space_id:
                continue
            note["space_id"] = new_space_id
            await self.db.update("notes", note["id"], {"space_id": new_space_id, "data": note})
            sync_ids.extend(
                await self.ledger.add_records_from_split(
                    user_id, split, MOVE_ACTIONS, "note", note["id"]
                )
            )

        logger.debug(
            "Moved board notes",
            extra={"board_id": board["id"], "new_space_id": new_space_id},
        )
        return sync_ids
