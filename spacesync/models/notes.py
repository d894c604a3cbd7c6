"""
Notes: the leaf objects of a space, built on the mutation pipeline.
"""

from __future__ import annotations

from typing import Any

from ..access import Permission
from ..store import Database
from ..sync import SyncLedger
from .pipeline import MutationPipeline, ObjectType


def make_note(data: dict[str, Any], existing: dict[str, Any] | None = None) -> dict[str, Any]:
    return {
        "id": data["id"],
        "space_id": data["space_id"],
        "board_id": data.get("board_id"),
        "user_id": data["user_id"],
        "data": data,
    }


class NoteModel:
    """Note operations. Field contents beyond provenance are opaque here."""

    def __init__(self, db: Database, ledger: SyncLedger, pipeline: MutationPipeline) -> None:
        self.db = db
        self.type = ObjectType(
            sync_type="note",
            table="notes",
            get_by_id=self.get_by_id,
            make_item=make_note,
        )
        self.add = pipeline.simple_add(self.type, Permission.ADD_SPACE_NOTE)
        self.edit = pipeline.simple_edit(self.type, Permission.EDIT_SPACE_NOTE)
        self.delete_note = pipeline.simple_delete(self.type, Permission.DELETE_SPACE_NOTE)
        self.move_space = pipeline.simple_move_space(
            self.type,
            Permission.DELETE_SPACE_NOTE,
            Permission.ADD_SPACE_NOTE,
        )

        ledger.register(
            "note",
            {
                "add": self.add,
                "edit": self.edit,
                "delete": self.delete_note,
                "move-space": self.move_space,
            },
        )

    async def get_by_id(self, note_id: str) -> dict[str, Any] | None:
        row = await self.db.by_id("notes", note_id)
        return row["data"] if row else None

    async def get_by_space_id(self, space_id: str) -> list[dict[str, Any]]:
        rows = await self.db.by_ids("notes", [space_id], id_field="space_id")
        return [row["data"] for row in rows]

    async def get_by_board_id(self, board_id: str) -> list[dict[str, Any]]:
        rows = await self.db.by_ids("notes", [board_id], id_field="board_id")
        return [row["data"] for row in rows]
