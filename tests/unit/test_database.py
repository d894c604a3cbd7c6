"""
Unit tests for the SQLite row store.

Tests cover:
- Insert / lookup with JSON columns
- Update and upsert semantics
- Delete
- Table/column checks
"""

import pytest


class TestDatabase:
    """Tests for Database."""

    @pytest.mark.asyncio
    async def test_insert_and_by_id(self, db):
        """Inserted rows come back with JSON decoded."""
        row = await db.insert("spaces", {"id": "s1", "data": {"id": "s1", "body": "x"}})
        assert row == {"id": "s1", "data": {"id": "s1", "body": "x"}}

        fetched = await db.by_id("spaces", "s1")
        assert fetched["data"]["body"] == "x"

    @pytest.mark.asyncio
    async def test_by_id_missing(self, db):
        """Missing rows are None."""
        assert await db.by_id("spaces", "nope") is None

    @pytest.mark.asyncio
    async def test_insert_autoincrement(self, db):
        """Integer primary keys are assigned and returned."""
        first = await db.insert("users", {"username": "a@example.com"})
        second = await db.insert("users", {"username": "b@example.com"})
        assert second["id"] == first["id"] + 1
        assert first["data"] == {}

    @pytest.mark.asyncio
    async def test_by_ids(self, db):
        """by_ids matches on any column and ignores empty input."""
        await db.insert("boards", {"id": "b1", "space_id": "s1", "user_id": 1, "data": {}})
        await db.insert("boards", {"id": "b2", "space_id": "s1", "user_id": 1, "data": {}})
        await db.insert("boards", {"id": "b3", "space_id": "s2", "user_id": 1, "data": {}})

        rows = await db.by_ids("boards", ["s1"], id_field="space_id")
        assert {r["id"] for r in rows} == {"b1", "b2"}
        assert await db.by_ids("boards", []) == []

        rows = await db.by_ids("boards", ["b1", "b3"], fields=["id"])
        assert sorted(r["id"] for r in rows) == ["b1", "b3"]
        assert "data" not in rows[0]

    @pytest.mark.asyncio
    async def test_update(self, db):
        """update returns the new row, or None when nothing matched."""
        await db.insert("spaces", {"id": "s1", "data": {"body": "old"}})
        row = await db.update("spaces", "s1", {"data": {"body": "new"}})
        assert row["data"] == {"body": "new"}
        assert await db.update("spaces", "missing", {"data": {}}) is None

    @pytest.mark.asyncio
    async def test_upsert_inserts_then_updates(self, db):
        """upsert keeps one row per key."""
        await db.upsert("spaces", {"id": "s1", "data": {"v": 1}}, "id")
        row = await db.upsert("spaces", {"id": "s1", "data": {"v": 2}}, "id")
        assert row["data"] == {"v": 2}
        assert len(await db.query("SELECT * FROM spaces")) == 1

    @pytest.mark.asyncio
    async def test_upsert_composite_key(self, db):
        """upsert on a unique pair updates the existing record."""
        first = await db.upsert(
            "spaces_users", {"space_id": "s1", "user_id": 1, "role": "member"}, ("space_id", "user_id")
        )
        second = await db.upsert(
            "spaces_users", {"space_id": "s1", "user_id": 1, "role": "admin"}, ("space_id", "user_id")
        )
        assert second["id"] == first["id"]
        assert second["role"] == "admin"

    @pytest.mark.asyncio
    async def test_delete(self, db):
        """delete reports whether a row was removed."""
        await db.insert("spaces", {"id": "s1", "data": {}})
        assert await db.delete("spaces", "s1") is True
        assert await db.delete("spaces", "s1") is False

    @pytest.mark.asyncio
    async def test_first(self, db):
        """first returns one row or None."""
        await db.insert("spaces", {"id": "s1", "data": {}})
        row = await db.first("SELECT id FROM spaces WHERE id = :id", {"id": "s1"})
        assert row == {"id": "s1"}
        assert await db.first("SELECT id FROM spaces WHERE id = :id", {"id": "s2"}) is None

    @pytest.mark.asyncio
    async def test_unknown_table_or_column(self, db):
        """Unknown identifiers are refused before reaching SQL."""
        with pytest.raises(ValueError):
            await db.by_id("spaces; DROP TABLE spaces", "s1")
        with pytest.raises(ValueError):
            await db.insert("spaces", {"id": "s1", "owner": 1})
