"""
Integration tests for the generic mutation pipeline (via boards and notes).

Tests cover:
- Add / edit / delete fanout
- Provenance preservation on edit
- Idempotent delete
- Cross-space moves and the board -> notes cascade
"""

import pytest

from spacesync.access import Role
from spacesync.errors import ForbiddenError, NotFoundError, ValidationError
from spacesync.sync import SyncAction


async def make_space(app, owner_id, space_id, members=None):
    await app.spaces.add(owner_id, {"id": space_id, "body": "enc"})
    for user_id, role in (members or {}).items():
        await app.members.create_space_user_record(space_id, user_id, role)


async def count_sync(app):
    return len(await app.db.query("SELECT id FROM sync"))


def actions_by_recipient(records):
    return {r.recipient_id: r.action for r in records}


class TestAddEdit:
    """Tests for simple_add / simple_edit."""

    @pytest.mark.asyncio
    async def test_add_fans_out_to_members(self, app, users):
        """Every member gets an `add` record; the item is attributed to the actor."""
        alice, bob = users["alice"], users["bob"]
        await make_space(app, alice, "s1", {bob: Role.MEMBER})

        result = await app.notes.add(bob, {"id": "n1", "space_id": "s1", "user_id": 999})

        assert result.data["user_id"] == bob
        assert len(result.sync_ids) == 2
        records = await app.ledger.records_for_item("note", "n1")
        assert actions_by_recipient(records) == {alice: SyncAction.ADD, bob: SyncAction.ADD}
        assert sorted(r.id for r in records) == sorted(result.sync_ids)

    @pytest.mark.asyncio
    async def test_add_requires_permission(self, app, users):
        """Guests can't add, and nothing is written."""
        alice, bob = users["alice"], users["bob"]
        await make_space(app, alice, "s1", {bob: Role.GUEST})
        before = await count_sync(app)

        with pytest.raises(ForbiddenError):
            await app.boards.add(bob, {"id": "b1", "space_id": "s1"})

        assert await app.boards.get_by_id("b1") is None
        assert await count_sync(app) == before

    @pytest.mark.asyncio
    async def test_validation_before_storage(self, app, users, monkeypatch):
        """Bad payloads fail before any storage call."""

        async def no_storage(*args, **kwargs):
            raise AssertionError("storage touched")

        monkeypatch.setattr(app.db, "first", no_storage)
        monkeypatch.setattr(app.db, "by_id", no_storage)
        monkeypatch.setattr(app.db, "upsert", no_storage)

        with pytest.raises(ValidationError):
            await app.boards.add(users["alice"], {"id": "b1"})
        with pytest.raises(ValidationError):
            await app.boards.edit(users["alice"], {"space_id": "s1"})
        with pytest.raises(ValidationError):
            await app.boards.move_space(users["alice"], {"id": "b1"})

    @pytest.mark.asyncio
    async def test_edit_keeps_provenance(self, app, users):
        """Edits keep the stored user_id and space_id."""
        alice, bob = users["alice"], users["bob"]
        await make_space(app, alice, "s1", {bob: Role.MEMBER})
        await make_space(app, bob, "s2")
        await app.boards.add(alice, {"id": "b1", "space_id": "s1", "body": "v1"})

        result = await app.boards.edit(
            bob, {"id": "b1", "space_id": "s2", "user_id": bob, "body": "v2"}
        )

        assert result.data["body"] == "v2"
        assert result.data["user_id"] == alice
        assert result.data["space_id"] == "s1"
        row = await app.db.by_id("boards", "b1")
        assert row["space_id"] == "s1"
        records = await app.ledger.records_for_item("board", "b1")
        edits = [r for r in records if r.action == SyncAction.EDIT]
        assert sorted(r.recipient_id for r in edits) == sorted([alice, bob])

    @pytest.mark.asyncio
    async def test_edit_checks_existing_space(self, app, users):
        """Claiming a space you control doesn't grant access to the item's space."""
        alice, carol = users["alice"], users["carol"]
        await make_space(app, alice, "s1")
        await make_space(app, carol, "s2")
        await app.notes.add(alice, {"id": "n1", "space_id": "s1", "body": "mine"})

        with pytest.raises(ForbiddenError) as exc_info:
            await app.notes.edit(
                carol, {"id": "n1", "space_id": "s2", "user_id": carol, "body": "hijack"}
            )
        assert exc_info.value.space_id == "s1"
        assert (await app.notes.get_by_id("n1"))["body"] == "mine"

    @pytest.mark.asyncio
    async def test_add_refuses_item_from_other_space(self, app, users):
        """Re-adding an id from another space doesn't take the item over."""
        alice, bob, carol = users["alice"], users["bob"], users["carol"]
        await make_space(app, alice, "s1", {bob: Role.MEMBER})
        await make_space(app, carol, "s2")
        await app.notes.add(alice, {"id": "n1", "space_id": "s1", "body": "mine"})

        with pytest.raises(ForbiddenError) as exc_info:
            await app.notes.add(carol, {"id": "n1", "space_id": "s2", "body": "taken"})
        assert exc_info.value.space_id == "s1"

        row = await app.db.by_id("notes", "n1")
        assert row["space_id"] == "s1"
        assert row["user_id"] == alice
        assert row["data"]["body"] == "mine"
        bob_records = [
            r for r in await app.ledger.records_for_user(bob) if r.type == "note"
        ]
        assert [(r.item_id, r.action) for r in bob_records] == [("n1", SyncAction.ADD)]
        assert [r.type for r in await app.ledger.records_for_user(carol)] == ["space"]

    @pytest.mark.asyncio
    async def test_readd_in_same_space_keeps_creator(self, app, users):
        """Re-adding in the item's own space updates it and keeps its creator."""
        alice, bob = users["alice"], users["bob"]
        await make_space(app, alice, "s1", {bob: Role.MEMBER})
        await app.boards.add(alice, {"id": "b1", "space_id": "s1", "body": "v1"})

        result = await app.boards.add(bob, {"id": "b1", "space_id": "s1", "body": "v2"})

        assert result.data["user_id"] == alice
        assert result.data["body"] == "v2"
        assert (await app.db.by_id("boards", "b1"))["user_id"] == alice

    @pytest.mark.asyncio
    async def test_edit_missing(self, app, users):
        """Editing a missing item is NOT_FOUND."""
        with pytest.raises(NotFoundError):
            await app.notes.edit(users["alice"], {"id": "nope", "space_id": "s1", "user_id": 1})


class TestDelete:
    """Tests for simple_delete."""

    @pytest.mark.asyncio
    async def test_delete_missing_is_noop(self, app, users, monkeypatch):
        """Deleting something already gone succeeds without writes."""
        before = await count_sync(app)

        async def no_write(*args, **kwargs):
            raise AssertionError("storage written")

        monkeypatch.setattr(app.db, "delete", no_write)
        monkeypatch.setattr(app.db, "insert", no_write)

        result = await app.notes.delete_note(users["alice"], "ghost")
        assert result.sync_ids == []
        assert result.data is None
        monkeypatch.undo()
        assert await count_sync(app) == before

    @pytest.mark.asyncio
    async def test_delete_fans_out(self, app, users):
        """Members get `delete`, and the row is gone."""
        alice, bob = users["alice"], users["bob"]
        await make_space(app, alice, "s1", {bob: Role.MEMBER})
        await app.boards.add(alice, {"id": "b1", "space_id": "s1"})

        result = await app.boards.delete_board(bob, "b1")

        assert len(result.sync_ids) == 2
        assert await app.boards.get_by_id("b1") is None
        records = await app.ledger.records_for_item("board", "b1")
        deletes = [r for r in records if r.action == SyncAction.DELETE]
        assert sorted(r.recipient_id for r in deletes) == sorted([alice, bob])

    @pytest.mark.asyncio
    async def test_delete_requires_permission(self, app, users):
        """Guests can't delete."""
        alice, bob = users["alice"], users["bob"]
        await make_space(app, alice, "s1", {bob: Role.GUEST})
        await app.notes.add(alice, {"id": "n1", "space_id": "s1"})

        with pytest.raises(ForbiddenError):
            await app.notes.delete_note(bob, "n1")
        assert await app.notes.get_by_id("n1") is not None


class TestMoveSpace:
    """Tests for simple_move_space."""

    @pytest.mark.asyncio
    async def test_move_to_same_space_is_noop(self, app, users):
        """Moving into the current space changes nothing."""
        alice = users["alice"]
        await make_space(app, alice, "s1")
        added = await app.notes.add(alice, {"id": "n1", "space_id": "s1", "body": "x"})
        before = await count_sync(app)

        result = await app.notes.move_space(
            alice, {"id": "n1", "space_id": "s1", "user_id": alice, "body": "changed"}
        )

        assert result.sync_ids == []
        assert result.data == added.data
        assert await count_sync(app) == before

    @pytest.mark.asyncio
    async def test_move_splits_recipients(self, app, users):
        """{A,B} -> {B,C}: edit to B, delete to A, add to C."""
        alice, bob, carol = users["alice"], users["bob"], users["carol"]
        await make_space(app, alice, "s1", {bob: Role.MEMBER})
        await make_space(app, carol, "s2", {bob: Role.MEMBER})
        await app.notes.add(bob, {"id": "n1", "space_id": "s1", "keys": [{"s": "old"}]})

        result = await app.notes.move_space(
            bob, {"id": "n1", "space_id": "s2", "user_id": bob, "keys": [{"s": "new"}]}
        )

        assert result.data["space_id"] == "s2"
        assert result.data["keys"] == [{"s": "new"}]
        row = await app.db.by_id("notes", "n1")
        assert row["space_id"] == "s2"

        records = await app.ledger.records_for_item("note", "n1")
        moved = [r for r in records if r.id in result.sync_ids]
        assert len(moved) == 3
        assert actions_by_recipient(moved) == {
            bob: SyncAction.EDIT,
            alice: SyncAction.DELETE,
            carol: SyncAction.ADD,
        }

    @pytest.mark.asyncio
    async def test_move_drops_unsupplied_keys(self, app, users):
        """Old-space keys don't survive a move without new ones."""
        alice = users["alice"]
        await make_space(app, alice, "s1")
        await make_space(app, alice, "s2")
        await app.notes.add(alice, {"id": "n1", "space_id": "s1", "keys": [{"s": "old"}]})

        result = await app.notes.move_space(alice, {"id": "n1", "space_id": "s2", "user_id": alice})
        assert "keys" not in result.data

    @pytest.mark.asyncio
    async def test_move_requires_both_permissions(self, app, users):
        """Delete permission in the source and add permission in the destination."""
        alice, bob, carol = users["alice"], users["bob"], users["carol"]
        await make_space(app, alice, "s1", {bob: Role.MEMBER})
        await make_space(app, carol, "s2", {bob: Role.GUEST})
        await make_space(app, carol, "s3")
        await app.notes.add(bob, {"id": "n1", "space_id": "s1"})

        with pytest.raises(ForbiddenError) as exc_info:
            await app.notes.move_space(bob, {"id": "n1", "space_id": "s2", "user_id": bob})
        assert exc_info.value.space_id == "s2"

        with pytest.raises(ForbiddenError):
            await app.notes.move_space(bob, {"id": "n1", "space_id": "s3", "user_id": bob})

        assert (await app.notes.get_by_id("n1"))["space_id"] == "s1"

    @pytest.mark.asyncio
    async def test_move_missing(self, app, users):
        """Moving a missing item is NOT_FOUND."""
        with pytest.raises(NotFoundError):
            await app.boards.move_space(
                users["alice"], {"id": "nope", "space_id": "s1", "user_id": users["alice"]}
            )

    @pytest.mark.asyncio
    async def test_board_move_takes_notes(self, app, users):
        """A moved board's notes follow it, with their own sync records."""
        alice, carol = users["alice"], users["carol"]
        await make_space(app, alice, "s1")
        await make_space(app, alice, "s2", {carol: Role.MEMBER})
        await app.boards.add(alice, {"id": "b1", "space_id": "s1"})
        await app.notes.add(alice, {"id": "n1", "space_id": "s1", "board_id": "b1"})
        await app.notes.add(alice, {"id": "n2", "space_id": "s1", "board_id": "b1"})
        await app.notes.add(alice, {"id": "n3", "space_id": "s1"})

        result = await app.boards.move_space(alice, {"id": "b1", "space_id": "s2", "user_id": alice})

        # board: edit to alice, add to carol; each note the same
        assert len(result.sync_ids) == 6
        for note_id in ("n1", "n2"):
            note = await app.notes.get_by_id(note_id)
            assert note["space_id"] == "s2"
            row = await app.db.by_id("notes", note_id)
            assert row["space_id"] == "s2"
            records = await app.ledger.records_for_item("note", note_id)
            assert actions_by_recipient(r for r in records if r.id in result.sync_ids) == {
                alice: SyncAction.EDIT,
                carol: SyncAction.ADD,
            }
        assert (await app.notes.get_by_id("n3"))["space_id"] == "s1"

    @pytest.mark.asyncio
    async def test_board_move_leaves_notes_in_other_spaces(self, app, users):
        """Only notes that were in the board's old space move with it."""
        alice, dave = users["alice"], users["dave"]
        await make_space(app, alice, "s1")
        await make_space(app, alice, "s2")
        await make_space(app, alice, "s3", {dave: Role.MEMBER})
        await app.boards.add(alice, {"id": "b1", "space_id": "s1"})
        await app.notes.add(alice, {"id": "n1", "space_id": "s1", "board_id": "b1"})
        await app.notes.add(alice, {"id": "n2", "space_id": "s3", "board_id": "b1"})

        result = await app.boards.move_space(alice, {"id": "b1", "space_id": "s2", "user_id": alice})

        assert (await app.notes.get_by_id("n1"))["space_id"] == "s2"
        assert (await app.notes.get_by_id("n2"))["space_id"] == "s3"
        assert (await app.db.by_id("notes", "n2"))["space_id"] == "s3"
        records = await app.ledger.records_for_item("note", "n2")
        assert [r for r in records if r.id in result.sync_ids] == []
        assert [r.action for r in await app.ledger.records_for_user(dave)] == [SyncAction.ADD]


class TestSyncDispatch:
    """Client sync items routed through the ledger."""

    @pytest.mark.asyncio
    async def test_dispatch_note_add(self, app, users):
        """Registered note handlers apply client sync items."""
        alice = users["alice"]
        await make_space(app, alice, "s1")
        result = await app.ledger.dispatch(alice, "note", "add", {"id": "n1", "space_id": "s1"})
        assert result.data["id"] == "n1"
        assert await app.notes.get_by_id("n1") is not None
