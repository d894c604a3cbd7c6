"""
SQLite row store for SpaceSync.

This module provides the narrow storage interface the space models are
written against:
- by_id / by_ids lookups
- free-form query / first
- insert / update / upsert / delete of single rows

Each call is one statement in autocommit mode, so every call is atomic on
its own. Nothing here groups several calls into a transaction; callers that
issue multiple writes accept that a later failure leaves earlier writes in
place.

Invariants:
    - Columns listed in JSON_COLUMNS are stored as JSON text and returned decoded
    - Table and column names are checked against the schema before use
    - Rows are returned as plain dicts

How to change safely:
    - Add tables with CREATE TABLE IF NOT EXISTS so initialize() stays idempotent
    - New JSON columns must be added to JSON_COLUMNS

Table schema:
    users:          id INTEGER, username TEXT UNIQUE, data
    spaces:         id TEXT, data
    spaces_users:   id INTEGER, space_id, user_id, role, UNIQUE (space_id, user_id)
    spaces_invites: id TEXT, space_id, from_user_id, to_user, data
    boards:         id TEXT, space_id, user_id, data
    notes:          id TEXT, space_id, board_id, user_id, data
    keychain:       id TEXT, user_id, item_id, data
    sync:           id INTEGER, item_id, type, action, user_id (actor), recipient_id, created
"""

from __future__ import annotations

import json
import logging
import sqlite3
from collections.abc import Iterable, Iterator, Sequence
from contextlib import contextmanager
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

SCHEMA = """
    CREATE TABLE IF NOT EXISTS users (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        username TEXT NOT NULL UNIQUE,
        data TEXT NOT NULL DEFAULT '{}'
    );

    CREATE TABLE IF NOT EXISTS spaces (
        id TEXT PRIMARY KEY,
        data TEXT NOT NULL DEFAULT '{}'
    );

    CREATE TABLE IF NOT EXISTS spaces_users (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        space_id TEXT NOT NULL,
        user_id INTEGER NOT NULL,
        role TEXT NOT NULL,
        UNIQUE (space_id, user_id)
    );

    CREATE INDEX IF NOT EXISTS idx_spaces_users_user ON spaces_users(user_id);

    CREATE TABLE IF NOT EXISTS spaces_invites (
        id TEXT PRIMARY KEY,
        space_id TEXT NOT NULL,
        from_user_id INTEGER NOT NULL,
        to_user TEXT NOT NULL,
        data TEXT NOT NULL DEFAULT '{}'
    );

    CREATE INDEX IF NOT EXISTS idx_spaces_invites_space ON spaces_invites(space_id);

    CREATE TABLE IF NOT EXISTS boards (
        id TEXT PRIMARY KEY,
        space_id TEXT NOT NULL,
        user_id INTEGER NOT NULL,
        data TEXT NOT NULL DEFAULT '{}'
    );

    CREATE INDEX IF NOT EXISTS idx_boards_space ON boards(space_id);

    CREATE TABLE IF NOT EXISTS notes (
        id TEXT PRIMARY KEY,
        space_id TEXT NOT NULL,
        board_id TEXT,
        user_id INTEGER NOT NULL,
        data TEXT NOT NULL DEFAULT '{}'
    );

    CREATE INDEX IF NOT EXISTS idx_notes_space ON notes(space_id);
    CREATE INDEX IF NOT EXISTS idx_notes_board ON notes(board_id);

    CREATE TABLE IF NOT EXISTS keychain (
        id TEXT PRIMARY KEY,
        user_id INTEGER NOT NULL,
        item_id TEXT NOT NULL,
        data TEXT NOT NULL DEFAULT '{}'
    );

    CREATE INDEX IF NOT EXISTS idx_keychain_item ON keychain(item_id);
    CREATE INDEX IF NOT EXISTS idx_keychain_user_item ON keychain(user_id, item_id);

    CREATE TABLE IF NOT EXISTS sync (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        item_id TEXT NOT NULL,
        type TEXT NOT NULL,
        action TEXT NOT NULL,
        user_id INTEGER NOT NULL,
        recipient_id INTEGER NOT NULL,
        created INTEGER NOT NULL
    );

    CREATE INDEX IF NOT EXISTS idx_sync_recipient ON sync(recipient_id, id);
    CREATE INDEX IF NOT EXISTS idx_sync_item ON sync(type, item_id);
"""


class Database:
    """Single-file SQLite store implementing the row-level storage interface.

    Thread safety:
        Each call opens its own connection.
        SQLite handles concurrent access via WAL mode.

    Example:
        >>> db = Database("/var/lib/spacesync/spacesync.db")
        >>> await db.initialize()
        >>> space = await db.upsert("spaces", {"id": "s1", "data": {"id": "s1"}}, "id")
        >>> await db.by_id("spaces", "s1")
        {'id': 's1', 'data': {'id': 's1'}}
    """

    JSON_COLUMNS = frozenset({"data"})

    TABLES: dict[str, frozenset[str]] = {
        "users": frozenset({"id", "username", "data"}),
        "spaces": frozenset({"id", "data"}),
        "spaces_users": frozenset({"id", "space_id", "user_id", "role"}),
        "spaces_invites": frozenset({"id", "space_id", "from_user_id", "to_user", "data"}),
        "boards": frozenset({"id", "space_id", "user_id", "data"}),
        "notes": frozenset({"id", "space_id", "board_id", "user_id", "data"}),
        "keychain": frozenset({"id", "user_id", "item_id", "data"}),
        "sync": frozenset(
            {"id", "item_id", "type", "action", "user_id", "recipient_id", "created"}
        ),
    }

    def __init__(
        self,
        path: str,
        wal_mode: bool = True,
        busy_timeout_ms: int = 5000,
    ) -> None:
        """Initialize the store.

        Args:
            path: SQLite database file
            wal_mode: Enable SQLite WAL mode
            busy_timeout_ms: SQLite busy timeout
        """
        self.path = Path(path)
        self.wal_mode = wal_mode
        self.busy_timeout_ms = busy_timeout_ms

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        """Open a configured connection in autocommit mode."""
        self.path.parent.mkdir(parents=True, exist_ok=True)

        conn = sqlite3.connect(
            str(self.path),
            timeout=self.busy_timeout_ms / 1000.0,
            isolation_level=None,
        )
        conn.row_factory = sqlite3.Row

        try:
            conn.execute(f"PRAGMA busy_timeout = {self.busy_timeout_ms}")
            if self.wal_mode:
                conn.execute("PRAGMA journal_mode = WAL")
            conn.execute("PRAGMA synchronous = NORMAL")
            yield conn
        finally:
            conn.close()

    async def initialize(self) -> None:
        """Create the database file and schema if they don't exist."""
        with self._get_connection() as conn:
            conn.executescript(SCHEMA)
        logger.info("Initialized database", extra={"path": str(self.path)})

    def _check_table(self, table: str, columns: Iterable[str] = ()) -> None:
        known = self.TABLES.get(table)
        if known is None:
            raise ValueError(f"Unknown table: {table}")
        unknown = set(columns) - known
        if unknown:
            raise ValueError(f"Unknown columns for {table}: {sorted(unknown)}")

    def _encode(self, data: dict[str, Any]) -> dict[str, Any]:
        encoded = {}
        for key, value in data.items():
            if key in self.JSON_COLUMNS and not isinstance(value, str):
                value = json.dumps(value)
            encoded[key] = value
        return encoded

    def _decode(self, row: sqlite3.Row | None) -> dict[str, Any] | None:
        if row is None:
            return None
        item = dict(row)
        for key in self.JSON_COLUMNS:
            value = item.get(key)
            if isinstance(value, str):
                item[key] = json.loads(value)
        return item

    async def by_id(self, table: str, item_id: Any, id_field: str = "id") -> dict[str, Any] | None:
        """Get a single row by id, or None."""
        self._check_table(table, [id_field])
        with self._get_connection() as conn:
            cursor = conn.execute(f"SELECT * FROM {table} WHERE {id_field} = ?", (item_id,))
            return self._decode(cursor.fetchone())

    async def by_ids(
        self,
        table: str,
        ids: Sequence[Any],
        id_field: str = "id",
        fields: Sequence[str] | None = None,
    ) -> list[dict[str, Any]]:
        """Get all rows whose id_field is in ids.

        Args:
            table: Table name
            ids: Values to match
            id_field: Column to match against
            fields: Columns to select (default: all)

        Returns:
            Matching rows, in storage order
        """
        ids = list(ids)
        if not ids:
            return []
        self._check_table(table, [id_field, *(fields or [])])
        columns = ", ".join(fields) if fields else "*"
        placeholders = ", ".join("?" for _ in ids)
        with self._get_connection() as conn:
            cursor = conn.execute(
                f"SELECT {columns} FROM {table} WHERE {id_field} IN ({placeholders})",
                ids,
            )
            return [self._decode(row) for row in cursor.fetchall()]

    async def query(self, sql: str, params: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        """Run a statement with named parameters and return all rows."""
        with self._get_connection() as conn:
            cursor = conn.execute(sql, params or {})
            return [self._decode(row) for row in cursor.fetchall()]

    async def first(self, sql: str, params: dict[str, Any] | None = None) -> dict[str, Any] | None:
        """Run a query and return the first row, or None."""
        with self._get_connection() as conn:
            cursor = conn.execute(sql, params or {})
            return self._decode(cursor.fetchone())

    async def insert(self, table: str, data: dict[str, Any]) -> dict[str, Any]:
        """Insert a row and return it as stored."""
        self._check_table(table, data.keys())
        encoded = self._encode(data)
        columns = ", ".join(encoded)
        values = ", ".join(f":{c}" for c in encoded)
        with self._get_connection() as conn:
            cursor = conn.execute(f"INSERT INTO {table} ({columns}) VALUES ({values})", encoded)
            row = conn.execute(
                f"SELECT * FROM {table} WHERE rowid = ?", (cursor.lastrowid,)
            ).fetchone()

        logger.debug("Inserted row", extra={"table": table})
        return self._decode(row)

    async def update(
        self,
        table: str,
        item_id: Any,
        data: dict[str, Any],
        id_field: str = "id",
    ) -> dict[str, Any] | None:
        """Update columns of a row.

        Returns:
            The updated row, or None if no row matched
        """
        self._check_table(table, [id_field, *data.keys()])
        encoded = self._encode(data)
        assignments = ", ".join(f"{c} = :{c}" for c in encoded)
        params = {**encoded, "__id": item_id}
        with self._get_connection() as conn:
            cursor = conn.execute(
                f"UPDATE {table} SET {assignments} WHERE {id_field} = :__id",
                params,
            )
            if cursor.rowcount == 0:
                return None
            row = conn.execute(
                f"SELECT * FROM {table} WHERE {id_field} = ?", (item_id,)
            ).fetchone()

        logger.debug("Updated row", extra={"table": table, "id": item_id})
        return self._decode(row)

    async def upsert(
        self,
        table: str,
        data: dict[str, Any],
        key: str | Sequence[str],
    ) -> dict[str, Any]:
        """Insert a row, or update it in place if the key already exists.

        Args:
            table: Table name
            data: Column values (must include the key columns)
            key: Conflict column, or columns of a unique constraint

        Returns:
            The row as stored
        """
        keys = [key] if isinstance(key, str) else list(key)
        self._check_table(table, [*keys, *data.keys()])
        missing = [k for k in keys if k not in data]
        if missing:
            raise ValueError(f"Upsert into {table} is missing key columns: {missing}")

        encoded = self._encode(data)
        columns = ", ".join(encoded)
        values = ", ".join(f":{c}" for c in encoded)
        updates = [c for c in encoded if c not in keys]
        if updates:
            on_conflict = "DO UPDATE SET " + ", ".join(f"{c} = excluded.{c}" for c in updates)
        else:
            on_conflict = "DO NOTHING"
        where = " AND ".join(f"{k} = :{k}" for k in keys)

        with self._get_connection() as conn:
            conn.execute(
                f"INSERT INTO {table} ({columns}) VALUES ({values}) "
                f"ON CONFLICT ({', '.join(keys)}) {on_conflict}",
                encoded,
            )
            row = conn.execute(f"SELECT * FROM {table} WHERE {where}", encoded).fetchone()

        logger.debug("Upserted row", extra={"table": table})
        return self._decode(row)

    async def delete(self, table: str, item_id: Any, id_field: str = "id") -> bool:
        """Delete a row.

        Returns:
            True if deleted, False if not found
        """
        self._check_table(table, [id_field])
        with self._get_connection() as conn:
            cursor = conn.execute(f"DELETE FROM {table} WHERE {id_field} = ?", (item_id,))
            return cursor.rowcount > 0
