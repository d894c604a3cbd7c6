"""
SpaceSync - service wiring and entry point.

Builds every component (storage, membership, sync ledger, models) from one
Settings object so the API layer can hold a single SpaceSync instance.

Usage:
    python -m spacesync.main

Configuration is entirely via environment variables.
See config.py for all available settings.
"""

from __future__ import annotations

import asyncio
import logging

import json_log_formatter

from .access import MembershipStore
from .config import Settings
from .models import (
    BoardModel,
    InviteStore,
    KeychainStore,
    MutationPipeline,
    NoteModel,
    SpaceModel,
    UserDirectory,
)
from .store import Database
from .sync import SyncLedger

logger = logging.getLogger(__name__)


def setup_logging(settings: Settings) -> None:
    """Configure root logging from settings.

    Args:
        settings: SpaceSync settings
    """
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    if settings.log_format == "json":
        formatter: logging.Formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]


class SpaceSync:
    """Holds the wired-up components.

    Attributes:
        settings: Loaded settings
        db: Row store
        ledger: Sync ledger (and sync handler registry)
        members: Membership store / permission checks
        users: User directory
        keychain: Keychain store
        invites: Invite store
        pipeline: Generic mutation pipeline
        notes: Note model
        boards: Board model
        spaces: Space model

    Example:
        >>> app = SpaceSync(Settings(database_path="/tmp/spaces.db"))
        >>> await app.start()
        >>> await app.spaces.add(1, {"id": "s1"})
    """

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or Settings()

        self.db = Database(
            self.settings.database_path,
            wal_mode=self.settings.wal_mode,
            busy_timeout_ms=self.settings.busy_timeout_ms,
        )
        self.ledger = SyncLedger(self.db)
        self.members = MembershipStore(self.db)
        self.users = UserDirectory(self.db)
        self.keychain = KeychainStore(self.db, self.ledger)
        self.invites = InviteStore(self.db, self.members, self.ledger, self.users)
        self.pipeline = MutationPipeline(self.db, self.members, self.ledger)
        self.notes = NoteModel(self.db, self.ledger, self.pipeline)
        self.boards = BoardModel(self.db, self.members, self.ledger, self.pipeline, self.notes)
        self.spaces = SpaceModel(
            self.db,
            self.members,
            self.ledger,
            self.users,
            self.keychain,
            self.invites,
            self.boards,
            self.notes,
            delete_concurrency=self.settings.delete_concurrency,
        )

    async def start(self) -> None:
        """Create the database schema if needed."""
        await self.db.initialize()
        logger.info(
            "SpaceSync started",
            extra={
                "database_path": self.settings.database_path,
                "delete_concurrency": self.settings.delete_concurrency,
            },
        )


async def main() -> None:
    settings = Settings()
    setup_logging(settings)
    app = SpaceSync(settings)
    await app.start()


if __name__ == "__main__":
    asyncio.run(main())
