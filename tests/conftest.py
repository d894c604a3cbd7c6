"""
Shared fixtures for SpaceSync tests.
"""

import tempfile
from pathlib import Path

import pytest
import pytest_asyncio

from spacesync.config import Settings
from spacesync.main import SpaceSync
from spacesync.store import Database


@pytest.fixture
def data_dir():
    """Create temporary data directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir


@pytest_asyncio.fixture
async def db(data_dir):
    """Initialized database in the temp directory."""
    database = Database(str(Path(data_dir) / "spacesync.db"), wal_mode=False)
    await database.initialize()
    return database


@pytest_asyncio.fixture
async def app(data_dir):
    """Fully wired SpaceSync over a fresh database."""
    settings = Settings(
        database_path=str(Path(data_dir) / "spacesync.db"),
        wal_mode=False,
        delete_concurrency=2,
    )
    spacesync = SpaceSync(settings)
    await spacesync.start()
    return spacesync


@pytest_asyncio.fixture
async def users(app):
    """Four accounts: alice, bob, carol, dave (ids 1-4)."""
    created = {}
    for name in ("alice", "bob", "carol", "dave"):
        created[name] = (await app.users.add(f"{name}@example.com"))["id"]
    return created
