"""
Configuration for SpaceSync.

All configuration is done via environment variables (prefix SPACESYNC_),
loaded with pydantic-settings.

Invariants:
    - All settings have sensible defaults for local development
    - Settings are read once at startup and treated as read-only

How to change safely:
    - Add new settings with defaults that keep existing deployments working
"""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """SpaceSync configuration loaded from environment."""

    # Storage
    database_path: str = Field(
        default="/var/lib/spacesync/spacesync.db",
        description="SQLite database file",
    )
    wal_mode: bool = Field(default=True, description="Enable SQLite WAL journal mode")
    busy_timeout_ms: int = Field(default=5000, description="SQLite busy timeout")

    # Mutation pipeline
    delete_concurrency: int = Field(
        default=8,
        ge=1,
        description="Max in-flight board/note deletes while deleting a space",
    )

    # Logging
    log_level: str = Field(default="INFO", description="DEBUG, INFO, WARNING, ERROR")
    log_format: str = Field(default="json", description="json or text")

    model_config = {"env_prefix": "SPACESYNC_"}
