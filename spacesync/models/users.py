"""
User directory lookups used for invite resolution and member display.
"""

from __future__ import annotations

import logging
from typing import Any

from ..store import Database

logger = logging.getLogger(__name__)


class UserDirectory:
    """Read access to user accounts (plus account creation for seeding)."""

    def __init__(self, db: Database) -> None:
        self.db = db

    async def add(self, username: str, data: dict[str, Any] | None = None) -> dict[str, Any]:
        user = await self.db.insert("users", {"username": username, "data": data or {}})
        logger.info("Created user", extra={"user_id": user["id"]})
        return user

    async def get_by_id(self, user_id: int) -> dict[str, Any] | None:
        return await self.db.by_id("users", user_id)

    async def get_by_ids(self, user_ids: list[int]) -> list[dict[str, Any]]:
        return await self.db.by_ids("users", user_ids)

    async def get_by_emails(self, emails: list[str]) -> list[dict[str, Any]]:
        """Resolve usernames (emails) to accounts. Unknown emails are skipped."""
        return await self.db.by_ids("users", emails, id_field="username")
