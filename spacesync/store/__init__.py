"""
Storage module for SpaceSync.

Row-level SQLite storage consumed by the access, sync and model layers.
"""

from .database import Database

__all__ = ["Database"]
