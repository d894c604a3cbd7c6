"""
Sync ledger for SpaceSync.

Per-recipient change records and the client sync handler registry.
"""

from .ledger import SyncAction, SyncLedger, SyncRecord, UserSplit, split_same_users

__all__ = [
    "SyncAction",
    "SyncLedger",
    "SyncRecord",
    "UserSplit",
    "split_same_users",
]
