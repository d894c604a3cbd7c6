"""
Space-scoped object models for SpaceSync.

This module handles:
- Payload validation
- The generic add/edit/delete/move pipeline
- Boards, notes, invites, keychain entries and users
- Space lifecycle and membership operations
"""

from .boards import BoardModel
from .invites import InviteStore
from .keychain import KeychainStore
from .notes import NoteModel
from .pipeline import MOVE_ACTIONS, MutationPipeline, MutationResult, ObjectType
from .spaces import SpaceModel
from .users import UserDirectory
from .validator import validate

__all__ = [
    "BoardModel",
    "InviteStore",
    "KeychainStore",
    "MOVE_ACTIONS",
    "MutationPipeline",
    "MutationResult",
    "NoteModel",
    "ObjectType",
    "SpaceModel",
    "UserDirectory",
    "validate",
]
