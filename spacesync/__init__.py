"""
SpaceSync - access control and sync fanout for shared note spaces.

This package implements the server-side bookkeeping behind shared spaces:
- Role-based permission checks against per-space membership records
- Permission-gated mutations of spaces, boards, notes, members and invites
- Per-recipient sync records so every affected device converges

Architecture:
    ┌─────────────┐     ┌──────────────────┐     ┌──────────────┐
    │  API caller │────▶│ SpaceModel /     │────▶│ Membership   │
    │             │     │ MutationPipeline │     │ Store (perm) │
    └─────────────┘     └────────┬─────────┘     └──────────────┘
                                 │
                    ┌────────────┴────────────┐
                    ▼                         ▼
               ┌─────────┐              ┌───────────┐
               │ SQLite  │              │ SyncLedger│
               │ (rows)  │              │ (fanout)  │
               └─────────┘              └───────────┘

Invariants:
    - Every mutation is permission checked before it touches storage
    - Sync records are emitted after the primary write
    - Each space has exactly one owner membership record

How to change safely:
    - New permissions must be added to the static role table
    - New object types should be built on the pipeline factories
"""

from ._version import __version__

__all__ = ["__version__"]
