"""
SpaceSync Test Suite.

This package contains:
- unit/: Unit tests (permission table, validation, storage, ledger, membership)
- integration/: Integration tests (fully wired SpaceSync over a temp SQLite file)
"""
