"""Database layer - engine and base classes."""

from asset_kernel.db.base import UUID, Base, TrackedBase, UUIDString
from asset_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session_factory,
    session_scope,
)

__all__ = [
    "get_engine",
    "get_session_factory",
    "session_scope",
    "create_tables",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UUID",
]
