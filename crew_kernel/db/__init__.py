"""Database layer - engine, base classes, types, and immutability guards."""

from crew_kernel.db.base import UUID, Base, UTCDateTime, UUIDString
from crew_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    get_session_factory,
    session_scope,
)
from crew_kernel.db.types import round_money, to_money

__all__ = [
    "get_engine",
    "get_session",
    "get_session_factory",
    "session_scope",
    "create_tables",
    "Base",
    "UTCDateTime",
    "UUIDString",
    "UUID",
    "round_money",
    "to_money",
]
