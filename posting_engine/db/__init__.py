"""Database layer - engine, base classes, column types, and immutability."""

from posting_engine.db.base import UUID, Base, TrackedBase, UUIDString
from posting_engine.db.engine import (
    build_engine,
    create_tables,
    get_engine,
    get_session,
    session_scope,
)
from posting_engine.db.types import ZERO, round_money, to_decimal

__all__ = [
    "build_engine",
    "get_engine",
    "get_session",
    "session_scope",
    "create_tables",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UUID",
    "ZERO",
    "round_money",
    "to_decimal",
]
