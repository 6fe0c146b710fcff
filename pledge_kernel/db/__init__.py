"""Database layer - engine, base classes and column types."""

from pledge_kernel.db.base import Base, IdType, TrackedBase, UUIDString
from pledge_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_engine,
    get_session,
    init_engine_from_url,
    reset_engine,
    session_scope,
)
from pledge_kernel.db.types import (
    SUPPORTED_CURRENCIES,
    USD,
    Currency,
    Money,
    Rate,
    validate_currency,
)

__all__ = [
    "init_engine_from_url",
    "get_engine",
    "get_session",
    "session_scope",
    "create_tables",
    "drop_tables",
    "reset_engine",
    "Base",
    "TrackedBase",
    "IdType",
    "UUIDString",
    "Money",
    "Rate",
    "Currency",
    "USD",
    "SUPPORTED_CURRENCIES",
    "validate_currency",
]
