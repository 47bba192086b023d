"""Database layer - engine, base classes, and money rounding."""

from settlement_kernel.db.base import UUID, Base, TenantScopedMixin, TrackedBase, UUIDString
from settlement_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    get_session_factory,
    init_engine_from_url,
    session_scope,
)
from settlement_kernel.db.types import round_money, to_decimal

__all__ = [
    "init_engine_from_url",
    "get_engine",
    "get_session",
    "get_session_factory",
    "session_scope",
    "create_tables",
    "Base",
    "TrackedBase",
    "TenantScopedMixin",
    "UUIDString",
    "UUID",
    "round_money",
    "to_decimal",
]
