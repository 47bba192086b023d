"""
Module: settlement_kernel.db.base
Responsibility: Declarative base classes for every settlement ORM model.
    Supplies the UUID primary key, the column type map for money and
    timestamps, the audit columns of TrackedBase, and the tenant column
    shared by all tenant-scoped tables.
Architecture position: Kernel > DB.  Lowest import target inside the kernel;
    MUST NOT import from services/, domain/, or any outer package.

Invariants enforced:
    - UUID primary keys on every table (uuid4, stored as String(36) so the
      same schema runs on PostgreSQL and SQLite).
    - Decimal maps to Numeric(38, 9).  Amounts are never stored as float;
      cent rounding happens in the domain, not in the column.
    - Every TrackedBase row records who created it.  For a settlement period
      that creator is the one actor barred from approving it.

Failure modes:
    - IntegrityError on duplicate primary key or missing created_by_id.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import BigInteger, Date, DateTime, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, declared_attr, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """
    UUID stored as its 36-character string form.

    Contract:
        Python UUID in, UUID out.  The database only ever sees strings,
        which keeps PostgreSQL and SQLite schemas identical.
    """

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return str(value)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return PyUUID(value)


class Base(DeclarativeBase):
    """
    Declarative base for all settlement models.

    Guarantees:
        - ``id`` is a uuid4 primary key.
        - Decimal -> Numeric(38, 9), datetime -> timezone-aware DateTime,
          date -> Date, int -> BigInteger.
    """

    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(38, 9),
        datetime: DateTime(timezone=True),
        date: Date,
        PyUUID: UUIDString(),
        int: BigInteger,
    }

    id: Mapped[PyUUID] = mapped_column(
        UUIDString(),
        primary_key=True,
        default=uuid4,
    )


class TrackedBase(Base):
    """
    Abstract base with audit timestamps and actor columns.

    Contract:
        ``created_by_id`` is mandatory.  ``updated_by_id`` is set by the
        services whenever they mutate a row on behalf of an actor.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    created_by_id: Mapped[PyUUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    updated_by_id: Mapped[PyUUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )


class TenantScopedMixin:
    """Adds an indexed, mandatory ``tenant_id`` column."""

    @declared_attr
    def tenant_id(cls) -> Mapped[PyUUID]:
        return mapped_column(UUIDString(), nullable=False, index=True)


UUID = PyUUID
