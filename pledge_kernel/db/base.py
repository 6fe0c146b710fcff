"""
Declarative bases shared by every pledge ledger table.

Nothing here may import from models, services, selectors or domain; this is
the bottom of the kernel's import graph.

Conventions:
    - Every row is keyed by a database-assigned positive integer.  Callers
      treat 0 and None alike as "no reference".
    - Decimal columns default to Numeric(14, 2).  Amounts are never floats.
    - Ledger rows remember who created and last touched them.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID

from sqlalchemy import BigInteger, Date, DateTime, Integer, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

# BIGINT on postgres; sqlite will only autoincrement a plain INTEGER key.
IdType = BigInteger().with_variant(Integer(), "sqlite")


class UUIDString(TypeDecorator):
    """Actor UUIDs kept as 36-character text so sqlite and postgres agree."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else str(value)

    def process_result_value(self, value, dialect):
        return None if value is None else UUID(value)


class Base(DeclarativeBase):
    """Root of the ORM hierarchy; supplies the integer ``id`` column."""

    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(14, 2),
        datetime: DateTime(timezone=True),
        date: Date,
        UUID: UUIDString(),
    }

    id: Mapped[int] = mapped_column(IdType, primary_key=True, autoincrement=True)


class TrackedBase(Base):
    """
    Abstract parent of ledger tables.

    ``created_at``/``updated_at`` come from the database clock.  A
    reconciliation pass counts as an update, so it refreshes ``updated_at``
    and records the reconciling actor in ``updated_by_id``.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
    created_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    updated_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
