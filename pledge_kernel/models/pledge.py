"""
Module: pledge_kernel.models.pledge
Responsibility: ORM persistence for pledges -- a contact's commitment to give
    an amount in a currency, plus the derived paid/balance aggregates.
Architecture position: Kernel > Models.  May import from db/ only.
    MUST NOT import from services/, selectors/, domain/, or outer layers.

Invariants enforced:
    - balance = max(0, original_amount - total_paid) after every reconcile.
    - total_paid, total_paid_usd, balance and balance_usd are written ONLY by
      the balance reconciler.  Nothing else may patch them.
    - balance_usd is NULL exactly when original_amount_usd is NULL.

Failure modes:
    - IntegrityError if contact_id references a missing contact.
"""

from datetime import date
from decimal import Decimal

from sqlalchemy import Boolean, Date, ForeignKey, Index, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from pledge_kernel.db.base import IdType, TrackedBase
from pledge_kernel.models.contact import Contact


class Pledge(TrackedBase):
    """
    A donor's commitment.

    Contract:
        original_amount, currency and exchange_rate are set by the CRUD layer.
        The four derived fields are owned by reconciliation and are always
        recomputed from the full set of contributing payments.

    Guarantees:
        - exchange_rate, when present, converts pledge currency to USD.
        - original_amount_usd may be NULL when no rate was known at pledge
          time; USD balances then stay unknown.
    """

    __tablename__ = "pledges"

    __table_args__ = (
        Index("idx_pledge_contact", "contact_id"),
        Index("idx_pledge_active", "is_active"),
    )

    contact_id: Mapped[int] = mapped_column(
        IdType,
        ForeignKey("contacts.id"),
        nullable=False,
    )

    pledge_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
    )

    description: Mapped[str | None] = mapped_column(
        String(500),
        nullable=True,
    )

    original_amount: Mapped[Decimal] = mapped_column(
        Numeric(14, 2),
        nullable=False,
    )

    currency: Mapped[str] = mapped_column(
        String(3),
        nullable=False,
        default="USD",
    )

    # Pledge currency -> USD
    exchange_rate: Mapped[Decimal | None] = mapped_column(
        Numeric(18, 6),
        nullable=True,
    )

    original_amount_usd: Mapped[Decimal | None] = mapped_column(
        Numeric(14, 2),
        nullable=True,
    )

    # Derived aggregates
    total_paid: Mapped[Decimal] = mapped_column(
        Numeric(14, 2),
        nullable=False,
        default=Decimal("0"),
    )

    total_paid_usd: Mapped[Decimal | None] = mapped_column(
        Numeric(14, 2),
        nullable=True,
    )

    balance: Mapped[Decimal] = mapped_column(
        Numeric(14, 2),
        nullable=False,
        default=Decimal("0"),
    )

    balance_usd: Mapped[Decimal | None] = mapped_column(
        Numeric(14, 2),
        nullable=True,
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
    )

    notes: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    contact: Mapped[Contact] = relationship(lazy="joined")

    def __repr__(self) -> str:
        return (
            f"<Pledge {self.id}: {self.original_amount} {self.currency} "
            f"balance={self.balance}>"
        )
