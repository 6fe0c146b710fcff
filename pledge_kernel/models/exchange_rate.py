"""
Module: pledge_kernel.models.exchange_rate
Responsibility: ORM persistence for daily currency rates.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - One rate per (base_currency, target_currency, rate_date)
      (uq_exchange_rate_day).
    - rate converts ONE unit of target_currency into base_currency (USD):
      usd = amount * rate.
"""

from datetime import date
from decimal import Decimal

from sqlalchemy import Date, Index, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from pledge_kernel.db.base import TrackedBase


class ExchangeRate(TrackedBase):
    """
    Daily rate-to-USD for one currency.

    Non-goals:
        - Fetching rates from an external feed.  Rows are loaded by an
          outside job; the ledger only reads them.
    """

    __tablename__ = "exchange_rates"

    __table_args__ = (
        UniqueConstraint(
            "base_currency",
            "target_currency",
            "rate_date",
            name="uq_exchange_rate_day",
        ),
        Index("idx_rate_target", "target_currency"),
        Index("idx_rate_date", "rate_date"),
    )

    base_currency: Mapped[str] = mapped_column(
        String(3),
        nullable=False,
        default="USD",
    )

    target_currency: Mapped[str] = mapped_column(
        String(3),
        nullable=False,
    )

    # target_currency -> USD
    rate: Mapped[Decimal] = mapped_column(
        Numeric(18, 6),
        nullable=False,
    )

    rate_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<ExchangeRate {self.target_currency}->{self.base_currency} {self.rate_date} = {self.rate}>"

    def to_usd(self, amount: Decimal) -> Decimal:
        """Convert an amount in target_currency to USD.  Does NOT round."""
        return amount * self.rate
