"""
Module: pledge_kernel.models.payment
Responsibility: ORM persistence for received payments and their per-pledge
    allocations.
Architecture position: Kernel > Models.  May import from db/ only.
    MUST NOT import from services/, selectors/, domain/, or outer layers.

Invariants enforced:
    - A payment is EITHER direct (pledge_id set, no allocations) OR split
      (pledge_id NULL, one or more allocations).  Enforced at the validation
      boundary; the ORM cannot express the xor.
    - For a split payment |sum(allocated_amount) - amount| <= 0.01.
    - Every allocation carries the payment's currency.
    - (payment_id, pledge_id, installment_schedule_id) is unique
      (uq_allocation_target).

Failure modes:
    - IntegrityError on duplicate allocation target or a dangling FK.  The
      recorder translates these into PersistenceError after rolling back.
"""

from datetime import date
from decimal import Decimal
from enum import Enum

from sqlalchemy import (
    Boolean,
    Date,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from pledge_kernel.db.base import IdType, TrackedBase


class PaymentStatus(str, Enum):
    """Payment lifecycle status."""

    PENDING = "pending"
    COMPLETED = "completed"
    PROCESSING = "processing"
    FAILED = "failed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"
    EXPECTED = "expected"


# Statuses whose amounts count toward pledge and plan totals.
CONTRIBUTING_STATUSES: frozenset[str] = frozenset(
    {PaymentStatus.COMPLETED.value, PaymentStatus.PROCESSING.value}
)


class PaymentMethod(str, Enum):
    """How the money arrived."""

    ACH = "ach"
    BILL_PAY = "bill_pay"
    CASH = "cash"
    CHECK = "check"
    CREDIT = "credit"
    CREDIT_CARD = "credit_card"
    EXPECTED = "expected"
    GOODS_AND_SERVICES = "goods_and_services"
    MATCHING_FUNDS = "matching_funds"
    MONEY_ORDER = "money_order"
    P2P = "p2p"
    PENDING = "pending"
    REFUND = "refund"
    SCHOLARSHIP = "scholarship"
    STOCK = "stock"
    STUDENT_PORTION = "student_portion"
    UNKNOWN = "unknown"
    WIRE = "wire"
    XFER = "xfer"
    OTHER = "other"


class ReceiptType(str, Enum):
    INVOICE = "invoice"
    RECEIPT = "receipt"
    CONFIRMATION = "confirmation"
    OTHER = "other"


class Payment(TrackedBase):
    """
    A single received payment.

    Contract:
        amount, currency and exchange_rate are the request's values.
        amount_usd is derived at record time (amount * exchange_rate).
        amount_in_pledge_currency is only meaningful for direct payments.

    Guarantees:
        - received_date defaults to payment_date when not supplied.
        - is_third_party_payment implies payer_contact_id is set.
    """

    __tablename__ = "payments"

    __table_args__ = (
        Index("idx_payment_pledge", "pledge_id"),
        Index("idx_payment_plan", "payment_plan_id"),
        Index("idx_payment_installment", "installment_schedule_id"),
        Index("idx_payment_payer", "payer_contact_id"),
        Index("idx_payment_date", "payment_date"),
        Index("idx_payment_status", "payment_status"),
    )

    pledge_id: Mapped[int | None] = mapped_column(
        IdType,
        ForeignKey("pledges.id", ondelete="SET NULL"),
        nullable=True,
    )

    payment_plan_id: Mapped[int | None] = mapped_column(
        IdType,
        ForeignKey("payment_plans.id", ondelete="SET NULL"),
        nullable=True,
    )

    installment_schedule_id: Mapped[int | None] = mapped_column(
        IdType,
        ForeignKey("installment_schedules.id", ondelete="SET NULL"),
        nullable=True,
    )

    payer_contact_id: Mapped[int | None] = mapped_column(
        IdType,
        ForeignKey("contacts.id", ondelete="SET NULL"),
        nullable=True,
    )

    is_third_party_payment: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )

    amount: Mapped[Decimal] = mapped_column(
        Numeric(14, 2),
        nullable=False,
    )

    currency: Mapped[str] = mapped_column(
        String(3),
        nullable=False,
    )

    # Payment currency -> USD
    exchange_rate: Mapped[Decimal | None] = mapped_column(
        Numeric(18, 6),
        nullable=True,
    )

    amount_usd: Mapped[Decimal | None] = mapped_column(
        Numeric(14, 2),
        nullable=True,
    )

    amount_in_pledge_currency: Mapped[Decimal | None] = mapped_column(
        Numeric(14, 2),
        nullable=True,
    )

    payment_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
    )

    received_date: Mapped[date | None] = mapped_column(
        Date,
        nullable=True,
    )

    check_date: Mapped[date | None] = mapped_column(
        Date,
        nullable=True,
    )

    account: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
    )

    payment_method: Mapped[PaymentMethod] = mapped_column(
        String(30),
        nullable=False,
    )

    method_detail: Mapped[str | None] = mapped_column(
        String(200),
        nullable=True,
    )

    payment_status: Mapped[PaymentStatus] = mapped_column(
        String(20),
        nullable=False,
        default=PaymentStatus.COMPLETED.value,
    )

    reference_number: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
    )

    check_number: Mapped[str | None] = mapped_column(
        String(50),
        nullable=True,
    )

    receipt_number: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
    )

    receipt_type: Mapped[ReceiptType | None] = mapped_column(
        String(20),
        nullable=True,
    )

    receipt_issued: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )

    notes: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    allocations: Mapped[list["PaymentAllocation"]] = relationship(
        back_populates="payment",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="PaymentAllocation.id",
    )

    @property
    def is_split_payment(self) -> bool:
        return len(self.allocations) > 0

    def __repr__(self) -> str:
        return f"<Payment {self.id}: {self.amount} {self.currency} {self.payment_status}>"


class PaymentAllocation(TrackedBase):
    """The share of a split payment credited to one pledge."""

    __tablename__ = "payment_allocations"

    __table_args__ = (
        UniqueConstraint(
            "payment_id",
            "pledge_id",
            "installment_schedule_id",
            name="uq_allocation_target",
        ),
        Index("idx_allocation_payment", "payment_id"),
        Index("idx_allocation_pledge", "pledge_id"),
        Index("idx_allocation_installment", "installment_schedule_id"),
    )

    payment_id: Mapped[int] = mapped_column(
        IdType,
        ForeignKey("payments.id", ondelete="CASCADE"),
        nullable=False,
    )

    pledge_id: Mapped[int] = mapped_column(
        IdType,
        ForeignKey("pledges.id", ondelete="CASCADE"),
        nullable=False,
    )

    installment_schedule_id: Mapped[int | None] = mapped_column(
        IdType,
        ForeignKey("installment_schedules.id", ondelete="SET NULL"),
        nullable=True,
    )

    payer_contact_id: Mapped[int | None] = mapped_column(
        IdType,
        ForeignKey("contacts.id", ondelete="SET NULL"),
        nullable=True,
    )

    allocated_amount: Mapped[Decimal] = mapped_column(
        Numeric(14, 2),
        nullable=False,
    )

    currency: Mapped[str] = mapped_column(
        String(3),
        nullable=False,
    )

    # Per-allocation rate override; NULL means the payment's rate applies.
    exchange_rate: Mapped[Decimal | None] = mapped_column(
        Numeric(18, 6),
        nullable=True,
    )

    allocated_amount_usd: Mapped[Decimal | None] = mapped_column(
        Numeric(14, 2),
        nullable=True,
    )

    receipt_number: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
    )

    receipt_type: Mapped[ReceiptType | None] = mapped_column(
        String(20),
        nullable=True,
    )

    receipt_issued: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )

    notes: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    payment: Mapped[Payment] = relationship(back_populates="allocations")

    def __repr__(self) -> str:
        return (
            f"<PaymentAllocation {self.id} payment={self.payment_id} "
            f"pledge={self.pledge_id} {self.allocated_amount} {self.currency}>"
        )
