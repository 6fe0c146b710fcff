"""
Module: pledge_kernel.models.payment_plan
Responsibility: ORM persistence for payment plans and their installment
    schedules.
Architecture position: Kernel > Models.  May import from db/ only.
    MUST NOT import from services/, selectors/, domain/, or outer layers.

Invariants enforced:
    - total_paid, installments_paid and remaining_amount are recomputed from
      the contributing payments on every reconcile; never incremented.
    - remaining_amount = max(0, total_planned_amount - total_paid).
    - InstallmentSchedule.status is a pure function of the linked payment's
      status.  It is never set independently of a payment mutation.

Failure modes:
    - IntegrityError if pledge_id or payment_plan_id references a missing row.
"""

from datetime import date
from decimal import Decimal
from enum import Enum

from sqlalchemy import Boolean, Date, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from pledge_kernel.db.base import IdType, TrackedBase


class PlanFrequency(str, Enum):
    """How often installments fall due."""

    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    BIANNUAL = "biannual"
    ANNUAL = "annual"
    ONE_TIME = "one_time"
    CUSTOM = "custom"


class PlanStatus(str, Enum):
    """Plan lifecycle status (set by the CRUD layer, not by reconciliation)."""

    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    PAUSED = "paused"
    OVERDUE = "overdue"


class InstallmentStatus(str, Enum):
    """Installment status derived from the linked payment's status."""

    PENDING = "pending"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


class PaymentPlan(TrackedBase):
    """
    A schedule of expected payments against one pledge.

    Guarantees:
        - total_planned_amount is the target; remaining_amount never goes
          below zero even when the plan is over-paid.
        - installments_paid counts contributing payments, not installments
          marked paid.
    """

    __tablename__ = "payment_plans"

    __table_args__ = (
        Index("idx_plan_pledge", "pledge_id"),
        Index("idx_plan_status", "plan_status"),
    )

    pledge_id: Mapped[int] = mapped_column(
        IdType,
        ForeignKey("pledges.id", ondelete="CASCADE"),
        nullable=False,
    )

    plan_name: Mapped[str | None] = mapped_column(
        String(200),
        nullable=True,
    )

    frequency: Mapped[PlanFrequency] = mapped_column(
        String(20),
        nullable=False,
        default=PlanFrequency.MONTHLY.value,
    )

    total_planned_amount: Mapped[Decimal] = mapped_column(
        Numeric(14, 2),
        nullable=False,
    )

    currency: Mapped[str] = mapped_column(
        String(3),
        nullable=False,
    )

    installment_amount: Mapped[Decimal] = mapped_column(
        Numeric(14, 2),
        nullable=False,
    )

    number_of_installments: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )

    start_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
    )

    # Derived aggregates
    total_paid: Mapped[Decimal] = mapped_column(
        Numeric(14, 2),
        nullable=False,
        default=Decimal("0"),
    )

    installments_paid: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )

    remaining_amount: Mapped[Decimal] = mapped_column(
        Numeric(14, 2),
        nullable=False,
        default=Decimal("0"),
    )

    plan_status: Mapped[PlanStatus] = mapped_column(
        String(20),
        nullable=False,
        default=PlanStatus.ACTIVE.value,
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

    installments: Mapped[list["InstallmentSchedule"]] = relationship(
        back_populates="payment_plan",
        cascade="all, delete-orphan",
        order_by="InstallmentSchedule.installment_date",
    )

    def __repr__(self) -> str:
        return (
            f"<PaymentPlan {self.id} pledge={self.pledge_id} "
            f"paid={self.total_paid}/{self.total_planned_amount}>"
        )


class InstallmentSchedule(TrackedBase):
    """One expected installment of a payment plan."""

    __tablename__ = "installment_schedules"

    __table_args__ = (
        Index("idx_installment_plan", "payment_plan_id"),
        Index("idx_installment_date", "installment_date"),
        Index("idx_installment_status", "status"),
        Index("idx_installment_payment", "payment_id"),
    )

    payment_plan_id: Mapped[int] = mapped_column(
        IdType,
        ForeignKey("payment_plans.id", ondelete="CASCADE"),
        nullable=False,
    )

    installment_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
    )

    installment_amount: Mapped[Decimal] = mapped_column(
        Numeric(14, 2),
        nullable=False,
    )

    currency: Mapped[str] = mapped_column(
        String(3),
        nullable=False,
    )

    status: Mapped[InstallmentStatus] = mapped_column(
        String(20),
        nullable=False,
        default=InstallmentStatus.PENDING.value,
    )

    paid_date: Mapped[date | None] = mapped_column(
        Date,
        nullable=True,
    )

    # Back-reference to the paying payment; no FK (payments already point here)
    payment_id: Mapped[int | None] = mapped_column(
        IdType,
        nullable=True,
    )

    notes: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    payment_plan: Mapped[PaymentPlan] = relationship(back_populates="installments")

    def __repr__(self) -> str:
        return (
            f"<InstallmentSchedule {self.id} plan={self.payment_plan_id} "
            f"{self.installment_date} {self.status}>"
        )
