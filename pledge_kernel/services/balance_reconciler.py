"""
BalanceReconciler -- locked read-then-write of derived aggregates.

Responsibility:
    For one pledge, payment plan or installment: lock the row, read every
    contributing payment fresh, recompute with pledge_engines.reconciliation
    and overwrite the derived fields.

Architecture position:
    Kernel > Services.  Flush-only (BaseService).  PaymentService runs each
    call in its own transaction so the lock covers exactly one entity.

Invariants enforced:
    - The target row is read with SELECT ... FOR UPDATE before the
      contributing rows, so two concurrent payments on the same pledge
      serialize instead of overwriting each other's totals.
    - Only payments whose status is in contributing_statuses count.
    - Idempotent and order-independent: nothing is incremented.

Failure modes:
    - NotFoundError when the entity does not exist.
"""

from datetime import date
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from pledge_engines.reconciliation import (
    ContributionLine,
    compute_installment_state,
    compute_plan_totals,
    compute_pledge_balance,
)
from pledge_kernel.domain.dtos import InstallmentState, PaymentPlanTotals, PledgeBalance
from pledge_kernel.exceptions import NotFoundError
from pledge_kernel.logging_config import get_logger
from pledge_kernel.models.payment import CONTRIBUTING_STATUSES, Payment, PaymentAllocation
from pledge_kernel.models.payment_plan import InstallmentSchedule, PaymentPlan
from pledge_kernel.models.pledge import Pledge
from pledge_kernel.services.base import BaseService

logger = get_logger("services.balance_reconciler")


class BalanceReconciler(BaseService[Pledge]):
    """Recomputes pledge, plan and installment aggregates.  Never commits."""

    def __init__(
        self,
        session: Session,
        contributing_statuses: frozenset[str] = CONTRIBUTING_STATUSES,
    ):
        super().__init__(session)
        self._statuses = sorted(contributing_statuses)

    def reconcile_pledge(self, pledge_id: int, actor_id: UUID) -> PledgeBalance:
        pledge = self.session.execute(
            select(Pledge).where(Pledge.id == pledge_id).with_for_update()
        ).scalar_one_or_none()
        if pledge is None:
            raise NotFoundError("pledge", [pledge_id])

        direct = self.session.execute(
            select(Payment.amount, Payment.currency, Payment.amount_usd).where(
                Payment.pledge_id == pledge_id,
                Payment.payment_status.in_(self._statuses),
            )
        ).all()

        allocated = self.session.execute(
            select(
                PaymentAllocation.allocated_amount,
                PaymentAllocation.currency,
                PaymentAllocation.allocated_amount_usd,
            )
            .join(Payment, PaymentAllocation.payment_id == Payment.id)
            .where(
                PaymentAllocation.pledge_id == pledge_id,
                Payment.payment_status.in_(self._statuses),
            )
        ).all()

        result = compute_pledge_balance(
            pledge_id=pledge_id,
            original_amount=pledge.original_amount,
            original_amount_usd=pledge.original_amount_usd,
            pledge_rate=pledge.exchange_rate,
            direct_payments=[ContributionLine(*row) for row in direct],
            allocations=[ContributionLine(*row) for row in allocated],
        )

        pledge.total_paid = result.total_paid
        pledge.total_paid_usd = result.total_paid_usd
        pledge.balance = result.balance
        pledge.balance_usd = result.balance_usd
        pledge.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "pledge_reconciled",
            extra={
                "pledge_id": pledge_id,
                "direct_count": len(direct),
                "allocation_count": len(allocated),
                "total_paid": str(result.total_paid),
                "total_paid_usd": str(result.total_paid_usd),
                "balance": str(result.balance),
                "balance_usd": str(result.balance_usd) if result.balance_usd is not None else None,
            },
        )
        return result

    def reconcile_payment_plan(self, plan_id: int, actor_id: UUID) -> PaymentPlanTotals:
        plan = self.session.execute(
            select(PaymentPlan).where(PaymentPlan.id == plan_id).with_for_update()
        ).scalar_one_or_none()
        if plan is None:
            raise NotFoundError("payment plan", [plan_id])

        rows = self.session.execute(
            select(Payment.amount, Payment.currency, Payment.amount_usd).where(
                Payment.payment_plan_id == plan_id,
                Payment.payment_status.in_(self._statuses),
            )
        ).all()

        result = compute_plan_totals(
            plan_id=plan_id,
            total_planned_amount=plan.total_planned_amount,
            payments=[ContributionLine(*row) for row in rows],
        )

        plan.total_paid = result.total_paid
        plan.installments_paid = result.installments_paid
        plan.remaining_amount = result.remaining_amount
        plan.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "payment_plan_reconciled",
            extra={
                "plan_id": plan_id,
                "total_paid": str(result.total_paid),
                "installments_paid": result.installments_paid,
                "remaining_amount": str(result.remaining_amount),
            },
        )
        return result

    def reconcile_installment(
        self,
        installment_id: int,
        payment_status: str | None,
        actor_id: UUID,
        paid_date: date | None = None,
    ) -> InstallmentState:
        installment = self.session.execute(
            select(InstallmentSchedule)
            .where(InstallmentSchedule.id == installment_id)
            .with_for_update()
        ).scalar_one_or_none()
        if installment is None:
            raise NotFoundError("installment", [installment_id])

        result = compute_installment_state(installment_id, payment_status, paid_date)

        installment.status = result.status
        installment.paid_date = result.paid_date
        installment.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "installment_reconciled",
            extra={
                "installment_id": installment_id,
                "payment_status": str(getattr(payment_status, "value", payment_status)),
                "status": result.status,
            },
        )
        return result
