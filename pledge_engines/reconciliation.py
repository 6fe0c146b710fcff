"""
Module: pledge_engines.reconciliation
Responsibility:
    Recompute pledge balances, payment-plan totals and installment status
    from the full set of contributing payments.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  The balance reconciler
    service reads the rows under a lock, calls these functions and writes
    the result back.

Invariants enforced:
    - Recompute, never patch: every function takes the complete
      contributing set and returns absolute figures.
    - balance = max(0, original_amount - total_paid).
    - balance_usd = max(0, original_amount_usd - total_paid_usd) when the
      USD original is known, else None.
    - USD fallback per item, in order: stored USD amount; the raw amount
      when the item is in USD; amount * the PLEDGE's exchange rate.  An
      item with none of these contributes nothing to total_paid_usd.
    - Installment status: completed/processing -> paid, cancelled/failed ->
      cancelled, anything else -> pending.

Failure modes:
    - None.  Inputs are trusted rows already filtered to contributing
      statuses.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from pledge_engines.tracer import traced_engine
from pledge_kernel.domain.dtos import InstallmentState, PaymentPlanTotals, PledgeBalance
from pledge_kernel.domain.money import USD, non_negative, round2
from pledge_kernel.logging_config import get_logger

logger = get_logger("engines.reconciliation")

_ZERO = Decimal("0")

PAID_STATUSES = frozenset({"completed", "processing"})
CANCELLED_STATUSES = frozenset({"cancelled", "failed"})


@dataclass(frozen=True)
class ContributionLine:
    """One direct payment or allocation counted toward a pledge or plan."""

    amount: Decimal
    currency: str
    amount_usd: Decimal | None = None


def contribution_usd(line: ContributionLine, pledge_rate: Decimal | None) -> Decimal:
    """USD value of one contributing item, using the three-tier fallback."""
    if line.amount_usd is not None:
        return line.amount_usd
    if line.currency == USD:
        return line.amount
    if pledge_rate is not None:
        return line.amount * pledge_rate
    return _ZERO


@traced_engine("pledge_balance", "1.0", fingerprint_fields=("pledge_id",))
def compute_pledge_balance(
    *,
    pledge_id: int,
    original_amount: Decimal,
    original_amount_usd: Decimal | None,
    pledge_rate: Decimal | None,
    direct_payments: Sequence[ContributionLine],
    allocations: Sequence[ContributionLine],
) -> PledgeBalance:
    """
    Recompute a pledge's four derived fields.

    Args:
        pledge_id: Pledge being reconciled.
        original_amount: Pledged amount in pledge currency.
        original_amount_usd: Pledged amount in USD, None when unknown.
        pledge_rate: Pledge currency -> USD rate used for the USD fallback.
        direct_payments: Contributing direct payments on the pledge.
        allocations: Contributing split-payment allocations on the pledge.

    Returns:
        PledgeBalance rounded to 2 decimal places.
    """
    lines = (*direct_payments, *allocations)

    total_paid = sum((line.amount for line in lines), _ZERO)
    total_paid_usd = sum((contribution_usd(line, pledge_rate) for line in lines), _ZERO)

    total_paid = round2(total_paid)
    total_paid_usd = round2(total_paid_usd)

    balance = non_negative(round2(original_amount) - total_paid)
    balance_usd = None
    if original_amount_usd is not None:
        balance_usd = non_negative(round2(original_amount_usd) - total_paid_usd)

    return PledgeBalance(
        pledge_id=pledge_id,
        total_paid=total_paid,
        total_paid_usd=total_paid_usd,
        balance=round2(balance),
        balance_usd=round2(balance_usd) if balance_usd is not None else None,
    )


@traced_engine("plan_totals", "1.0", fingerprint_fields=("plan_id",))
def compute_plan_totals(
    *,
    plan_id: int,
    total_planned_amount: Decimal,
    payments: Sequence[ContributionLine],
) -> PaymentPlanTotals:
    """total_paid = sum(amount); installments_paid = count; remaining clamped at zero."""
    total_paid = round2(sum((p.amount for p in payments), _ZERO))
    return PaymentPlanTotals(
        plan_id=plan_id,
        total_paid=total_paid,
        installments_paid=len(payments),
        remaining_amount=round2(non_negative(round2(total_planned_amount) - total_paid)),
    )


def installment_status_for(payment_status: str | None) -> str:
    """Map a payment status onto the installment status it implies."""
    status = getattr(payment_status, "value", payment_status)
    if status in PAID_STATUSES:
        return "paid"
    if status in CANCELLED_STATUSES:
        return "cancelled"
    return "pending"


def compute_installment_state(
    installment_id: int,
    payment_status: str | None,
    paid_date: date | None = None,
) -> InstallmentState:
    """
    Installment status and paid date for the given payment status.

    paid_date is kept only when the installment ends up paid.
    """
    status = installment_status_for(payment_status)
    return InstallmentState(
        installment_id=installment_id,
        status=status,
        paid_date=paid_date if status == "paid" else None,
    )
