"""
Module: pledge_engines.allocation_validation
Responsibility:
    Pure rules that decide a payment request's shape (direct or split) and
    check a split payment's allocation amounts and currencies.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Existence checks that need
    the database live in pledge_kernel.services.allocation_validator, which
    calls these rules in order.

Invariants enforced:
    - Neither pledge nor allocations -> ShapeError("missing target").
    - Both a positive pledge id and allocations -> ShapeError("ambiguous target").
    - Allocations present and no pledge -> split, whatever is_split_payment
      says.  A disagreeing flag is logged, not rejected.
    - Every allocated_amount > 0.
    - Every allocation currency (when given) equals the payment currency.
    - |sum(allocated_amount) - amount| <= tolerance.

Failure modes:
    - ShapeError, InvalidAllocationAmountError, CurrencyMismatchError,
      AmountMismatchError (all ValidationError subclasses).
"""

from __future__ import annotations

from collections.abc import Iterable
from decimal import Decimal

from pledge_engines.tracer import traced_engine
from pledge_kernel.domain.commands import PaymentKind, PaymentRequest
from pledge_kernel.domain.money import ALLOCATION_TOLERANCE, amounts_match, round2
from pledge_kernel.exceptions import (
    AmountMismatchError,
    CurrencyMismatchError,
    InvalidAllocationAmountError,
    ShapeError,
)
from pledge_kernel.logging_config import get_logger

logger = get_logger("engines.allocation_validation")


class AllocationValidationEngine:
    """
    Shape and amount rules for incoming payments.

    Contract:
        Every method is pure and raises a ValidationError subclass on the
        first rule that fails.
    """

    def __init__(self, tolerance: Decimal = ALLOCATION_TOLERANCE):
        self._tolerance = tolerance

    @traced_engine("allocation_validation", "1.0")
    def classify(self, request: PaymentRequest) -> PaymentKind:
        """Decide whether the request is a direct or a split payment."""
        has_allocations = len(request.allocations) > 0

        if not request.has_pledge and not has_allocations:
            raise ShapeError(ShapeError.MISSING_TARGET)

        if request.has_pledge and has_allocations:
            raise ShapeError(ShapeError.AMBIGUOUS_TARGET)

        kind = PaymentKind.SPLIT if has_allocations else PaymentKind.DIRECT

        # The data shape wins over the advisory flag.
        if request.is_split_payment != has_allocations:
            logger.info(
                "split_flag_overridden_by_allocations",
                extra={
                    "is_split_payment": request.is_split_payment,
                    "allocation_count": len(request.allocations),
                    "classified_as": kind.value,
                },
            )

        return kind

    def check_payer(self, request: PaymentRequest) -> None:
        """A third-party payment must name who paid."""
        if request.is_third_party_payment and not request.payer_contact_id:
            raise ShapeError(ShapeError.MISSING_PAYER)

    def check_allocations(self, request: PaymentRequest) -> Decimal:
        """
        Check a split payment's allocations.

        Shares are compared as they will be stored: each is rounded to cents
        before summing, and the total is matched against the rounded payment
        amount.  A share that rounds to zero is rejected.

        Returns:
            The allocated total in cents.
        """
        payment_currency = request.currency.upper()

        shares = []
        for allocation in request.allocations:
            share = round2(allocation.allocated_amount)
            if share <= 0:
                raise InvalidAllocationAmountError(
                    allocation.pledge_id, allocation.allocated_amount
                )
            shares.append(share)

        for allocation in request.allocations:
            if allocation.currency and allocation.currency.upper() != payment_currency:
                raise CurrencyMismatchError(
                    expected=payment_currency,
                    found=allocation.currency.upper(),
                    pledge_id=allocation.pledge_id,
                )

        total = sum(shares, Decimal("0"))
        amount = round2(request.amount)
        if not amounts_match(total, amount, self._tolerance):
            logger.warning(
                "allocation_total_mismatch",
                extra={
                    "total_allocated": str(total),
                    "payment_amount": str(amount),
                },
            )
            raise AmountMismatchError(
                total_allocated=total,
                payment_amount=amount,
                difference=abs(amount - total),
            )

        return total

    @staticmethod
    def missing_ids(requested: Iterable[int], found: Iterable[int]) -> list[int]:
        """Requested ids absent from ``found``, sorted."""
        return sorted(set(requested) - set(found))
