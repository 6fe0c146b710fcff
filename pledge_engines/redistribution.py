"""
Module: pledge_engines.redistribution
Responsibility:
    Rescale the allocations of a split payment to a new payment total using
    one of three strategies (proportional, equal, custom) with deterministic
    rounding.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - After proportional or equal redistribution sum(new) == new_total
      exactly: every share is rounded half-up to 2 decimal places and the
      whole residual is added to the FIRST allocation.
    - custom never changes an amount; the caller edits by hand.
    - Allocation order is preserved.  Only allocated_amount changes.

Failure modes:
    - InvalidRedistributionError on an unknown strategy or a non-positive
      new_total.

Usage:
    from pledge_engines.redistribution import AllocationRedistributor

    rebalanced = AllocationRedistributor().redistribute(
        allocations=request.allocations,
        new_total=Decimal("50.00"),
        strategy="proportional",
    )
"""

from __future__ import annotations

import dataclasses
from collections.abc import Callable, Sequence
from decimal import Decimal
from enum import Enum

from pledge_engines.tracer import traced_engine
from pledge_kernel.domain.commands import AllocationRequest
from pledge_kernel.domain.money import ALLOCATION_TOLERANCE, round2
from pledge_kernel.exceptions import InvalidRedistributionError
from pledge_kernel.logging_config import get_logger

logger = get_logger("engines.redistribution")


class RedistributionStrategy(str, Enum):
    """How to rescale allocations when the payment total changes."""

    PROPORTIONAL = "proportional"  # Keep the old ratios
    EQUAL = "equal"  # Same share for every pledge
    CUSTOM = "custom"  # Leave amounts to the caller


def should_redistribute(
    current_total: Decimal,
    new_total: Decimal,
    auto_adjust: bool,
    tolerance: Decimal = ALLOCATION_TOLERANCE,
) -> bool:
    """Redistribute only when auto-adjust is on AND the totals diverge by more than tolerance."""
    return auto_adjust and abs(current_total - new_total) > tolerance


class AllocationRedistributor:
    """
    Redistribute allocation amounts to a new target total.

    Contract:
        Pure, deterministic.  Returns new AllocationRequest instances; the
        inputs are never mutated.
    Guarantees:
        - Shares are computed at full precision, then rounded to 2 dp.
        - residual = new_total - sum(rounded shares) is added to the first
          allocation so the total matches exactly.
        - proportional with sum(old) <= 0 is a no-op.
    Non-goals:
        - Spreading the residual fairly (largest remainder).  First
          allocation takes all of it.
    """

    @traced_engine("redistribution", "1.0", fingerprint_fields=("new_total", "strategy"))
    def redistribute(
        self,
        allocations: Sequence[AllocationRequest],
        new_total: Decimal,
        strategy: RedistributionStrategy | str,
    ) -> tuple[AllocationRequest, ...]:
        """
        Return allocations rescaled to ``new_total``.

        Args:
            allocations: Current allocations in display order.
            new_total: Target payment amount.
            strategy: proportional, equal or custom.

        Returns:
            Tuple of allocations in the same order.
        """
        try:
            strategy = RedistributionStrategy(strategy)
        except ValueError:
            raise InvalidRedistributionError(
                f"Unknown redistribution strategy: {strategy!r}", strategy=str(strategy)
            ) from None
        if not isinstance(new_total, Decimal):
            new_total = Decimal(str(new_total))
        if new_total <= 0:
            raise InvalidRedistributionError(
                f"new_total must be positive, got {new_total}", new_total=new_total
            )

        allocations = tuple(allocations)
        if not allocations:
            return allocations

        match strategy:
            case RedistributionStrategy.PROPORTIONAL:
                old_total = sum((a.allocated_amount for a in allocations), Decimal("0"))
                if old_total <= 0:
                    logger.info(
                        "redistribution_skipped_zero_total",
                        extra={"allocation_count": len(allocations)},
                    )
                    return allocations
                result = self._by_ratio(
                    allocations,
                    new_total,
                    lambda a: a.allocated_amount / old_total,
                )
            case RedistributionStrategy.EQUAL:
                count = Decimal(len(allocations))
                result = self._by_ratio(
                    allocations,
                    new_total,
                    lambda a: Decimal("1") / count,
                )
            case RedistributionStrategy.CUSTOM:
                return allocations

        logger.info(
            "redistribution_completed",
            extra={
                "strategy": strategy.value,
                "new_total": str(new_total),
                "allocation_count": len(result),
            },
        )
        return result

    def _by_ratio(
        self,
        allocations: tuple[AllocationRequest, ...],
        new_total: Decimal,
        get_ratio: Callable[[AllocationRequest], Decimal],
    ) -> tuple[AllocationRequest, ...]:
        amounts = [round2(new_total * get_ratio(a)) for a in allocations]
        residual = new_total - sum(amounts, Decimal("0"))
        amounts[0] += residual

        if residual:
            logger.debug(
                "redistribution_residual_applied",
                extra={
                    "residual": str(residual),
                    "pledge_id": allocations[0].pledge_id,
                },
            )

        return tuple(
            dataclasses.replace(a, allocated_amount=amount)
            for a, amount in zip(allocations, amounts)
        )
