"""
Module: pledge_engines
Responsibility:
    Package entrypoint re-exporting the pure calculation engines used by the
    pledge kernel services.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May import pledge_kernel.domain, pledge_kernel.exceptions and
    pledge_kernel.logging_config.  MUST NOT import pledge_kernel.services,
    selectors, models or db.

Invariants enforced:
    - Purity: engines never read the clock.  Dates are passed in.
    - Decimal-only arithmetic.
    - Determinism: identical inputs always produce identical outputs.

Usage:
    from pledge_engines.allocation_validation import AllocationValidationEngine
    from pledge_engines.redistribution import AllocationRedistributor
    from pledge_engines.reconciliation import compute_pledge_balance
"""

from pledge_engines.allocation_validation import AllocationValidationEngine
from pledge_engines.reconciliation import (
    ContributionLine,
    compute_installment_state,
    compute_plan_totals,
    compute_pledge_balance,
    contribution_usd,
    installment_status_for,
)
from pledge_engines.redistribution import (
    AllocationRedistributor,
    RedistributionStrategy,
    should_redistribute,
)
from pledge_engines.tracer import traced_engine

__all__ = [
    "AllocationValidationEngine",
    "AllocationRedistributor",
    "RedistributionStrategy",
    "should_redistribute",
    "ContributionLine",
    "contribution_usd",
    "compute_pledge_balance",
    "compute_plan_totals",
    "compute_installment_state",
    "installment_status_for",
    "traced_engine",
]
