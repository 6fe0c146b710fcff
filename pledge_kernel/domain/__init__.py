"""
Pure domain layer.

Requests, commands, result DTOs, money helpers and the clock.  Nothing here
touches SQLAlchemy, a database or the system clock (apart from SystemClock).
"""

from pledge_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from pledge_kernel.domain.commands import (
    AllocationRequest,
    DirectPaymentCommand,
    PaymentCommand,
    PaymentKind,
    PaymentRequest,
    PaymentUpdate,
    PledgeSnapshot,
    SplitPaymentCommand,
)
from pledge_kernel.domain.dtos import (
    DeletedPayment,
    InstallmentState,
    LedgerAllocation,
    LedgerPage,
    LedgerPayment,
    PaymentPlanTotals,
    PledgeBalance,
    ReconciliationSummary,
    StoredAllocation,
    StoredPayment,
)
from pledge_kernel.domain.money import (
    ALLOCATION_TOLERANCE,
    amounts_match,
    round2,
    to_currency,
    to_usd,
)

__all__ = [
    "Clock",
    "SystemClock",
    "DeterministicClock",
    "PaymentKind",
    "AllocationRequest",
    "PaymentRequest",
    "PaymentUpdate",
    "PledgeSnapshot",
    "DirectPaymentCommand",
    "SplitPaymentCommand",
    "PaymentCommand",
    "StoredAllocation",
    "StoredPayment",
    "DeletedPayment",
    "PledgeBalance",
    "PaymentPlanTotals",
    "InstallmentState",
    "ReconciliationSummary",
    "LedgerAllocation",
    "LedgerPayment",
    "LedgerPage",
    "ALLOCATION_TOLERANCE",
    "amounts_match",
    "round2",
    "to_currency",
    "to_usd",
]
