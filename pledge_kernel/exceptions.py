"""
Typed Exception Hierarchy for the Pledge Ledger.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

A rejected payment has to be reported to the CRUD layer precisely enough that
it can render the right message and status code without parsing strings.
Every error therefore has:
  1. A TYPED exception class (catch by type, not message)
  2. A CODE class attribute (machine-readable, API-safe)
  3. Structured DATA attributes (totals, ids, currencies)

Example - RIGHT way:
    try:
        service.submit_payment(request, actor_id)
    except AmountMismatchError as e:
        return {
            "error": e.code,
            "totalAllocated": str(e.total_allocated),
            "paymentAmount": str(e.payment_amount),
            "difference": str(e.difference),
        }

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    PledgeLedgerError (base)
    |
    +-- ValidationError                 (raised before any write)
    |   +-- ShapeError                  missing / ambiguous target, missing payer
    |   +-- NotFoundError               pledge / plan / installment / payment
    |   +-- AmountMismatchError         sum(allocations) != payment amount
    |   +-- CurrencyMismatchError       allocation currency != payment currency
    |   +-- InvalidAllocationAmountError
    |   +-- UnsupportedCurrencyError
    |   +-- InvalidRedistributionError  unknown strategy, non-positive target
    |
    +-- PersistenceError                storage failure, transaction rolled back
    |
    +-- ReconciliationError             aggregate recompute failed (retryable)
    |
    +-- ExchangeRateNotFoundError       no rate for (currency, date)

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------
Validation      | SHAPE_ERROR                 | Neither/both of pledge + allocations
                | NOT_FOUND                   | Referenced row does not exist
                | AMOUNT_MISMATCH             | |sum - amount| > 0.01
                | CURRENCY_MISMATCH           | Allocation in another currency
                | INVALID_ALLOCATION_AMOUNT   | Allocation amount <= 0
                | UNSUPPORTED_CURRENCY        | Currency outside the supported set
                | INVALID_REDISTRIBUTION      | Bad strategy or target total
----------------|-----------------------------|-----------------------------------
Persistence     | PERSISTENCE_ERROR           | Insert/update failed, rolled back
----------------|-----------------------------|-----------------------------------
Reconciliation  | RECONCILIATION_ERROR        | Recompute failed, safe to re-run
----------------|-----------------------------|-----------------------------------
Exchange Rate   | EXCHANGE_RATE_NOT_FOUND     | Provider has no rate for the date
"""

from decimal import Decimal
from typing import Iterable


class PledgeLedgerError(Exception):
    """
    Base exception for all pledge ledger errors.

    All subclasses carry a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "PLEDGE_LEDGER_ERROR"


# Validation exceptions


class ValidationError(PledgeLedgerError):
    """Base exception for payment requests rejected before persistence."""

    code: str = "VALIDATION_ERROR"

    @property
    def kind(self) -> str:
        return self.code

    @property
    def details(self) -> dict:
        """Structured attributes suitable for an API error body."""
        return {
            k: v for k, v in vars(self).items() if not k.startswith("_")
        }


class ShapeError(ValidationError):
    """Payment target is missing or ambiguous."""

    code: str = "SHAPE_ERROR"

    MISSING_TARGET = "missing target"
    AMBIGUOUS_TARGET = "ambiguous target"
    MISSING_PAYER = "missing payer"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


class NotFoundError(ValidationError):
    """One or more referenced rows do not exist."""

    code: str = "NOT_FOUND"

    def __init__(self, entity: str, missing_ids: Iterable[int]):
        self.entity = entity
        self.missing_ids = sorted(set(missing_ids))
        joined = ", ".join(str(i) for i in self.missing_ids)
        super().__init__(f"{entity} not found: {joined}")


class AmountMismatchError(ValidationError):
    """Allocated total does not equal the payment amount."""

    code: str = "AMOUNT_MISMATCH"

    def __init__(
        self,
        total_allocated: Decimal,
        payment_amount: Decimal,
        difference: Decimal,
    ):
        self.total_allocated = total_allocated
        self.payment_amount = payment_amount
        self.difference = difference
        super().__init__(
            f"Total allocated amount ({total_allocated:.2f}) must equal "
            f"payment amount ({payment_amount:.2f}); difference {difference:.2f}"
        )


class CurrencyMismatchError(ValidationError):
    """Allocation currency differs from the payment currency."""

    code: str = "CURRENCY_MISMATCH"

    def __init__(self, expected: str, found: str, pledge_id: int | None = None):
        self.expected = expected
        self.found = found
        self.pledge_id = pledge_id
        super().__init__(
            f"Allocation currency {found} does not match payment currency {expected}"
        )


class InvalidAllocationAmountError(ValidationError):
    """Allocation amount is zero or negative."""

    code: str = "INVALID_ALLOCATION_AMOUNT"

    def __init__(self, pledge_id: int, amount: Decimal):
        self.pledge_id = pledge_id
        self.amount = amount
        super().__init__(
            f"Allocated amount must be positive. Found: {amount} for pledge {pledge_id}"
        )


class UnsupportedCurrencyError(ValidationError):
    """Currency code is not in the configured set."""

    code: str = "UNSUPPORTED_CURRENCY"

    def __init__(self, currency: str):
        self.currency = currency
        super().__init__(f"Unsupported currency: '{currency}'")


class InvalidRedistributionError(ValidationError):
    """Redistribution asked for an unknown strategy or a non-positive total."""

    code: str = "INVALID_REDISTRIBUTION"

    def __init__(self, message: str, strategy: str | None = None, new_total: Decimal | None = None):
        self.strategy = strategy
        self.new_total = new_total
        super().__init__(message)


# Storage exceptions


class PersistenceError(PledgeLedgerError):
    """
    Storage failure while writing a payment.

    The whole unit of work has been rolled back: no payment row and no
    partial allocation set exists for the failed request.
    """

    code: str = "PERSISTENCE_ERROR"

    def __init__(self, operation: str, reason: str):
        self.operation = operation
        self.reason = reason
        super().__init__(f"{operation} failed: {reason}")


class ReconciliationError(PledgeLedgerError):
    """A reconcile pass failed. Re-running it for the same entity is safe."""

    code: str = "RECONCILIATION_ERROR"

    def __init__(self, entity: str, entity_id: int, reason: str):
        self.entity = entity
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(f"Reconciliation of {entity} {entity_id} failed: {reason}")


class ExchangeRateNotFoundError(PledgeLedgerError):
    """No rate-to-USD is known for the currency on the given date."""

    code: str = "EXCHANGE_RATE_NOT_FOUND"

    def __init__(self, currency: str, rate_date: str):
        self.currency = currency
        self.rate_date = rate_date
        super().__init__(f"No exchange rate for {currency} on {rate_date}")
