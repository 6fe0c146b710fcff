"""
Module: pledge_kernel.db.types
Responsibility: Annotated column types and the canonical currency set.
    Centralizes precision so that every model uses identical definitions.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/ and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    - Monetary amounts are stored with 2 decimal places (Numeric(14, 2)).
    - Exchange rates are stored with 6 decimal places (Numeric(18, 6)).
    - Currency codes are restricted to SUPPORTED_CURRENCIES.
"""

from decimal import Decimal
from typing import Annotated

from sqlalchemy import Numeric, String

from pledge_kernel.exceptions import UnsupportedCurrencyError

# Monetary amount, 2 decimal places
Money = Annotated[Decimal, Numeric(14, 2)]

# Rate to USD, 6 decimal places
Rate = Annotated[Decimal, Numeric(18, 6)]

# ISO 4217 currency code
Currency = Annotated[str, String(3)]


USD = "USD"

# Currencies accepted for pledges, payments and rate lookups.
SUPPORTED_CURRENCIES: frozenset[str] = frozenset(
    {"USD", "ILS", "EUR", "JPY", "GBP", "AUD", "CAD", "ZAR"}
)


def validate_currency(
    currency: str,
    supported: frozenset[str] = SUPPORTED_CURRENCIES,
) -> str:
    """
    Normalize and validate a currency code.

    Returns:
        The uppercase, trimmed currency code.

    Raises:
        UnsupportedCurrencyError: If the code is not in ``supported``.
    """
    if not currency or not isinstance(currency, str):
        raise UnsupportedCurrencyError(str(currency))

    normalized = currency.upper().strip()
    if normalized not in supported:
        raise UnsupportedCurrencyError(currency)
    return normalized
