"""
Money -- currency conversion and rounding helpers.

Responsibility:
    Pure functions that convert between a currency and USD, round for
    storage, and compare amounts with the ledger's tolerance.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - All arithmetic is Decimal.  Floats are rejected.
    - Rounding for storage is ROUND_HALF_UP to 2 decimal places.
      Intermediate sums stay unrounded; only the stored figure is rounded.
    - Amount equality uses ALLOCATION_TOLERANCE (0.01), never exact zero.
"""

from decimal import ROUND_HALF_UP, Decimal

USD = "USD"

ALLOCATION_TOLERANCE = Decimal("0.01")

_CENT = Decimal("0.01")
_ONE = Decimal("1")


def _require_decimal(value: Decimal, name: str) -> Decimal:
    if isinstance(value, float):
        raise TypeError(f"{name} must be Decimal, not float")
    if not isinstance(value, Decimal):
        return Decimal(str(value))
    return value


def round2(value: Decimal) -> Decimal:
    """Round half-up to 2 decimal places."""
    return _require_decimal(value, "value").quantize(_CENT, rounding=ROUND_HALF_UP)


def to_usd(amount: Decimal, currency: str, rate_to_usd: Decimal | None) -> Decimal:
    """
    Convert ``amount`` in ``currency`` to USD.

    USD amounts are returned unchanged whatever the rate says.  A missing
    rate for a non-USD currency is treated as 1, matching the recorder's
    "rate defaults to 1" fallback.  The result is NOT rounded.
    """
    amount = _require_decimal(amount, "amount")
    if currency == USD:
        return amount
    rate = _ONE if rate_to_usd is None else _require_decimal(rate_to_usd, "rate_to_usd")
    return amount * rate


def to_currency(usd_amount: Decimal, rate_to_usd: Decimal | None) -> Decimal:
    """
    Convert a USD amount back into the currency whose rate-to-USD is given.

    Raises:
        ValueError: If the rate is zero or negative.
    """
    usd_amount = _require_decimal(usd_amount, "usd_amount")
    rate = _ONE if rate_to_usd is None else _require_decimal(rate_to_usd, "rate_to_usd")
    if rate <= 0:
        raise ValueError(f"Exchange rate must be positive, got {rate}")
    return usd_amount / rate


def amounts_match(
    a: Decimal,
    b: Decimal,
    tolerance: Decimal = ALLOCATION_TOLERANCE,
) -> bool:
    """True when ``|a - b| <= tolerance``."""
    return abs(_require_decimal(a, "a") - _require_decimal(b, "b")) <= tolerance


def non_negative(value: Decimal) -> Decimal:
    """Clamp at zero."""
    return value if value > 0 else Decimal("0")
