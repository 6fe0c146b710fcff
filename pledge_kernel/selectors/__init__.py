"""Selectors for the pledge kernel (read side)."""

from pledge_kernel.selectors.ledger_selector import LedgerSelector

__all__ = [
    "LedgerSelector",
]
