"""
Pledge Kernel - payment allocation and balance reconciliation.

Records payments against pledges with:
- Direct or split (multi-pledge) allocation, validated before any write
- Multi-currency amounts normalized to USD
- Atomic payment + allocation inserts
- Pledge, payment-plan and installment aggregates recomputed, never patched
"""

__version__ = "0.1.0"
