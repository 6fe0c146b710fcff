"""Services for the pledge kernel (write side)."""

from pledge_kernel.services.allocation_validator import AllocationValidator
from pledge_kernel.services.balance_reconciler import BalanceReconciler
from pledge_kernel.services.exchange_rate_service import (
    ExchangeRateProvider,
    StaticRateProvider,
    StoredRateProvider,
)
from pledge_kernel.services.payment_recorder import PaymentRecorder
from pledge_kernel.services.payment_service import PaymentService

__all__ = [
    "AllocationValidator",
    "BalanceReconciler",
    "ExchangeRateProvider",
    "PaymentRecorder",
    "PaymentService",
    "StaticRateProvider",
    "StoredRateProvider",
]
