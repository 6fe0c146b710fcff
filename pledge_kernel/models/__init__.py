"""ORM models for the pledge ledger."""

from pledge_kernel.models.contact import Contact
from pledge_kernel.models.exchange_rate import ExchangeRate
from pledge_kernel.models.payment import (
    CONTRIBUTING_STATUSES,
    Payment,
    PaymentAllocation,
    PaymentMethod,
    PaymentStatus,
    ReceiptType,
)
from pledge_kernel.models.payment_plan import (
    InstallmentSchedule,
    InstallmentStatus,
    PaymentPlan,
    PlanFrequency,
    PlanStatus,
)
from pledge_kernel.models.pledge import Pledge

__all__ = [
    "Contact",
    "Pledge",
    "Payment",
    "PaymentAllocation",
    "PaymentStatus",
    "PaymentMethod",
    "ReceiptType",
    "CONTRIBUTING_STATUSES",
    "PaymentPlan",
    "PlanFrequency",
    "PlanStatus",
    "InstallmentSchedule",
    "InstallmentStatus",
    "ExchangeRate",
]
