"""
Commands -- inbound payment requests and the validated, variant-tagged
commands produced from them.

Responsibility:
    PaymentRequest is what the CRUD layer hands in.  The allocation
    validator turns it into exactly one of DirectPaymentCommand or
    SplitPaymentCommand; the recorder only ever sees those two.

Architecture position:
    Kernel > Domain -- pure data, zero I/O.

Invariants enforced:
    - PaymentRequest.amount is positive.
    - PaymentCommand is a closed union: a payment is direct XOR split.
    - Requests are frozen.  Redistribution returns new AllocationRequest
      instances via dataclasses.replace().

Failure modes:
    - ValueError on a non-positive payment amount or a float amount.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import ClassVar


class PaymentKind(str, Enum):
    DIRECT = "direct"
    SPLIT = "split"


def _as_decimal(value, name: str) -> Decimal:
    if isinstance(value, float):
        raise ValueError(f"{name} must be Decimal or str, not float")
    return value if isinstance(value, Decimal) else Decimal(str(value))


@dataclass(frozen=True)
class AllocationRequest:
    """
    One requested share of a split payment.

    ``currency`` may be omitted, in which case the payment currency is used.
    ``exchange_rate`` overrides the payment's rate for the USD figure.
    """

    pledge_id: int
    allocated_amount: Decimal
    currency: str | None = None
    exchange_rate: Decimal | None = None
    installment_schedule_id: int | None = None
    payer_contact_id: int | None = None
    receipt_number: str | None = None
    receipt_type: str | None = None
    receipt_issued: bool = False
    notes: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "allocated_amount", _as_decimal(self.allocated_amount, "allocated_amount")
        )
        if self.exchange_rate is not None:
            object.__setattr__(
                self, "exchange_rate", _as_decimal(self.exchange_rate, "exchange_rate")
            )


@dataclass(frozen=True)
class PaymentRequest:
    """
    A proposed payment as submitted by the caller.

    Exactly one of ``pledge_id`` and ``allocations`` must be populated; that
    is checked by the validator, not here.  ``is_split_payment`` is advisory:
    the presence of allocations decides the shape.
    """

    amount: Decimal
    currency: str
    payment_date: date
    payment_method: str
    pledge_id: int | None = None
    allocations: tuple[AllocationRequest, ...] = ()
    is_split_payment: bool = False
    exchange_rate: Decimal | None = None
    received_date: date | None = None
    check_date: date | None = None
    account: str | None = None
    method_detail: str | None = None
    payment_status: str = "completed"
    reference_number: str | None = None
    check_number: str | None = None
    receipt_number: str | None = None
    receipt_type: str | None = None
    receipt_issued: bool = False
    notes: str | None = None
    payment_plan_id: int | None = None
    installment_schedule_id: int | None = None
    payer_contact_id: int | None = None
    is_third_party_payment: bool = False

    def __post_init__(self) -> None:
        amount = _as_decimal(self.amount, "amount")
        if amount <= 0:
            raise ValueError(f"Payment amount must be positive, got {amount}")
        object.__setattr__(self, "amount", amount)
        object.__setattr__(self, "allocations", tuple(self.allocations))
        if self.exchange_rate is not None:
            object.__setattr__(
                self, "exchange_rate", _as_decimal(self.exchange_rate, "exchange_rate")
            )

    @property
    def effective_received_date(self) -> date:
        """Received date, defaulting to the payment date."""
        return self.received_date or self.payment_date

    @property
    def has_pledge(self) -> bool:
        return bool(self.pledge_id)

    @property
    def allocated_total(self) -> Decimal:
        return sum((a.allocated_amount for a in self.allocations), Decimal("0"))


@dataclass(frozen=True)
class PledgeSnapshot:
    """Pledge fields the recorder needs for a direct payment."""

    pledge_id: int
    currency: str
    exchange_rate: Decimal | None


@dataclass(frozen=True)
class DirectPaymentCommand:
    """A validated payment against exactly one pledge."""

    kind: ClassVar[PaymentKind] = PaymentKind.DIRECT

    request: PaymentRequest
    pledge: PledgeSnapshot

    @property
    def pledge_ids(self) -> tuple[int, ...]:
        return (self.pledge.pledge_id,)

    @property
    def installment_ids(self) -> tuple[int, ...]:
        if self.request.installment_schedule_id:
            return (self.request.installment_schedule_id,)
        return ()


@dataclass(frozen=True)
class SplitPaymentCommand:
    """A validated payment spread over one or more pledges."""

    kind: ClassVar[PaymentKind] = PaymentKind.SPLIT

    request: PaymentRequest
    allocations: tuple[AllocationRequest, ...] = field(default=())

    @property
    def pledge_ids(self) -> tuple[int, ...]:
        return tuple(dict.fromkeys(a.pledge_id for a in self.allocations))

    @property
    def installment_ids(self) -> tuple[int, ...]:
        return tuple(
            dict.fromkeys(
                a.installment_schedule_id
                for a in self.allocations
                if a.installment_schedule_id
            )
        )


PaymentCommand = DirectPaymentCommand | SplitPaymentCommand


@dataclass(frozen=True)
class PaymentUpdate:
    """
    A partial change to an existing payment.

    Fields left at None are unchanged.  ``allocations`` set to a sequence
    (possibly empty) replaces the allocation set: a non-empty sequence makes
    the payment split, an empty one with ``pledge_id`` undoes the split.
    ``auto_adjust_allocations`` redistributes the supplied allocations to a
    changed ``amount`` with ``redistribution_strategy`` before validating.
    """

    amount: Decimal | None = None
    currency: str | None = None
    exchange_rate: Decimal | None = None
    payment_date: date | None = None
    received_date: date | None = None
    check_date: date | None = None
    account: str | None = None
    payment_method: str | None = None
    method_detail: str | None = None
    payment_status: str | None = None
    reference_number: str | None = None
    check_number: str | None = None
    receipt_number: str | None = None
    receipt_type: str | None = None
    receipt_issued: bool | None = None
    notes: str | None = None
    pledge_id: int | None = None
    payment_plan_id: int | None = None
    installment_schedule_id: int | None = None
    payer_contact_id: int | None = None
    is_third_party_payment: bool | None = None
    allocations: tuple[AllocationRequest, ...] | None = None
    auto_adjust_allocations: bool = False
    redistribution_strategy: str | None = None

    def __post_init__(self) -> None:
        if self.amount is not None:
            amount = _as_decimal(self.amount, "amount")
            if amount <= 0:
                raise ValueError(f"Payment amount must be positive, got {amount}")
            object.__setattr__(self, "amount", amount)
        if self.exchange_rate is not None:
            object.__setattr__(
                self, "exchange_rate", _as_decimal(self.exchange_rate, "exchange_rate")
            )
        if self.allocations is not None:
            object.__setattr__(self, "allocations", tuple(self.allocations))

    def changes(self) -> dict:
        """Scalar payment fields that were supplied."""
        skip = {"allocations", "auto_adjust_allocations", "redistribution_strategy"}
        return {
            name: value
            for name, value in vars(self).items()
            if name not in skip and value is not None
        }
