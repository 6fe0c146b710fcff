"""
DTOs -- immutable results returned across the service boundary.

Responsibility:
    Services and selectors return these frozen dataclasses, never ORM
    entities, so callers cannot accidentally write through a live session.

Architecture position:
    Kernel > Domain -- pure data, zero I/O.  from_model() converters are
    invoked from the service and selector layers only.

Data flow:
    PaymentRequest -> PaymentCommand -> StoredPayment
    Pledge/PaymentPlan/InstallmentSchedule -> PledgeBalance / PaymentPlanTotals
        / InstallmentState
    Payment + joins -> LedgerPayment -> LedgerPage
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING

from pledge_kernel.domain.commands import PaymentKind

if TYPE_CHECKING:
    from pledge_kernel.models.payment import Payment, PaymentAllocation


@dataclass(frozen=True)
class StoredAllocation:
    allocation_id: int
    pledge_id: int
    allocated_amount: Decimal
    currency: str
    allocated_amount_usd: Decimal | None
    exchange_rate: Decimal | None = None
    installment_schedule_id: int | None = None
    payer_contact_id: int | None = None

    @classmethod
    def from_model(cls, model: PaymentAllocation) -> StoredAllocation:
        return cls(
            allocation_id=model.id,
            pledge_id=model.pledge_id,
            allocated_amount=model.allocated_amount,
            currency=model.currency,
            allocated_amount_usd=model.allocated_amount_usd,
            exchange_rate=model.exchange_rate,
            installment_schedule_id=model.installment_schedule_id,
            payer_contact_id=model.payer_contact_id,
        )


@dataclass(frozen=True)
class StoredPayment:
    """
    A persisted payment and the entities it touched.

    Contract:
        affected_pledge_ids, payment_plan_id and affected_installment_ids
        name everything that must be reconciled after the write.
    """

    payment_id: int
    kind: PaymentKind
    amount: Decimal
    currency: str
    exchange_rate: Decimal | None
    amount_usd: Decimal | None
    amount_in_pledge_currency: Decimal | None
    payment_status: str
    payment_date: date
    received_date: date | None
    pledge_id: int | None = None
    payment_plan_id: int | None = None
    installment_schedule_id: int | None = None
    payer_contact_id: int | None = None
    is_third_party_payment: bool = False
    allocations: tuple[StoredAllocation, ...] = ()
    affected_pledge_ids: tuple[int, ...] = ()
    affected_installment_ids: tuple[int, ...] = ()

    @property
    def is_split_payment(self) -> bool:
        return len(self.allocations) > 0

    @property
    def allocation_count(self) -> int:
        return len(self.allocations)

    @classmethod
    def from_model(
        cls,
        model: Payment,
        affected_pledge_ids: tuple[int, ...] = (),
        affected_installment_ids: tuple[int, ...] = (),
    ) -> StoredPayment:
        allocations = tuple(StoredAllocation.from_model(a) for a in model.allocations)
        return cls(
            payment_id=model.id,
            kind=PaymentKind.SPLIT if allocations else PaymentKind.DIRECT,
            amount=model.amount,
            currency=model.currency,
            exchange_rate=model.exchange_rate,
            amount_usd=model.amount_usd,
            amount_in_pledge_currency=model.amount_in_pledge_currency,
            payment_status=getattr(model.payment_status, "value", model.payment_status),
            payment_date=model.payment_date,
            received_date=model.received_date,
            pledge_id=model.pledge_id,
            payment_plan_id=model.payment_plan_id,
            installment_schedule_id=model.installment_schedule_id,
            payer_contact_id=model.payer_contact_id,
            is_third_party_payment=model.is_third_party_payment,
            allocations=allocations,
            affected_pledge_ids=affected_pledge_ids,
            affected_installment_ids=affected_installment_ids,
        )


@dataclass(frozen=True)
class DeletedPayment:
    payment_id: int
    affected_pledge_ids: tuple[int, ...]
    payment_plan_id: int | None
    reverted_installment_ids: tuple[int, ...]


@dataclass(frozen=True)
class PledgeBalance:
    """Recomputed pledge aggregates.  balance_usd is None when the USD original is unknown."""

    pledge_id: int
    total_paid: Decimal
    total_paid_usd: Decimal
    balance: Decimal
    balance_usd: Decimal | None


@dataclass(frozen=True)
class PaymentPlanTotals:
    plan_id: int
    total_paid: Decimal
    installments_paid: int
    remaining_amount: Decimal


@dataclass(frozen=True)
class InstallmentState:
    installment_id: int
    status: str
    paid_date: date | None


@dataclass(frozen=True)
class ReconciliationSummary:
    """What a submit/update/delete reconciled afterwards."""

    pledges: tuple[PledgeBalance, ...] = ()
    plan: PaymentPlanTotals | None = None
    installments: tuple[InstallmentState, ...] = ()


# ---------------------------------------------------------------------------
# Read projections
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LedgerAllocation:
    allocation_id: int
    pledge_id: int
    pledge_description: str | None
    pledge_owner_name: str | None
    allocated_amount: Decimal
    currency: str
    allocated_amount_usd: Decimal | None
    installment_schedule_id: int | None
    payer_contact_id: int | None
    payer_name: str | None
    receipt_number: str | None
    receipt_type: str | None
    receipt_issued: bool
    notes: str | None


@dataclass(frozen=True)
class LedgerPayment:
    """
    A payment joined with pledge and contact display fields.

    is_split_payment and allocation_count are derived from the stored
    allocations; is_third_party_payment is the stored flag.
    """

    payment_id: int
    amount: Decimal
    currency: str
    amount_usd: Decimal | None
    amount_in_pledge_currency: Decimal | None
    exchange_rate: Decimal | None
    payment_date: date
    received_date: date | None
    payment_method: str
    method_detail: str | None
    payment_status: str
    reference_number: str | None
    check_number: str | None
    receipt_number: str | None
    receipt_type: str | None
    receipt_issued: bool
    notes: str | None
    pledge_id: int | None
    pledge_description: str | None
    pledge_original_amount: Decimal | None
    pledge_currency: str | None
    pledge_exchange_rate: Decimal | None
    pledge_contact_id: int | None
    pledge_owner_name: str | None
    payment_plan_id: int | None
    installment_schedule_id: int | None
    payer_contact_id: int | None
    payer_name: str | None
    is_third_party_payment: bool
    allocations: tuple[LedgerAllocation, ...] = field(default=())

    @property
    def allocation_count(self) -> int:
        return len(self.allocations)

    @property
    def is_split_payment(self) -> bool:
        return self.allocation_count > 0


@dataclass(frozen=True)
class LedgerPage:
    payments: tuple[LedgerPayment, ...]
    total_count: int
    limit: int
    offset: int

    @property
    def has_more(self) -> bool:
        return self.offset + len(self.payments) < self.total_count
