"""
PaymentRecorder -- persist validated payment commands.

Responsibility:
    Derive the stored monetary fields (amount_usd, amount_in_pledge_currency,
    allocated_amount_usd) and write the Payment row plus one
    PaymentAllocation row per allocation.  Also carries the write primitives
    the update and delete flows need: replacing an allocation set, unlinking
    installments and deleting a payment.

Architecture position:
    Kernel > Services.  Flush-only (BaseService).  PaymentService wraps
    every call in one transaction and commits or rolls back.

Invariants enforced:
    - Direct: amount_usd = amount * rate; amount_in_pledge_currency = amount
      when currencies match, else amount_usd / pledge rate (rate 1 when the
      pledge has none).
    - Split: pledge_id and amount_in_pledge_currency are NULL on the payment.
      Each allocation's USD figure is the amount itself for USD, else
      amount * (allocation rate or payment rate).
    - received_date defaults to payment_date.
    - Aggregates on pledges, plans and installments are NOT touched here.
"""

from collections.abc import Iterable, Sequence
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select, update

from pledge_kernel.domain.commands import (
    AllocationRequest,
    DirectPaymentCommand,
    PaymentCommand,
    PaymentRequest,
    SplitPaymentCommand,
)
from pledge_kernel.domain.dtos import StoredPayment
from pledge_kernel.domain.money import USD, round2, to_currency, to_usd
from pledge_kernel.logging_config import get_logger
from pledge_kernel.models.payment import Payment, PaymentAllocation
from pledge_kernel.models.payment_plan import InstallmentSchedule, InstallmentStatus
from pledge_kernel.services.base import BaseService

logger = get_logger("services.payment_recorder")

_ONE = Decimal("1")


def _payment_rate(request: PaymentRequest) -> Decimal:
    if request.currency == USD or request.exchange_rate is None:
        return _ONE
    return request.exchange_rate


def allocation_usd(
    allocation: AllocationRequest,
    currency: str,
    payment_rate: Decimal,
) -> Decimal:
    """USD value of one allocation: own rate first, then the payment's rate."""
    if currency == USD:
        return round2(allocation.allocated_amount)
    rate = allocation.exchange_rate if allocation.exchange_rate is not None else payment_rate
    return round2(allocation.allocated_amount * rate)


class PaymentRecorder(BaseService[Payment]):
    """Writes payments and allocations.  Never commits."""

    def record(self, command: PaymentCommand, actor_id: UUID) -> StoredPayment:
        """
        Persist a validated command.

        Returns:
            StoredPayment naming every pledge and installment to reconcile.
        """
        match command:
            case DirectPaymentCommand():
                payment = self._insert_direct(command, actor_id)
            case SplitPaymentCommand():
                payment = self._insert_split(command, actor_id)

        self.session.flush()
        self.link_installments(payment.id, command.installment_ids, actor_id)

        logger.info(
            "payment_recorded",
            extra={
                "payment_id": payment.id,
                "kind": command.kind.value,
                "amount": str(payment.amount),
                "currency": payment.currency,
                "amount_usd": str(payment.amount_usd),
                "allocation_count": len(payment.allocations),
            },
        )
        return StoredPayment.from_model(
            payment,
            affected_pledge_ids=command.pledge_ids,
            affected_installment_ids=command.installment_ids,
        )

    # ------------------------------------------------------------------
    # Inserts
    # ------------------------------------------------------------------

    def _new_payment(self, request: PaymentRequest, actor_id: UUID) -> Payment:
        rate = _payment_rate(request)
        return Payment(
            amount=round2(request.amount),
            currency=request.currency,
            exchange_rate=rate,
            amount_usd=round2(to_usd(request.amount, request.currency, rate)),
            payment_date=request.payment_date,
            received_date=request.effective_received_date,
            check_date=request.check_date,
            account=request.account,
            payment_method=request.payment_method,
            method_detail=request.method_detail,
            payment_status=request.payment_status,
            reference_number=request.reference_number,
            check_number=request.check_number,
            receipt_number=request.receipt_number,
            receipt_type=request.receipt_type,
            receipt_issued=request.receipt_issued,
            notes=request.notes,
            payment_plan_id=request.payment_plan_id or None,
            payer_contact_id=request.payer_contact_id or None,
            is_third_party_payment=request.is_third_party_payment,
            created_by_id=actor_id,
        )

    def _insert_direct(self, command: DirectPaymentCommand, actor_id: UUID) -> Payment:
        request = command.request
        payment = self._new_payment(request, actor_id)
        payment.pledge_id = command.pledge.pledge_id
        payment.installment_schedule_id = request.installment_schedule_id or None
        payment.amount_in_pledge_currency = self.amount_in_pledge_currency(
            request.amount,
            request.currency,
            _payment_rate(request),
            command.pledge.currency,
            command.pledge.exchange_rate,
        )
        self.session.add(payment)
        return payment

    def _insert_split(self, command: SplitPaymentCommand, actor_id: UUID) -> Payment:
        request = command.request
        payment = self._new_payment(request, actor_id)
        payment.pledge_id = None
        payment.installment_schedule_id = None
        payment.amount_in_pledge_currency = None
        payment.allocations = self.build_allocations(request, command.allocations, actor_id)
        self.session.add(payment)
        return payment

    @staticmethod
    def amount_in_pledge_currency(
        amount: Decimal,
        currency: str,
        payment_rate: Decimal,
        pledge_currency: str,
        pledge_rate: Decimal | None,
    ) -> Decimal:
        if currency == pledge_currency:
            return round2(amount)
        usd = to_usd(amount, currency, payment_rate)
        return round2(to_currency(usd, pledge_rate or _ONE))

    def build_allocations(
        self,
        request: PaymentRequest,
        allocations: Sequence[AllocationRequest],
        actor_id: UUID,
    ) -> list[PaymentAllocation]:
        payment_rate = _payment_rate(request)
        third_party_payer = request.payer_contact_id if request.is_third_party_payment else None
        rows = []
        for allocation in allocations:
            currency = allocation.currency or request.currency
            rows.append(
                PaymentAllocation(
                    pledge_id=allocation.pledge_id,
                    installment_schedule_id=allocation.installment_schedule_id or None,
                    allocated_amount=round2(allocation.allocated_amount),
                    currency=currency,
                    exchange_rate=allocation.exchange_rate,
                    allocated_amount_usd=allocation_usd(allocation, currency, payment_rate),
                    receipt_number=allocation.receipt_number,
                    receipt_type=allocation.receipt_type,
                    receipt_issued=allocation.receipt_issued,
                    notes=allocation.notes,
                    payer_contact_id=allocation.payer_contact_id or third_party_payer,
                    created_by_id=actor_id,
                )
            )
        return rows

    # ------------------------------------------------------------------
    # Mutation primitives for update / delete
    # ------------------------------------------------------------------

    def replace_allocations(
        self,
        payment: Payment,
        request: PaymentRequest,
        allocations: Sequence[AllocationRequest],
        actor_id: UUID,
    ) -> None:
        """Swap the whole allocation set.  An empty sequence removes it."""
        payment.allocations.clear()
        self.session.flush()
        payment.allocations.extend(self.build_allocations(request, allocations, actor_id))
        self.session.flush()

    def link_installments(
        self,
        payment_id: int,
        installment_ids: Iterable[int],
        actor_id: UUID,
    ) -> None:
        ids = [i for i in installment_ids if i]
        if not ids:
            return
        self.session.execute(
            update(InstallmentSchedule)
            .where(InstallmentSchedule.id.in_(ids))
            .values(payment_id=payment_id, updated_by_id=actor_id)
            .execution_options(synchronize_session="fetch")
        )

    def release_installments(
        self,
        installment_ids: Iterable[int],
        actor_id: UUID,
    ) -> tuple[int, ...]:
        """Unlink installments from their payment and revert them to pending."""
        ids = tuple(dict.fromkeys(i for i in installment_ids if i))
        if not ids:
            return ()
        self.session.execute(
            update(InstallmentSchedule)
            .where(InstallmentSchedule.id.in_(ids))
            .values(
                payment_id=None,
                status=InstallmentStatus.PENDING.value,
                paid_date=None,
                updated_by_id=actor_id,
            )
            .execution_options(synchronize_session="fetch")
        )
        logger.info("installments_released", extra={"installment_ids": list(ids)})
        return ids

    def delete(self, payment: Payment) -> None:
        """Delete allocations, then the payment."""
        payment.allocations.clear()
        self.session.flush()
        self.session.delete(payment)
        self.session.flush()

    def get_for_update(self, payment_id: int) -> Payment | None:
        return self.session.execute(
            select(Payment).where(Payment.id == payment_id).with_for_update()
        ).scalar_one_or_none()
