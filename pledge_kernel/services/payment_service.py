"""
PaymentService -- the ledger's outbound surface.

Responsibility:
    Orchestrate validation, recording and reconciliation for payment
    submission, update and deletion, and expose redistribution and the three
    standalone reconcile operations for repair and backfill.

Architecture position:
    Kernel > Services.  This service owns the transaction boundary:

        validate (reads only)
          -> write payment + allocations         one transaction
          -> reconcile each pledge               one transaction each
          -> reconcile the payment plan          one transaction
          -> reconcile each installment          one transaction each

Invariants enforced:
    - Every ValidationError is raised before anything is written.
    - A storage failure while writing rolls back the whole unit of work and
      surfaces as PersistenceError; no payment row or partial allocation set
      survives.
    - Reconciliation runs after the write commits.  A failing reconcile is
      surfaced as ReconciliationError and can simply be re-run.

Usage:
    service = PaymentService(session, rate_provider=StoredRateProvider(session))
    stored = service.submit_payment(
        PaymentRequest(
            amount=Decimal("300.00"),
            currency="USD",
            payment_date=date(2024, 3, 1),
            payment_method="check",
            allocations=(
                AllocationRequest(pledge_id=1, allocated_amount=Decimal("100.00")),
                AllocationRequest(pledge_id=2, allocated_amount=Decimal("200.00")),
            ),
        ),
        actor_id=actor_id,
    )
"""

from __future__ import annotations

import dataclasses
from collections.abc import Callable, Iterable, Iterator, Sequence
from contextlib import contextmanager
from datetime import date
from decimal import Decimal
from typing import TypeVar
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from pledge_engines.redistribution import (
    AllocationRedistributor,
    RedistributionStrategy,
    should_redistribute,
)
from pledge_kernel.config import LedgerConfig
from pledge_kernel.db.types import USD
from pledge_kernel.domain.clock import Clock, SystemClock
from pledge_kernel.domain.commands import (
    AllocationRequest,
    DirectPaymentCommand,
    PaymentCommand,
    PaymentRequest,
    PaymentUpdate,
    SplitPaymentCommand,
)
from pledge_kernel.domain.dtos import (
    DeletedPayment,
    InstallmentState,
    PaymentPlanTotals,
    PledgeBalance,
    ReconciliationSummary,
    StoredPayment,
)
from pledge_kernel.domain.money import round2, to_usd
from pledge_kernel.exceptions import (
    NotFoundError,
    PersistenceError,
    PledgeLedgerError,
    ReconciliationError,
    ShapeError,
)
from pledge_kernel.logging_config import LogContext, get_logger
from pledge_kernel.models.payment import Payment
from pledge_kernel.services.allocation_validator import AllocationValidator
from pledge_kernel.services.balance_reconciler import BalanceReconciler
from pledge_kernel.services.exchange_rate_service import (
    ExchangeRateProvider,
    StoredRateProvider,
)
from pledge_kernel.services.payment_recorder import PaymentRecorder

logger = get_logger("services.payment_service")

T = TypeVar("T")


def _ids(values: Iterable[int | None]) -> tuple[int, ...]:
    """Distinct truthy ids in first-seen order."""
    return tuple(dict.fromkeys(v for v in values if v))


class PaymentService:
    """
    Records payments and keeps pledge, plan and installment aggregates in step.

    Transaction boundary: this service commits on success and rolls back on
    failure.  The collaborators it composes only flush.
    """

    def __init__(
        self,
        session: Session,
        rate_provider: ExchangeRateProvider | None = None,
        clock: Clock | None = None,
        config: LedgerConfig | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._config = config or LedgerConfig.with_defaults()

        self._rates = rate_provider or StoredRateProvider(
            session, self._clock, self._config.supported_currencies
        )
        self._validator = AllocationValidator(
            session,
            tolerance=self._config.allocation_tolerance,
            supported_currencies=self._config.supported_currencies,
        )
        self._recorder = PaymentRecorder(session)
        self._reconciler = BalanceReconciler(session, self._config.contributing_statuses)
        self._redistributor = AllocationRedistributor()

    # =========================================================================
    # Submit
    # =========================================================================

    def submit_payment(self, request: PaymentRequest, actor_id: UUID) -> StoredPayment:
        """
        Validate, record and reconcile a new payment.

        Raises:
            ValidationError: request rejected; nothing written.
            ExchangeRateNotFoundError: no rate for a non-USD payment.
            PersistenceError: write failed and was rolled back.
            ReconciliationError: payment stored, an aggregate recompute failed.
        """
        with LogContext.bind(actor_id=actor_id):
            logger.info(
                "payment_submit_started",
                extra={
                    "amount": str(request.amount),
                    "currency": request.currency,
                    "pledge_id": request.pledge_id,
                    "allocation_count": len(request.allocations),
                },
            )

            with self._unit_of_work("submit_payment"):
                command = self._validator.validate(request)
                command = self._with_rate(command)
                stored = self._recorder.record(command, actor_id)

            with LogContext.bind(payment_id=stored.payment_id):
                self._reconcile_after(
                    pledge_ids=stored.affected_pledge_ids,
                    plan_ids=_ids([stored.payment_plan_id]),
                    installment_ids=stored.affected_installment_ids,
                    payment_status=stored.payment_status,
                    paid_date=stored.received_date or stored.payment_date,
                    actor_id=actor_id,
                )
            return stored

    # =========================================================================
    # Update
    # =========================================================================

    def update_payment(
        self,
        payment_id: int,
        update: PaymentUpdate,
        actor_id: UUID,
    ) -> StoredPayment:
        """
        Apply a partial update, covering the four shape transitions.

        * direct -> direct: scalar changes, optionally re-targeted pledge.
        * split -> direct: allocations removed, ``update.pledge_id`` required.
        * direct -> split: ``update.allocations`` required; the payment's own
          installment link is cleared.
        * split -> split: allocation set replaced wholesale, optionally
          redistributed to a changed amount.

        Every pledge touched before or after, the plan(s) and every
        installment touched are reconciled after the write commits.
        Installments the payment no longer covers revert to pending.
        """
        with LogContext.bind(actor_id=actor_id, payment_id=payment_id):
            with self._unit_of_work("update_payment"):
                payment = self._recorder.get_for_update(payment_id)
                if payment is None:
                    raise NotFoundError("payment", [payment_id])

                before_pledges = _ids(
                    [payment.pledge_id, *(a.pledge_id for a in payment.allocations)]
                )
                before_installments = self._installments_of(payment)
                before_plan = payment.payment_plan_id
                was_split = bool(payment.allocations)

                request = self._merged_request(payment, update, was_split)
                command = self._with_rate(self._validator.validate(request))
                self._apply(payment, command, actor_id)

                after_installments = command.installment_ids
                released = self._recorder.release_installments(
                    [i for i in before_installments if i not in after_installments],
                    actor_id,
                )
                self._recorder.link_installments(payment.id, after_installments, actor_id)
                self._session.flush()

                stored = StoredPayment.from_model(
                    payment,
                    affected_pledge_ids=_ids([*before_pledges, *command.pledge_ids]),
                    affected_installment_ids=after_installments,
                )

            logger.info(
                "payment_updated",
                extra={
                    "was_split": was_split,
                    "is_split": stored.is_split_payment,
                    "released_installments": list(released),
                },
            )

            self._reconcile_after(
                pledge_ids=stored.affected_pledge_ids,
                plan_ids=_ids([before_plan, stored.payment_plan_id]),
                installment_ids=stored.affected_installment_ids,
                payment_status=stored.payment_status,
                paid_date=stored.received_date or stored.payment_date,
                actor_id=actor_id,
            )
            return stored

    def _merged_request(
        self,
        payment: Payment,
        update: PaymentUpdate,
        was_split: bool,
    ) -> PaymentRequest:
        changes = update.changes()
        currency = changes.get("currency", payment.currency)
        amount = changes.get("amount", payment.amount)

        if update.allocations is not None:
            will_be_split = len(update.allocations) > 0
        else:
            will_be_split = was_split and not update.pledge_id

        pledge_id: int | None = None
        allocations: tuple[AllocationRequest, ...] = ()

        if will_be_split:
            if update.allocations:
                allocations = update.allocations
            else:
                allocations = tuple(
                    AllocationRequest(
                        pledge_id=a.pledge_id,
                        allocated_amount=a.allocated_amount,
                        exchange_rate=a.exchange_rate if currency == payment.currency else None,
                        installment_schedule_id=a.installment_schedule_id,
                        payer_contact_id=a.payer_contact_id,
                        receipt_number=a.receipt_number,
                        receipt_type=a.receipt_type,
                        receipt_issued=a.receipt_issued,
                        notes=a.notes,
                    )
                    for a in payment.allocations
                )
            allocations = self._maybe_redistribute(allocations, amount, update)
        else:
            pledge_id = update.pledge_id or payment.pledge_id
            if not pledge_id:
                # Undoing a split needs somewhere for the money to go.
                raise ShapeError(ShapeError.MISSING_TARGET)

        # Keep the stored rate unless the currency changed or a rate was supplied.
        if "exchange_rate" in changes:
            exchange_rate = changes["exchange_rate"]
        elif currency == payment.currency:
            exchange_rate = payment.exchange_rate
        else:
            exchange_rate = None

        installment_id = None
        if not will_be_split:
            installment_id = changes.get(
                "installment_schedule_id", payment.installment_schedule_id
            )

        def pick(name: str):
            return changes.get(name, getattr(payment, name))

        return PaymentRequest(
            amount=amount,
            currency=currency,
            payment_date=pick("payment_date"),
            payment_method=pick("payment_method"),
            pledge_id=pledge_id,
            allocations=allocations,
            is_split_payment=will_be_split,
            exchange_rate=exchange_rate,
            received_date=pick("received_date"),
            check_date=pick("check_date"),
            account=pick("account"),
            method_detail=pick("method_detail"),
            payment_status=pick("payment_status"),
            reference_number=pick("reference_number"),
            check_number=pick("check_number"),
            receipt_number=pick("receipt_number"),
            receipt_type=pick("receipt_type"),
            receipt_issued=pick("receipt_issued"),
            notes=pick("notes"),
            payment_plan_id=pick("payment_plan_id"),
            installment_schedule_id=installment_id,
            payer_contact_id=pick("payer_contact_id"),
            is_third_party_payment=pick("is_third_party_payment"),
        )

    def _maybe_redistribute(
        self,
        allocations: tuple[AllocationRequest, ...],
        amount: Decimal,
        update: PaymentUpdate,
    ) -> tuple[AllocationRequest, ...]:
        auto_adjust = update.auto_adjust_allocations or self._config.auto_adjust_allocations
        current_total = sum((a.allocated_amount for a in allocations), Decimal("0"))
        if not should_redistribute(
            current_total, amount, auto_adjust, self._config.allocation_tolerance
        ):
            return allocations
        strategy = update.redistribution_strategy or self._config.default_redistribution_strategy
        return self.redistribute(allocations, amount, strategy)

    def _apply(self, payment: Payment, command: PaymentCommand, actor_id: UUID) -> None:
        """Overwrite the payment row from a validated command."""
        request = command.request
        rate = request.exchange_rate if request.currency != USD else Decimal("1")

        payment.amount = round2(request.amount)
        payment.currency = request.currency
        payment.exchange_rate = rate
        payment.amount_usd = round2(to_usd(request.amount, request.currency, rate))
        payment.payment_date = request.payment_date
        payment.received_date = request.effective_received_date
        payment.check_date = request.check_date
        payment.account = request.account
        payment.payment_method = request.payment_method
        payment.method_detail = request.method_detail
        payment.payment_status = request.payment_status
        payment.reference_number = request.reference_number
        payment.check_number = request.check_number
        payment.receipt_number = request.receipt_number
        payment.receipt_type = request.receipt_type
        payment.receipt_issued = request.receipt_issued
        payment.notes = request.notes
        payment.payment_plan_id = request.payment_plan_id or None
        payment.payer_contact_id = request.payer_contact_id or None
        payment.is_third_party_payment = request.is_third_party_payment
        payment.updated_by_id = actor_id

        match command:
            case DirectPaymentCommand():
                payment.pledge_id = command.pledge.pledge_id
                payment.installment_schedule_id = request.installment_schedule_id or None
                payment.amount_in_pledge_currency = PaymentRecorder.amount_in_pledge_currency(
                    request.amount,
                    request.currency,
                    rate,
                    command.pledge.currency,
                    command.pledge.exchange_rate,
                )
                self._recorder.replace_allocations(payment, request, (), actor_id)
            case SplitPaymentCommand():
                payment.pledge_id = None
                payment.installment_schedule_id = None
                payment.amount_in_pledge_currency = None
                self._recorder.replace_allocations(
                    payment, request, command.allocations, actor_id
                )

    # =========================================================================
    # Delete
    # =========================================================================

    def delete_payment(self, payment_id: int, actor_id: UUID) -> DeletedPayment:
        """
        Delete a payment and its allocations, then reconcile what it touched.

        Installments linked to the payment or its allocations revert to
        pending.
        """
        with LogContext.bind(actor_id=actor_id, payment_id=payment_id):
            with self._unit_of_work("delete_payment"):
                payment = self._recorder.get_for_update(payment_id)
                if payment is None:
                    raise NotFoundError("payment", [payment_id])

                pledge_ids = _ids(
                    [payment.pledge_id, *(a.pledge_id for a in payment.allocations)]
                )
                plan_id = payment.payment_plan_id
                released = self._recorder.release_installments(
                    self._installments_of(payment), actor_id
                )
                self._recorder.delete(payment)

            logger.info(
                "payment_deleted",
                extra={
                    "affected_pledge_ids": list(pledge_ids),
                    "payment_plan_id": plan_id,
                    "reverted_installment_ids": list(released),
                },
            )

            self._reconcile_after(
                pledge_ids=pledge_ids,
                plan_ids=_ids([plan_id]),
                installment_ids=(),
                payment_status=None,
                paid_date=None,
                actor_id=actor_id,
            )
            return DeletedPayment(
                payment_id=payment_id,
                affected_pledge_ids=pledge_ids,
                payment_plan_id=plan_id,
                reverted_installment_ids=released,
            )

    # =========================================================================
    # Redistribute
    # =========================================================================

    def redistribute(
        self,
        allocations: Sequence[AllocationRequest],
        new_total: Decimal,
        strategy: RedistributionStrategy | str | None = None,
    ) -> tuple[AllocationRequest, ...]:
        """Rescale allocations to ``new_total`` (pure; nothing is written)."""
        return self._redistributor.redistribute(
            allocations=allocations,
            new_total=new_total,
            strategy=strategy or self._config.default_redistribution_strategy,
        )

    # =========================================================================
    # Reconcile
    # =========================================================================

    def reconcile_pledge(self, pledge_id: int, actor_id: UUID) -> PledgeBalance:
        """Recompute one pledge's paid and balance figures in its own transaction."""
        with LogContext.bind(pledge_id=pledge_id):
            return self._reconcile(
                "pledge",
                pledge_id,
                lambda: self._reconciler.reconcile_pledge(pledge_id, actor_id),
            )

    def reconcile_payment_plan(self, plan_id: int, actor_id: UUID) -> PaymentPlanTotals:
        return self._reconcile(
            "payment plan",
            plan_id,
            lambda: self._reconciler.reconcile_payment_plan(plan_id, actor_id),
        )

    def reconcile_installment(
        self,
        installment_id: int,
        payment_status: str | None,
        actor_id: UUID,
        paid_date: date | None = None,
    ) -> InstallmentState:
        return self._reconcile(
            "installment",
            installment_id,
            lambda: self._reconciler.reconcile_installment(
                installment_id, payment_status, actor_id, paid_date
            ),
        )

    def _reconcile_after(
        self,
        *,
        pledge_ids: Iterable[int],
        plan_ids: Iterable[int],
        installment_ids: Iterable[int],
        payment_status: str | None,
        paid_date: date | None,
        actor_id: UUID,
    ) -> ReconciliationSummary:
        pledges = tuple(self.reconcile_pledge(pid, actor_id) for pid in pledge_ids)
        plans = [self.reconcile_payment_plan(pid, actor_id) for pid in plan_ids]
        installments = tuple(
            self.reconcile_installment(iid, payment_status, actor_id, paid_date)
            for iid in installment_ids
        )
        return ReconciliationSummary(
            pledges=pledges,
            plan=plans[-1] if plans else None,
            installments=installments,
        )

    def _reconcile(self, entity: str, entity_id: int, fn: Callable[[], T]) -> T:
        try:
            result = fn()
            self._session.commit()
            return result
        except PledgeLedgerError:
            self._session.rollback()
            raise
        except SQLAlchemyError as exc:
            self._session.rollback()
            logger.error(
                "reconciliation_failed",
                extra={"entity": entity, "entity_id": entity_id},
                exc_info=True,
            )
            raise ReconciliationError(entity, entity_id, str(exc)) from exc

    # =========================================================================
    # Helpers
    # =========================================================================

    @contextmanager
    def _unit_of_work(self, operation: str) -> Iterator[None]:
        """Commit on success; roll back on any failure, translating storage errors."""
        try:
            yield
            self._session.commit()
        except SQLAlchemyError as exc:
            self._session.rollback()
            logger.error(
                "payment_write_failed",
                extra={"operation": operation},
                exc_info=True,
            )
            raise PersistenceError(operation, str(exc)) from exc
        except Exception:
            self._session.rollback()
            raise

    def _with_rate(self, command: PaymentCommand) -> PaymentCommand:
        """Fill in the payment's rate-to-USD from the provider when none was supplied."""
        request = command.request
        if request.exchange_rate is not None and request.currency != USD:
            return command

        # Rates are looked up for the received date; None means today.
        rate = self._rates.rate(request.currency, request.received_date)
        if rate == request.exchange_rate:
            return command
        return dataclasses.replace(
            command, request=dataclasses.replace(request, exchange_rate=rate)
        )

    @staticmethod
    def _installments_of(payment: Payment) -> tuple[int, ...]:
        return _ids(
            [
                payment.installment_schedule_id,
                *(a.installment_schedule_id for a in payment.allocations),
            ]
        )
