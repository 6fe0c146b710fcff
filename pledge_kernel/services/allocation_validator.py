"""
AllocationValidator -- turn a PaymentRequest into a validated command.

Responsibility:
    Run the shape and amount rules from pledge_engines.allocation_validation
    and the existence checks that need the database, in a fixed order,
    and emit exactly one of DirectPaymentCommand / SplitPaymentCommand.

Architecture position:
    Kernel > Services.  Read-only: it never adds, flushes or commits, so
    every failure is reported before anything is written.

Rule order:
    1. shape (missing / ambiguous target), then third-party payer
    2. currency is supported
    3. split: all allocation pledges exist (one batch query)
    4. split: allocation amounts positive, currencies match, total matches
    5. direct: the pledge exists
    6. referenced payment plan, installments and payer contact exist

Failure modes:
    - Any ValidationError subclass; see pledge_kernel.exceptions.
"""

import dataclasses
from collections.abc import Iterable
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from pledge_engines.allocation_validation import AllocationValidationEngine
from pledge_kernel.db.types import SUPPORTED_CURRENCIES, validate_currency
from pledge_kernel.domain.commands import (
    DirectPaymentCommand,
    PaymentCommand,
    PaymentKind,
    PaymentRequest,
    PledgeSnapshot,
    SplitPaymentCommand,
)
from pledge_kernel.domain.money import ALLOCATION_TOLERANCE
from pledge_kernel.exceptions import NotFoundError
from pledge_kernel.logging_config import get_logger
from pledge_kernel.models.contact import Contact
from pledge_kernel.models.payment_plan import InstallmentSchedule, PaymentPlan
from pledge_kernel.models.pledge import Pledge

logger = get_logger("services.allocation_validator")


class AllocationValidator:
    """Validates payment requests against the rules and the stored pledges."""

    def __init__(
        self,
        session: Session,
        tolerance: Decimal = ALLOCATION_TOLERANCE,
        supported_currencies: frozenset[str] = SUPPORTED_CURRENCIES,
    ):
        self.session = session
        self._rules = AllocationValidationEngine(tolerance)
        self._supported = supported_currencies

    def validate(self, request: PaymentRequest) -> PaymentCommand:
        """
        Classify and validate ``request``.

        Returns:
            DirectPaymentCommand or SplitPaymentCommand.

        Raises:
            ValidationError: on the first failing rule.
        """
        kind = self._rules.classify(request)
        self._rules.check_payer(request)

        currency = validate_currency(request.currency, self._supported)
        if currency != request.currency:
            request = dataclasses.replace(request, currency=currency)

        if kind is PaymentKind.SPLIT:
            command = self._validate_split(request)
        else:
            command = self._validate_direct(request)

        self._check_references(request, command.installment_ids)

        logger.info(
            "payment_request_validated",
            extra={
                "kind": command.kind.value,
                "amount": str(request.amount),
                "currency": request.currency,
                "pledge_ids": list(command.pledge_ids),
            },
        )
        return command

    def _validate_split(self, request: PaymentRequest) -> SplitPaymentCommand:
        requested = [a.pledge_id for a in request.allocations]
        found = self._existing_pledges(requested)
        missing = self._rules.missing_ids(requested, found)
        if missing:
            raise NotFoundError("pledge", missing)

        self._rules.check_allocations(request)

        # Allocations always carry the payment currency.
        allocations = tuple(
            a if a.currency == request.currency
            else dataclasses.replace(a, currency=request.currency)
            for a in request.allocations
        )
        return SplitPaymentCommand(request=request, allocations=allocations)

    def _validate_direct(self, request: PaymentRequest) -> DirectPaymentCommand:
        pledge = self.session.get(Pledge, request.pledge_id)
        if pledge is None:
            raise NotFoundError("pledge", [request.pledge_id])
        return DirectPaymentCommand(
            request=request,
            pledge=PledgeSnapshot(
                pledge_id=pledge.id,
                currency=pledge.currency,
                exchange_rate=pledge.exchange_rate,
            ),
        )

    def _existing_pledges(self, pledge_ids: Iterable[int]) -> dict[int, Pledge]:
        ids = set(pledge_ids)
        if not ids:
            return {}
        rows = self.session.execute(select(Pledge).where(Pledge.id.in_(ids))).scalars()
        return {p.id: p for p in rows}

    def _check_references(
        self,
        request: PaymentRequest,
        installment_ids: tuple[int, ...],
    ) -> None:
        if request.payment_plan_id:
            if self.session.get(PaymentPlan, request.payment_plan_id) is None:
                raise NotFoundError("payment plan", [request.payment_plan_id])

        ids = set(installment_ids)
        if request.installment_schedule_id:
            ids.add(request.installment_schedule_id)
        if ids:
            found = self.session.execute(
                select(InstallmentSchedule.id).where(InstallmentSchedule.id.in_(ids))
            ).scalars()
            missing = self._rules.missing_ids(ids, found)
            if missing:
                raise NotFoundError("installment", missing)

        payer_ids = {a.payer_contact_id for a in request.allocations if a.payer_contact_id}
        if request.payer_contact_id:
            payer_ids.add(request.payer_contact_id)
        if payer_ids:
            found = self.session.execute(
                select(Contact.id).where(Contact.id.in_(payer_ids))
            ).scalars()
            missing = self._rules.missing_ids(payer_ids, found)
            if missing:
                raise NotFoundError("contact", missing)
