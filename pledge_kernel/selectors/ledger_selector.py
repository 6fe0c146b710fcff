"""
Module: pledge_kernel.selectors.ledger_selector
Responsibility: Read-only payment ledger queries.  Joins each payment with
    its pledge's display fields, the pledge owner's and payer's names, and
    its allocations (each with its own pledge and payer display fields).
Architecture position: Kernel > Selectors.  May import from models/,
    domain/dtos and selectors/base.py.

Invariants enforced:
    - is_split_payment is derived from the allocation count, never from a
      stored flag; is_third_party_payment is returned as stored.
    - A pledge filter matches direct payments to the pledge AND split
      payments with at least one allocation to it.
    - Never writes.

Failure modes:
    - get_payment() raises NotFoundError for an unknown id.
    - list_payments() returns an empty page when nothing matches.
"""

from collections import defaultdict
from collections.abc import Sequence

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session, aliased

from pledge_kernel.domain.dtos import LedgerAllocation, LedgerPage, LedgerPayment
from pledge_kernel.exceptions import NotFoundError
from pledge_kernel.models.contact import Contact
from pledge_kernel.models.payment import Payment, PaymentAllocation
from pledge_kernel.models.pledge import Pledge
from pledge_kernel.selectors.base import BaseSelector

DEFAULT_PAGE_SIZE = 10


def _value(raw):
    return getattr(raw, "value", raw)


def _name(contact: Contact | None) -> str | None:
    return contact.full_name if contact is not None else None


class LedgerSelector(BaseSelector[Payment]):
    """
    Payment ledger read path.

    Ordering: payment_date DESC, then id DESC, so the newest payment comes
    first and pagination is stable across calls.
    """

    def __init__(self, session: Session):
        super().__init__(session)

    def get_payment(self, payment_id: int) -> LedgerPayment:
        payments = self._load([payment_id])
        if not payments:
            raise NotFoundError("payment", [payment_id])
        return payments[0]

    def list_payments(
        self,
        pledge_id: int | None = None,
        contact_id: int | None = None,
        payment_status: str | None = None,
        limit: int = DEFAULT_PAGE_SIZE,
        offset: int = 0,
    ) -> LedgerPage:
        """
        One page of payments, newest first.

        Args:
            pledge_id: Direct payments to the pledge or splits allocating to it.
            contact_id: Payments to any pledge owned by the contact.
            payment_status: Exact status match.
            limit: Page size; must be positive.
            offset: Rows to skip; must be non-negative.
        """
        if limit <= 0:
            raise ValueError(f"limit must be positive, got {limit}")
        if offset < 0:
            raise ValueError(f"offset must be non-negative, got {offset}")

        filters = []
        if pledge_id is not None:
            filters.append(self._targets_pledges([pledge_id]))
        if contact_id is not None:
            owned = select(Pledge.id).where(Pledge.contact_id == contact_id)
            filters.append(self._targets_pledges(owned))
        if payment_status is not None:
            filters.append(Payment.payment_status == _value(payment_status))

        total = self.session.execute(
            select(func.count(Payment.id)).where(*filters)
        ).scalar_one()

        ids = list(
            self.session.execute(
                select(Payment.id)
                .where(*filters)
                .order_by(Payment.payment_date.desc(), Payment.id.desc())
                .limit(limit)
                .offset(offset)
            ).scalars()
        )

        return LedgerPage(
            payments=tuple(self._load(ids)),
            total_count=total,
            limit=limit,
            offset=offset,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _targets_pledges(pledge_ids):
        """Payment matches when it pays, or allocates to, one of pledge_ids."""
        allocated = select(PaymentAllocation.payment_id).where(
            PaymentAllocation.pledge_id.in_(pledge_ids)
        )
        return or_(Payment.pledge_id.in_(pledge_ids), Payment.id.in_(allocated))

    def _load(self, payment_ids: Sequence[int]) -> list[LedgerPayment]:
        """Load payments by id, preserving the order of payment_ids."""
        if not payment_ids:
            return []

        owner = aliased(Contact, name="owner")
        payer = aliased(Contact, name="payer")
        rows = self.session.execute(
            select(Payment, Pledge, owner, payer)
            .outerjoin(Pledge, Payment.pledge_id == Pledge.id)
            .outerjoin(owner, Pledge.contact_id == owner.id)
            .outerjoin(payer, Payment.payer_contact_id == payer.id)
            .where(Payment.id.in_(payment_ids))
        ).all()

        allocations = self._allocations(payment_ids)
        by_id = {
            payment.id: self._to_dto(payment, pledge, owner_row, payer_row, allocations[payment.id])
            for payment, pledge, owner_row, payer_row in rows
        }
        return [by_id[pid] for pid in payment_ids if pid in by_id]

    def _allocations(
        self, payment_ids: Sequence[int]
    ) -> dict[int, list[LedgerAllocation]]:
        owner = aliased(Contact, name="alloc_owner")
        payer = aliased(Contact, name="alloc_payer")
        rows = self.session.execute(
            select(PaymentAllocation, Pledge, owner, payer)
            .join(Pledge, PaymentAllocation.pledge_id == Pledge.id)
            .outerjoin(owner, Pledge.contact_id == owner.id)
            .outerjoin(payer, PaymentAllocation.payer_contact_id == payer.id)
            .where(PaymentAllocation.payment_id.in_(payment_ids))
            .order_by(PaymentAllocation.payment_id, PaymentAllocation.id)
        ).all()

        grouped: dict[int, list[LedgerAllocation]] = defaultdict(list)
        for allocation, pledge, owner_row, payer_row in rows:
            grouped[allocation.payment_id].append(
                LedgerAllocation(
                    allocation_id=allocation.id,
                    pledge_id=allocation.pledge_id,
                    pledge_description=pledge.description,
                    pledge_owner_name=_name(owner_row),
                    allocated_amount=allocation.allocated_amount,
                    currency=allocation.currency,
                    allocated_amount_usd=allocation.allocated_amount_usd,
                    installment_schedule_id=allocation.installment_schedule_id,
                    payer_contact_id=allocation.payer_contact_id,
                    payer_name=_name(payer_row),
                    receipt_number=allocation.receipt_number,
                    receipt_type=_value(allocation.receipt_type),
                    receipt_issued=allocation.receipt_issued,
                    notes=allocation.notes,
                )
            )
        return grouped

    @staticmethod
    def _to_dto(
        payment: Payment,
        pledge: Pledge | None,
        owner: Contact | None,
        payer: Contact | None,
        allocations: list[LedgerAllocation],
    ) -> LedgerPayment:
        return LedgerPayment(
            payment_id=payment.id,
            amount=payment.amount,
            currency=payment.currency,
            amount_usd=payment.amount_usd,
            amount_in_pledge_currency=payment.amount_in_pledge_currency,
            exchange_rate=payment.exchange_rate,
            payment_date=payment.payment_date,
            received_date=payment.received_date,
            payment_method=_value(payment.payment_method),
            method_detail=payment.method_detail,
            payment_status=_value(payment.payment_status),
            reference_number=payment.reference_number,
            check_number=payment.check_number,
            receipt_number=payment.receipt_number,
            receipt_type=_value(payment.receipt_type),
            receipt_issued=payment.receipt_issued,
            notes=payment.notes,
            pledge_id=payment.pledge_id,
            pledge_description=pledge.description if pledge else None,
            pledge_original_amount=pledge.original_amount if pledge else None,
            pledge_currency=pledge.currency if pledge else None,
            pledge_exchange_rate=pledge.exchange_rate if pledge else None,
            pledge_contact_id=pledge.contact_id if pledge else None,
            pledge_owner_name=_name(owner),
            payment_plan_id=payment.payment_plan_id,
            installment_schedule_id=payment.installment_schedule_id,
            payer_contact_id=payment.payer_contact_id,
            payer_name=_name(payer),
            is_third_party_payment=payment.is_third_party_payment,
            allocations=tuple(allocations),
        )
