"""
Tests for BalanceReconciler.

Covers:
- Contributing-status filtering
- USD fallback through the pledge rate for rows without a stored USD figure
- Overwrite, never increment
"""

from datetime import date
from decimal import Decimal

import pytest

from pledge_kernel.exceptions import NotFoundError
from pledge_kernel.models.payment import Payment, PaymentAllocation
from pledge_kernel.services.balance_reconciler import BalanceReconciler


@pytest.fixture
def reconciler(session):
    return BalanceReconciler(session)


@pytest.fixture
def add_payment(session, test_actor_id):
    def _add(pledge_id, amount, currency="USD", amount_usd=None, status="completed", **fields):
        payment = Payment(
            pledge_id=pledge_id,
            amount=Decimal(amount),
            currency=currency,
            amount_usd=Decimal(amount_usd) if amount_usd is not None else None,
            payment_date=date(2024, 3, 1),
            payment_method="cash",
            payment_status=status,
            created_by_id=test_actor_id,
            **fields,
        )
        session.add(payment)
        session.flush()
        return payment

    return _add


class TestReconcilePledge:
    def test_only_contributing_statuses_count(self, session, reconciler, add_payment, create_pledge, test_actor_id):
        pledge = create_pledge()
        add_payment(pledge.id, "100.00", amount_usd="100.00", status="completed")
        add_payment(pledge.id, "50.00", amount_usd="50.00", status="processing")
        add_payment(pledge.id, "70.00", amount_usd="70.00", status="refunded")
        add_payment(pledge.id, "30.00", amount_usd="30.00", status="failed")

        result = reconciler.reconcile_pledge(pledge.id, test_actor_id)

        assert result.total_paid == Decimal("150.00")
        assert result.balance == Decimal("850.00")
        assert pledge.total_paid == Decimal("150.00")
        assert pledge.updated_by_id == test_actor_id

    def test_allocations_counted_through_payment_status(
        self, session, reconciler, add_payment, create_pledge, test_actor_id
    ):
        pledge = create_pledge()
        for status in ("completed", "cancelled"):
            payment = add_payment(None, "80.00", amount_usd="80.00", status=status)
            payment.allocations.append(
                PaymentAllocation(
                    pledge_id=pledge.id,
                    allocated_amount=Decimal("80.00"),
                    currency="USD",
                    allocated_amount_usd=Decimal("80.00"),
                    created_by_id=test_actor_id,
                )
            )
        session.flush()

        result = reconciler.reconcile_pledge(pledge.id, test_actor_id)

        assert result.total_paid == Decimal("80.00")

    def test_usd_fallback_uses_pledge_rate(self, session, reconciler, add_payment, create_pledge, test_actor_id):
        pledge = create_pledge(
            original_amount=Decimal("1000.00"),
            currency="ILS",
            exchange_rate=Decimal("0.30"),
            original_amount_usd=Decimal("300.00"),
        )
        add_payment(pledge.id, "100.00", currency="ILS", amount_usd=None)

        result = reconciler.reconcile_pledge(pledge.id, test_actor_id)

        assert result.total_paid_usd == Decimal("30.00")
        assert result.balance_usd == Decimal("270.00")

    def test_overwrites_stale_values(self, session, reconciler, add_payment, create_pledge, test_actor_id):
        pledge = create_pledge()
        pledge.total_paid = Decimal("999.00")
        pledge.balance = Decimal("1.00")
        session.flush()
        add_payment(pledge.id, "10.00", amount_usd="10.00")

        reconciler.reconcile_pledge(pledge.id, test_actor_id)
        reconciler.reconcile_pledge(pledge.id, test_actor_id)

        assert pledge.total_paid == Decimal("10.00")
        assert pledge.balance == Decimal("990.00")

    def test_custom_contributing_statuses(self, session, add_payment, create_pledge, test_actor_id):
        pledge = create_pledge()
        add_payment(pledge.id, "10.00", status="completed")
        add_payment(pledge.id, "20.00", status="processing")

        result = BalanceReconciler(session, frozenset({"completed"})).reconcile_pledge(
            pledge.id, test_actor_id
        )

        assert result.total_paid == Decimal("10.00")

    def test_missing_pledge(self, reconciler, test_actor_id):
        with pytest.raises(NotFoundError) as exc_info:
            reconciler.reconcile_pledge(404, test_actor_id)
        assert exc_info.value.entity == "pledge"


class TestReconcilePlanAndInstallment:
    def test_plan_counts_contributing_payments(
        self, reconciler, add_payment, create_pledge, create_plan, test_actor_id
    ):
        pledge = create_pledge()
        plan = create_plan(pledge, total_planned_amount=Decimal("300.00"), number_of_installments=3)
        add_payment(pledge.id, "100.00", payment_plan_id=plan.id)
        add_payment(pledge.id, "100.00", payment_plan_id=plan.id, status="pending")

        result = reconciler.reconcile_payment_plan(plan.id, test_actor_id)

        assert result.total_paid == Decimal("100.00")
        assert result.installments_paid == 1
        assert result.remaining_amount == Decimal("200.00")
        assert plan.remaining_amount == Decimal("200.00")

    def test_missing_plan(self, reconciler, test_actor_id):
        with pytest.raises(NotFoundError) as exc_info:
            reconciler.reconcile_payment_plan(404, test_actor_id)
        assert exc_info.value.entity == "payment plan"

    def test_installment_reverts_to_pending(
        self, reconciler, create_pledge, create_plan, create_installment, test_actor_id
    ):
        installment = create_installment(create_plan(create_pledge()))
        reconciler.reconcile_installment(installment.id, "completed", test_actor_id, date(2024, 3, 1))

        state = reconciler.reconcile_installment(installment.id, "refunded", test_actor_id, date(2024, 3, 1))

        assert state.status == "pending"
        assert installment.status == "pending"
        assert installment.paid_date is None

    def test_missing_installment(self, reconciler, test_actor_id):
        with pytest.raises(NotFoundError):
            reconciler.reconcile_installment(404, "completed", test_actor_id)
