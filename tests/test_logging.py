"""Tests for JSON log output and ledger log context."""

import json
import logging
from datetime import date
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from pledge_kernel.exceptions import AmountMismatchError
from pledge_kernel.logging_config import (
    LogContext,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _fresh_logging():
    """Start unconfigured; hand the suite back its DEBUG configuration afterwards."""
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()
    configure_logging(level=logging.DEBUG)


@pytest.fixture
def emitted():
    """Configure logging into a buffer; calling the fixture returns parsed lines."""
    buffer = StringIO()

    def _configure(level: int = logging.INFO) -> None:
        configure_logging(stream=buffer, level=level)

    def _lines() -> list[dict]:
        return [json.loads(line) for line in buffer.getvalue().splitlines() if line]

    _lines.configure = _configure
    return _lines


class TestJsonLines:
    """One JSON object per record."""

    def test_standard_keys(self, emitted):
        emitted.configure()
        get_logger("services.payment_service").info("payment_recorded")

        (line,) = emitted()
        assert line["message"] == "payment_recorded"
        assert line["level"] == "INFO"
        assert line["logger"] == "pledge_kernel.services.payment_service"
        assert line["ts"].endswith("+00:00")

    def test_extras_become_keys(self, emitted):
        emitted.configure()
        get_logger("x").info("split_recorded", extra={"payment_id": 42, "allocation_count": 3})

        (line,) = emitted()
        assert line["payment_id"] == 42
        assert line["allocation_count"] == 3

    def test_ledger_values_serialized_as_text(self, emitted):
        emitted.configure()
        actor = uuid4()
        get_logger("x").info(
            "balance_reconciled",
            extra={"actor": actor, "balance": Decimal("750.00"), "paid_on": date(2024, 3, 1)},
        )

        (line,) = emitted()
        assert line["actor"] == str(actor)
        assert line["balance"] == "750.00"
        assert line["paid_on"] == "2024-03-01"

    def test_level_threshold(self, emitted):
        emitted.configure()
        log = get_logger("x")
        log.debug("hidden")
        log.info("shown")
        log.warning("also_shown")

        assert [line["message"] for line in emitted()] == ["shown", "also_shown"]

    def test_child_logger_uses_ledger_handler(self, emitted):
        emitted.configure(level=logging.DEBUG)
        get_logger("engines.redistribution").debug("redistribution_started")

        (line,) = emitted()
        assert line["logger"] == "pledge_kernel.engines.redistribution"


class TestExceptionFields:
    def test_plain_exception(self, emitted):
        emitted.configure()
        try:
            raise KeyError("installment")
        except KeyError:
            get_logger("x").exception("lookup_failed")

        (line,) = emitted()
        assert line["exc_type"] == "KeyError"
        assert "installment" in line["exc_message"]
        assert "Traceback" in line["traceback"]
        assert "exc_code" not in line

    def test_ledger_error_attributes(self, emitted):
        emitted.configure()
        try:
            raise AmountMismatchError(
                total_allocated=Decimal("290.00"),
                payment_amount=Decimal("300.00"),
                difference=Decimal("10.00"),
            )
        except AmountMismatchError:
            get_logger("x").error("allocation_rejected", exc_info=True)

        (line,) = emitted()
        assert line["exc_type"] == "AmountMismatchError"
        assert line["exc_code"] == "AMOUNT_MISMATCH"
        assert line["exc_total_allocated"] == "290.00"
        assert line["exc_payment_amount"] == "300.00"
        assert line["exc_difference"] == "10.00"


class TestLogContext:
    def test_context_appears_on_records(self, emitted):
        emitted.configure()
        LogContext.set(correlation_id="req-9", pledge_id=17)
        get_logger("x").info("reconcile_started")

        (line,) = emitted()
        assert line["correlation_id"] == "req-9"
        assert line["pledge_id"] == "17"

    def test_absent_context_is_omitted(self, emitted):
        emitted.configure()
        get_logger("x").info("quiet")

        (line,) = emitted()
        assert not {"correlation_id", "actor_id", "payment_id", "pledge_id"} & line.keys()

    def test_context_wins_over_extra(self, emitted):
        emitted.configure()
        with LogContext.bind(payment_id=5):
            get_logger("x").info("clash", extra={"payment_id": 99})

        (line,) = emitted()
        assert line["payment_id"] == "5"

    def test_set_ignores_none(self):
        LogContext.set(correlation_id="a", actor_id="b")
        LogContext.set(correlation_id=None, payment_id="c")
        assert LogContext.get_all() == {"correlation_id": "a", "actor_id": "b", "payment_id": "c"}

    def test_clear(self):
        LogContext.set(pledge_id=1)
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_bind_nests_and_restores(self):
        LogContext.set(actor_id="outer")
        with LogContext.bind(actor_id="inner", payment_id=3):
            assert LogContext.get_all() == {"actor_id": "inner", "payment_id": "3"}
        assert LogContext.get_all() == {"actor_id": "outer"}

    def test_bind_restores_after_exception(self):
        with pytest.raises(RuntimeError):
            with LogContext.bind(pledge_id=8):
                raise RuntimeError("boom")
        assert LogContext.get_all() == {}

    def test_unknown_fields_ignored(self):
        with LogContext.bind(invoice_id=1, pledge_id=2):
            assert LogContext.get_all() == {"pledge_id": "2"}


class TestConfigureLogging:
    def test_second_call_is_noop(self):
        """Only the first handler is attached; handlers owned by the runner are ignored."""
        reset_logging()
        ledger_logger = logging.getLogger("pledge_kernel")
        foreign = list(ledger_logger.handlers)
        first, second = logging.StreamHandler(StringIO()), logging.StreamHandler(StringIO())

        configure_logging(handler=first)
        configure_logging(handler=second)

        attached = [h for h in ledger_logger.handlers if h not in foreign]
        assert attached == [first]
        assert second not in ledger_logger.handlers

    def test_does_not_propagate_to_root(self):
        configure_logging(stream=StringIO())
        assert logging.getLogger("pledge_kernel").propagate is False

    def test_reset_detaches_handlers(self):
        configure_logging(stream=StringIO())
        reset_logging()
        assert logging.getLogger("pledge_kernel").handlers == []
