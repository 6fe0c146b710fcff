"""
Exchange rate lookup.

Responsibility:
    Answer ``rate(currency, on_date) -> Decimal``: how many USD one unit of
    ``currency`` was worth on ``on_date``.  USD is always 1.  A missing date
    means the injected clock's today.

Architecture position:
    Kernel > Services.  ExchangeRateProvider is the protocol PaymentService
    depends on; StoredRateProvider reads the exchange_rates table and
    StaticRateProvider serves a fixed table (tests, offline imports).

Failure modes:
    - ExchangeRateNotFoundError when no rate exists on or before the date.
    - UnsupportedCurrencyError for a code outside the supported set.
"""

from collections.abc import Mapping
from datetime import date
from decimal import Decimal
from typing import Protocol, runtime_checkable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from pledge_kernel.db.types import SUPPORTED_CURRENCIES, USD, validate_currency
from pledge_kernel.domain.clock import Clock, SystemClock
from pledge_kernel.exceptions import ExchangeRateNotFoundError
from pledge_kernel.logging_config import get_logger
from pledge_kernel.models.exchange_rate import ExchangeRate
from pledge_kernel.services.base import BaseService

logger = get_logger("services.exchange_rate")

_ONE = Decimal("1")


@runtime_checkable
class ExchangeRateProvider(Protocol):
    def rate(self, currency: str, on_date: date | None = None) -> Decimal:
        """Rate converting one unit of ``currency`` to USD."""
        ...


class StaticRateProvider:
    """Fixed currency -> rate-to-USD table, independent of date."""

    def __init__(
        self,
        rates: Mapping[str, Decimal],
        supported_currencies: frozenset[str] = SUPPORTED_CURRENCIES,
    ):
        self._rates = {code.upper(): Decimal(str(value)) for code, value in rates.items()}
        self._supported = supported_currencies

    def rate(self, currency: str, on_date: date | None = None) -> Decimal:
        currency = validate_currency(currency, self._supported)
        if currency == USD:
            return _ONE
        try:
            return self._rates[currency]
        except KeyError:
            raise ExchangeRateNotFoundError(
                currency, on_date.isoformat() if on_date else "any date"
            ) from None


class StoredRateProvider(BaseService[ExchangeRate]):
    """
    Rates from the exchange_rates table.

    The most recent rate on or before the requested date is used, so a
    weekend or holiday date resolves to the last published rate.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        supported_currencies: frozenset[str] = SUPPORTED_CURRENCIES,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._supported = supported_currencies

    def rate(self, currency: str, on_date: date | None = None) -> Decimal:
        currency = validate_currency(currency, self._supported)
        if currency == USD:
            return _ONE

        on_date = on_date or self._clock.today()
        row = self.session.execute(
            select(ExchangeRate.rate)
            .where(
                ExchangeRate.base_currency == USD,
                ExchangeRate.target_currency == currency,
                ExchangeRate.rate_date <= on_date,
            )
            .order_by(ExchangeRate.rate_date.desc())
            .limit(1)
        ).scalar_one_or_none()

        if row is None:
            logger.warning(
                "exchange_rate_not_found",
                extra={"currency": currency, "rate_date": on_date.isoformat()},
            )
            raise ExchangeRateNotFoundError(currency, on_date.isoformat())

        logger.debug(
            "exchange_rate_resolved",
            extra={"currency": currency, "rate_date": on_date.isoformat(), "rate": str(row)},
        )
        return row

    def record_rate(
        self,
        currency: str,
        rate_date: date,
        rate: Decimal,
        actor_id: UUID,
    ) -> ExchangeRate:
        """
        Insert or overwrite the rate for (currency, rate_date).  Flushes only.

        Raises:
            ValueError: If rate is not positive.
        """
        currency = validate_currency(currency, self._supported)
        rate = Decimal(str(rate))
        if rate <= 0:
            raise ValueError(f"Exchange rate must be positive, got {rate}")

        existing = self.session.execute(
            select(ExchangeRate).where(
                ExchangeRate.base_currency == USD,
                ExchangeRate.target_currency == currency,
                ExchangeRate.rate_date == rate_date,
            )
        ).scalar_one_or_none()

        if existing is not None:
            existing.rate = rate
            existing.updated_by_id = actor_id
            row = existing
        else:
            row = ExchangeRate(
                base_currency=USD,
                target_currency=currency,
                rate=rate,
                rate_date=rate_date,
                created_by_id=actor_id,
            )
            self.session.add(row)

        self.session.flush()
        logger.info(
            "exchange_rate_recorded",
            extra={"currency": currency, "rate_date": rate_date.isoformat(), "rate": str(rate)},
        )
        return row
