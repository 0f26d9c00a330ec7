# app/core/currency.py

"""
Currency conversion against a rate table pinned to a historical date.

A converter is created per batch (one invoice upload, one API request) and
memoizes rate tables by day for the lifetime of that batch only.
"""

import asyncio
import logging
from datetime import date, datetime
from typing import Awaitable, Callable, Optional

from app.config import get_settings
from app.core.exceptions import RateLookupError
from app.core.normalizers import normalize_currency
from app.models import RateTable

settings = get_settings()
logger = logging.getLogger(__name__)

RateFetcher = Callable[[date], Awaitable[RateTable]]


def identity_rates(base_currency: str | None = None) -> RateTable:
    """A table with no rates: every conversion returns the amount unchanged."""
    return RateTable(
        base_currency=base_currency or settings.base_currency,
        rates={},
        provider="identity",
        is_fallback=True,
    )


def convert_amount(
    amount: float,
    from_currency: str | None,
    to_currency: str | None,
    rates: RateTable,
) -> float:
    """
    Convert amount between currencies.

    - From base: amount * rate
    - To base: amount / rate
    - Cross rates go through the base currency
    - A missing rate returns the amount unchanged (logged)
    """
    if not amount:
        return 0.0

    source = normalize_currency(from_currency, rates.base_currency)
    target = normalize_currency(to_currency, rates.base_currency)

    if source == target:
        return amount

    base = rates.base_currency

    if source == base:
        rate = _rate(rates, target)
        return amount * rate if rate else amount

    if target == base:
        rate = _rate(rates, source)
        return amount / rate if rate else amount

    return convert_amount(convert_amount(amount, source, base, rates), base, target, rates)


def _rate(rates: RateTable, currency: str) -> Optional[float]:
    rate = rates.rates.get(currency)
    if rate and rate > 0:
        return rate
    if not rates.is_identity:
        logger.warning(
            f"No {currency} rate in {rates.provider} table (base {rates.base_currency}), "
            f"using 1:1"
        )
    return None


class CurrencyConverter:
    """Batch-scoped converter with a per-day rate table cache."""

    def __init__(
        self,
        fetch_rates: Optional[RateFetcher] = None,
        base_currency: str | None = None,
        timeout_seconds: float | None = None,
    ):
        if fetch_rates is None:
            from app.integrations.rates import fetch_rates_for_date
            fetch_rates = fetch_rates_for_date

        self.base_currency = base_currency or settings.base_currency
        self._fetch_rates = fetch_rates
        self._timeout = timeout_seconds or settings.rate_service_timeout_seconds * 2
        self._cache: dict[date, RateTable] = {}

    async def rates_for(self, on: date | datetime | None) -> RateTable:
        """
        Rate table for a day. Lookup failures degrade to the identity table.
        """
        if on is None:
            on = date.today()
        elif isinstance(on, datetime):
            on = on.date()

        cached = self._cache.get(on)
        if cached is not None:
            return cached

        try:
            table = await asyncio.wait_for(self._fetch_rates(on), timeout=self._timeout)
        except (RateLookupError, asyncio.TimeoutError) as e:
            logger.warning(f"Currency lookup for {on.isoformat()} failed ({e}), using identity rates")
            table = identity_rates(self.base_currency)
        except Exception as e:
            logger.error(f"Unexpected currency lookup error for {on.isoformat()}: {e}, using identity rates")
            table = identity_rates(self.base_currency)

        self._cache[on] = table
        return table

    def convert(
        self,
        amount: float,
        from_currency: str | None,
        to_currency: str | None,
        rates: RateTable,
    ) -> float:
        return convert_amount(amount, from_currency, to_currency, rates)

    def to_base(self, amount: float, currency: str | None, rates: RateTable) -> float:
        return convert_amount(amount, currency, self.base_currency, rates)

    async def convert_on(
        self,
        amount: float,
        from_currency: str | None,
        to_currency: str | None,
        on: date | datetime | None,
    ) -> float:
        rates = await self.rates_for(on)
        return convert_amount(amount, from_currency, to_currency, rates)
