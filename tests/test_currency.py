# tests/test_currency.py

"""
Tests for currency conversion and the rate service client.
"""

import asyncio
import functools
import httpx
import pytest
from datetime import date, datetime, timezone

from app.models import RateTable
from app.core.currency import CurrencyConverter, convert_amount, identity_rates
from app.core.exceptions import RateLookupError
from app.integrations.rates import FALLBACK_RATES, fetch_rates_for_date, parse_rate_payload


# ============================================
# Test Data
# ============================================

RATES = RateTable(
    base_currency="CAD",
    rates={"CAD": 1.0, "USD": 0.75, "EUR": 0.5},
    provider="test",
)


class FakeRateService:
    """Counts lookups and returns a fixed table."""

    def __init__(self, table: RateTable = RATES):
        self.table = table
        self.calls: list[date] = []

    async def __call__(self, on: date) -> RateTable:
        self.calls.append(on)
        return self.table


async def failing_rate_service(on: date) -> RateTable:
    raise RateLookupError("rate service unavailable")


async def slow_rate_service(on: date) -> RateTable:
    await asyncio.sleep(5)
    return RATES


# ============================================
# Conversion Tests
# ============================================

class TestConvertAmount:

    def test_from_base(self):
        assert convert_amount(100, "CAD", "USD", RATES) == pytest.approx(75)

    def test_to_base(self):
        assert convert_amount(75, "USD", "CAD", RATES) == pytest.approx(100)

    def test_cross_rate_through_base(self):
        """USD -> EUR goes USD -> CAD -> EUR."""
        assert convert_amount(75, "USD", "EUR", RATES) == pytest.approx(50)

    def test_same_currency_and_zero(self):
        assert convert_amount(42.5, "usd", "USD", RATES) == 42.5
        assert convert_amount(0, "CAD", "USD", RATES) == 0

    def test_missing_rate_is_one_to_one(self):
        assert convert_amount(100, "CAD", "JPY", RATES) == 100

    def test_identity_table(self):
        table = identity_rates("CAD")

        assert table.is_identity
        assert convert_amount(100, "USD", "CAD", table) == 100


# ============================================
# Converter Tests
# ============================================

class TestCurrencyConverter:

    @pytest.mark.asyncio
    async def test_rates_cached_per_day(self):
        """One lookup per day for the lifetime of the converter."""
        service = FakeRateService()
        converter = CurrencyConverter(service)

        await converter.rates_for(date(2025, 1, 15))
        await converter.rates_for(datetime(2025, 1, 15, 18, 30, tzinfo=timezone.utc))
        await converter.rates_for(date(2025, 1, 16))

        assert service.calls == [date(2025, 1, 15), date(2025, 1, 16)]

    @pytest.mark.asyncio
    async def test_cache_not_shared_between_converters(self):
        service = FakeRateService()

        await CurrencyConverter(service).rates_for(date(2025, 1, 15))
        await CurrencyConverter(service).rates_for(date(2025, 1, 15))

        assert len(service.calls) == 2

    @pytest.mark.asyncio
    async def test_lookup_failure_uses_identity(self):
        """A failed lookup converts 1:1 instead of failing the batch."""
        converter = CurrencyConverter(failing_rate_service)

        table = await converter.rates_for(date(2025, 1, 15))

        assert table.provider == "identity"
        assert await converter.convert_on(100, "USD", "CAD", date(2025, 1, 15)) == 100

    @pytest.mark.asyncio
    async def test_lookup_timeout_uses_identity(self):
        converter = CurrencyConverter(slow_rate_service, timeout_seconds=0.01)

        table = await converter.rates_for(date(2025, 1, 15))

        assert table.is_identity

    @pytest.mark.asyncio
    async def test_to_base(self):
        converter = CurrencyConverter(FakeRateService())
        rates = await converter.rates_for(date(2025, 1, 15))

        assert converter.to_base(75, "USD", rates) == pytest.approx(100)


# ============================================
# Rate Service Payload Tests
# ============================================

class TestRatePayload:

    def test_parse_payload(self):
        table = parse_rate_payload({
            "baseCurrency": "cad",
            "rates": {"usd": "0.7312", "EUR": 0.68, "XXX": "n/a"},
            "timestamp": 1736899200,
            "provider": "bank-of-canada",
        })

        assert table.base_currency == "CAD"
        assert table.rates == {"USD": 0.7312, "EUR": 0.68}
        assert table.timestamp.date() == date(2025, 1, 15)
        assert table.provider == "bank-of-canada"
        assert not table.is_fallback

    def test_fallback_table(self):
        assert FALLBACK_RATES.is_fallback
        assert FALLBACK_RATES.base_currency == "CAD"
        assert FALLBACK_RATES.rates["USD"] == 0.73


# ============================================
# Rate Service Client Tests
# ============================================

RATE_BODY = {
    "baseCurrency": "CAD",
    "rates": {"USD": 0.74, "EUR": 0.69},
    "timestamp": "2025-01-10T00:00:00Z",
    "provider": "bank-of-canada",
}


def rate_service(routes: dict[str, httpx.Response], seen: list[str] = None) -> httpx.MockTransport:
    """Serve canned responses by path; unknown paths are 404."""

    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(str(request.url.path))
        return routes.get(request.url.path, httpx.Response(404))

    return httpx.MockTransport(handler)


class TestRateClient:

    @pytest.mark.asyncio
    async def test_dated_table(self):
        seen = []
        transport = rate_service({"/rates": httpx.Response(200, json=RATE_BODY)}, seen)

        table = await fetch_rates_for_date(date(2025, 1, 10), transport=transport)

        assert seen == ["/rates"]
        assert table.rates == {"USD": 0.74, "EUR": 0.69}
        assert table.provider == "bank-of-canada"

    @pytest.mark.asyncio
    async def test_missing_day_falls_back_to_latest(self):
        seen = []
        transport = rate_service({"/rates/latest": httpx.Response(200, json=RATE_BODY)}, seen)

        table = await fetch_rates_for_date(datetime(2025, 1, 10, 15, tzinfo=timezone.utc), transport=transport)

        assert seen == ["/rates", "/rates/latest"]
        assert table.base_currency == "CAD"

    @pytest.mark.asyncio
    async def test_no_tables_uses_static_fallback(self):
        table = await fetch_rates_for_date(date(2025, 1, 10), transport=rate_service({}))

        assert table.is_fallback
        assert table.rates == FALLBACK_RATES.rates

    @pytest.mark.asyncio
    async def test_server_error_raises(self):
        transport = rate_service({"/rates": httpx.Response(503)})

        with pytest.raises(RateLookupError):
            await fetch_rates_for_date(date(2025, 1, 10), transport=transport)

    @pytest.mark.asyncio
    async def test_connection_error_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(RateLookupError):
            await fetch_rates_for_date(date(2025, 1, 10), transport=httpx.MockTransport(handler))

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [["unexpected"], {"rates": ["USD", 0.74]}, "0.74"])
    async def test_malformed_body_raises(self, body):
        transport = rate_service({"/rates": httpx.Response(200, json=body)})

        with pytest.raises(RateLookupError):
            await fetch_rates_for_date(date(2025, 1, 10), transport=transport)

    @pytest.mark.asyncio
    async def test_malformed_body_degrades_to_identity(self):
        """A converter backed by a misbehaving rate service still converts 1:1."""
        transport = rate_service({"/rates": httpx.Response(200, json=["unexpected"])})
        converter = CurrencyConverter(functools.partial(fetch_rates_for_date, transport=transport))

        table = await converter.rates_for(date(2025, 1, 10))

        assert table.is_identity
        assert converter.to_base(100, "USD", table) == 100

    @pytest.mark.asyncio
    async def test_unexpected_fetcher_error_degrades_to_identity(self):
        async def broken(on: date) -> RateTable:
            raise KeyError("rates")

        table = await CurrencyConverter(broken).rates_for(date(2025, 1, 10))

        assert table.is_identity


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
