# app/integrations/rates.py

"""
Exchange rate service client.

The rate service answers "what were the rates on day X" with the same-day
table, or the closest previous one it has. When it has nothing for the
day it is asked for the latest table; when it has no tables at all we use
a static fallback table.
"""

import logging
from datetime import date, datetime
from typing import Optional

import httpx

from app.config import get_settings
from app.core.exceptions import RateLookupError
from app.core.normalizers import normalize_date, normalize_currency
from app.models import RateTable

settings = get_settings()
logger = logging.getLogger(__name__)

FALLBACK_RATES = RateTable(
    base_currency="CAD",
    rates={"CAD": 1.0, "USD": 0.73, "EUR": 0.68, "GBP": 0.58},
    provider="fallback",
    is_fallback=True,
)


def parse_rate_payload(data: dict) -> RateTable:
    """
    Map a rate service response to a RateTable.

    Expected shape:
        {
            "baseCurrency": "CAD",
            "rates": {"USD": 0.73, ...},
            "timestamp": "2025-01-15T00:00:00Z" | 1736899200,
            "provider": "bank-of-canada",
        }
    """
    rates = {}
    for code, value in (data.get("rates") or {}).items():
        try:
            rates[normalize_currency(code)] = float(value)
        except (TypeError, ValueError):
            logger.warning(f"Ignoring non-numeric rate for {code}: {value!r}")

    return RateTable(
        base_currency=normalize_currency(data.get("baseCurrency") or data.get("base_currency")),
        rates=rates,
        timestamp=normalize_date(data.get("timestamp")),
        provider=data.get("provider") or "unknown",
        is_fallback=bool(data.get("isFallback", False)),
    )


async def fetch_rates_for_date(
    on: date | datetime,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> RateTable:
    """
    Fetch the rate table for a historical date.

    Tries the dated endpoint first, then the latest table, then the static
    fallback. Network errors, server errors and malformed bodies raise
    RateLookupError.
    """
    if isinstance(on, datetime):
        on = on.date()

    base_url = settings.rate_service_url.rstrip("/")
    timeout = httpx.Timeout(settings.rate_service_timeout_seconds)

    try:
        async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
            response = await client.get(f"{base_url}/rates", params={"date": on.isoformat()})

            if response.status_code == 404:
                logger.info(f"No rates for {on.isoformat()}, requesting latest table")
                response = await client.get(f"{base_url}/rates/latest")

            if response.status_code == 404:
                logger.warning("Rate service has no tables, using fallback rates")
                return FALLBACK_RATES.model_copy(deep=True)

            if response.status_code != 200:
                raise RateLookupError(
                    f"Rate service returned {response.status_code} for {on.isoformat()}"
                )
            payload = response.json()
    except httpx.HTTPError as e:
        raise RateLookupError(f"Rate lookup for {on.isoformat()} failed: {e}") from e
    except ValueError as e:
        raise RateLookupError(f"Rate service returned invalid JSON: {e}") from e

    if not isinstance(payload, dict):
        raise RateLookupError(f"Rate service returned {type(payload).__name__}, expected an object")

    try:
        return parse_rate_payload(payload)
    except (AttributeError, TypeError, ValueError) as e:
        raise RateLookupError(f"Malformed rate table for {on.isoformat()}: {e}") from e
