# app/core/normalizers.py

"""
Data normalization utilities for invoice and shipment records.

Ensures consistent data format regardless of source.
"""

import logging
import re
from datetime import date, datetime, timezone
from typing import Any

from rapidfuzz.distance import Levenshtein

logger = logging.getLogger(__name__)


def normalize_amount(amount: Any) -> float:
    """
    Normalize amount to float.

    Handles:
    - Integers and floats
    - Decimal values
    - Strings with currency symbols and thousands separators
    - {"amount": ...} money objects
    """
    if amount is None:
        return 0.0

    if isinstance(amount, bool):
        return 0.0

    if isinstance(amount, dict):
        return normalize_amount(amount.get("amount"))

    if isinstance(amount, (int, float)):
        return float(amount)

    if isinstance(amount, str):
        # Remove currency symbols and commas
        cleaned = re.sub(r'[^\d.-]', '', amount)
        try:
            return float(cleaned)
        except ValueError:
            return 0.0

    try:
        return float(amount)
    except (TypeError, ValueError):
        return 0.0


def normalize_date(d: Any) -> datetime | None:
    """
    Normalize a date-like value to a timezone-aware UTC datetime.

    Handles:
    - datetime objects (naive values are treated as UTC)
    - date objects
    - Unix timestamps in seconds
    - {"seconds": n} / {"_seconds": n} timestamp objects
    - ISO strings
    - A few common day formats
    """
    if d is None or d == "":
        return None

    if isinstance(d, bool):
        return None

    if isinstance(d, datetime):
        return d if d.tzinfo else d.replace(tzinfo=timezone.utc)

    if isinstance(d, date):
        return datetime(d.year, d.month, d.day, tzinfo=timezone.utc)

    if isinstance(d, dict):
        seconds = d.get("seconds", d.get("_seconds"))
        if seconds is None:
            return None
        return normalize_date(seconds)

    if isinstance(d, (int, float)):
        try:
            return datetime.fromtimestamp(d, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None

    if isinstance(d, str):
        d = d.strip()
        # Try ISO format first
        try:
            return normalize_date(datetime.fromisoformat(d.replace('Z', '+00:00')))
        except ValueError:
            pass

        # Try common formats
        formats = [
            '%Y-%m-%d',
            '%m/%d/%Y',
            '%d/%m/%Y',
            '%Y/%m/%d',
            '%b %d, %Y',
        ]
        for fmt in formats:
            try:
                return datetime.strptime(d, fmt).replace(tzinfo=timezone.utc)
            except ValueError:
                continue

    return None


def coerce_date(d: Any, field: str = "date") -> datetime:
    """Like normalize_date, but falls back to now (with a warning) instead of None."""
    normalized = normalize_date(d)
    if normalized is None:
        logger.warning(f"Invalid or missing {field} {d!r}, falling back to current time")
        return datetime.now(timezone.utc)
    return normalized


def first_valid_date(*values: Any) -> datetime | None:
    """Return the first value that normalizes to a date."""
    for value in values:
        normalized = normalize_date(value)
        if normalized is not None:
            return normalized
    return None


def normalize_string(s: str | None) -> str:
    """
    Normalize string for comparison.

    - Lowercase
    - Remove special characters
    - Collapse whitespace
    """
    if not s:
        return ""

    s = s.lower()
    s = re.sub(r'[^a-z0-9\s]', '', s)
    s = re.sub(r'\s+', ' ', s).strip()
    return s


_LEGAL_SUFFIXES = re.compile(
    r'\b(limited liability company|limited liability corporation|doing business as|'
    r'incorporated|inc|ltd|limited|corporation|corp|llc|company|co|dba)\b'
)
_LONG_NUMERIC_ID = re.compile(r'\b\d{7,}\b')


def normalize_business_name(name: str | None) -> str:
    """
    Normalize a carrier or company name for matching.

    Handles:
    - Legal suffixes (Inc, LLC, Corp, Ltd, ...) anywhere in the name
    - "dba" / "doing business as" markers
    - Long numeric IDs (7+ digits, e.g. USDOT numbers)
    - Punctuation and case
    """
    if not name:
        return ""

    name = name.lower()
    name = _LEGAL_SUFFIXES.sub(' ', name)
    name = _LONG_NUMERIC_ID.sub(' ', name)

    # Remove punctuation and extra whitespace
    name = re.sub(r'[^\w\s]', ' ', name)
    name = re.sub(r'\s+', ' ', name).strip()

    return name


def normalize_currency(code: Any, default: str = "CAD") -> str:
    if not code or not isinstance(code, str):
        return default
    code = code.strip().upper()
    return code or default


def string_similarity(s1: str | None, s2: str | None) -> float:
    """
    Normalized Levenshtein similarity, (maxLen - editDistance) / maxLen.

    Returns 0.0 when either side is empty.
    """
    if not s1 or not s2:
        return 0.0
    return Levenshtein.normalized_similarity(s1, s2)


def clamp(value: float, low: float = 0, high: float = 100) -> float:
    return max(low, min(high, value))


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positive scores (Python's round() is banker's)."""
    return int(value + 0.5) if value >= 0 else -int(-value + 0.5)
