# app/core/references.py

"""
Reference token extraction for invoice and system shipment records.

Invoices and shipment records carry the same identifiers (PO, BOL, PRO,
EDI, work order, ...) under dozens of different field names. This module
walks a fixed list of known field paths on the raw record and produces an
ordered, de-duplicated list of candidate tokens for matching.

Path syntax:
- "a.b"     nested dict access
- "a[].b"   every element of list a
- "a[]"     every element of list a (strings)
"""

import re
from typing import Any, Iterable


INVOICE_REFERENCE_FIELDS: tuple[str, ...] = (
    "references.customerRef",
    "references.invoiceRef",
    "references.manifestRef",
    "references.other",
    "customerRef",
    "invoiceRef",
    "manifestRef",
    "invoiceNumber",
    "ediNumber",
    "trackingNumber",
    "proNumber",
    "billOfLading",
    "workOrder",
    "purchaseOrder",
    "orderNumber",
    "poNumber",
    "shipmentReference",
    "carrierReference",
    "bookingReference",
    "packageDetails.referenceNumber",
    "charges[].referenceNumber",
    "referenceNumbers[]",
    "otherReferences[]",
)

SYSTEM_REFERENCE_FIELDS: tuple[str, ...] = (
    "references.customerRef",
    "references.invoiceRef",
    "references.manifestRef",
    "shipmentInfo.referenceNumber",
    "shipmentInfo.customerReferenceNumber",
    "shipmentInfo.shipperReferenceNumber",
    "shipmentInfo.referenceNumbers[]",
    "customerReferenceNumber",
    "shipperReferenceNumber",
    "referenceNumber",
    "referenceNumbers[]",
    "poNumber",
    "orderNumber",
    "invoiceNumber",
    "trackingNumber",
    "proNumber",
    "billOfLading",
    "ediNumber",
    "workOrder",
    "purchaseOrder",
    "shipmentReference",
    "carrierReference",
    "bookingReference",
    "bookingReferenceNumber",
    "manualRates[].ediNumber",
    "manualRates[].invoiceNumber",
    "manualRates[].referenceNumber",
    "selectedRate.referenceNumber",
    "selectedRate.ediNumber",
    "selectedRate.invoiceNumber",
    "selectedRate.trackingNumber",
    "selectedRate.TrackingNumber",
    "selectedRate.BookingReferenceNumber",
    "selectedRate.Barcode",
    "selectedRateRef.BookingReferenceNumber",
    "carrierBookingConfirmation.bookingReferenceNumber",
    "carrierBookingConfirmation.confirmationNumber",
    "carrierBookingConfirmation.proNumber",
    "carrierBookingConfirmation.trackingNumber",
    "carrierDetails.referenceNumber",
    "quickShipCarrierDetails.referenceNumber",
    "shipFrom.specialInstructions",
    "shipTo.specialInstructions",
    "actualRates.invoiceNumber",
)

# Kept whole, never split into words
FREE_TEXT_FIELDS = frozenset({
    "shipFrom.specialInstructions",
    "shipTo.specialInstructions",
})

MIN_TOKEN_LENGTH = 3

_COMPOSITE_SEPARATORS = re.compile(r'[/,\s]+')


def collect_invoice_references(raw: dict) -> list[str]:
    """Reference tokens for a raw extracted invoice shipment."""
    return _collect(raw, INVOICE_REFERENCE_FIELDS)


def collect_system_references(raw: dict) -> list[str]:
    """Reference tokens for a raw system shipment record."""
    return _collect(raw, SYSTEM_REFERENCE_FIELDS)


def normalize_reference_tokens(values: Iterable[Any], split: bool = True) -> list[str]:
    """
    Turn raw reference values into usable, de-duplicated tokens.

    "WO165986 / PO 62042" -> ["WO165986 / PO 62042", "WO165986", "62042"]
    ("PO" is dropped for being shorter than 3 characters.)
    """
    return _dedupe(token for value in values for token in _tokenize(value, split))


def is_usable_token(token: str | None) -> bool:
    if not token:
        return False
    token = token.strip()
    if not token or token.upper() == "N/A":
        return False
    return len(token) >= MIN_TOKEN_LENGTH


# ============================================
# Internals
# ============================================

def _collect(raw: dict, fields: tuple[str, ...]) -> list[str]:
    return _dedupe(
        token
        for path in fields
        for value in values_at(raw, path)
        for token in _tokenize(value, split=path not in FREE_TEXT_FIELDS)
    )


def _dedupe(tokens: Iterable[str]) -> list[str]:
    result: list[str] = []
    seen: set[str] = set()
    for token in tokens:
        key = token.lower()
        if key not in seen:
            seen.add(key)
            result.append(token)
    return result


def _tokenize(value: Any, split: bool) -> list[str]:
    if value is None or isinstance(value, (bool, dict)):
        return []
    if isinstance(value, (list, tuple)):
        return [t for v in value for t in _tokenize(v, split)]

    text = str(value).strip()
    if not is_usable_token(text):
        return []

    candidates = [text]
    if split:
        parts = [p.strip() for p in _COMPOSITE_SEPARATORS.split(text)]
        if len(parts) > 1:
            candidates.extend(parts)

    return [c for c in candidates if is_usable_token(c)]


def values_at(record: Any, path: str) -> list[Any]:
    """Resolve a dotted field path (with [] list walks) to every value it names."""
    current: list[Any] = [record]

    for segment in path.split("."):
        walk_list = segment.endswith("[]")
        key = segment[:-2] if walk_list else segment
        next_values: list[Any] = []

        for item in current:
            if not isinstance(item, dict):
                continue
            value = item.get(key)
            if value is None:
                continue
            if walk_list:
                if isinstance(value, (list, tuple)):
                    next_values.extend(v for v in value if v is not None)
            else:
                next_values.append(value)

        current = next_values
        if not current:
            break

    return current
