# app/core/canonical.py

"""
Mapping of raw records into canonical shapes.

Extraction output and shipment records arrive in many shapes (different
field names, nested rate objects, timestamps as strings or epoch objects).
Everything is mapped to InvoiceShipment / SystemShipment here, once, so the
matching and reconciliation code only ever sees one shape.
"""

import logging
from typing import Any, Callable, Optional

from app.models import (
    InvoiceCharge,
    InvoiceReferences,
    InvoiceShipment,
    Party,
    SystemCharge,
    SystemShipment,
)
from app.core.normalizers import normalize_amount, normalize_currency, normalize_date
from app.core.references import (
    collect_invoice_references,
    collect_system_references,
    values_at,
)

logger = logging.getLogger(__name__)

CarrierLookup = Callable[[str], Optional[str]]


# ============================================
# Field access helpers
# ============================================

def first_value(raw: dict, *paths: str) -> Any:
    """First non-empty value among dotted paths."""
    for path in paths:
        for value in values_at(raw, path):
            if value not in (None, "", [], {}):
                return value
    return None


def first_text(raw: dict, *paths: str) -> Optional[str]:
    for path in paths:
        for value in values_at(raw, path):
            if isinstance(value, (str, int, float)) and not isinstance(value, bool):
                text = str(value).strip()
                if text:
                    return text
    return None


def _optional_int(value: Any) -> Optional[int]:
    amount = normalize_amount(value)
    return int(amount) if amount > 0 else None


def _party(raw: dict, company_paths: tuple[str, ...], address_paths: tuple[str, ...]) -> Party:
    address: dict = {}
    for path in address_paths:
        value = first_value(raw, path)
        if isinstance(value, dict):
            address = value
            break

    return Party(
        company=first_text(raw, *company_paths) or first_text(address, "company", "companyName", "name"),
        street=first_text(address, "street", "address1", "streetAddress", "address"),
        city=first_text(address, "city"),
        state=first_text(address, "state", "province", "stateProv"),
        postal_code=first_text(address, "postalCode", "zipPostal", "zip", "postal"),
        country=first_text(address, "country"),
    )


# ============================================
# Invoice side
# ============================================

def invoice_shipments_from_extraction(extracted: dict) -> list[InvoiceShipment]:
    """
    Canonical shipments from an extraction result.

    Handles:
    - {"shipments": [...]}
    - {"extractedData": {"shipments": [...]}} and {"data": {"shipments": [...]}}
    - A single shipment object with its own charges
    """
    if not isinstance(extracted, dict):
        return []

    for container in (extracted, extracted.get("extractedData"), extracted.get("data")):
        if isinstance(container, dict) and isinstance(container.get("shipments"), list):
            invoice_level = {k: v for k, v in container.items() if k != "shipments"}
            return [
                invoice_shipment_from_raw({**invoice_level, **shipment})
                for shipment in container["shipments"]
                if isinstance(shipment, dict)
            ]

    if extracted.get("charges") or extracted.get("shipmentId") or extracted.get("trackingNumber"):
        return [invoice_shipment_from_raw(extracted)]

    return []


def invoice_shipment_from_raw(raw: dict) -> InvoiceShipment:
    currency = normalize_currency(first_text(raw, "currency", "totals.currency"))

    charges = [
        _invoice_charge(charge, currency)
        for charge in (raw.get("charges") or [])
        if isinstance(charge, dict)
    ]

    total = normalize_amount(first_value(raw, "totalAmount", "totals.total", "total", "totalCharges", "amountDue"))
    if total == 0 and charges:
        total = sum(c.amount for c in charges)

    other_refs = first_value(raw, "references.other")
    if isinstance(other_refs, str):
        other_refs = [other_refs]

    return InvoiceShipment(
        shipment_id=first_text(raw, "shipmentId", "shipmentID", "shipmentNumber"),
        tracking_number=first_text(raw, "trackingNumber", "proNumber"),
        carrier=first_text(raw, "carrier.name", "carrier", "carrierName", "vendor"),
        origin=_party(
            raw,
            ("origin.company", "origin", "shipper.company", "shipper.name", "shipFrom.company", "shipperName"),
            ("originAddress", "shipFrom", "shipper.address", "shipper", "origin"),
        ),
        destination=_party(
            raw,
            ("destination.company", "destination", "consignee.company", "consignee.name", "shipTo.company", "consigneeName"),
            ("destinationAddress", "shipTo", "consignee.address", "consignee", "destination"),
        ),
        weight=normalize_amount(first_value(raw, "weight", "totalWeight", "packageDetails.weight")),
        package_count=_optional_int(first_value(raw, "packageCount", "pieces", "packageDetails.quantity")),
        total_amount=total,
        currency=currency,
        invoice_date=normalize_date(first_value(raw, "invoiceDate")),
        ship_date=normalize_date(first_value(raw, "shipmentDate", "shipDate", "pickupDate")),
        delivery_date=normalize_date(first_value(raw, "deliveryDate")),
        extracted_at=normalize_date(first_value(raw, "extractedAt", "processedAt")),
        charges=charges,
        references=InvoiceReferences(
            customer_ref=first_text(raw, "references.customerRef", "customerRef"),
            invoice_ref=first_text(raw, "references.invoiceRef", "invoiceRef", "invoiceNumber"),
            manifest_ref=first_text(raw, "references.manifestRef", "manifestRef"),
            other=[str(v) for v in (other_refs or []) if v],
        ),
        reference_tokens=collect_invoice_references(raw),
    )


def _invoice_charge(raw: dict, currency: str) -> InvoiceCharge:
    return InvoiceCharge(
        code=first_text(raw, "code", "chargeCode"),
        name=first_text(raw, "name", "description", "chargeName") or "Unknown Charge",
        currency=normalize_currency(raw.get("currency"), currency),
        amount=normalize_amount(first_value(raw, "amount", "total", "charge")),
    )


# ============================================
# System side
# ============================================

CARRIER_NAME_PATHS = (
    "carrier",
    "selectedCarrier.name",
    "selectedCarrier",
    "carrierName",
    "carrierDetails.name",
    "quickShipCarrierDetails.name",
)


def system_shipment_from_raw(
    raw: dict,
    carrier_lookup: Optional[CarrierLookup] = None,
) -> SystemShipment:
    """
    Canonical system shipment from a repository record.

    carrier_lookup resolves a bare carrierId when the record carries no name;
    pass a batch-scoped cache, not a global one.
    """
    currency = normalize_currency(raw.get("currency"))

    carrier = first_text(raw, *CARRIER_NAME_PATHS)
    carrier_id = first_text(raw, "carrierId", "selectedCarrier.id")
    if carrier is None and carrier_id and carrier_lookup is not None:
        carrier = carrier_lookup(carrier_id)

    packages = raw.get("packages") if isinstance(raw.get("packages"), list) else []
    weight = normalize_amount(first_value(raw, "totalWeight", "weight", "shipmentInfo.totalWeight"))
    if weight == 0 and packages:
        weight = sum(normalize_amount(p.get("weight")) for p in packages if isinstance(p, dict))

    package_count = _optional_int(first_value(raw, "packageCount", "shipmentInfo.totalPieces"))
    if package_count is None and packages:
        package_count = len(packages)

    shipment_id = first_text(raw, "shipmentID", "shipmentId")

    return SystemShipment(
        id=str(raw.get("id") or shipment_id or "unknown"),
        shipment_id=shipment_id,
        tracking_number=first_text(raw, "trackingNumber", "selectedRate.trackingNumber", "carrierBookingConfirmation.trackingNumber"),
        carrier=carrier,
        origin=_party(
            raw,
            ("shipFrom.company", "shipFrom.companyName", "shipmentInfo.shipperCompany", "origin"),
            ("shipFrom", "originAddress"),
        ),
        destination=_party(
            raw,
            ("shipTo.company", "shipTo.companyName", "shipmentInfo.consigneeCompany", "destination"),
            ("shipTo", "destinationAddress"),
        ),
        weight=weight,
        package_count=package_count,
        created_at=normalize_date(first_value(raw, "createdAt", "created_at")),
        ship_date=normalize_date(first_value(raw, "shipmentInfo.shipmentDate", "shipmentDate", "shipDate")),
        currency=currency,
        total_amount=normalize_amount(first_value(
            raw, "totalCharges", "markupRates.totalCharges", "actualRates.totalCharges",
            "selectedRate.totalAmount", "shipmentInfo.totalAmount",
        )),
        status=first_text(raw, "status"),
        charges=extract_system_charges(raw, currency),
        reference_tokens=collect_system_references(raw),
    )


def extract_system_charges(raw: dict, currency: Optional[str] = None) -> list[SystemCharge]:
    """
    System charges with quoted and actual amounts.

    - Quoted amounts come from selectedRate.charges
    - Actual amounts come from manualRates, merged into the quoted charge
      with the same code or a name containing the manual charge name;
      unmatched manual rates become charges of their own
    - With neither, a single FRT charge is built from the shipment totals
    """
    currency = currency or normalize_currency(raw.get("currency"))
    charges: list[SystemCharge] = []

    selected_rate = raw.get("selectedRate") if isinstance(raw.get("selectedRate"), dict) else {}
    for charge in selected_rate.get("charges") or []:
        if not isinstance(charge, dict):
            continue
        charges.append(SystemCharge(
            code=first_text(charge, "code") or "FRT",
            name=first_text(charge, "name", "chargeName") or "Charge",
            currency=currency,
            quoted_cost=normalize_amount(first_value(charge, "cost", "amount")),
            quoted_charge=normalize_amount(first_value(charge, "charge", "amount")),
        ))

    for manual in raw.get("manualRates") or []:
        if not isinstance(manual, dict):
            continue
        name = first_text(manual, "chargeName", "name") or "Freight Charge"
        code = first_text(manual, "code", "chargeCode") or "FRT"
        cost = normalize_amount(manual.get("cost"))
        charge_amount = normalize_amount(manual.get("charge"))

        target = next(
            (i for i, c in enumerate(charges) if name.lower() in c.name.lower() or c.code == code),
            None,
        )
        if target is not None:
            charges[target] = charges[target].model_copy(
                update={"actual_cost": cost, "actual_charge": charge_amount}
            )
        else:
            charges.append(SystemCharge(
                code=code,
                name=name,
                currency=currency,
                quoted_cost=cost,
                quoted_charge=charge_amount,
                actual_cost=cost,
                actual_charge=charge_amount,
            ))

    if not charges:
        total = normalize_amount(first_value(
            raw, "totalCharges", "shipmentInfo.totalAmount", "selectedRate.totalAmount"
        ))
        cost_total = normalize_amount(first_value(raw, "actualRates.totalCharges")) or total
        charge_total = normalize_amount(first_value(raw, "markupRates.totalCharges")) or total
        if cost_total or charge_total:
            charges.append(SystemCharge(
                code="FRT",
                name="Freight Charge",
                currency=currency,
                quoted_cost=cost_total,
                quoted_charge=charge_total,
                actual_cost=cost_total,
                actual_charge=charge_total,
            ))
        else:
            logger.info(f"Shipment {raw.get('shipmentID') or raw.get('id')} has no rate data")

    return charges
