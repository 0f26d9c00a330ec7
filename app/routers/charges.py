# app/routers/charges.py

"""
Charge comparison and ledger routes for a single system shipment.

Comparison rows are recomputed from the invoice shipment on every call;
only the ledger is persisted.
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from app.core.canonical import invoice_shipment_from_raw
from app.core.charges import ReconciliationResult
from app.core.currency import CurrencyConverter
from app.core.exceptions import ShipmentNotFoundError
from app.core.ledger import ChargeApplicationLedger
from app.core.pipeline import BatchCache, compare_shipment_charges
from app.dependencies import get_batch_cache, get_currency_converter, get_ledger
from app.models import InvoiceShipment

router = APIRouter()


# ============================================
# Request Models
# ============================================

class CompareRequest(BaseModel):
    invoice_shipment: dict


class ApplyRequest(CompareRequest):
    indices: list[int]


class ExceptionRequest(BaseModel):
    reason: str


async def _compare(
    shipment_id: str,
    raw_invoice: dict,
    cache: BatchCache,
    converter: CurrencyConverter,
) -> tuple[str, InvoiceShipment, ReconciliationResult]:
    system = await cache.shipment(shipment_id)
    if system is None:
        raise ShipmentNotFoundError(shipment_id)

    invoice = invoice_shipment_from_raw(raw_invoice)
    return system.id, invoice, await compare_shipment_charges(invoice, system, converter)


# ============================================
# Comparison
# ============================================

@router.post("/{shipment_id}/charges/compare")
async def compare_charges(
    shipment_id: str,
    request: CompareRequest,
    cache: BatchCache = Depends(get_batch_cache),
    converter: CurrencyConverter = Depends(get_currency_converter),
):
    """Comparison rows, with auto-approval recommendations, for an invoice shipment."""
    _, _, result = await _compare(shipment_id, request.invoice_shipment, cache, converter)
    return {"success": True, **result.to_dict()}


# ============================================
# Ledger
# ============================================

@router.post("/{shipment_id}/charges/apply")
async def apply_charges(
    shipment_id: str,
    request: ApplyRequest,
    cache: BatchCache = Depends(get_batch_cache),
    converter: CurrencyConverter = Depends(get_currency_converter),
    ledger: ChargeApplicationLedger = Depends(get_ledger),
):
    """Apply selected comparison rows to the shipment bill."""
    system_id, invoice, result = await _compare(shipment_id, request.invoice_shipment, cache, converter)
    batch = await ledger.apply(
        system_id,
        result.rows,
        request.indices,
        invoice_reference=invoice.references.invoice_ref,
    )
    return {"success": True, "result": batch.model_dump()}


@router.post("/{shipment_id}/charges/unapply")
async def unapply_charges(
    shipment_id: str,
    request: ApplyRequest,
    cache: BatchCache = Depends(get_batch_cache),
    converter: CurrencyConverter = Depends(get_currency_converter),
    ledger: ChargeApplicationLedger = Depends(get_ledger),
):
    """Remove previously applied rows from the shipment bill."""
    system_id, _, result = await _compare(shipment_id, request.invoice_shipment, cache, converter)
    batch = await ledger.unapply(system_id, request.indices, rows=result.rows)
    return {"success": True, "result": batch.model_dump()}


@router.post("/{shipment_id}/charges/auto-apply")
async def auto_apply_charges(
    shipment_id: str,
    request: CompareRequest,
    cache: BatchCache = Depends(get_batch_cache),
    converter: CurrencyConverter = Depends(get_currency_converter),
    ledger: ChargeApplicationLedger = Depends(get_ledger),
):
    """Apply every matched row recommended for approval."""
    system_id, invoice, result = await _compare(shipment_id, request.invoice_shipment, cache, converter)
    batch = await ledger.auto_apply(
        system_id,
        result.rows,
        invoice_reference=invoice.references.invoice_ref,
    )
    return {"success": True, "result": batch.model_dump()}


@router.get("/{shipment_id}/ledger")
async def get_shipment_ledger(
    shipment_id: str,
    ledger: ChargeApplicationLedger = Depends(get_ledger),
):
    """Applied charges and processing status for a shipment."""
    current = await ledger.get(shipment_id)
    return {"success": True, "ledger": current.model_dump(mode="json")}


@router.post("/{shipment_id}/ledger/exception")
async def mark_shipment_exception(
    shipment_id: str,
    request: ExceptionRequest,
    ledger: ChargeApplicationLedger = Depends(get_ledger),
):
    """Flag a shipment for exception handling."""
    updated = await ledger.mark_exception(shipment_id, request.reason)
    return {"success": True, "ledger": updated.model_dump(mode="json")}
