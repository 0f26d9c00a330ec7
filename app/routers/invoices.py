# app/routers/invoices.py

"""
Invoice routes.

Matching of extracted invoice shipments against system shipments, and
the full processing pipeline.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from app.core.canonical import invoice_shipments_from_extraction
from app.core.currency import CurrencyConverter
from app.core.exceptions import ShipmentNotFoundError
from app.core.ledger import ChargeApplicationLedger
from app.core.matching import match_invoice, manual_match, resolve_match
from app.core.pipeline import BatchCache, process_invoice
from app.dependencies import get_batch_cache, get_currency_converter, get_ledger
from app.models import MatchResult

router = APIRouter()


# ============================================
# Request Models
# ============================================

class MatchRequest(BaseModel):
    extracted_data: dict
    # Existing matches keyed by invoice shipment id; manual ones are kept
    current_matches: dict[str, MatchResult] = Field(default_factory=dict)


class ProcessRequest(BaseModel):
    extracted_data: dict
    auto_apply: bool = True


class ManualMatchRequest(BaseModel):
    system_shipment_id: str
    current_match: Optional[MatchResult] = None


# ============================================
# Matching
# ============================================

@router.post("/match")
async def match_shipments(request: MatchRequest, cache: BatchCache = Depends(get_batch_cache)):
    """
    Match every shipment in an extraction result against recent system shipments.
    """
    shipments = invoice_shipments_from_extraction(request.extracted_data)
    if not shipments:
        raise HTTPException(status_code=400, detail="No shipments found in extracted data")

    run = match_invoice(shipments, await cache.candidate_pool())

    for i, (shipment, result) in enumerate(run.results):
        current = request.current_matches.get(shipment.shipment_id or "")
        run.results[i] = (shipment, resolve_match(current, result))

    return {"success": True, **run.to_dict()}


@router.post("/manual-match")
async def set_manual_match(
    request: ManualMatchRequest,
    cache: BatchCache = Depends(get_batch_cache),
):
    """Pin an invoice shipment to a system shipment chosen by a user."""
    system = await cache.shipment(request.system_shipment_id)
    if system is None:
        raise ShipmentNotFoundError(request.system_shipment_id)

    return {
        "success": True,
        "match": resolve_match(request.current_match, manual_match(system.id)),
    }


# ============================================
# Full pipeline
# ============================================

@router.post("/process")
async def process_uploaded_invoice(
    request: ProcessRequest,
    cache: BatchCache = Depends(get_batch_cache),
    converter: CurrencyConverter = Depends(get_currency_converter),
    ledger: ChargeApplicationLedger = Depends(get_ledger),
):
    """
    Match, reconcile and classify an extracted invoice.

    With auto_apply, approved charges on automatically accepted matches are
    applied to the shipment ledgers.
    """
    result = await process_invoice(
        request.extracted_data,
        cache,
        converter,
        ledger=ledger,
        auto_apply=request.auto_apply,
    )
    return {"success": True, **result.to_dict()}
