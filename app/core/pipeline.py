# app/core/pipeline.py

"""
Invoice processing pipeline.

For one uploaded invoice, sequentially:
1. Normalize the extraction into canonical invoice shipments
2. Match each shipment against one snapshot of the candidate pool
3. Reconcile and classify charges for matched shipments
4. Optionally auto-apply approved charges for auto-accepted matches

Independent uploads may run concurrently; each gets its own BatchCache and
CurrencyConverter.
"""

import asyncio
import logging
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field

from app.models import (
    BatchResult,
    ComparisonRow,
    InvoiceShipment,
    MatchResult,
    SystemShipment,
)
from app.core.canonical import (
    invoice_shipments_from_extraction,
    system_shipment_from_raw,
)
from app.core.charges import ReconciliationResult, effective_rate_date, reconcile_charges
from app.core.classification import classify_rows
from app.core.currency import CurrencyConverter
from app.core.ledger import ChargeApplicationLedger
from app.core.matching import match_shipment
from app.core.repository import ShipmentRepository
from app.config import get_settings

settings = get_settings()
logger = logging.getLogger(__name__)


class BatchCache:
    """
    Per-upload cache of the candidate pool and carrier names.

    Created for one batch and dropped with it, so nothing leaks between
    uploads or requests.
    """

    def __init__(self, repository: ShipmentRepository, pool_limit: Optional[int] = None):
        self._repository = repository
        self._pool_limit = pool_limit or settings.candidate_pool_limit
        self._pool: Optional[list[SystemShipment]] = None
        self._carrier_names: dict[str, Optional[str]] = {}

    async def candidate_pool(self) -> list[SystemShipment]:
        """The pool snapshot for this batch. A failed query yields an empty pool."""
        if self._pool is not None:
            return self._pool

        try:
            records = await asyncio.wait_for(
                self._repository.list_candidate_records(self._pool_limit),
                timeout=settings.pool_fetch_timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning("Candidate pool query timed out, matching against an empty pool")
            records = []
        except Exception as e:
            logger.error(f"Candidate pool query failed: {e}")
            records = []

        await self._resolve_carriers(records)
        self._pool = [
            system_shipment_from_raw(record, self._carrier_names.get)
            for record in records
        ]
        logger.info(f"Loaded {len(self._pool)} candidate shipments")
        return self._pool

    async def shipment(self, shipment_id: str) -> Optional[SystemShipment]:
        """One shipment, from the pool snapshot if loaded, else by direct lookup."""
        for candidate in self._pool or []:
            if candidate.id == shipment_id:
                return candidate

        record = await self._repository.get_shipment_record(shipment_id)
        if record is None:
            return None
        await self._resolve_carriers([record])
        return system_shipment_from_raw(record, self._carrier_names.get)

    async def carrier_name(self, carrier_id: str) -> Optional[str]:
        if carrier_id not in self._carrier_names:
            self._carrier_names[carrier_id] = await self._repository.get_carrier_name(carrier_id)
        return self._carrier_names[carrier_id]

    async def _resolve_carriers(self, records: list[dict]) -> None:
        for record in records:
            carrier_id = record.get("carrierId")
            has_name = record.get("carrier") or record.get("carrierName") or record.get("selectedCarrier")
            if carrier_id and not has_name:
                await self.carrier_name(str(carrier_id))


# ============================================
# Results
# ============================================

ShipmentOutcomeStatus = Literal[
    "nothing_to_process",
    "no_match",
    "needs_confirmation",
    "reconciled",
]


class ShipmentOutcome(BaseModel):
    invoice_shipment_id: Optional[str] = None
    match: MatchResult
    status: ShipmentOutcomeStatus
    rows: list[ComparisonRow] = Field(default_factory=list)
    application: Optional[BatchResult] = None
    rate_provider: Optional[str] = None


class InvoiceProcessingResult:
    """Outcome of processing one uploaded invoice."""

    def __init__(self):
        self.outcomes: list[ShipmentOutcome] = []
        self.duration_ms: int = 0

    @property
    def upload_status(self) -> str:
        """
        Status of the whole upload, from the ledgers of its shipments.

        processed when every reconciled shipment is fully applied,
        partially_processed when some charges are applied, otherwise
        ready_to_process.
        """
        reconciled = [o for o in self.outcomes if o.status == "reconciled"]
        applied = [o for o in reconciled if o.application and o.application.applied_count > 0]
        processed = [o for o in applied if o.application.status == "processed"]

        if reconciled and len(processed) == len(reconciled):
            return "processed"
        if applied:
            return "partially_processed"
        return "ready_to_process"

    def to_dict(self) -> dict:
        """Convert to dictionary for API response."""
        return {
            "upload_status": self.upload_status,
            "shipments": [o.model_dump() for o in self.outcomes],
            "summary": {
                "total": len(self.outcomes),
                "reconciled": len([o for o in self.outcomes if o.status == "reconciled"]),
                "needs_confirmation": len([o for o in self.outcomes if o.status == "needs_confirmation"]),
                "no_match": len([o for o in self.outcomes if o.status == "no_match"]),
                "nothing_to_process": len([o for o in self.outcomes if o.status == "nothing_to_process"]),
            },
            "duration_ms": self.duration_ms,
        }


# ============================================
# Pipeline
# ============================================

async def compare_shipment_charges(
    invoice: InvoiceShipment,
    system: SystemShipment,
    converter: CurrencyConverter,
) -> ReconciliationResult:
    """Reconcile and classify one matched shipment's charges."""
    rates = await converter.rates_for(effective_rate_date(invoice))
    result = reconcile_charges(system.charges, invoice.charges, rates, converter.base_currency)
    result.rows = classify_rows(result.rows, invoice.charges, rates, converter.base_currency)
    return result


async def process_invoice(
    extracted: dict,
    cache: BatchCache,
    converter: CurrencyConverter,
    ledger: Optional[ChargeApplicationLedger] = None,
    auto_apply: bool = False,
) -> InvoiceProcessingResult:
    """
    Run the full pipeline for one extracted invoice.

    Auto-apply only touches shipments whose match was accepted automatically;
    low-confidence matches wait for a human to confirm them.
    """
    start_time = datetime.now()
    result = InvoiceProcessingResult()

    shipments = invoice_shipments_from_extraction(extracted)
    pool = await cache.candidate_pool()

    for shipment in shipments:
        match = match_shipment(shipment, pool)

        if not match.matched:
            result.outcomes.append(ShipmentOutcome(
                invoice_shipment_id=shipment.shipment_id, match=match, status="no_match",
            ))
            continue

        if not shipment.charges:
            logger.info(f"Invoice shipment {shipment.shipment_id} has no charges to reconcile")
            result.outcomes.append(ShipmentOutcome(
                invoice_shipment_id=shipment.shipment_id, match=match, status="nothing_to_process",
            ))
            continue

        system = await cache.shipment(match.matched_shipment_id)
        if system is None:
            logger.warning(f"Matched shipment {match.matched_shipment_id} disappeared from repository")
            result.outcomes.append(ShipmentOutcome(
                invoice_shipment_id=shipment.shipment_id, match=MatchResult(), status="no_match",
            ))
            continue

        comparison = await compare_shipment_charges(shipment, system, converter)
        outcome = ShipmentOutcome(
            invoice_shipment_id=shipment.shipment_id,
            match=match,
            status="reconciled" if match.status == "auto_accepted" else "needs_confirmation",
            rows=comparison.rows,
            rate_provider=comparison.rates.provider,
        )

        if auto_apply and ledger is not None and match.status == "auto_accepted":
            outcome.application = await ledger.auto_apply(
                system.id,
                comparison.rows,
                invoice_reference=shipment.references.invoice_ref,
            )

        result.outcomes.append(outcome)

    result.duration_ms = int((datetime.now() - start_time).total_seconds() * 1000)
    logger.info(
        f"Processed invoice with {len(shipments)} shipments in {result.duration_ms}ms, "
        f"upload status {result.upload_status}"
    )
    return result
