# app/core/ledger.py

"""
Charge application ledger.

The ledger records which comparison rows have been applied to a shipment's
bill. It is the only source of truth for a shipment's processing status:

    applied == 0            -> ready_to_process
    0 < applied < total     -> partially_processed
    applied == total        -> processed

A human can flag a shipment as an exception; the next apply/unapply
recomputes the status from counts again.

Writes for one shipment are serialized by a per-shipment lock and guarded
by an optimistic version check in the store, retried once on conflict.
"""

import asyncio
import logging
from collections import defaultdict
from datetime import datetime, timezone
from typing import Callable, Iterable, Optional, Protocol

from app.models import (
    ComparisonRow,
    ChargeApplicationRecord,
    LedgerEntry,
    ShipmentLedger,
    ProcessingStatus,
    IndexResult,
    BatchResult,
    Money,
)
from app.core.exceptions import LedgerConflictError
from app.config import get_settings

settings = get_settings()
logger = logging.getLogger(__name__)


class LedgerStore(Protocol):
    """Persistence for shipment ledgers."""

    async def load(self, shipment_id: str) -> ShipmentLedger:
        """Current ledger, or an empty version-0 ledger."""
        ...

    async def save(self, ledger: ShipmentLedger, expected_version: int) -> ShipmentLedger:
        """
        Persist ledger if the stored version still equals expected_version.

        Returns the stored ledger (version incremented). Raises
        LedgerConflictError if another writer got there first.
        """
        ...


class InMemoryLedgerStore:
    """Process-local ledger store for tests and local runs."""

    def __init__(self):
        self._ledgers: dict[str, ShipmentLedger] = {}

    async def load(self, shipment_id: str) -> ShipmentLedger:
        ledger = self._ledgers.get(shipment_id)
        if ledger is None:
            return ShipmentLedger(shipment_id=shipment_id)
        return ledger.model_copy(deep=True)

    async def save(self, ledger: ShipmentLedger, expected_version: int) -> ShipmentLedger:
        current = self._ledgers.get(ledger.shipment_id)
        current_version = current.version if current else 0
        if current_version != expected_version:
            raise LedgerConflictError(ledger.shipment_id, expected_version)

        stored = ledger.model_copy(deep=True, update={"version": expected_version + 1})
        self._ledgers[ledger.shipment_id] = stored
        return stored.model_copy(deep=True)


def derive_status(applied_count: int, total_count: int) -> ProcessingStatus:
    if applied_count == 0:
        return "ready_to_process"
    if applied_count < total_count:
        return "partially_processed"
    return "processed"


Mutation = Callable[[ShipmentLedger], list[IndexResult]]


class ChargeApplicationLedger:
    """Applies and unapplies comparison rows to shipment ledgers."""

    def __init__(self, store: LedgerStore, conflict_retries: Optional[int] = None):
        self._store = store
        self._conflict_retries = (
            settings.ledger_conflict_retries if conflict_retries is None else conflict_retries
        )
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def get(self, shipment_id: str) -> ShipmentLedger:
        return await self._store.load(shipment_id)

    async def apply(
        self,
        shipment_id: str,
        rows: list[ComparisonRow],
        indices: Iterable[int],
        invoice_reference: Optional[str] = None,
    ) -> BatchResult:
        """
        Apply rows to the shipment bill.

        Already-applied indices are skipped. Out-of-range indices, and applied
        indices whose row no longer carries the same code and name, are rejected.
        Applied records past the end of rows are dropped and reported as stale.
        """
        requested = _unique_indices(indices)

        def mutation(ledger: ShipmentLedger) -> list[IndexResult]:
            results = _resize(ledger, len(rows))
            applied_at = datetime.now(timezone.utc)

            for index in requested:
                if any(r.index == index for r in results):
                    continue
                if not 0 <= index < len(rows):
                    results.append(IndexResult(index=index, outcome="rejected", reason="out_of_range"))
                    continue

                row = rows[index]
                existing = ledger.records.get(index)
                if existing is not None:
                    if (existing.charge_code, existing.charge_name) != (row.code, row.name):
                        results.append(IndexResult(index=index, outcome="rejected", reason="stale"))
                    else:
                        results.append(IndexResult(index=index, outcome="skipped", reason="already_applied"))
                    continue

                ledger.records[index] = ChargeApplicationRecord(
                    charge_index=index,
                    charge_code=row.code,
                    charge_name=row.name,
                    status="applied",
                    applied_at=applied_at,
                )
                ledger.entries[index] = LedgerEntry(
                    charge_index=index,
                    code=row.code,
                    name=row.name,
                    actual_cost=Money.of(row.system_actual_cost, row.currency),
                    actual_charge=Money.of(row.system_actual_charge, row.currency),
                    invoice_amount=Money.of(row.invoice_amount, row.currency),
                    invoice_reference=invoice_reference,
                )
                results.append(IndexResult(index=index, outcome="applied"))

            return results

        return await self._run(shipment_id, mutation, "apply")

    async def unapply(
        self,
        shipment_id: str,
        indices: Iterable[int],
        rows: Optional[list[ComparisonRow]] = None,
    ) -> BatchResult:
        """Remove previously applied rows. Non-applied indices are skipped."""
        requested = _unique_indices(indices)

        def mutation(ledger: ShipmentLedger) -> list[IndexResult]:
            results = _resize(ledger, len(rows)) if rows is not None else []

            for index in requested:
                if any(r.index == index for r in results):
                    continue
                if index in ledger.records:
                    del ledger.records[index]
                    ledger.entries.pop(index, None)
                    results.append(IndexResult(index=index, outcome="unapplied"))
                elif not 0 <= index < ledger.total_count:
                    results.append(IndexResult(index=index, outcome="rejected", reason="out_of_range"))
                else:
                    results.append(IndexResult(index=index, outcome="skipped", reason="not_applied"))

            return results

        return await self._run(shipment_id, mutation, "unapply")

    async def auto_apply(
        self,
        shipment_id: str,
        rows: list[ComparisonRow],
        invoice_reference: Optional[str] = None,
    ) -> BatchResult:
        """Apply every matched row the classifier recommends approving."""
        approved = [
            i for i, row in enumerate(rows)
            if row.matched and row.auto_approval_recommendation == "approve"
        ]
        logger.info(f"Auto-applying {len(approved)}/{len(rows)} charges on shipment {shipment_id}")
        return await self.apply(shipment_id, rows, approved, invoice_reference)

    async def mark_exception(self, shipment_id: str, reason: str) -> ShipmentLedger:
        """Human override: flag the shipment as an exception."""
        async with self._locks[shipment_id]:
            for attempt in range(self._conflict_retries + 1):
                ledger = await self._store.load(shipment_id)
                expected = ledger.version
                fully_applied = 0 < ledger.total_count <= ledger.applied_count
                ledger.status = "processed_with_exception" if fully_applied else "exception"
                ledger.status_reason = reason
                try:
                    return await asyncio.shield(self._store.save(ledger, expected))
                except LedgerConflictError:
                    if attempt >= self._conflict_retries:
                        raise
                    logger.warning(f"Ledger conflict marking exception on {shipment_id}, retrying")

    async def _run(self, shipment_id: str, mutation: Mutation, operation: str) -> BatchResult:
        async with self._locks[shipment_id]:
            for attempt in range(self._conflict_retries + 1):
                ledger = await self._store.load(shipment_id)
                expected = ledger.version

                working = ledger.model_copy(deep=True)
                results = mutation(working)

                if working.model_dump() != ledger.model_dump():
                    working.status = derive_status(working.applied_count, working.total_count)
                    working.status_reason = None
                    try:
                        # One store call commits the whole batch; cancellation must not split it
                        ledger = await asyncio.shield(self._store.save(working, expected))
                    except LedgerConflictError:
                        if attempt >= self._conflict_retries:
                            logger.error(f"Ledger conflict on {shipment_id} persisted after retry")
                            raise
                        logger.warning(f"Ledger conflict on {shipment_id} during {operation}, retrying")
                        continue

                    logger.info(
                        f"{operation} on {shipment_id}: {len(results)} indices, "
                        f"{ledger.applied_count}/{ledger.total_count} applied, status {ledger.status}"
                    )

                return BatchResult(
                    shipment_id=shipment_id,
                    results=results,
                    status=ledger.status,
                    applied_count=ledger.applied_count,
                    total_count=ledger.total_count,
                )


def _resize(ledger: ShipmentLedger, row_count: int) -> list[IndexResult]:
    """
    Set the row count, dropping records past the end of the new rows.

    Dropped records are reported as stale so applied_count never exceeds
    total_count.
    """
    ledger.total_count = row_count
    dropped = sorted(i for i in ledger.records if i >= row_count)
    for index in dropped:
        del ledger.records[index]
        ledger.entries.pop(index, None)
        logger.warning(f"Dropping applied charge {index} on {ledger.shipment_id}: no longer in comparison")
    return [IndexResult(index=index, outcome="rejected", reason="stale") for index in dropped]


def _unique_indices(indices: Iterable[int]) -> list[int]:
    return list(dict.fromkeys(int(i) for i in indices))
