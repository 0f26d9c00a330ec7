# app/database.py

import asyncio
import logging
from functools import lru_cache
from typing import Any, Optional

from supabase import create_client, Client

from app.config import get_settings
from app.core.exceptions import LedgerConflictError, LedgerWriteError
from app.models import ShipmentLedger

settings = get_settings()
logger = logging.getLogger(__name__)


@lru_cache()
def get_supabase() -> Client:
    """Admin client (bypasses RLS). Created on first use."""
    return create_client(settings.supabase_url, settings.supabase_service_role_key)


async def execute(query) -> Any:
    """Run a blocking Supabase query in a worker thread so callers can time out."""
    return await asyncio.to_thread(query.execute)


# ============================================
# Shipments
# ============================================

class SupabaseShipmentRepository:
    """System shipments from the shipments and carriers tables."""

    def __init__(self, client: Optional[Client] = None):
        self._client = client

    @property
    def client(self) -> Client:
        return self._client or get_supabase()

    async def list_candidate_records(self, limit: int) -> list[dict]:
        """Shipments not in draft status, most recent first."""
        response = await execute(
            self.client.table("shipments")
            .select("*")
            .neq("status", "draft")
            .order("created_at", desc=True)
            .limit(limit)
        )
        return [_shipment_record(row) for row in response.data or []]

    async def get_shipment_record(self, shipment_id: str) -> Optional[dict]:
        response = await execute(self.client.table("shipments").select("*").eq("id", shipment_id))
        if not response.data:
            response = await execute(
                self.client.table("shipments").select("*").eq("shipment_id", shipment_id)
            )
        return _shipment_record(response.data[0]) if response.data else None

    async def get_carrier_name(self, carrier_id: str) -> Optional[str]:
        response = await execute(self.client.table("carriers").select("name").eq("id", carrier_id))
        return response.data[0].get("name") if response.data else None


def _shipment_record(row: dict) -> dict:
    """Shipment rows keep the original document in a jsonb `data` column."""
    record = dict(row.get("data") or {})
    record.setdefault("id", row.get("id"))
    record.setdefault("status", row.get("status"))
    record.setdefault("createdAt", row.get("created_at"))
    if row.get("shipment_id"):
        record.setdefault("shipmentID", row["shipment_id"])
    return record


# ============================================
# Charge ledgers
# ============================================

class SupabaseLedgerStore:
    """
    Shipment ledgers in the charge_ledgers table.

    Writes are conditional on the version column; a write that matches no
    row lost a race with another writer.
    """

    def __init__(self, client: Optional[Client] = None):
        self._client = client

    @property
    def client(self) -> Client:
        return self._client or get_supabase()

    async def load(self, shipment_id: str) -> ShipmentLedger:
        response = await execute(
            self.client.table("charge_ledgers")
            .select("*")
            .eq("shipment_id", shipment_id)
        )
        if not response.data:
            return ShipmentLedger(shipment_id=shipment_id)

        row = response.data[0]
        return ShipmentLedger(
            shipment_id=shipment_id,
            version=row.get("version", 0),
            total_count=row.get("total_count", 0),
            records=row.get("records") or {},
            entries=row.get("entries") or {},
            status=row.get("status") or "ready_to_process",
            status_reason=row.get("status_reason"),
        )

    async def save(self, ledger: ShipmentLedger, expected_version: int) -> ShipmentLedger:
        new_version = expected_version + 1
        data = ledger.model_dump(mode="json", exclude={"version"})
        data["version"] = new_version

        try:
            if expected_version == 0:
                response = await execute(self.client.table("charge_ledgers").insert(data))
            else:
                response = await execute(
                    self.client.table("charge_ledgers")
                    .update(data)
                    .eq("shipment_id", ledger.shipment_id)
                    .eq("version", expected_version)
                )
        except Exception as e:
            # Unique violation on insert means another writer created the row first
            if expected_version == 0 and "duplicate key" in str(e):
                raise LedgerConflictError(ledger.shipment_id, expected_version) from e
            raise LedgerWriteError(ledger.shipment_id, str(e)) from e

        if not response.data:
            raise LedgerConflictError(ledger.shipment_id, expected_version)

        # Cached copy for list views; the ledger row stays authoritative
        try:
            await execute(
                self.client.table("shipments").update({
                    "ap_status": ledger.status,
                    "ap_status_reason": ledger.status_reason,
                }).eq("id", ledger.shipment_id)
            )
        except Exception as e:
            logger.warning(f"Ledger saved but ap_status cache update failed for {ledger.shipment_id}: {e}")

        return ledger.model_copy(update={"version": new_version})
