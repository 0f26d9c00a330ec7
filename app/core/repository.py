# app/core/repository.py

"""
Shipment repository interface.

The core reads system shipments through this narrow interface; the
Supabase implementation lives in app/database.py.
"""

from typing import Optional, Protocol


class ShipmentRepository(Protocol):

    async def list_candidate_records(self, limit: int) -> list[dict]:
        """Raw shipment records not in draft status, most recent first."""
        ...

    async def get_shipment_record(self, shipment_id: str) -> Optional[dict]:
        """Raw record by document id or shipmentID."""
        ...

    async def get_carrier_name(self, carrier_id: str) -> Optional[str]:
        ...


class InMemoryShipmentRepository:
    """Repository over a list of raw records, for tests and local runs."""

    def __init__(self, records: list[dict], carriers: Optional[dict[str, str]] = None):
        self.records = records
        self.carriers = carriers or {}
        self.carrier_lookups = 0

    async def list_candidate_records(self, limit: int) -> list[dict]:
        candidates = [r for r in self.records if r.get("status") != "draft"]
        candidates.sort(key=lambda r: str(r.get("createdAt") or ""), reverse=True)
        return candidates[:limit]

    async def get_shipment_record(self, shipment_id: str) -> Optional[dict]:
        for record in self.records:
            if shipment_id in (record.get("id"), record.get("shipmentID"), record.get("shipmentId")):
                return record
        return None

    async def get_carrier_name(self, carrier_id: str) -> Optional[str]:
        self.carrier_lookups += 1
        return self.carriers.get(carrier_id)
