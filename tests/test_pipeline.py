# tests/test_pipeline.py

"""
End-to-end tests for invoice processing.
"""

import pytest
from datetime import date

from app.models import RateTable
from app.core.currency import CurrencyConverter
from app.core.ledger import ChargeApplicationLedger, InMemoryLedgerStore
from app.core.pipeline import BatchCache, process_invoice
from app.core.repository import InMemoryShipmentRepository


# ============================================
# Test Data
# ============================================

RATES = RateTable(base_currency="CAD", rates={"CAD": 1.0, "USD": 0.75}, provider="test")


async def fake_rate_service(on: date) -> RateTable:
    return RATES


def make_system_record(
    id: str,
    shipment_id: str,
    created_at: str = "2025-01-10T12:00:00Z",
    **kwargs,
) -> dict:
    record = {
        "id": id,
        "shipmentID": shipment_id,
        "status": "booked",
        "createdAt": created_at,
        "carrierId": "car-1",
        "selectedRate": {"charges": [
            {"code": "FRT", "name": "Freight", "cost": 175.0, "charge": 210.0},
            {"code": "FSC", "name": "Fuel Surcharge", "cost": 20.0, "charge": 24.0},
        ]},
        "manualRates": [
            {"chargeName": "Freight", "code": "FRT", "cost": 175.0, "charge": 210.0},
            {"chargeName": "Fuel Surcharge", "code": "FSC", "cost": 20.0, "charge": 24.0},
        ],
    }
    record.update(kwargs)
    return record


def make_extraction(*shipments: dict) -> dict:
    return {
        "extractedData": {
            "carrier": "Day & Ross",
            "invoiceNumber": "INV-88001",
            "invoiceDate": "2025-01-12",
            "currency": "CAD",
            "shipments": list(shipments),
        }
    }


def make_repository(*records: dict) -> InMemoryShipmentRepository:
    return InMemoryShipmentRepository(list(records), carriers={"car-1": "Day & Ross"})


# ============================================
# Pipeline Tests
# ============================================

class TestProcessInvoice:

    @pytest.mark.asyncio
    async def test_exact_match_reconciled_and_auto_applied(self):
        """An exact-ID match with agreeing charges is fully processed."""
        repository = make_repository(make_system_record("doc-1", "ICAL-2306PC"))
        ledger = ChargeApplicationLedger(InMemoryLedgerStore())
        extracted = make_extraction({
            "shipmentId": "ICAL-2306PC",
            "charges": [
                {"description": "Freight", "amount": 175.0},
                {"description": "Fuel Surcharge", "amount": 20.0},
            ],
        })

        result = await process_invoice(
            extracted,
            BatchCache(repository),
            CurrencyConverter(fake_rate_service),
            ledger=ledger,
            auto_apply=True,
        )

        outcome = result.outcomes[0]
        assert outcome.status == "reconciled"
        assert outcome.match.matched_shipment_id == "doc-1"
        assert [r.auto_approval_recommendation for r in outcome.rows] == ["approve", "approve"]
        assert outcome.application.status == "processed"
        assert result.upload_status == "processed"
        assert (await ledger.get("doc-1")).applied_count == 2

    @pytest.mark.asyncio
    async def test_unmatched_invoice_charge_not_applied(self):
        """An extra invoice charge stays for review and keeps the shipment partial."""
        repository = make_repository(make_system_record("doc-1", "ICAL-2306PC"))
        ledger = ChargeApplicationLedger(InMemoryLedgerStore())
        extracted = make_extraction({
            "shipmentId": "ICAL-2306PC",
            "charges": [
                {"description": "Freight", "amount": 175.0},
                {"description": "Fuel Surcharge", "amount": 20.0},
                {"description": "Liftgate Service", "amount": 40.0},
                {"description": "HST", "amount": 30.55},
            ],
        })

        result = await process_invoice(
            extracted,
            BatchCache(repository),
            CurrencyConverter(fake_rate_service),
            ledger=ledger,
            auto_apply=True,
        )

        outcome = result.outcomes[0]
        assert [r.name for r in outcome.rows] == ["Freight", "Fuel Surcharge", "Liftgate Service"]
        liftgate = outcome.rows[2]
        assert not liftgate.matched
        assert liftgate.auto_approval_recommendation == "review"
        assert liftgate.auto_approval_confidence == 0
        assert outcome.application.succeeded == [0, 1]
        assert outcome.application.status == "partially_processed"
        assert result.upload_status == "partially_processed"

    @pytest.mark.asyncio
    async def test_no_match(self):
        repository = make_repository(make_system_record("doc-1", "ICAL-2306PC"))
        extracted = make_extraction({
            "shipmentId": "UNKNOWN-1",
            "carrier": "Some Other Carrier",
            "charges": [{"description": "Freight", "amount": 50.0}],
        })

        result = await process_invoice(
            extracted,
            BatchCache(repository),
            CurrencyConverter(fake_rate_service),
        )

        assert result.outcomes[0].status == "no_match"
        assert result.upload_status == "ready_to_process"

    @pytest.mark.asyncio
    async def test_nothing_to_process(self):
        """A matched shipment without charges has nothing to reconcile."""
        repository = make_repository(make_system_record("doc-1", "ICAL-2306PC"))
        extracted = make_extraction({"shipmentId": "ICAL-2306PC"})

        result = await process_invoice(
            extracted,
            BatchCache(repository),
            CurrencyConverter(fake_rate_service),
        )

        assert result.outcomes[0].status == "nothing_to_process"
        assert result.outcomes[0].rows == []

    @pytest.mark.asyncio
    async def test_without_auto_apply_ledger_untouched(self):
        repository = make_repository(make_system_record("doc-1", "ICAL-2306PC"))
        ledger = ChargeApplicationLedger(InMemoryLedgerStore())
        extracted = make_extraction({
            "shipmentId": "ICAL-2306PC",
            "charges": [{"description": "Freight", "amount": 175.0}],
        })

        result = await process_invoice(
            extracted,
            BatchCache(repository),
            CurrencyConverter(fake_rate_service),
            ledger=ledger,
            auto_apply=False,
        )

        assert result.outcomes[0].application is None
        assert (await ledger.get("doc-1")).version == 0
        assert result.to_dict()["summary"]["reconciled"] == 1


# ============================================
# Batch Cache Tests
# ============================================

class TestBatchCache:

    @pytest.mark.asyncio
    async def test_carrier_resolved_once_per_batch(self):
        """Carrier names are looked up once per batch, not once per record."""
        repository = make_repository(
            make_system_record("doc-1", "S-1"),
            make_system_record("doc-2", "S-2"),
            make_system_record("doc-3", "S-3"),
        )
        cache = BatchCache(repository)

        pool = await cache.candidate_pool()
        await cache.candidate_pool()

        assert [s.carrier for s in pool] == ["Day & Ross"] * 3
        assert repository.carrier_lookups == 1

    @pytest.mark.asyncio
    async def test_new_batch_starts_empty(self):
        repository = make_repository(make_system_record("doc-1", "S-1"))

        await BatchCache(repository).candidate_pool()
        await BatchCache(repository).candidate_pool()

        assert repository.carrier_lookups == 2

    @pytest.mark.asyncio
    async def test_drafts_excluded_and_newest_first(self):
        repository = make_repository(
            make_system_record("old", "S-1", created_at="2025-01-01T00:00:00Z"),
            make_system_record("draft", "S-2", status="draft"),
            make_system_record("new", "S-3", created_at="2025-02-01T00:00:00Z"),
        )

        pool = await BatchCache(repository).candidate_pool()

        assert [s.id for s in pool] == ["new", "old"]

    @pytest.mark.asyncio
    async def test_failed_pool_query_gives_empty_pool(self):
        class BrokenRepository(InMemoryShipmentRepository):
            async def list_candidate_records(self, limit: int) -> list[dict]:
                raise ConnectionError("database unavailable")

        pool = await BatchCache(BrokenRepository([])).candidate_pool()

        assert pool == []

    @pytest.mark.asyncio
    async def test_single_shipment_skips_pool_query(self):
        """Looking up one shipment does not load the whole candidate pool."""
        class CountingRepository(InMemoryShipmentRepository):
            pool_queries = 0

            async def list_candidate_records(self, limit: int) -> list[dict]:
                self.pool_queries += 1
                return await super().list_candidate_records(limit)

        repository = CountingRepository([make_system_record("doc-1", "S-1")], carriers={"car-1": "Day & Ross"})

        shipment = await BatchCache(repository).shipment("doc-1")

        assert shipment.id == "doc-1"
        assert shipment.carrier == "Day & Ross"
        assert repository.pool_queries == 0

    @pytest.mark.asyncio
    async def test_single_shipment_served_from_loaded_pool(self):
        class NoLookupRepository(InMemoryShipmentRepository):
            async def get_shipment_record(self, shipment_id: str):
                raise AssertionError("pool snapshot should be used")

        cache = BatchCache(NoLookupRepository([make_system_record("doc-1", "S-1")]))
        await cache.candidate_pool()

        assert (await cache.shipment("doc-1")).shipment_id == "S-1"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
