# app/dependencies.py

"""
FastAPI dependency providers.

Repositories and the ledger are shared for the process: the ledger owns
the per-shipment locks that serialize writers. The currency converter is
created per request so its rate cache never outlives the request.
"""

from functools import lru_cache

from fastapi import Depends

from app.core.currency import CurrencyConverter
from app.core.ledger import ChargeApplicationLedger
from app.core.pipeline import BatchCache
from app.core.repository import ShipmentRepository
from app.database import SupabaseLedgerStore, SupabaseShipmentRepository
from app.integrations.rates import fetch_rates_for_date


@lru_cache()
def get_shipment_repository() -> SupabaseShipmentRepository:
    return SupabaseShipmentRepository()


@lru_cache()
def get_ledger() -> ChargeApplicationLedger:
    return ChargeApplicationLedger(SupabaseLedgerStore())


def get_currency_converter() -> CurrencyConverter:
    return CurrencyConverter(fetch_rates_for_date)


def get_batch_cache(
    repository: ShipmentRepository = Depends(get_shipment_repository),
) -> BatchCache:
    return BatchCache(repository)
