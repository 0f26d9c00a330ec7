# app/core/exceptions.py

"""
Error types raised by the reconciliation core.

Only ledger mutation failures are meant to reach the caller. Everything
else (missing rates, bad dates, empty pools) degrades locally.
"""


class ReconciliationError(Exception):
    """Base class for reconciliation errors."""


class ShipmentNotFoundError(ReconciliationError):
    def __init__(self, shipment_id: str):
        self.shipment_id = shipment_id
        super().__init__(f"Shipment {shipment_id} not found")


class RateLookupError(ReconciliationError):
    """The exchange rate service could not produce a rate table."""


class LedgerConflictError(ReconciliationError):
    """Another writer changed the shipment ledger since it was loaded."""

    user_message = "Could not update charges, try again."

    def __init__(self, shipment_id: str, expected_version: int | None = None):
        self.shipment_id = shipment_id
        self.expected_version = expected_version
        super().__init__(
            f"Ledger for shipment {shipment_id} changed concurrently "
            f"(expected version {expected_version})"
        )


class LedgerWriteError(ReconciliationError):
    """The ledger store rejected or failed a write."""

    def __init__(self, shipment_id: str, detail: str):
        self.shipment_id = shipment_id
        self.detail = detail
        super().__init__(f"Ledger write failed for shipment {shipment_id}: {detail}")
