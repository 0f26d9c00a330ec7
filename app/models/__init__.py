# app/models/__init__.py

from app.models.invoice import (
    Party,
    InvoiceCharge,
    InvoiceReferences,
    InvoiceShipment,
)
from app.models.shipment import (
    SystemCharge,
    SystemShipment,
)
from app.models.match import (
    MatchScoreBreakdown,
    MatchResult,
    MatchStatus,
    EXACT_ID_METHOD,
    MANUAL_METHOD,
    NO_MATCH_METHOD,
)
from app.models.reconciliation import (
    ComparisonRow,
    ChargePair,
    ApprovalDecision,
    InvoiceChargeGroups,
    Recommendation,
)
from app.models.ledger import (
    Money,
    ChargeApplicationRecord,
    LedgerEntry,
    ShipmentLedger,
    ProcessingStatus,
    IndexResult,
    BatchResult,
)
from app.models.rates import RateTable

__all__ = [
    # Invoice
    "Party",
    "InvoiceCharge",
    "InvoiceReferences",
    "InvoiceShipment",
    # System
    "SystemCharge",
    "SystemShipment",
    # Match
    "MatchScoreBreakdown",
    "MatchResult",
    "MatchStatus",
    "EXACT_ID_METHOD",
    "MANUAL_METHOD",
    "NO_MATCH_METHOD",
    # Reconciliation
    "ComparisonRow",
    "ChargePair",
    "ApprovalDecision",
    "InvoiceChargeGroups",
    "Recommendation",
    # Ledger
    "Money",
    "ChargeApplicationRecord",
    "LedgerEntry",
    "ShipmentLedger",
    "ProcessingStatus",
    "IndexResult",
    "BatchResult",
    # Rates
    "RateTable",
]
