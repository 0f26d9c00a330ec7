# app/core/__init__.py

from app.core.matching import match_shipment, match_invoice, manual_match, resolve_match, MatchRun
from app.core.confidence import calculate_match_score
from app.core.charges import reconcile_charges, ReconciliationResult, assign_charge_code, is_tax_charge
from app.core.classification import classify_row, classify_rows, group_invoice_charges
from app.core.currency import CurrencyConverter, convert_amount, identity_rates
from app.core.ledger import ChargeApplicationLedger, InMemoryLedgerStore, derive_status
from app.core.references import (
    collect_invoice_references,
    collect_system_references,
    normalize_reference_tokens,
)
from app.core.normalizers import (
    normalize_amount,
    normalize_date,
    normalize_string,
    normalize_business_name,
    string_similarity,
)

__all__ = [
    "match_shipment",
    "match_invoice",
    "manual_match",
    "resolve_match",
    "MatchRun",
    "calculate_match_score",
    "reconcile_charges",
    "ReconciliationResult",
    "assign_charge_code",
    "is_tax_charge",
    "classify_row",
    "classify_rows",
    "group_invoice_charges",
    "CurrencyConverter",
    "convert_amount",
    "identity_rates",
    "ChargeApplicationLedger",
    "InMemoryLedgerStore",
    "derive_status",
    "collect_invoice_references",
    "collect_system_references",
    "normalize_reference_tokens",
    "normalize_amount",
    "normalize_date",
    "normalize_string",
    "normalize_business_name",
    "string_similarity",
]
