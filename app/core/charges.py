# app/core/charges.py

"""
Charge reconciliation for a matched shipment.

Lines up the charges on the carrier invoice with the system's own charges
for the shipment and produces the comparison rows reviewers (and the
auto-approval pass) work from.

Pairing is greedy: each system charge, in order, takes the best invoice
charge still available. This is not a globally optimal assignment, and
changing it changes which amounts get billed.
"""

import logging
import math
from datetime import datetime
from typing import Optional

from app.models import (
    InvoiceCharge,
    InvoiceShipment,
    SystemCharge,
    ComparisonRow,
    ChargePair,
    RateTable,
)
from app.core.currency import convert_amount
from app.core.normalizers import coerce_date, first_valid_date, string_similarity
from app.config import get_settings

settings = get_settings()
logger = logging.getLogger(__name__)

MIN_PAIR_SCORE = 10

TAX_KEYWORDS = ("hst", "gst", "pst", "qst", "tax")

# (keywords, code) checked in order; first hit wins
CODE_RULES: tuple[tuple[tuple[str, ...], str], ...] = (
    (("fuel", "fsc"), "FSC"),
    (("border", "customs", "duty", "brokerage"), "CUS"),
    (("accessorial", "handling", "liftgate", "residential"), "ACC"),
    (("insurance",), "INS"),
    (("weight", "dimensional"), "WGT"),
    (("wait", "detention"), "DET"),
    (("base", "freight", "frt", "linehaul"), "FRT"),
)

# (family, keywords, points)
KEYWORD_FAMILIES: tuple[tuple[str, tuple[str, ...], int], ...] = (
    ("freight", ("freight", "frt", "base"), 30),
    ("fuel", ("fuel", "fsc", "surcharge"), 25),
    ("tax", TAX_KEYWORDS, 35),
    ("accessorial", ("accessorial", "acc", "additional"), 20),
    ("insurance", ("insurance", "ins"), 20),
    ("handling", ("handling", "hdl"), 15),
)
MAX_KEYWORD_SCORE = 35


class ReconciliationResult:
    """Comparison of one shipment's invoice charges against its system charges."""

    def __init__(self, rates: RateTable):
        self.rows: list[ComparisonRow] = []
        self.matched_charges: list[ChargePair] = []
        self.unmatched_system: list[SystemCharge] = []
        self.unmatched_invoice: list[InvoiceCharge] = []
        self.excluded_tax_charges: list[InvoiceCharge | SystemCharge] = []
        self.rates = rates

    @property
    def unmatched_charges(self) -> list[InvoiceCharge | SystemCharge]:
        return [*self.unmatched_system, *self.unmatched_invoice]

    @property
    def total_variance(self) -> float:
        return round(sum(r.variance_cost for r in self.rows), 2)

    def to_dict(self) -> dict:
        """Convert to dictionary for API response."""
        return {
            "rows": [r.model_dump() for r in self.rows],
            "matched_count": len(self.matched_charges),
            "unmatched_system_count": len(self.unmatched_system),
            "unmatched_invoice_count": len(self.unmatched_invoice),
            "excluded_tax_count": len(self.excluded_tax_charges),
            "total_variance": self.total_variance,
            "rates": {
                "base_currency": self.rates.base_currency,
                "provider": self.rates.provider,
                "is_fallback": self.rates.is_fallback,
            },
        }


# ============================================
# Charge classification helpers
# ============================================

def assign_charge_code(description: str | None) -> str:
    """Semantic code for an invoice charge that arrived without one."""
    text = (description or "").lower()

    for keyword in TAX_KEYWORDS:
        if keyword in text:
            return keyword.upper()

    for keywords, code in CODE_RULES:
        if any(k in text for k in keywords):
            return code

    return "FRT"


def is_tax_charge(code: str | None, name: str | None) -> bool:
    text = f"{name or ''} {code or ''}".lower()
    return any(keyword in text for keyword in TAX_KEYWORDS)


def with_assigned_code(charge: InvoiceCharge) -> InvoiceCharge:
    if charge.code:
        return charge
    return charge.model_copy(update={"code": assign_charge_code(charge.name)})


def score_charge_pair(system: SystemCharge, invoice: InvoiceCharge) -> int:
    """
    How well an invoice charge corresponds to a system charge.

    +50 exact code, +40 exact name, otherwise keyword family overlap
    (max 35), otherwise a fuzzy name score when names are > 60% similar.
    """
    score = 0

    system_code = (system.code or "").strip().lower()
    invoice_code = (invoice.code or "").strip().lower()
    if system_code and system_code == invoice_code:
        score += 50

    system_name = _system_charge_label(system).lower()
    invoice_name = (invoice.name or "").strip().lower()

    if system_name and system_name == invoice_name:
        return score + 40

    keyword_score = _keyword_family_score(
        f"{system_name} {system_code}",
        f"{invoice_name} {invoice_code}",
    )
    if keyword_score > 0:
        return score + keyword_score

    similarity = string_similarity(system_name, invoice_name)
    if similarity > 0.6:
        score += math.floor(similarity * 20)

    return score


def _system_charge_label(charge: SystemCharge) -> str:
    name = (charge.name or "").strip()
    if not name or name == "Unknown Charge":
        return (charge.code or "").strip()
    return name


def _keyword_family_score(system_text: str, invoice_text: str) -> int:
    score = 0
    for _, keywords, points in KEYWORD_FAMILIES:
        if any(k in system_text for k in keywords) and any(k in invoice_text for k in keywords):
            score += points
    return min(score, MAX_KEYWORD_SCORE)


def effective_rate_date(shipment: InvoiceShipment) -> datetime:
    """Date whose exchange rates apply to a shipment's charges."""
    found = first_valid_date(
        shipment.ship_date,
        shipment.delivery_date,
        shipment.invoice_date,
        shipment.extracted_at,
    )
    if found is None:
        return coerce_date(None, f"rate date for shipment {shipment.shipment_id}")
    return found


# ============================================
# Reconciliation
# ============================================

def reconcile_charges(
    system_charges: list[SystemCharge],
    invoice_charges: list[InvoiceCharge],
    rates: RateTable,
    base_currency: Optional[str] = None,
) -> ReconciliationResult:
    """
    Pair system charges with invoice charges and build comparison rows.

    Row order is fixed: system charges (matched or not) in their original
    order, then invoice-only charges in their original order. Applied ledger
    indices point into this sequence.
    """
    base_currency = base_currency or settings.base_currency
    result = ReconciliationResult(rates)

    # Tax lines are excluded from both sides
    system_pool: list[SystemCharge] = []
    for charge in system_charges:
        if is_tax_charge(charge.code, charge.name):
            result.excluded_tax_charges.append(charge)
        else:
            system_pool.append(charge)

    invoice_pool: list[InvoiceCharge] = []
    for charge in invoice_charges:
        coded = with_assigned_code(charge)
        if is_tax_charge(coded.code, coded.name):
            result.excluded_tax_charges.append(coded)
        else:
            invoice_pool.append(coded)

    used_invoice: set[int] = set()

    # ============================================
    # System-driven rows
    # ============================================
    for system in system_pool:
        best_index: Optional[int] = None
        best_score = 0

        for i, invoice in enumerate(invoice_pool):
            if i in used_invoice:
                continue
            score = score_charge_pair(system, invoice)
            if score > best_score:
                best_index, best_score = i, score

        if best_index is not None and best_score > MIN_PAIR_SCORE:
            invoice = invoice_pool[best_index]
            used_invoice.add(best_index)
            result.matched_charges.append(
                ChargePair(system_charge=system, invoice_charge=invoice, score=best_score)
            )
            result.rows.append(_matched_row(system, invoice, rates, base_currency))
        else:
            result.unmatched_system.append(system)
            result.rows.append(_system_only_row(system, rates, base_currency))

    # ============================================
    # Invoice-only rows
    # ============================================
    for i, invoice in enumerate(invoice_pool):
        if i in used_invoice:
            continue
        result.unmatched_invoice.append(invoice)
        result.rows.append(_invoice_only_row(invoice, rates, base_currency))

    result.rows = [r for r in result.rows if not is_tax_charge(r.code, r.name)]

    logger.info(
        f"Reconciled {len(system_pool)} system / {len(invoice_pool)} invoice charges: "
        f"{len(result.matched_charges)} matched, {len(result.unmatched_system)} system-only, "
        f"{len(result.unmatched_invoice)} invoice-only, "
        f"{len(result.excluded_tax_charges)} tax lines excluded"
    )

    return result


def _matched_row(
    system: SystemCharge,
    invoice: InvoiceCharge,
    rates: RateTable,
    base_currency: str,
) -> ComparisonRow:
    currency = invoice.currency or system.currency

    def in_row_currency(amount: float) -> float:
        return convert_amount(amount, system.currency, currency, rates)

    actual_cost = in_row_currency(system.actual_cost)
    actual_charge = in_row_currency(system.actual_charge)

    return ComparisonRow(
        code=system.code,
        name=system.name,
        currency=currency,
        invoice_amount=invoice.amount,
        system_quoted_cost=in_row_currency(system.quoted_cost),
        system_quoted_charge=in_row_currency(system.quoted_charge),
        system_actual_cost=actual_cost,
        system_actual_charge=actual_charge,
        variance_cost=round(invoice.amount - actual_cost, 2),
        profit=_profit(actual_charge, invoice.amount, currency, rates, base_currency),
        matched=True,
    )


def _system_only_row(system: SystemCharge, rates: RateTable, base_currency: str) -> ComparisonRow:
    return ComparisonRow(
        code=system.code,
        name=system.name,
        currency=system.currency,
        invoice_amount=0.0,
        system_quoted_cost=system.quoted_cost,
        system_quoted_charge=system.quoted_charge,
        system_actual_cost=system.actual_cost,
        system_actual_charge=system.actual_charge,
        variance_cost=round(-system.actual_cost, 2),
        profit=_profit(system.actual_charge, 0.0, system.currency, rates, base_currency),
        matched=False,
    )


def _invoice_only_row(invoice: InvoiceCharge, rates: RateTable, base_currency: str) -> ComparisonRow:
    return ComparisonRow(
        code=invoice.code or assign_charge_code(invoice.name),
        name=invoice.name,
        currency=invoice.currency,
        invoice_amount=invoice.amount,
        variance_cost=round(invoice.amount, 2),
        profit=_profit(0.0, invoice.amount, invoice.currency, rates, base_currency),
        matched=False,
    )


def _profit(
    actual_charge: float,
    invoice_amount: float,
    currency: str,
    rates: RateTable,
    base_currency: str,
) -> float:
    charge_base = convert_amount(actual_charge, currency, base_currency, rates)
    invoice_base = convert_amount(invoice_amount, currency, base_currency, rates)
    return round(charge_base - invoice_base, 2)
