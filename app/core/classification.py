# app/core/classification.py

"""
Auto-approval classification for comparison rows.

Decides whether a reconciled charge can be billed unattended (approve),
needs a human (review), or should be disputed with the carrier (reject).

Freight lines are judged against the sum of the invoice's freight and fuel
lines, since carriers often bundle fuel into the base rate, and get looser
thresholds than every other charge type.
"""

import re
from dataclasses import dataclass

from app.models import (
    ComparisonRow,
    InvoiceCharge,
    InvoiceChargeGroups,
    ApprovalDecision,
    RateTable,
    Recommendation,
)
from app.core.charges import is_tax_charge
from app.core.currency import convert_amount
from app.core.normalizers import clamp, round_half_up
from app.config import get_settings

settings = get_settings()

_FREIGHT_ROW = re.compile(r'freight|frt|base|transport')
_FREIGHT_CHARGE = re.compile(r'base|freight|transport|ground|delivery')
_FUEL_CHARGE = re.compile(r'fuel|fsc|surcharge')


@dataclass(frozen=True)
class VarianceTier:
    """Variance up to max_percent gets recommendation at base - slope * variance."""

    max_percent: float
    recommendation: Recommendation
    base: float
    slope: float


FREIGHT_TIERS = (
    VarianceTier(settings.freight_approve_variance_pct, "approve", 100, 4),
    VarianceTier(settings.freight_review_variance_pct, "review", 100, 2),
    VarianceTier(float("inf"), "reject", 50, 1),
)

STANDARD_TIERS = (
    VarianceTier(settings.standard_approve_variance_pct, "approve", 100, 30),
    VarianceTier(settings.standard_review_variance_pct, "review", 100, 5),
    VarianceTier(float("inf"), "reject", 50, 2.5),
)


def group_invoice_charges(charges: list[InvoiceCharge]) -> InvoiceChargeGroups:
    """Bucket invoice charges into freight, fuel and everything else."""
    groups = InvoiceChargeGroups()
    for charge in charges:
        text = f"{charge.name or ''} {charge.code or ''}".lower()
        if _FREIGHT_CHARGE.search(text):
            groups.freight.append(charge)
        if _FUEL_CHARGE.search(text):
            groups.fuel.append(charge)
        if not _FREIGHT_CHARGE.search(text) and not _FUEL_CHARGE.search(text):
            groups.other.append(charge)
    return groups


def is_freight_row(row: ComparisonRow) -> bool:
    if (row.code or "").upper() == "FRT":
        return True
    return bool(_FREIGHT_ROW.search(f"{row.name or ''} {row.code or ''}".lower()))


def classify_row(
    row: ComparisonRow,
    groups: InvoiceChargeGroups,
    rates: RateTable,
    base_currency: str | None = None,
) -> ApprovalDecision:
    """
    Classify one comparison row.

    Returns an ApprovalDecision with recommendation, confidence (0-100) and reason.
    """
    base_currency = base_currency or settings.base_currency

    # ============================================
    # Unmatched rows always go to a human
    # ============================================
    if not row.matched:
        system_amounts = (
            row.system_quoted_cost,
            row.system_quoted_charge,
            row.system_actual_cost,
            row.system_actual_charge,
        )
        missing = "system" if not any(system_amounts) else "invoice"
        return ApprovalDecision(
            recommendation="review",
            confidence=0,
            reason=f"{row.name} has no matching {missing} charge; manual review required",
        )

    system_cost = convert_amount(row.system_actual_cost, row.currency, base_currency, rates)

    # ============================================
    # Freight: compare against freight + fuel lines
    # ============================================
    if is_freight_row(row):
        bundled = _unique([*groups.freight, *groups.fuel])
        if bundled:
            reference = sum(
                convert_amount(c.amount, c.currency, base_currency, rates) for c in bundled
            )
            basis = f"freight + fuel invoice lines ({len(bundled)})"
        else:
            reference = convert_amount(row.invoice_amount, row.currency, base_currency, rates)
            basis = "invoice amount"
        tiers = FREIGHT_TIERS
    else:
        reference = convert_amount(row.invoice_amount, row.currency, base_currency, rates)
        tiers = STANDARD_TIERS
        basis = "invoice amount"

    variance = variance_percent(reference, system_cost)
    tier = next(t for t in tiers if variance <= t.max_percent)
    confidence = int(clamp(round_half_up(tier.base - variance * tier.slope)))

    return ApprovalDecision(
        recommendation=tier.recommendation,
        confidence=confidence,
        reason=(
            f"{tier.recommendation.capitalize()}: {basis} {reference:,.2f} {base_currency} vs "
            f"system cost {system_cost:,.2f} {base_currency} ({variance:.1f}% variance)"
        ),
    )


def classify_rows(
    rows: list[ComparisonRow],
    invoice_charges: list[InvoiceCharge],
    rates: RateTable,
    base_currency: str | None = None,
) -> list[ComparisonRow]:
    """Return copies of rows with their auto-approval fields filled in."""
    groups = group_invoice_charges(
        [c for c in invoice_charges if not is_tax_charge(c.code, c.name)]
    )
    classified = []
    for row in rows:
        decision = classify_row(row, groups, rates, base_currency)
        classified.append(row.model_copy(update={
            "auto_approval_recommendation": decision.recommendation,
            "auto_approval_confidence": decision.confidence,
            "auto_approval_reason": decision.reason,
        }))
    return classified


def variance_percent(reference: float, system_cost: float) -> float:
    if system_cost == 0:
        return 100.0
    return abs(reference - system_cost) / abs(system_cost) * 100


def _unique(charges: list[InvoiceCharge]) -> list[InvoiceCharge]:
    seen: set[int] = set()
    result = []
    for charge in charges:
        if id(charge) not in seen:
            seen.add(id(charge))
            result.append(charge)
    return result
