# app/core/confidence.py

"""
Composite scoring for invoice-shipment to system-shipment matching.

Scoring breakdown (0-200):
- References:      0-60 points
- Carrier:         0-40 points
- Companies:       0-35 points
- Addresses:       0-25 points
- Package/weight:  0-20 points
- Financial:       0-15 points
- Temporal:        0-5 points
"""

import re

from app.models import InvoiceShipment, SystemShipment, MatchScoreBreakdown, Party
from app.core.normalizers import (
    normalize_business_name,
    normalize_date,
    round_half_up,
    string_similarity,
)

MAX_SCORE = 200

_SEPARATORS = re.compile(r'[-_\s]')
_DBA = re.compile(r'\b(?:dba|d/b/a|doing business as)\s+(.+)$')


def calculate_match_score(invoice: InvoiceShipment, system: SystemShipment) -> MatchScoreBreakdown:
    """
    Score a candidate system shipment against an invoice shipment.

    Returns a MatchScoreBreakdown with per-dimension points and human-readable factors.
    """
    factors: list[str] = []

    # ============================================
    # References (0-60 points)
    # ============================================
    reference_score, reference_method = _score_references(
        invoice.reference_tokens, system.reference_tokens, factors
    )

    # ============================================
    # Carrier (0-40 points)
    # ============================================
    carrier_score, carrier_method = _score_carrier(invoice.carrier, system.carrier, factors)

    # ============================================
    # Companies (0-35 points)
    # ============================================
    company_score = _score_companies(invoice, system, factors)

    # ============================================
    # Addresses (0-25 points)
    # ============================================
    address_score = _score_addresses(invoice, system, factors)

    # ============================================
    # Package / weight (0-20 points)
    # ============================================
    package_score = _score_packages(invoice, system, factors)

    # ============================================
    # Financial (0-15 points)
    # ============================================
    financial_score = _score_financial(invoice.total_amount, system.total_amount, factors)

    # ============================================
    # Temporal (0-5 points)
    # ============================================
    temporal_score = _score_temporal(invoice, system, factors)

    total = (
        reference_score + carrier_score + company_score + address_score
        + package_score + financial_score + temporal_score
    )

    if reference_score > 0:
        primary_method = reference_method
    elif carrier_score > 20:
        primary_method = carrier_method
    elif company_score > 20:
        primary_method = "Company Intelligence"
    else:
        primary_method = "Multi-Dimensional Analysis"

    return MatchScoreBreakdown(
        reference_score=reference_score,
        carrier_score=carrier_score,
        company_score=company_score,
        address_score=address_score,
        package_score=package_score,
        financial_score=financial_score,
        temporal_score=temporal_score,
        total=min(total, MAX_SCORE),
        primary_method=primary_method,
        factors=factors,
    )


def _score_references(
    invoice_tokens: list[str],
    system_tokens: list[str],
    factors: list[str],
) -> tuple[int, str]:
    """
    Score reference tokens (0-60 points).

    Tiers are tried in order; the first tier any token pair satisfies wins.
    """
    if not invoice_tokens or not system_tokens:
        return 0, ""

    invoice_lower = [t.strip().lower() for t in invoice_tokens]
    system_lower = [t.strip().lower() for t in system_tokens]

    for inv in invoice_lower:
        for cand in system_lower:
            if inv == cand:
                factors.append(f"Exact reference match ({inv})")
                return 60, f"Super Exact Reference Match ({inv})"

    for inv in invoice_lower:
        inv_clean = _SEPARATORS.sub('', inv)
        for cand in system_lower:
            if len(inv_clean) >= 5 and inv_clean == _SEPARATORS.sub('', cand):
                factors.append(f"Reference pattern match ({inv} ~ {cand})")
                return 50, f"Pattern Reference Match ({inv})"

    for inv in invoice_lower:
        if len(inv) < 4:
            continue
        for cand in system_lower:
            similarity = string_similarity(inv, cand)
            if similarity >= 0.9:
                factors.append(f"Reference {similarity:.0%} similar ({inv} ~ {cand})")
                return 40, f"Fuzzy Reference Match ({inv})"

    for inv in invoice_lower:
        for cand in system_lower:
            if (len(inv) >= 5 and inv in cand) or (len(cand) >= 5 and cand in inv):
                factors.append(f"Reference contained in another ({inv} / {cand})")
                return 30, f"Partial Reference Match ({inv})"

    return 0, ""


def _score_carrier(
    invoice_carrier: str | None,
    system_carrier: str | None,
    factors: list[str],
) -> tuple[int, str]:
    """Score based on carrier name match (0-40 points)."""
    if not invoice_carrier or not system_carrier:
        return 0, ""

    inv = invoice_carrier.strip().lower()
    cand = system_carrier.strip().lower()

    if inv == cand:
        factors.append("Carrier exact match")
        return 40, "Carrier Exact Match"

    inv_normalized = normalize_business_name(inv)
    cand_normalized = normalize_business_name(cand)

    if len(inv_normalized) >= 5 and inv_normalized == cand_normalized:
        factors.append("Carrier match after removing legal suffixes")
        return 35, "Carrier Business Name Match"

    if _is_dba_match(inv, cand):
        factors.append("Carrier matched through DBA name")
        return 30, "Carrier DBA Match"

    similarity = string_similarity(inv_normalized or inv, cand_normalized or cand)
    if similarity * 40 >= 25:
        factors.append(f"Carrier name {similarity:.0%} similar")
        return round_half_up(similarity * 40), "Carrier Fuzzy Match"

    return 0, ""


def _is_dba_match(name_a: str, name_b: str) -> bool:
    """True when one name's 'doing business as' part appears in the other."""
    for name, other in ((name_a, name_b), (name_b, name_a)):
        match = _DBA.search(name)
        if not match:
            continue
        dba_name = normalize_business_name(match.group(1))
        other_normalized = normalize_business_name(other)
        if dba_name and other_normalized and (
            dba_name in other_normalized or other_normalized in dba_name
        ):
            return True
    return False


def _score_companies(invoice: InvoiceShipment, system: SystemShipment, factors: list[str]) -> float:
    """Score shipper and consignee names (0-35 points, 17.5 per side)."""
    origin = _company_similarity(invoice.origin.company, system.origin.company)
    destination = _company_similarity(invoice.destination.company, system.destination.company)

    if origin >= 0.95:
        factors.append("Shipper company match")
    if destination >= 0.95:
        factors.append("Consignee company match")

    return min(origin * 17.5 + destination * 17.5, 35.0)


def _company_similarity(a: str | None, b: str | None) -> float:
    if not a or not b:
        return 0.0

    a_lower = a.strip().lower()
    b_lower = b.strip().lower()
    if a_lower == b_lower:
        return 1.0

    a_normalized = normalize_business_name(a_lower)
    b_normalized = normalize_business_name(b_lower)
    if len(a_normalized) >= 3 and a_normalized == b_normalized:
        return 0.95

    similarity = string_similarity(a_normalized, b_normalized)
    return similarity if similarity >= 0.8 else 0.0


def _score_addresses(invoice: InvoiceShipment, system: SystemShipment, factors: list[str]) -> float:
    """Score origin and destination addresses (0-25 points, 12.5 per side)."""
    origin = _address_similarity(invoice.origin, system.origin)
    destination = _address_similarity(invoice.destination, system.destination)

    if origin >= 0.7 and destination >= 0.7:
        factors.append("Origin and destination addresses align")
    elif origin >= 0.7:
        factors.append("Origin address aligns")
    elif destination >= 0.7:
        factors.append("Destination address aligns")

    return min(origin * 12.5 + destination * 12.5, 25.0)


def _address_similarity(a: Party, b: Party) -> float:
    """Weighted blend: city 0.4, state 0.3, postal code 0.2, street 0.1."""
    score = 0.0

    if a.city and b.city:
        score += string_similarity(a.city.strip().lower(), b.city.strip().lower()) * 0.4

    if a.state and b.state and a.state.strip().lower() == b.state.strip().lower():
        score += 0.3

    if a.postal_code and b.postal_code:
        if _compact(a.postal_code) == _compact(b.postal_code):
            score += 0.2

    if a.street and b.street:
        score += string_similarity(a.street.strip().lower(), b.street.strip().lower()) * 0.1

    return score


def _compact(value: str) -> str:
    return re.sub(r'\s+', '', value).lower()


def _score_packages(invoice: InvoiceShipment, system: SystemShipment, factors: list[str]) -> int:
    """Score weight and package count (0-20 points)."""
    score = 0

    if invoice.weight > 0 and system.weight > 0:
        weight_diff = abs(invoice.weight - system.weight) / max(invoice.weight, system.weight)
        if weight_diff <= 0.05:
            factors.append("Weight within 5%")
            score += 10
        elif weight_diff <= 0.15:
            factors.append("Weight within 15%")
            score += 7
        elif weight_diff <= 0.30:
            score += 4

    invoice_count = invoice.package_count or 1
    system_count = system.package_count or 1
    if invoice_count == system_count:
        factors.append(f"Same piece count ({invoice_count})")
        score += 10
    elif abs(invoice_count - system_count) <= 2:
        score += 5

    return min(score, 20)


def _score_financial(invoice_total: float, system_total: float, factors: list[str]) -> int:
    """Score based on invoice vs shipment total (0-15 points)."""
    if invoice_total <= 0 or system_total <= 0:
        return 0

    diff_percent = abs(invoice_total - system_total) / max(invoice_total, system_total)

    if diff_percent <= 0.02:
        factors.append("Totals within 2%")
        return 15
    elif diff_percent <= 0.05:
        factors.append("Totals within 5%")
        return 12
    elif diff_percent <= 0.10:
        factors.append(f"Totals differ by {diff_percent:.1%}")
        return 8
    elif diff_percent <= 0.20:
        return 5
    elif diff_percent <= 0.50:
        return 2
    return 0


def _score_temporal(invoice: InvoiceShipment, system: SystemShipment, factors: list[str]) -> int:
    """Score based on invoice date vs ship date (0-5 points)."""
    invoice_date = normalize_date(invoice.invoice_date)
    system_date = normalize_date(system.ship_date or system.created_at)
    if invoice_date is None or system_date is None:
        return 0

    days_diff = abs((invoice_date - system_date).total_seconds()) / 86400

    if days_diff <= 1:
        factors.append("Invoiced within a day of shipping")
        return 5
    elif days_diff <= 7:
        factors.append(f"Invoiced {days_diff:.0f} days from ship date")
        return 3
    elif days_diff <= 30:
        return 1
    return 0
