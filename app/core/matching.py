# app/core/matching.py

"""
Shipment matching engine.

Pairs each shipment on a carrier invoice with the system shipment it bills
for. Two phases:
1. Exact identifier equality (shipment ID / tracking number) short-circuits
2. Every candidate is scored on seven dimensions (max 200 points) and the
   best total wins
"""

import logging
from datetime import datetime
from typing import Iterable, Optional

from app.models import (
    InvoiceShipment,
    SystemShipment,
    MatchResult,
    MatchScoreBreakdown,
    EXACT_ID_METHOD,
    MANUAL_METHOD,
)
from app.core.confidence import calculate_match_score, MAX_SCORE
from app.core.normalizers import clamp, round_half_up
from app.config import get_settings

settings = get_settings()
logger = logging.getLogger(__name__)


class MatchRun:
    """Match results for every shipment on one invoice."""

    def __init__(self):
        self.results: list[tuple[InvoiceShipment, MatchResult]] = []
        self.pool_size: int = 0
        self.duration_ms: int = 0

    @property
    def auto_accepted(self) -> list[tuple[InvoiceShipment, MatchResult]]:
        return [(s, r) for s, r in self.results if r.status == "auto_accepted"]

    @property
    def needs_confirmation(self) -> list[tuple[InvoiceShipment, MatchResult]]:
        return [(s, r) for s, r in self.results if r.status == "needs_confirmation"]

    @property
    def unmatched(self) -> list[tuple[InvoiceShipment, MatchResult]]:
        return [(s, r) for s, r in self.results if not r.matched]

    def to_dict(self) -> dict:
        """Convert to dictionary for API response."""
        return {
            "results": [
                {
                    "invoice_shipment_id": shipment.shipment_id,
                    "match": result.model_dump(),
                }
                for shipment, result in self.results
            ],
            "summary": {
                "total": len(self.results),
                "auto_accepted": len(self.auto_accepted),
                "needs_confirmation": len(self.needs_confirmation),
                "no_match": len(self.unmatched),
                "pool_size": self.pool_size,
            },
            "duration_ms": self.duration_ms,
        }


def match_shipment(
    invoice: InvoiceShipment,
    candidate_pool: Iterable[SystemShipment],
    auto_accept_threshold: Optional[int] = None,
    min_score: Optional[float] = None,
) -> MatchResult:
    """
    Find the system shipment an invoice shipment corresponds to.

    Ties on total score go to the candidate that appears first in the pool,
    so callers must pass the pool in a stable order.
    """
    if auto_accept_threshold is None:
        auto_accept_threshold = settings.auto_accept_threshold
    if min_score is None:
        min_score = settings.min_match_score

    candidates = list(candidate_pool)

    # ============================================
    # Phase 1: Exact identifier match
    # ============================================
    exact = _find_exact_identifier_match(invoice, candidates)
    if exact is not None:
        logger.info(f"Invoice shipment {invoice.shipment_id} matched {exact.id} by identifier")
        return MatchResult(
            matched_shipment_id=exact.id,
            confidence=100,
            method=EXACT_ID_METHOD,
            matched=True,
            status="auto_accepted",
        )

    # ============================================
    # Phase 2: Weighted composite scoring
    # ============================================
    best: Optional[tuple[SystemShipment, MatchScoreBreakdown]] = None

    for candidate in candidates:
        score = calculate_match_score(invoice, candidate)
        if score.total < min_score:
            continue
        if best is None or score.total > best[1].total:
            best = (candidate, score)

    if best is None:
        logger.info(
            f"No candidate reached {min_score} points for invoice shipment "
            f"{invoice.shipment_id} ({len(candidates)} candidates)"
        )
        return MatchResult()

    candidate, score = best
    confidence = int(clamp(round_half_up(score.total / MAX_SCORE * 100)))
    status = "auto_accepted" if confidence >= auto_accept_threshold else "needs_confirmation"

    logger.info(
        f"Invoice shipment {invoice.shipment_id} -> {candidate.id}: "
        f"{score.total:.1f}/{MAX_SCORE} ({confidence}%, {status})"
    )

    return MatchResult(
        matched_shipment_id=candidate.id,
        confidence=confidence,
        method=score.primary_method,
        matched=True,
        status=status,
        breakdown=score,
    )


def match_invoice(
    shipments: list[InvoiceShipment],
    candidate_pool: list[SystemShipment],
) -> MatchRun:
    """Match every shipment on an invoice, sequentially, against one pool snapshot."""
    start_time = datetime.now()
    run = MatchRun()
    run.pool_size = len(candidate_pool)

    for shipment in shipments:
        run.results.append((shipment, match_shipment(shipment, candidate_pool)))

    run.duration_ms = int((datetime.now() - start_time).total_seconds() * 1000)
    return run


def manual_match(system_shipment_id: str) -> MatchResult:
    """A user-chosen match. Always confidence 100."""
    return MatchResult(
        matched_shipment_id=system_shipment_id,
        confidence=100,
        method=MANUAL_METHOD,
        matched=True,
        status="manual",
    )


def resolve_match(current: Optional[MatchResult], proposed: MatchResult) -> MatchResult:
    """
    Decide which match an invoice shipment keeps.

    A shipment holds one match at a time: a new result replaces the old one,
    except that an automatic result never displaces a manual match.
    """
    if current is not None and current.is_manual and not proposed.is_manual:
        return current
    return proposed


def _find_exact_identifier_match(
    invoice: InvoiceShipment,
    candidates: list[SystemShipment],
) -> Optional[SystemShipment]:
    invoice_ids = {_identifier_key(v) for v in invoice.identifiers()}
    invoice_ids.discard("")
    if not invoice_ids:
        return None

    for candidate in candidates:
        for value in candidate.identifiers():
            if _identifier_key(value) in invoice_ids:
                return candidate
    return None


def _identifier_key(value: str) -> str:
    return value.strip().lower()

