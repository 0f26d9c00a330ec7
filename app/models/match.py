# app/models/match.py

from typing import Optional, Literal
from pydantic import BaseModel, Field


# ============================================
# Shipment match scoring
# ============================================

class MatchScoreBreakdown(BaseModel):
    """Breakdown of how a candidate's 200-point score was calculated."""

    reference_score: float = Field(ge=0, le=60, description="0-60 points for reference tokens")
    carrier_score: float = Field(ge=0, le=40, description="0-40 points for carrier name")
    company_score: float = Field(ge=0, le=35, description="0-35 points for shipper/consignee")
    address_score: float = Field(ge=0, le=25, description="0-25 points for addresses")
    package_score: float = Field(ge=0, le=20, description="0-20 points for weight and pieces")
    financial_score: float = Field(ge=0, le=15, description="0-15 points for invoice total")
    temporal_score: float = Field(ge=0, le=5, description="0-5 points for date proximity")
    total: float = Field(ge=0, le=200)
    primary_method: str = "Multi-Dimensional Analysis"
    factors: list[str] = Field(default_factory=list, description="Human-readable factors")


# ============================================
# Match result
# ============================================

MatchStatus = Literal["auto_accepted", "needs_confirmation", "no_match", "manual"]

EXACT_ID_METHOD = "Exact Shipment ID Match"
MANUAL_METHOD = "Manual Match"
NO_MATCH_METHOD = "No Match Found"


class MatchResult(BaseModel):
    """The match chosen for one invoice shipment."""

    matched_shipment_id: Optional[str] = None
    confidence: int = Field(default=0, ge=0, le=100)
    method: str = NO_MATCH_METHOD
    matched: bool = False
    status: MatchStatus = "no_match"
    breakdown: Optional[MatchScoreBreakdown] = None

    @property
    def is_manual(self) -> bool:
        return self.status == "manual"
