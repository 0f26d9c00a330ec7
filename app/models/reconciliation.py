# app/models/reconciliation.py

from typing import Optional, Literal
from pydantic import BaseModel, Field

from app.models.invoice import InvoiceCharge
from app.models.shipment import SystemCharge


Recommendation = Literal["approve", "review", "reject"]


class ComparisonRow(BaseModel):
    """One line of the invoice-vs-system charge comparison."""

    code: str
    name: str
    currency: str = "CAD"
    invoice_amount: float = 0.0
    system_quoted_cost: float = 0.0
    system_quoted_charge: float = 0.0
    system_actual_cost: float = 0.0
    system_actual_charge: float = 0.0
    variance_cost: float = 0.0
    profit: float = 0.0
    matched: bool = False
    auto_approval_recommendation: Optional[Recommendation] = None
    auto_approval_confidence: int = Field(default=0, ge=0, le=100)
    auto_approval_reason: Optional[str] = None


class ChargePair(BaseModel):
    system_charge: SystemCharge
    invoice_charge: InvoiceCharge
    score: int


class ApprovalDecision(BaseModel):
    recommendation: Recommendation
    confidence: int = Field(ge=0, le=100)
    reason: str


class InvoiceChargeGroups(BaseModel):
    """Invoice charges bucketed by family, used for freight comparisons."""

    freight: list[InvoiceCharge] = Field(default_factory=list)
    fuel: list[InvoiceCharge] = Field(default_factory=list)
    other: list[InvoiceCharge] = Field(default_factory=list)
