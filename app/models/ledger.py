# app/models/ledger.py

from datetime import datetime
from decimal import Decimal
from typing import Optional, Literal
from pydantic import BaseModel, Field


ProcessingStatus = Literal[
    "ready_to_process",
    "partially_processed",
    "processed",
    "exception",
    "processed_with_exception",
]


class Money(BaseModel):
    """Monetary value as it crosses the billing boundary."""

    amount: Decimal
    currency: str

    @classmethod
    def of(cls, amount: float, currency: str) -> "Money":
        return cls(amount=Decimal(str(round(amount, 2))), currency=currency)


class ChargeApplicationRecord(BaseModel):
    charge_index: int
    charge_code: str
    charge_name: str
    status: Literal["applied", "unapplied"] = "applied"
    applied_at: datetime


class LedgerEntry(BaseModel):
    """Actual cost/charge written to the shipment bill for one applied row."""

    charge_index: int
    code: str
    name: str
    actual_cost: Money
    actual_charge: Money
    invoice_amount: Money
    invoice_reference: Optional[str] = None


class ShipmentLedger(BaseModel):
    """Persisted application state for one shipment."""

    shipment_id: str
    version: int = 0
    total_count: int = 0
    records: dict[int, ChargeApplicationRecord] = Field(default_factory=dict)
    entries: dict[int, LedgerEntry] = Field(default_factory=dict)
    status: ProcessingStatus = "ready_to_process"
    status_reason: Optional[str] = None

    @property
    def applied_count(self) -> int:
        return len(self.records)


# ============================================
# Batch results
# ============================================

IndexOutcome = Literal["applied", "unapplied", "skipped", "rejected"]


class IndexResult(BaseModel):
    index: int
    outcome: IndexOutcome
    reason: Optional[str] = None


class BatchResult(BaseModel):
    """Per-index report for an apply/unapply batch."""

    shipment_id: str
    results: list[IndexResult] = Field(default_factory=list)
    status: ProcessingStatus
    applied_count: int
    total_count: int

    @property
    def succeeded(self) -> list[int]:
        return [r.index for r in self.results if r.outcome in ("applied", "unapplied")]

    @property
    def skipped(self) -> list[int]:
        return [r.index for r in self.results if r.outcome == "skipped"]

    @property
    def rejected(self) -> list[int]:
        return [r.index for r in self.results if r.outcome == "rejected"]
