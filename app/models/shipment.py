# app/models/shipment.py

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field

from app.models.invoice import Party


class SystemCharge(BaseModel):
    """
    A charge from the company's own rate for a shipment.

    cost = what is owed to the carrier, charge = what is billed to the customer.
    """

    code: str = "FRT"
    name: str = "Unknown Charge"
    currency: str = "CAD"
    quoted_cost: float = 0.0
    quoted_charge: float = 0.0
    actual_cost: float = 0.0
    actual_charge: float = 0.0


class SystemShipment(BaseModel):
    """A shipment record from the company's shipment repository."""

    id: str
    shipment_id: Optional[str] = None
    tracking_number: Optional[str] = None
    carrier: Optional[str] = None
    origin: Party = Field(default_factory=Party)
    destination: Party = Field(default_factory=Party)
    weight: float = 0.0
    package_count: Optional[int] = None
    created_at: Optional[datetime] = None
    ship_date: Optional[datetime] = None
    currency: str = "CAD"
    total_amount: float = 0.0
    status: Optional[str] = None
    charges: list[SystemCharge] = Field(default_factory=list)
    reference_tokens: list[str] = Field(default_factory=list)

    def identifiers(self) -> list[str]:
        return [v for v in (self.shipment_id, self.tracking_number) if v]
