# app/models/invoice.py

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field


class Party(BaseModel):
    """Company and address for one end of a shipment."""

    company: Optional[str] = None
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None


class InvoiceCharge(BaseModel):
    """A single charge line extracted from a carrier invoice."""

    code: Optional[str] = None
    name: str = "Unknown Charge"
    currency: str = "CAD"
    amount: float = 0.0


class InvoiceReferences(BaseModel):
    customer_ref: Optional[str] = None
    invoice_ref: Optional[str] = None
    manifest_ref: Optional[str] = None
    other: list[str] = Field(default_factory=list)


class InvoiceShipment(BaseModel):
    """One shipment as extracted from a carrier invoice."""

    shipment_id: Optional[str] = None
    tracking_number: Optional[str] = None
    carrier: Optional[str] = None
    origin: Party = Field(default_factory=Party)
    destination: Party = Field(default_factory=Party)
    weight: float = 0.0
    package_count: Optional[int] = None
    total_amount: float = 0.0
    currency: str = "CAD"
    invoice_date: Optional[datetime] = None
    ship_date: Optional[datetime] = None
    delivery_date: Optional[datetime] = None
    extracted_at: Optional[datetime] = None
    charges: list[InvoiceCharge] = Field(default_factory=list)
    references: InvoiceReferences = Field(default_factory=InvoiceReferences)
    reference_tokens: list[str] = Field(default_factory=list)

    def identifiers(self) -> list[str]:
        return [v for v in (self.shipment_id, self.tracking_number) if v]
