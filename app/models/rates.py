# app/models/rates.py

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field


class RateTable(BaseModel):
    """
    Exchange rates relative to a base currency.

    rates[X] is the number of units of X per 1 unit of the base currency.
    """

    base_currency: str = "CAD"
    rates: dict[str, float] = Field(default_factory=dict)
    timestamp: Optional[datetime] = None
    provider: str = "unknown"
    is_fallback: bool = False

    @property
    def is_identity(self) -> bool:
        return self.provider == "identity"
