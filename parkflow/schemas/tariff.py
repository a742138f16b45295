from pydantic import BaseModel
from datetime import datetime
from decimal import Decimal
from typing import Optional


class TariffCreate(BaseModel):
    tariff_type: str          # hourly | half-day | day | week | month
    amount: Decimal
    conditions: Optional[str] = None


class TariffUpdate(BaseModel):
    tariff_type: Optional[str] = None
    amount: Optional[Decimal] = None
    conditions: Optional[str] = None


class TariffOut(BaseModel):
    id: int
    lot_id: int
    tariff_type: str
    amount: Decimal
    conditions: Optional[str]
    created_at: Optional[datetime]

    class Config:
        from_attributes = True
