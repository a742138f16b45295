from pydantic import BaseModel
from datetime import datetime
from decimal import Decimal
from typing import Optional


class CheckInRequest(BaseModel):
    space_id: int
    vehicle_id: int
    reservation_id: Optional[int] = None
    user_id: Optional[int] = None     # operators checking a customer in; defaults to the caller


class DirectExitRequest(BaseModel):
    method_id: Optional[int] = None
    receipt_type: str = "receipt"     # receipt | invoice


class OccupancyOut(BaseModel):
    id: int
    reservation_id: Optional[int]
    user_id: int
    space_id: int
    vehicle_id: int
    entry_time: datetime
    exit_requested_at: Optional[datetime]
    exit_confirmed_at: Optional[datetime]
    elapsed_minutes: Optional[int]
    computed_amount: Optional[Decimal]
    state: str

    class Config:
        from_attributes = True


class ExitQuoteOut(BaseModel):
    occupancy_id: int
    payment_id: Optional[int] = None
    amount: Decimal
    elapsed_minutes: int
    tariff_type: str
    tariff_source: str
    already_requested: bool = False
