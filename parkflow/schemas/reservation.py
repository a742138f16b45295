from pydantic import BaseModel, field_validator
from datetime import datetime
from typing import Optional
from parkflow.utils.clock import to_naive_utc


class ReservationCreate(BaseModel):
    space_id: int
    vehicle_id: int
    start_time: datetime
    end_time: datetime
    tariff_id: Optional[int] = None

    @field_validator("start_time", "end_time")
    @classmethod
    def as_utc(cls, value: datetime) -> datetime:
        return to_naive_utc(value)


class ReservationStateUpdate(BaseModel):
    state: str               # confirmed | cancelled
    reason: Optional[str] = None


class AvailabilityQuery(BaseModel):
    space_id: int
    start_time: datetime
    end_time: datetime

    @field_validator("start_time", "end_time")
    @classmethod
    def as_utc(cls, value: datetime) -> datetime:
        return to_naive_utc(value)


class ReservationOut(BaseModel):
    id: int
    user_id: int
    space_id: int
    vehicle_id: int
    tariff_id: Optional[int]
    start_time: datetime
    end_time: datetime
    state: str
    created_at: Optional[datetime]
    cancelled_at: Optional[datetime]
    cancel_reason: Optional[str]

    class Config:
        from_attributes = True
