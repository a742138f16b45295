from pydantic import BaseModel
from datetime import datetime
from decimal import Decimal
from typing import Optional


class PaymentOut(BaseModel):
    id: int
    occupancy_id: int
    amount: Decimal
    state: str
    method_id: Optional[int]
    received_amount: Optional[Decimal]
    change_amount: Optional[Decimal]
    receipt_type: Optional[str]
    receipt_code: Optional[str]
    is_simulated: bool
    created_at: Optional[datetime]
    settled_at: Optional[datetime]
    settled_by: Optional[int]

    class Config:
        from_attributes = True


class PendingPaymentOut(BaseModel):
    payment_id: int
    amount: Decimal
    created_at: Optional[datetime]
    occupancy_id: int
    user_id: int
    entry_time: datetime
    exit_requested_at: Optional[datetime]
    elapsed_minutes: Optional[int]
    space_id: int
    space_label: str
    vehicle_id: int
    plate_number: str


class SettlementOut(BaseModel):
    payment: PaymentOut
    already_settled: bool = False


class SettleAndPayRequest(BaseModel):
    occupancy_id: int
    method_id: int
    received_amount: Optional[Decimal] = None   # cash only
    receipt_type: str = "receipt"               # receipt | invoice


class CashSettlementOut(BaseModel):
    payment: PaymentOut
    change: Optional[Decimal] = None


class ReceiptOut(BaseModel):
    payment_id: int
    receipt_type: str
    series: str
    number: int
    code: str
    issued_at: datetime
    amount: Decimal
    currency: str
    lot_name: str
    lot_address: Optional[str]
    space_label: str
    plate_number: Optional[str]
    entry_time: datetime
    exit_time: Optional[datetime]
    elapsed_minutes: Optional[int]
    is_simulated: bool

    class Config:
        from_attributes = True
