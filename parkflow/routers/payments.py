# parkflow/routers/payments.py
"""Payments: pending queue, settlement, pay-at-exit, receipts."""

from fastapi import APIRouter, Depends
from parkflow.dependencies import get_payment_settlement
from parkflow.schemas.payment import (
    CashSettlementOut, PaymentOut, PendingPaymentOut, ReceiptOut, SettleAndPayRequest, SettlementOut,
)
from parkflow.security import Caller, get_caller, ensure_operator, ensure_owner_or_operator
from parkflow.services.payment_service import PaymentSettlement, SettlementResult

router = APIRouter()


def _settlement_out(result: SettlementResult) -> SettlementOut:
    return SettlementOut(payment=PaymentOut.model_validate(result.payment), already_settled=result.already_settled)


async def _ensure_can_see(caller: Caller, payment_id: int, settlement: PaymentSettlement):
    payment = await settlement.get(payment_id)
    if not caller.is_operator:
        occupancy = settlement.occupancies.get_or_404(payment.occupancy_id)
        ensure_owner_or_operator(caller, occupancy.user_id)
    return payment


@router.get("/lots/{lot_id}/payments/pending", response_model=list[PendingPaymentOut])
async def list_pending(
    lot_id: int,
    caller: Caller = Depends(get_caller),
    settlement: PaymentSettlement = Depends(get_payment_settlement),
):
    """Operator queue of exit requests waiting for payment, oldest first."""
    ensure_operator(caller)
    views = await settlement.list_pending(lot_id)
    return [
        PendingPaymentOut(
            payment_id=v.payment.id,
            amount=v.payment.amount,
            created_at=v.payment.created_at,
            occupancy_id=v.occupancy.id,
            user_id=v.occupancy.user_id,
            entry_time=v.occupancy.entry_time,
            exit_requested_at=v.occupancy.exit_requested_at,
            elapsed_minutes=v.occupancy.elapsed_minutes,
            space_id=v.space.id,
            space_label=v.space.label,
            vehicle_id=v.vehicle.id,
            plate_number=v.vehicle.plate_number,
        )
        for v in views
    ]


@router.get("/payments/{payment_id}", response_model=PaymentOut)
async def get_payment(
    payment_id: int,
    caller: Caller = Depends(get_caller),
    settlement: PaymentSettlement = Depends(get_payment_settlement),
):
    return await _ensure_can_see(caller, payment_id, settlement)


@router.post("/payments/{payment_id}/settle", response_model=SettlementOut)
async def settle(
    payment_id: int,
    caller: Caller = Depends(get_caller),
    settlement: PaymentSettlement = Depends(get_payment_settlement),
):
    """
    Confirm a pending payment. Closes the stay, frees the space and completes
    the reservation. Settling twice returns the payment with already_settled.
    """
    ensure_operator(caller)
    return _settlement_out(await settlement.settle(payment_id, operator_id=caller.user_id))


@router.post("/payments/{payment_id}/simulate", response_model=SettlementOut)
async def simulate(
    payment_id: int,
    caller: Caller = Depends(get_caller),
    settlement: PaymentSettlement = Depends(get_payment_settlement),
):
    """Demo settlement; the payment is flagged as simulated."""
    ensure_operator(caller)
    return _settlement_out(await settlement.simulate(payment_id, operator_id=caller.user_id))


@router.post("/payments/settle-and-pay", response_model=CashSettlementOut)
async def settle_and_pay(
    body: SettleAndPayRequest,
    caller: Caller = Depends(get_caller),
    settlement: PaymentSettlement = Depends(get_payment_settlement),
):
    ensure_operator(caller)
    result = await settlement.settle_and_pay(
        body.occupancy_id,
        body.method_id,
        operator_id=caller.user_id,
        received_amount=body.received_amount,
        receipt_type=body.receipt_type,
    )
    return CashSettlementOut(payment=PaymentOut.model_validate(result.payment), change=result.change)


@router.get("/payments/{payment_id}/receipt", response_model=ReceiptOut)
async def get_receipt(
    payment_id: int,
    caller: Caller = Depends(get_caller),
    settlement: PaymentSettlement = Depends(get_payment_settlement),
):
    await _ensure_can_see(caller, payment_id, settlement)
    return ReceiptOut.model_validate(await settlement.get_receipt(payment_id))
