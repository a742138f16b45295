# parkflow/routers/occupancies.py
"""Physical stays: check-in, estimate, exit request, direct exit."""

from typing import Optional
from fastapi import APIRouter, Depends, status
from parkflow.dependencies import get_occupancy_manager
from parkflow.schemas.occupancy import CheckInRequest, DirectExitRequest, ExitQuoteOut, OccupancyOut
from parkflow.security import Caller, get_caller, ensure_operator, ensure_owner_or_operator
from parkflow.services.occupancy_service import ExitQuote, OccupancyManager

router = APIRouter()


def _quote_out(quote: ExitQuote) -> ExitQuoteOut:
    return ExitQuoteOut(
        occupancy_id=quote.occupancy.id,
        payment_id=quote.payment.id if quote.payment is not None else None,
        amount=quote.amount,
        elapsed_minutes=quote.elapsed_minutes,
        tariff_type=quote.tariff.tariff_type,
        tariff_source=quote.tariff.source,
        already_requested=quote.already_requested,
    )


@router.post("/occupancies/check-in", response_model=OccupancyOut, status_code=status.HTTP_201_CREATED)
async def check_in(
    body: CheckInRequest,
    caller: Caller = Depends(get_caller),
    manager: OccupancyManager = Depends(get_occupancy_manager),
):
    """
    Open a stay. With reservation_id the reserved space is taken over,
    without it this is a walk-in on an available space.
    """
    user_id = caller.user_id
    if body.user_id is not None and body.user_id != caller.user_id:
        ensure_operator(caller)
        user_id = body.user_id
    return await manager.check_in(body.space_id, body.vehicle_id, user_id, body.reservation_id)


@router.get("/occupancies/active", response_model=Optional[OccupancyOut])
async def active_occupancy(
    caller: Caller = Depends(get_caller),
    manager: OccupancyManager = Depends(get_occupancy_manager),
):
    """The caller's current stay, or null."""
    return await manager.active_for_user(caller.user_id)


@router.get("/occupancies/{occupancy_id}", response_model=OccupancyOut)
async def get_occupancy(
    occupancy_id: int,
    caller: Caller = Depends(get_caller),
    manager: OccupancyManager = Depends(get_occupancy_manager),
):
    occupancy = await manager.get(occupancy_id)
    ensure_owner_or_operator(caller, occupancy.user_id)
    return occupancy


@router.get("/occupancies/{occupancy_id}/estimate", response_model=ExitQuoteOut)
async def estimate(
    occupancy_id: int,
    caller: Caller = Depends(get_caller),
    manager: OccupancyManager = Depends(get_occupancy_manager),
):
    occupancy = await manager.get(occupancy_id)
    ensure_owner_or_operator(caller, occupancy.user_id)
    return _quote_out(await manager.estimate(occupancy_id))


@router.post("/occupancies/{occupancy_id}/exit-request", response_model=ExitQuoteOut)
async def request_exit(
    occupancy_id: int,
    caller: Caller = Depends(get_caller),
    manager: OccupancyManager = Depends(get_occupancy_manager),
):
    """Quote the stay and leave a pending payment for an operator to settle."""
    occupancy = await manager.get(occupancy_id)
    ensure_owner_or_operator(caller, occupancy.user_id)
    return _quote_out(await manager.request_exit(occupancy_id, requester_id=caller.user_id))


@router.post("/occupancies/{occupancy_id}/direct-exit", response_model=ExitQuoteOut)
async def direct_exit(
    occupancy_id: int,
    body: Optional[DirectExitRequest] = None,
    caller: Caller = Depends(get_caller),
    manager: OccupancyManager = Depends(get_occupancy_manager),
):
    """Operator closes the stay on the spot, optionally recording the payment."""
    ensure_operator(caller)
    body = body or DirectExitRequest()
    quote = await manager.direct_exit(
        occupancy_id, requester_id=caller.user_id, method_id=body.method_id, receipt_type=body.receipt_type
    )
    return _quote_out(quote)
