# parkflow/routers/reservations.py
"""Reservations: create, list, availability, confirm/cancel."""

from typing import Optional
from fastapi import APIRouter, Depends, Query, status
from parkflow.dependencies import get_reservation_manager
from parkflow.models.reservation import ReservationState
from parkflow.schemas.reservation import AvailabilityQuery, ReservationCreate, ReservationOut, ReservationStateUpdate
from parkflow.security import Caller, get_caller, ensure_operator, ensure_owner_or_operator
from parkflow.services.reservation_service import ReservationManager

router = APIRouter()


@router.post("/reservations", response_model=ReservationOut, status_code=status.HTTP_201_CREATED)
async def create_reservation(
    body: ReservationCreate,
    caller: Caller = Depends(get_caller),
    manager: ReservationManager = Depends(get_reservation_manager),
):
    """Reserve a space for the caller's vehicle over [start_time, end_time)."""
    return await manager.create(
        user_id=caller.user_id,
        space_id=body.space_id,
        vehicle_id=body.vehicle_id,
        start_time=body.start_time,
        end_time=body.end_time,
        tariff_id=body.tariff_id,
    )


@router.get("/reservations", response_model=list[ReservationOut])
async def list_reservations(
    state: Optional[str] = Query(None),
    user_id: Optional[int] = Query(None, description="Operators only: list another user's reservations"),
    caller: Caller = Depends(get_caller),
    manager: ReservationManager = Depends(get_reservation_manager),
):
    owner = caller.user_id
    if user_id is not None and user_id != caller.user_id:
        ensure_operator(caller)
        owner = user_id
    return await manager.list_for_user(owner, state)


@router.get("/reservations/availability", summary="Is a space free over a window")
async def check_availability(
    query: AvailabilityQuery = Depends(),
    caller: Caller = Depends(get_caller),
    manager: ReservationManager = Depends(get_reservation_manager),
):
    available = await manager.check_availability(query.space_id, query.start_time, query.end_time)
    return {"space_id": query.space_id, "start_time": query.start_time, "end_time": query.end_time,
            "available": available}


@router.get("/reservations/{reservation_id}", response_model=ReservationOut)
async def get_reservation(
    reservation_id: int,
    caller: Caller = Depends(get_caller),
    manager: ReservationManager = Depends(get_reservation_manager),
):
    reservation = await manager.get(reservation_id)
    ensure_owner_or_operator(caller, reservation.user_id)
    return reservation


@router.patch("/reservations/{reservation_id}/state", response_model=ReservationOut)
async def update_reservation_state(
    reservation_id: int,
    body: ReservationStateUpdate,
    caller: Caller = Depends(get_caller),
    manager: ReservationManager = Depends(get_reservation_manager),
):
    """
    Operators confirm pending reservations; the owner or an operator may cancel.
    """
    reservation = await manager.get(reservation_id)
    if body.state == ReservationState.CANCELLED:
        ensure_owner_or_operator(caller, reservation.user_id)
    else:
        ensure_operator(caller)
    return await manager.update_state(reservation_id, body.state, actor_id=caller.user_id, reason=body.reason)
