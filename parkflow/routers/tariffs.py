# parkflow/routers/tariffs.py
"""Tariff catalogue per lot. Reads are open to any caller, writes need an operator."""

from fastapi import APIRouter, Depends, status
from parkflow.dependencies import get_tariff_service
from parkflow.schemas.tariff import TariffCreate, TariffOut, TariffUpdate
from parkflow.security import Caller, get_caller, ensure_operator
from parkflow.services.tariff_service import TariffService

router = APIRouter()


@router.get("/lots/{lot_id}/tariffs", response_model=list[TariffOut])
async def list_tariffs(
    lot_id: int,
    caller: Caller = Depends(get_caller),
    service: TariffService = Depends(get_tariff_service),
):
    return await service.list_for_lot(lot_id)


@router.post("/lots/{lot_id}/tariffs", response_model=TariffOut, status_code=status.HTTP_201_CREATED)
async def create_tariff(
    lot_id: int,
    body: TariffCreate,
    caller: Caller = Depends(get_caller),
    service: TariffService = Depends(get_tariff_service),
):
    ensure_operator(caller)
    return await service.create(lot_id, body.tariff_type, body.amount, body.conditions)


@router.put("/lots/{lot_id}/tariffs/{tariff_id}", response_model=TariffOut)
async def update_tariff(
    lot_id: int,
    tariff_id: int,
    body: TariffUpdate,
    caller: Caller = Depends(get_caller),
    service: TariffService = Depends(get_tariff_service),
):
    """
    Edit a tariff. If it was already billed, the returned tariff is a new
    row and the old one is retired.
    """
    ensure_operator(caller)
    return await service.update(
        tariff_id, lot_id,
        tariff_type=body.tariff_type,
        amount=body.amount,
        conditions=body.conditions,
        actor_id=caller.user_id,
    )


@router.delete("/lots/{lot_id}/tariffs/{tariff_id}")
async def remove_tariff(
    lot_id: int,
    tariff_id: int,
    caller: Caller = Depends(get_caller),
    service: TariffService = Depends(get_tariff_service),
):
    ensure_operator(caller)
    await service.remove(tariff_id, lot_id, actor_id=caller.user_id)
    return {"tariff_id": tariff_id, "status": "removed"}
