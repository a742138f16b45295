# parkflow/routers/spaces.py
"""Spaces: lookup and operator maintenance (disable / enable)."""

from fastapi import APIRouter, Depends
from parkflow.dependencies import get_space_registry
from parkflow.models.space import Space
from parkflow.schemas.space import SpaceOut, SpaceStatusUpdate
from parkflow.security import Caller, get_caller, ensure_operator
from parkflow.services.space_registry import SpaceRegistry

router = APIRouter()


@router.get("/lots/{lot_id}/spaces", response_model=list[SpaceOut])
def list_spaces(
    lot_id: int,
    caller: Caller = Depends(get_caller),
    registry: SpaceRegistry = Depends(get_space_registry),
):
    return registry.spaces.query().filter(Space.lot_id == lot_id).order_by(Space.label).all()


@router.get("/spaces/{space_id}", response_model=SpaceOut)
def get_space(
    space_id: int,
    caller: Caller = Depends(get_caller),
    registry: SpaceRegistry = Depends(get_space_registry),
):
    return registry.get(space_id)


@router.put("/spaces/{space_id}/status", response_model=SpaceOut, summary="Disable or re-enable a space")
async def set_space_status(
    space_id: int,
    body: SpaceStatusUpdate,
    caller: Caller = Depends(get_caller),
    registry: SpaceRegistry = Depends(get_space_registry),
):
    """Only an available space can be disabled; reserved or occupied spaces answer 409."""
    ensure_operator(caller)
    return await registry.set_disabled(space_id, body.disabled)
