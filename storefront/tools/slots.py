from fastapi import APIRouter, Depends, HTTPException

from storefront.dependencies.services import (
    get_availability_calculator,
    get_slot_registry,
    require_admin,
)
from storefront.schemas.common import Actor
from storefront.schemas.slots import (
    AvailabilityRequest,
    AvailabilityResponse,
    CapacityListResponse,
    CapacityUpdateRequest,
    SlotConfig,
)
from storefront.services import AvailabilityCalculator, SlotCapacityRegistry
from storefront.services.exceptions import ServiceError

router = APIRouter()


@router.post("/availability", response_model=AvailabilityResponse)
async def day_availability(
    req: AvailabilityRequest,
    calculator: AvailabilityCalculator = Depends(get_availability_calculator),
):
    try:
        return await calculator.day_availability(req.date)
    except ServiceError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc


@router.get("/capacity", response_model=CapacityListResponse)
async def list_capacities(
    registry: SlotCapacityRegistry = Depends(get_slot_registry),
):
    return CapacityListResponse(
        default_capacity=registry.default_capacity,
        capacities=await registry.list_capacities(),
        configs=await registry.list_configs(),
    )


@router.post("/capacity", response_model=SlotConfig)
async def set_capacity(
    req: CapacityUpdateRequest,
    actor: Actor = Depends(require_admin),
    registry: SlotCapacityRegistry = Depends(get_slot_registry),
):
    try:
        return await registry.set_capacity(req.slot_label, req.capacity)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except ServiceError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
