from fastapi import APIRouter, Depends, HTTPException

from storefront.dependencies.services import (
    get_actor,
    get_booking_service,
    get_lifecycle_manager,
    require_admin,
)
from storefront.schemas.appointment import (
    AppointmentRef,
    AppointmentListRequest,
    AppointmentListResponse,
    BookingRequest,
    BookingResult,
    BulkRequest,
    BulkResult,
    TransitionRequest,
    TransitionResult,
)
from storefront.schemas.common import Actor
from storefront.services import AppointmentLifecycleManager, BookingReservationService
from storefront.services.exceptions import ServiceError

router = APIRouter()


@router.post("/book", response_model=BookingResult)
async def book_appointment(
    req: BookingRequest,
    actor: Actor = Depends(get_actor),
    service: BookingReservationService = Depends(get_booking_service),
):
    try:
        return await service.book(req, actor)
    except ServiceError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc


@router.post("/list", response_model=AppointmentListResponse)
async def list_appointments(
    req: AppointmentListRequest,
    actor: Actor = Depends(get_actor),
    manager: AppointmentLifecycleManager = Depends(get_lifecycle_manager),
):
    try:
        return await manager.list_appointments(req, actor)
    except ServiceError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc


@router.post("/transition", response_model=TransitionResult)
async def transition_appointment(
    req: TransitionRequest,
    actor: Actor = Depends(get_actor),
    manager: AppointmentLifecycleManager = Depends(get_lifecycle_manager),
):
    return await manager.transition(req.appointment_id, req.target, actor)


@router.post("/confirm", response_model=TransitionResult)
async def confirm_appointment(
    req: AppointmentRef,
    actor: Actor = Depends(require_admin),
    manager: AppointmentLifecycleManager = Depends(get_lifecycle_manager),
):
    return await manager.confirm(req.appointment_id, actor)


@router.post("/cancel", response_model=TransitionResult)
async def cancel_appointment(
    req: AppointmentRef,
    actor: Actor = Depends(get_actor),
    manager: AppointmentLifecycleManager = Depends(get_lifecycle_manager),
):
    return await manager.cancel(req.appointment_id, actor)


@router.post("/bulk-cancel", response_model=BulkResult)
async def bulk_cancel_appointments(
    req: BulkRequest,
    actor: Actor = Depends(get_actor),
    manager: AppointmentLifecycleManager = Depends(get_lifecycle_manager),
):
    return await manager.bulk_cancel(req.appointment_ids, actor)


@router.post("/delete", response_model=TransitionResult)
async def delete_appointment(
    req: AppointmentRef,
    actor: Actor = Depends(require_admin),
    manager: AppointmentLifecycleManager = Depends(get_lifecycle_manager),
):
    return await manager.delete(req.appointment_id, actor)


@router.post("/bulk-delete", response_model=BulkResult)
async def bulk_delete_appointments(
    req: BulkRequest,
    actor: Actor = Depends(require_admin),
    manager: AppointmentLifecycleManager = Depends(get_lifecycle_manager),
):
    return await manager.bulk_delete(req.appointment_ids, actor)
