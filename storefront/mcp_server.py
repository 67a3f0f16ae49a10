# storefront/mcp_server.py
from __future__ import annotations

import logging
from datetime import date as date_type
from typing import List, Optional

from mcp.server.fastmcp import Context, FastMCP
from pydantic import BaseModel, Field

from storefront.dependencies.services import get_backend_client_cached
from storefront.schemas.appointment import BookingRequest, BookingResult, TransitionResult
from storefront.schemas.common import Actor, ActorRole
from storefront.schemas.slots import SlotAvailability
from storefront.services import (
    AppointmentLifecycleManager,
    AvailabilityCalculator,
    BookingReservationService,
)

log = logging.getLogger("storefront.mcp")

# Name shown to clients connecting the AI front desk
mcp = FastMCP("storefront_frontdesk")


class AvailabilityInput(BaseModel):
    date: date_type = Field(..., description="Local calendar date, e.g. '2026-10-21'")


class AvailabilityOutput(BaseModel):
    date: date_type
    timezone: str
    open_slots: List[SlotAvailability]


class BookInput(BaseModel):
    customer_id: str = Field(..., description="Customer the appointment is for")
    service_name: str = Field(..., description="Service name, e.g. 'Classic Haircut'")
    date: date_type = Field(..., description="Local calendar date")
    slot_label: str = Field(..., description="Slot start time, e.g. '09:30'")
    notes: Optional[str] = None


class CancelInput(BaseModel):
    customer_id: str
    appointment_id: str


@mcp.tool(name="slots_availability", description="List bookable slots with free seats for a date")
async def slots_availability(input: AvailabilityInput, ctx: Context) -> AvailabilityOutput:
    log.debug("slots_availability input=%s", input.model_dump())
    calculator = AvailabilityCalculator(get_backend_client_cached())
    day = await calculator.day_availability(input.date)
    out = AvailabilityOutput(
        date=day.date,
        timezone=day.timezone,
        open_slots=[slot for slot in day.slots if not slot.closed and not slot.full],
    )
    log.debug("slots_availability output=%s", out.model_dump())
    return out


@mcp.tool(name="appointments_book", description="Book a slot for a customer (pending until the store confirms)")
async def appointments_book(input: BookInput, ctx: Context) -> BookingResult:
    log.debug("appointments_book input=%s", input.model_dump())
    service = BookingReservationService(get_backend_client_cached())
    result = await service.book(
        BookingRequest(
            service_name=input.service_name,
            date=input.date,
            slot_label=input.slot_label,
            notes=input.notes,
        ),
        Actor(actor_id=input.customer_id, role=ActorRole.CUSTOMER),
    )
    log.debug("appointments_book output=%s", result.model_dump())
    return result


@mcp.tool(name="appointments_cancel", description="Cancel a customer's upcoming appointment")
async def appointments_cancel(input: CancelInput, ctx: Context) -> TransitionResult:
    log.debug("appointments_cancel input=%s", input.model_dump())
    manager = AppointmentLifecycleManager(get_backend_client_cached())
    result = await manager.cancel(
        input.appointment_id,
        Actor(actor_id=input.customer_id, role=ActorRole.CUSTOMER),
    )
    log.debug("appointments_cancel output=%s", result.model_dump())
    return result


@mcp.tool(name="ping", description="Health check")
async def ping(message: str) -> str:
    log.debug("ping %s", message)
    return f"pong: {message}"
