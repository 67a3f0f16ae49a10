from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from storefront.clients.backend import BackendClient
from storefront.config import Settings, get_settings
from storefront.schemas.appointment import BookingRequest, BookingResult
from storefront.schemas.common import RETRY_HINT, Actor, FailureCode
from storefront.schemas.events import AppointmentCreated
from storefront.services import slot_grid
from storefront.services.events import ChangeFeed, get_change_feed
from storefront.services.exceptions import ServiceError
from storefront.services.mock_store import AppointmentRepository, get_mock_store
from storefront.services.notifications import NotificationDispatcher, build_dispatcher
from storefront.services.slots import SlotCapacityRegistry

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class BookingReservationService:
    """Create pending appointments without exceeding a slot's capacity.

    With ``atomic_reservations`` enabled the seat check and the insert happen
    in one repository call. Otherwise the count is read first and the insert
    issued afterwards, which lets concurrent callers contending for the last
    seat over-book it.
    """

    def __init__(
        self,
        client: BackendClient,
        *,
        registry: SlotCapacityRegistry | None = None,
        repository: AppointmentRepository | None = None,
        feed: ChangeFeed | None = None,
        dispatcher: NotificationDispatcher | None = None,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._client = client
        self._settings = settings or get_settings()
        self._registry = registry or SlotCapacityRegistry(client, settings=self._settings)
        self._repository = repository or get_mock_store().appointments
        self._feed = feed or get_change_feed()
        self._dispatcher = dispatcher or build_dispatcher(client)
        self._clock = clock

    async def book(self, request: BookingRequest, actor: Actor) -> BookingResult:
        """Resolve the acting customer and desired instant, then book."""

        if actor.is_admin:
            customer_id = request.customer_id
            if not customer_id:
                return BookingResult(
                    status="failed",
                    failure=FailureCode.NOT_FOUND,
                    message="customer_id is required when booking on behalf of a customer.",
                )
        else:
            customer_id = actor.actor_id

        if request.appointment_instant is not None:
            desired = request.appointment_instant
        else:
            if not slot_grid.is_valid_label(request.slot_label or ""):
                return BookingResult(
                    status="failed",
                    failure=FailureCode.SLOT_CLOSED,
                    slot_label=request.slot_label,
                    message=f"{request.slot_label} is not a bookable time slot.",
                )
            desired = slot_grid.instant_for(
                request.date, request.slot_label, self._registry.timezone
            )
        return await self.attempt_booking(
            customer_id, request.service_name, desired, notes=request.notes
        )

    async def attempt_booking(
        self,
        customer_id: str,
        service_name: str,
        desired_instant: datetime,
        *,
        notes: Optional[str] = None,
    ) -> BookingResult:
        tz = self._registry.timezone
        instant = slot_grid.to_utc(desired_instant, tz)
        slot_label = slot_grid.label_for(instant, tz)
        logger.info(
            "Booking attempt by %s for %s at %s (slot %s)",
            customer_id,
            service_name,
            instant.isoformat(),
            slot_label,
        )

        if slot_label is None:
            return BookingResult(
                status="failed",
                failure=FailureCode.SLOT_CLOSED,
                message="The requested time is not on the booking grid.",
            )
        if instant <= self._clock():
            return BookingResult(
                status="failed",
                failure=FailureCode.SLOT_CLOSED,
                slot_label=slot_label,
                message=f"The {slot_label} slot on that day has already started.",
            )

        try:
            capacity = await self._registry.get_capacity(slot_label)
            if capacity == 0:
                return BookingResult(
                    status="failed",
                    failure=FailureCode.SLOT_CLOSED,
                    slot_label=slot_label,
                    capacity=0,
                    message=f"The {slot_label} slot is not open for booking.",
                )

            if self._client.use_mock_data:
                await self._client.simulate_latency()

            if self._settings.atomic_reservations:
                appointment, booked = await self._repository.reserve(
                    customer_id=customer_id,
                    service_name=service_name,
                    appointment_instant=instant,
                    capacity=capacity,
                    notes=notes,
                )
            else:
                booked = await self._repository.count_at(instant)
                appointment = None
                if booked < capacity:
                    if self._client.use_mock_data:
                        await self._client.simulate_latency()
                    appointment = await self._repository.insert(
                        customer_id=customer_id,
                        service_name=service_name,
                        appointment_instant=instant,
                        notes=notes,
                    )
                    booked += 1
        except ServiceError as exc:
            logger.warning("Booking for %s failed in the backend: %s", customer_id, exc)
            return BookingResult(
                status="failed",
                failure=FailureCode.UNKNOWN,
                slot_label=slot_label,
                message=RETRY_HINT,
            )

        if appointment is None:
            logger.info("Slot %s at %s is full (%s/%s)", slot_label, instant.isoformat(), booked, capacity)
            return BookingResult(
                status="failed",
                failure=FailureCode.SLOT_FULL,
                slot_label=slot_label,
                booked_count=booked,
                capacity=capacity,
                message=f"The {slot_label} slot was just taken. Please choose another time.",
            )

        self._feed.publish(AppointmentCreated(appointment=appointment))
        local_time = instant.astimezone(tz).strftime("%Y-%m-%d %H:%M")
        await self._dispatcher.dispatch(
            None,
            "New appointment",
            f"{service_name} booked for {local_time} by customer {customer_id}.",
            "info",
        )
        return BookingResult(
            appointment=appointment,
            slot_label=slot_label,
            booked_count=booked,
            capacity=capacity,
            message="Appointment submitted and awaiting confirmation.",
        )
