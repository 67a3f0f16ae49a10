from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Dict, FrozenSet, Iterable, List, Optional, Tuple
from zoneinfo import ZoneInfo

from storefront.clients.backend import BackendClient
from storefront.config import Settings, get_settings
from storefront.schemas.appointment import (
    Appointment,
    AppointmentListRequest,
    AppointmentListResponse,
    AppointmentStatus,
    BulkFailure,
    BulkResult,
    TransitionResult,
)
from storefront.schemas.common import RETRY_HINT, Actor, ActorRole, FailureCode
from storefront.schemas.events import AppointmentDeleted, AppointmentStatusChanged
from storefront.services import slot_grid
from storefront.services.events import ChangeFeed, get_change_feed
from storefront.services.exceptions import ServiceError
from storefront.services.mock_store import AppointmentRepository, get_mock_store
from storefront.services.notifications import NotificationDispatcher, build_dispatcher

logger = logging.getLogger(__name__)

_ANYONE = frozenset({ActorRole.ADMIN, ActorRole.CUSTOMER})
_ADMIN = frozenset({ActorRole.ADMIN})

# (from, to) -> roles allowed to request it. confirmed -> completed is
# reserved for the settlement engine and never requested directly.
TRANSITIONS: Dict[Tuple[AppointmentStatus, AppointmentStatus], FrozenSet[ActorRole]] = {
    (AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED): _ADMIN,
    (AppointmentStatus.PENDING, AppointmentStatus.CANCELLED): _ANYONE,
    (AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED): _ANYONE,
}

_STATUS_LABELS = {
    AppointmentStatus.CONFIRMED: "confirmed",
    AppointmentStatus.CANCELLED: "cancelled",
    AppointmentStatus.COMPLETED: "completed",
}


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _failed(
    failure: FailureCode,
    message: str,
    appointment_id: str,
    current: Optional[Appointment] = None,
) -> TransitionResult:
    return TransitionResult(
        status="failed",
        failure=failure,
        message=message,
        appointment_id=appointment_id,
        current_status=current.status if current else None,
    )


class AppointmentLifecycleManager:
    """Status state machine for appointments and who may drive it."""

    def __init__(
        self,
        client: BackendClient,
        *,
        repository: AppointmentRepository | None = None,
        feed: ChangeFeed | None = None,
        dispatcher: NotificationDispatcher | None = None,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._client = client
        self._settings = settings or get_settings()
        self._repository = repository or get_mock_store().appointments
        self._feed = feed or get_change_feed()
        self._dispatcher = dispatcher or build_dispatcher(client)
        self._clock = clock

    async def _visible(self, appointment_id: str, actor: Actor) -> Optional[Appointment]:
        appointment = await self._repository.get(appointment_id)
        if appointment is None:
            return None
        if not actor.is_admin and appointment.customer_id != actor.actor_id:
            return None
        return appointment

    async def confirm(self, appointment_id: str, actor: Actor) -> TransitionResult:
        return await self.transition(appointment_id, AppointmentStatus.CONFIRMED, actor)

    async def cancel(self, appointment_id: str, actor: Actor) -> TransitionResult:
        return await self.transition(appointment_id, AppointmentStatus.CANCELLED, actor)

    async def transition(
        self, appointment_id: str, target: AppointmentStatus, actor: Actor
    ) -> TransitionResult:
        logger.info(
            "%s %s requests %s -> %s", actor.role.value, actor.actor_id, appointment_id, target.value
        )
        try:
            appointment = await self._visible(appointment_id, actor)
            if appointment is None:
                return _failed(
                    FailureCode.NOT_FOUND,
                    f"Appointment {appointment_id} was not found.",
                    appointment_id,
                )

            rejection = self._check(appointment, target, actor)
            if rejection is not None:
                return _failed(FailureCode.INVALID_TRANSITION, rejection, appointment_id, appointment)

            if self._client.use_mock_data:
                await self._client.simulate_latency()
            updated, current = await self._repository.compare_and_set_status(
                appointment_id, {appointment.status}, target
            )
        except ServiceError as exc:
            logger.warning("Transition of %s failed in the backend: %s", appointment_id, exc)
            return _failed(FailureCode.UNKNOWN, RETRY_HINT, appointment_id)

        if updated is None:
            if current is None:
                return _failed(
                    FailureCode.NOT_FOUND,
                    f"Appointment {appointment_id} was removed.",
                    appointment_id,
                )
            return _failed(
                FailureCode.INVALID_TRANSITION,
                f"Appointment {appointment_id} changed to {current.status.value} meanwhile.",
                appointment_id,
                current,
            )

        await self._announce(appointment, updated, actor)
        return TransitionResult(
            appointment_id=appointment_id,
            current_status=updated.status,
            appointment=updated,
            message=f"Appointment {_STATUS_LABELS[target]}.",
        )

    def _check(
        self, appointment: Appointment, target: AppointmentStatus, actor: Actor
    ) -> Optional[str]:
        current = appointment.status
        if current.is_terminal:
            return f"Appointment {appointment.id} is already {current.value}."
        if target == AppointmentStatus.COMPLETED:
            return "Appointments are completed by settling them."
        roles = TRANSITIONS.get((current, target))
        if roles is None:
            return f"Cannot move an appointment from {current.value} to {target.value}."
        if actor.role not in roles:
            return f"A {actor.role.value} cannot move an appointment to {target.value}."
        if target == AppointmentStatus.CANCELLED and appointment.appointment_instant <= self._clock():
            return "Appointments can only be cancelled before they start."
        return None

    def _publish_status(self, before: Appointment, after: Appointment) -> None:
        self._feed.publish(
            AppointmentStatusChanged(
                appointment_id=after.id,
                previous=before.status,
                status=after.status,
                revision=after.revision,
                appointment_instant=after.appointment_instant,
                customer_id=after.customer_id,
            )
        )

    async def _announce(self, before: Appointment, after: Appointment, actor: Actor) -> None:
        self._publish_status(before, after)
        tz = ZoneInfo(self._settings.slot_timezone)
        local_time = after.appointment_instant.astimezone(tz).strftime("%Y-%m-%d %H:%M")
        if after.status == AppointmentStatus.CONFIRMED:
            await self._dispatcher.dispatch(
                after.customer_id,
                "Appointment confirmed",
                f"Your {after.service_name} appointment at {local_time} is confirmed.",
                "success",
            )
        elif after.status == AppointmentStatus.CANCELLED:
            if actor.is_admin:
                await self._dispatcher.dispatch(
                    after.customer_id,
                    "Appointment cancelled",
                    f"Your {after.service_name} appointment at {local_time} was cancelled by the store.",
                    "alert",
                )
            else:
                await self._dispatcher.dispatch(
                    None,
                    "Appointment cancelled",
                    f"Customer {after.customer_id} cancelled {after.service_name} at {local_time}.",
                    "alert",
                )

    async def begin_settlement(self, appointment_id: str) -> Tuple[Optional[Appointment], Optional[Appointment]]:
        """Claim a confirmed appointment for settlement by marking it completed.

        The change is not announced until ``finish_settlement``; a failed
        settlement hands the claim back with ``abort_settlement``.
        """

        return await self._repository.compare_and_set_status(
            appointment_id, {AppointmentStatus.CONFIRMED}, AppointmentStatus.COMPLETED
        )

    async def abort_settlement(self, appointment_id: str) -> None:
        restored, _ = await self._repository.compare_and_set_status(
            appointment_id, {AppointmentStatus.COMPLETED}, AppointmentStatus.CONFIRMED
        )
        if restored is None:
            logger.error("Could not release settlement claim on %s", appointment_id)

    def finish_settlement(self, before: Appointment, after: Appointment) -> None:
        self._publish_status(before, after)

    async def bulk_cancel(self, appointment_ids: Iterable[str], actor: Actor) -> BulkResult:
        results = [await self.cancel(appointment_id, actor) for appointment_id in appointment_ids]
        return _summarize(results)

    async def delete(self, appointment_id: str, actor: Actor) -> TransitionResult:
        """Physically remove an appointment. Distinct from cancelling it."""

        if not actor.is_admin:
            return _failed(
                FailureCode.INVALID_TRANSITION,
                "Only the store can delete appointments.",
                appointment_id,
            )
        try:
            removed = await self._repository.delete(appointment_id)
        except ServiceError as exc:
            logger.warning("Delete of %s failed in the backend: %s", appointment_id, exc)
            return _failed(FailureCode.UNKNOWN, RETRY_HINT, appointment_id)
        if removed is None:
            return _failed(
                FailureCode.NOT_FOUND,
                f"Appointment {appointment_id} was not found.",
                appointment_id,
            )
        logger.info("Appointment %s deleted by %s", appointment_id, actor.actor_id)
        self._feed.publish(
            AppointmentDeleted(appointment_id=appointment_id, revision=removed.revision + 1)
        )
        return TransitionResult(
            appointment_id=appointment_id,
            current_status=removed.status,
            message="Appointment deleted.",
        )

    async def bulk_delete(self, appointment_ids: Iterable[str], actor: Actor) -> BulkResult:
        results = [await self.delete(appointment_id, actor) for appointment_id in appointment_ids]
        return _summarize(results)

    async def list_appointments(
        self, request: AppointmentListRequest, actor: Actor
    ) -> AppointmentListResponse:
        customer_id = request.customer_id if actor.is_admin else actor.actor_id
        tz = ZoneInfo(self._settings.slot_timezone)
        records: List[Appointment] = []
        for appointment in await self._repository.list(customer_id):
            if request.status and appointment.status != request.status:
                continue
            if request.date and slot_grid.local_date(appointment.appointment_instant, tz) != request.date:
                continue
            if request.slot_label and slot_grid.label_for(appointment.appointment_instant, tz) != request.slot_label:
                continue
            records.append(appointment)

        start = (request.page - 1) * request.page_size
        end = start + request.page_size
        return AppointmentListResponse(
            total=len(records),
            page=request.page,
            page_size=request.page_size,
            items=records[start:end],
        )


def _summarize(results: List[TransitionResult]) -> BulkResult:
    failures = [
        BulkFailure(
            appointment_id=result.appointment_id or "",
            failure=result.failure or FailureCode.UNKNOWN,
            message=result.message,
        )
        for result in results
        if not result.ok
    ]
    return BulkResult(
        requested=len(results),
        succeeded=len(results) - len(failures),
        failed=len(failures),
        failures=failures,
    )
