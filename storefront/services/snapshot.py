"""Per-session view state rebuilt from the change feed.

This is the client-side half of the change stream: a view loads a baseline
from the REST endpoints, then folds every event pushed over ``/events/ws``
into a ``SessionSnapshot``.
"""

from __future__ import annotations

from datetime import date
from typing import Dict, Iterable, List, Set
from zoneinfo import ZoneInfo

from storefront.schemas.appointment import Appointment, AppointmentStatus
from storefront.schemas.events import (
    AppointmentCreated,
    AppointmentDeleted,
    AppointmentStatusChanged,
    CapacityChanged,
    ChangeEvent,
)
from storefront.schemas.slots import SlotConfig
from storefront.services import slot_grid


class SessionSnapshot:
    """Local cache of appointments and capacities for one session.

    Events are merged by entity id and revision, so duplicates and stale
    events delivered out of order leave the snapshot unchanged.
    """

    def __init__(self, tz: ZoneInfo, default_capacity: int) -> None:
        self._tz = tz
        self._default_capacity = default_capacity
        self.appointments: Dict[str, Appointment] = {}
        self.capacities: Dict[str, int] = {}
        self._pending: Dict[str, AppointmentStatusChanged] = {}
        self._deleted: Set[str] = set()
        self._capacity_revisions: Dict[str, int] = {}

    def load(
        self,
        appointments: Iterable[Appointment],
        capacities: Iterable[SlotConfig] = (),
    ) -> None:
        """Seed the snapshot from a fetched baseline.

        Capacities keep their revision so a redelivered older
        ``CapacityChanged`` cannot overwrite the loaded value.
        """

        for appointment in appointments:
            self.apply(AppointmentCreated(appointment=appointment))
        for config in capacities:
            self.apply(
                CapacityChanged(
                    slot_label=config.slot_label,
                    capacity=config.capacity,
                    revision=config.revision,
                )
            )

    def apply(self, event: ChangeEvent) -> bool:
        """Fold one event into the snapshot. Returns whether anything changed."""

        if isinstance(event, CapacityChanged):
            if event.revision <= self._capacity_revisions.get(event.slot_label, 0):
                return False
            self._capacity_revisions[event.slot_label] = event.revision
            self.capacities[event.slot_label] = event.capacity
            return True

        if isinstance(event, AppointmentDeleted):
            self._deleted.add(event.appointment_id)
            self._pending.pop(event.appointment_id, None)
            return self.appointments.pop(event.appointment_id, None) is not None

        if event.entity_id in self._deleted:
            return False
        current = self.appointments.get(event.entity_id)

        if isinstance(event, AppointmentCreated):
            if current is not None and current.revision >= event.revision:
                return False
            appointment = event.appointment
            pending = self._pending.pop(appointment.id, None)
            if pending is not None and pending.revision > appointment.revision:
                appointment = appointment.model_copy(
                    update={"status": pending.status, "revision": pending.revision}
                )
            self.appointments[appointment.id] = appointment
            return True

        if current is None:
            # Status change overtook the creation event; hold it until then.
            held = self._pending.get(event.appointment_id)
            if held is None or held.revision < event.revision:
                self._pending[event.appointment_id] = event
            return False
        if event.revision <= current.revision:
            return False
        self.appointments[event.appointment_id] = current.model_copy(
            update={"status": event.status, "revision": event.revision}
        )
        return True

    def apply_all(self, events: Iterable[ChangeEvent]) -> int:
        return sum(1 for event in events if self.apply(event))

    def capacity(self, slot_label: str) -> int:
        return self.capacities.get(slot_label, self._default_capacity)

    def booked(self, day: date, slot_label: str) -> int:
        return sum(
            1
            for appointment in self.appointments.values()
            if appointment.status != AppointmentStatus.CANCELLED
            and slot_grid.local_date(appointment.appointment_instant, self._tz) == day
            and slot_grid.label_for(appointment.appointment_instant, self._tz) == slot_label
        )

    def ordered(self) -> List[Appointment]:
        return sorted(self.appointments.values(), key=lambda item: item.appointment_instant)
