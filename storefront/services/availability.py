from __future__ import annotations

import logging
from collections import Counter
from datetime import date
from typing import Dict

from storefront.clients.backend import BackendClient
from storefront.schemas.slots import AvailabilityResponse, SlotAvailability
from storefront.services import slot_grid
from storefront.services.mock_store import AppointmentRepository, get_mock_store
from storefront.services.slots import SlotCapacityRegistry

logger = logging.getLogger(__name__)


class AvailabilityCalculator:
    """Derive booked-seat counts per slot from non-cancelled appointments.

    Appointments whose instant is off the canonical grid are not counted.
    """

    def __init__(
        self,
        client: BackendClient,
        *,
        registry: SlotCapacityRegistry | None = None,
        repository: AppointmentRepository | None = None,
    ) -> None:
        self._client = client
        self._registry = registry or SlotCapacityRegistry(client)
        self._repository = repository or get_mock_store().appointments

    async def _booked_by_label(self, day: date) -> Dict[str, int]:
        tz = self._registry.timezone
        start, end = slot_grid.day_bounds(day, tz)
        appointments = await self._repository.list_between(start, end)
        counts: Counter = Counter()
        for appointment in appointments:
            label = slot_grid.label_for(appointment.appointment_instant, tz)
            if label is not None:
                counts[label] += 1
        return counts

    async def count_booked(self, day: date, slot_label: str) -> int:
        counts = await self._booked_by_label(day)
        return counts.get(slot_label, 0)

    async def day_availability(self, day: date) -> AvailabilityResponse:
        logger.debug("Computing availability for %s", day)
        if self._client.use_mock_data:
            await self._client.simulate_latency()
        counts = await self._booked_by_label(day)
        capacities = await self._registry.list_capacities()

        slots = []
        for label in slot_grid.SLOT_LABELS:
            capacity = capacities[label]
            booked = counts.get(label, 0)
            slots.append(
                SlotAvailability(
                    slot_label=label,
                    window=slot_grid.window_for(label),
                    capacity=capacity,
                    booked=booked,
                    remaining=max(0, capacity - booked),
                    closed=capacity == 0,
                    full=booked >= capacity,
                )
            )
        return AvailabilityResponse(
            date=day,
            timezone=self._registry.timezone.key,
            slots=slots,
        )
