from __future__ import annotations

import logging
from typing import Dict, List
from zoneinfo import ZoneInfo

from storefront.clients.backend import BackendClient
from storefront.config import Settings, get_settings
from storefront.schemas.events import CapacityChanged
from storefront.schemas.slots import SlotConfig
from storefront.services import slot_grid
from storefront.services.events import ChangeFeed, get_change_feed
from storefront.services.mock_store import SlotConfigRepository, get_mock_store

logger = logging.getLogger(__name__)


class SlotCapacityRegistry:
    """Per-slot seat capacity, written by admins and read by booking paths."""

    def __init__(
        self,
        client: BackendClient,
        *,
        repository: SlotConfigRepository | None = None,
        feed: ChangeFeed | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._client = client
        self._repository = repository or get_mock_store().slot_configs
        self._feed = feed or get_change_feed()
        self._settings = settings or get_settings()

    @property
    def default_capacity(self) -> int:
        return self._settings.default_slot_capacity

    @property
    def timezone(self) -> ZoneInfo:
        return ZoneInfo(self._settings.slot_timezone)

    async def get_capacity(self, slot_label: str) -> int:
        config = await self._repository.get(slot_label)
        if config is None:
            return self.default_capacity
        return config.capacity

    async def set_capacity(self, slot_label: str, capacity: int) -> SlotConfig:
        """Set the seat limit of ``slot_label``; 0 closes it to new bookings.

        Existing appointments in the slot are left as they are.
        """

        if not slot_grid.is_valid_label(slot_label):
            raise ValueError(f"'{slot_label}' is not a slot on the booking grid")
        if capacity < 0:
            raise ValueError("Capacity must be zero or greater")

        if self._client.use_mock_data:
            await self._client.simulate_latency()
        config, previous = await self._repository.upsert(slot_label, capacity)
        logger.info(
            "Slot %s capacity set to %s (was %s)",
            slot_label,
            capacity,
            previous.capacity if previous else "default",
        )
        self._feed.publish(
            CapacityChanged(
                slot_label=slot_label,
                capacity=capacity,
                previous=previous.capacity if previous else None,
                revision=config.revision,
            )
        )
        return config

    async def list_configs(self) -> List[SlotConfig]:
        """Explicitly configured slots with their revisions."""

        return sorted(await self._repository.list(), key=lambda config: config.slot_label)

    async def list_capacities(self) -> Dict[str, int]:
        configured = {config.slot_label: config.capacity for config in await self._repository.list()}
        return {
            label: configured.get(label, self.default_capacity)
            for label in slot_grid.SLOT_LABELS
        }
