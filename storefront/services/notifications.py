from __future__ import annotations

import asyncio
import logging
from typing import Any, List, Optional, Protocol, Set

from storefront.clients.backend import BackendClient
from storefront.schemas.notification import Notification
from storefront.services.exceptions import ServiceError
from storefront.services.mock_store import NotificationRepository, get_mock_store

logger = logging.getLogger(__name__)


class NotificationSink(Protocol):
    async def notify(
        self, customer_id: Optional[str], title: str, message: str, kind: str = "info"
    ) -> Any: ...


class HttpNotificationSink:
    """Writes notifications to the backend's notifications table."""

    def __init__(self, client: BackendClient) -> None:
        self._client = client

    async def notify(
        self, customer_id: Optional[str], title: str, message: str, kind: str = "info"
    ) -> Any:
        payload = {
            "customer_id": customer_id,
            "title": title,
            "message": message,
            "type": kind,
            "is_read": False,
        }
        return await self._client.post("/notifications", payload)


class NotificationDispatcher:
    """Fire-and-forget delivery of customer and admin notifications.

    Delivery failures are logged and never reach the caller. With
    ``background=True`` delivery runs as a separate task and the caller does
    not wait for it at all.
    """

    def __init__(self, sink: NotificationSink, *, background: bool = False) -> None:
        self._sink = sink
        self._background = background
        self._tasks: Set[asyncio.Task] = set()

    async def dispatch(
        self,
        customer_id: Optional[str],
        title: str,
        message: str,
        kind: str = "info",
    ) -> None:
        if self._background:
            task = asyncio.create_task(self._deliver(customer_id, title, message, kind))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
            return
        await self._deliver(customer_id, title, message, kind)

    async def _deliver(
        self, customer_id: Optional[str], title: str, message: str, kind: str
    ) -> None:
        try:
            await self._sink.notify(customer_id, title, message, kind)
        except ServiceError as exc:
            logger.warning("Notification '%s' for %s not delivered: %s", title, customer_id, exc)
        except Exception:  # pragma: no cover
            logger.exception("Unexpected error delivering notification '%s'", title)

    async def drain(self) -> None:
        """Wait for background deliveries that are still in flight."""

        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


def build_dispatcher(client: BackendClient) -> NotificationDispatcher:
    if client.use_mock_data:
        return NotificationDispatcher(get_mock_store().notifications)
    return NotificationDispatcher(HttpNotificationSink(client), background=True)


class NotificationInbox:
    """Read side of stored notifications for the admin and customer inboxes."""

    def __init__(self, client: BackendClient, *, repository: NotificationRepository | None = None) -> None:
        self._client = client
        self._repository = repository
        if self._client.use_mock_data:
            self._repository = repository or get_mock_store().notifications

    async def list(self, customer_id: Optional[str] = None) -> List[Notification]:
        if self._client.use_mock_data:
            await self._client.simulate_latency()
            if not self._repository:
                raise RuntimeError("Mock notification repository not configured")
            if customer_id is None:
                return await self._repository.list(admin_only=True)
            return await self._repository.list(customer_id)

        raise ServiceError("Notification inbox is not available in live mode yet")
