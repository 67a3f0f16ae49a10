from __future__ import annotations

from functools import lru_cache
from typing import Optional

from fastapi import Depends, Header, HTTPException

from storefront.clients.backend import BackendClient
from storefront.config import Settings, get_settings
from storefront.schemas.common import Actor, ActorRole
from storefront.services import (
    AppointmentLifecycleManager,
    AvailabilityCalculator,
    BookingReservationService,
    SettlementEngine,
    SlotCapacityRegistry,
    WalletService,
)
from storefront.services.notifications import NotificationInbox


@lru_cache(maxsize=1)
def get_backend_client_cached() -> BackendClient:
    settings = get_settings()
    return BackendClient(
        settings.ledger_service_base_url,
        timeout=settings.ledger_service_timeout,
        use_mock_data=settings.use_mock_data,
        token=settings.ledger_service_token,
    )


def get_backend_client(settings: Settings = Depends(get_settings)) -> BackendClient:
    return get_backend_client_cached()


def get_actor(
    x_actor_id: Optional[str] = Header(None),
    x_actor_role: Optional[str] = Header(None),
) -> Actor:
    """Identity arrives from the session provider in front of this service."""

    if not x_actor_id or not x_actor_role:
        raise HTTPException(status_code=401, detail="Missing actor identity headers")
    try:
        role = ActorRole(x_actor_role.lower())
    except ValueError:
        raise HTTPException(status_code=401, detail="Unknown actor role") from None
    return Actor(actor_id=x_actor_id, role=role)


def require_admin(actor: Actor = Depends(get_actor)) -> Actor:
    if not actor.is_admin:
        raise HTTPException(status_code=403, detail="Administrator role required")
    return actor


def get_slot_registry(
    client: BackendClient = Depends(get_backend_client),
) -> SlotCapacityRegistry:
    return SlotCapacityRegistry(client)


def get_availability_calculator(
    client: BackendClient = Depends(get_backend_client),
) -> AvailabilityCalculator:
    return AvailabilityCalculator(client)


def get_booking_service(
    client: BackendClient = Depends(get_backend_client),
) -> BookingReservationService:
    return BookingReservationService(client)


def get_lifecycle_manager(
    client: BackendClient = Depends(get_backend_client),
) -> AppointmentLifecycleManager:
    return AppointmentLifecycleManager(client)


def get_settlement_engine(
    client: BackendClient = Depends(get_backend_client),
) -> SettlementEngine:
    return SettlementEngine(client)


def get_wallet_service(
    client: BackendClient = Depends(get_backend_client),
) -> WalletService:
    return WalletService(client)


def get_notification_inbox(
    client: BackendClient = Depends(get_backend_client),
) -> NotificationInbox:
    return NotificationInbox(client)
