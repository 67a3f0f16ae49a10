"""Service package public API definitions.

Service implementations are imported lazily on first attribute access. The
HTTP client imports ``storefront.services.exceptions``, and importing every
service eagerly from here would pull the client back in while it is still
initializing.
"""

from __future__ import annotations

from importlib import import_module
from typing import TYPE_CHECKING, Any

__all__ = [
    "AppointmentLifecycleManager",
    "AvailabilityCalculator",
    "BookingReservationService",
    "SessionSnapshot",
    "SettlementEngine",
    "SlotCapacityRegistry",
    "WalletService",
]

_SERVICE_MODULES = {
    "AppointmentLifecycleManager": "lifecycle",
    "AvailabilityCalculator": "availability",
    "BookingReservationService": "booking",
    "SessionSnapshot": "snapshot",
    "SettlementEngine": "settlement",
    "SlotCapacityRegistry": "slots",
    "WalletService": "wallet",
}


def __getattr__(name: str) -> Any:
    if name not in _SERVICE_MODULES:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")

    module = import_module(f".{_SERVICE_MODULES[name]}", __name__)
    attr = getattr(module, name)
    globals()[name] = attr
    return attr


if TYPE_CHECKING:  # pragma: no cover - import for static analysis only
    from .availability import AvailabilityCalculator as AvailabilityCalculator
    from .booking import BookingReservationService as BookingReservationService
    from .lifecycle import AppointmentLifecycleManager as AppointmentLifecycleManager
    from .settlement import SettlementEngine as SettlementEngine
    from .slots import SlotCapacityRegistry as SlotCapacityRegistry
    from .snapshot import SessionSnapshot as SessionSnapshot
    from .wallet import WalletService as WalletService
