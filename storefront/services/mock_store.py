from __future__ import annotations

import itertools
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from threading import Lock
from typing import Dict, Iterable, List, Optional, Tuple

from storefront.schemas.appointment import Appointment, AppointmentStatus
from storefront.schemas.billing import ServiceOffering, Transaction, Wallet
from storefront.schemas.notification import Notification
from storefront.schemas.slots import SlotConfig
from storefront.services.exceptions import InsufficientBalanceError, WalletNotFoundError


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class _BaseRepository:
    def __init__(self, prefix: str) -> None:
        self._prefix = prefix
        self._counter = itertools.count(1)
        self._lock = Lock()

    def _next_id(self) -> str:
        return f"{self._prefix}-{next(self._counter):05d}"


class AppointmentRepository(_BaseRepository):
    """Appointment table.

    Mutating methods run their read and write without yielding to the event
    loop and under a lock, so ``reserve`` and ``compare_and_set_status`` are
    atomic with respect to every other caller of the repository.
    """

    def __init__(self) -> None:
        super().__init__("APT")
        self._appointments: Dict[str, Appointment] = {}

    def _new_record(
        self,
        *,
        customer_id: str,
        service_name: str,
        appointment_instant: datetime,
        notes: Optional[str],
    ) -> Appointment:
        return Appointment(
            id=self._next_id(),
            customer_id=customer_id,
            service_name=service_name,
            appointment_instant=appointment_instant.astimezone(timezone.utc),
            status=AppointmentStatus.PENDING,
            notes=notes,
            created_at=_utc_now(),
        )

    def _count_at(self, instant: datetime) -> int:
        return sum(
            1
            for record in self._appointments.values()
            if record.appointment_instant == instant
            and record.status != AppointmentStatus.CANCELLED
        )

    async def get(self, appointment_id: str) -> Optional[Appointment]:
        record = self._appointments.get(appointment_id)
        return record.model_copy() if record is not None else None

    async def count_at(self, instant: datetime) -> int:
        """Count non-cancelled appointments at exactly ``instant``."""

        return self._count_at(instant.astimezone(timezone.utc))

    async def list_between(
        self, start: datetime, end: datetime, *, include_cancelled: bool = False
    ) -> List[Appointment]:
        return [
            record.model_copy()
            for record in self._appointments.values()
            if start <= record.appointment_instant < end
            and (include_cancelled or record.status != AppointmentStatus.CANCELLED)
        ]

    async def list(self, customer_id: Optional[str] = None) -> List[Appointment]:
        records = [
            record.model_copy()
            for record in self._appointments.values()
            if customer_id is None or record.customer_id == customer_id
        ]
        records.sort(key=lambda record: (record.appointment_instant, record.id))
        return records

    async def insert(
        self,
        *,
        customer_id: str,
        service_name: str,
        appointment_instant: datetime,
        notes: Optional[str] = None,
    ) -> Appointment:
        with self._lock:
            record = self._new_record(
                customer_id=customer_id,
                service_name=service_name,
                appointment_instant=appointment_instant,
                notes=notes,
            )
            self._appointments[record.id] = record
        return record.model_copy()

    async def reserve(
        self,
        *,
        customer_id: str,
        service_name: str,
        appointment_instant: datetime,
        capacity: int,
        notes: Optional[str] = None,
    ) -> Tuple[Optional[Appointment], int]:
        """Insert a pending appointment only while the instant has a free seat.

        Returns the new appointment (or ``None`` when the slot is full) and
        the number of seats taken after the call.
        """

        instant = appointment_instant.astimezone(timezone.utc)
        with self._lock:
            taken = self._count_at(instant)
            if taken >= capacity:
                return None, taken
            record = self._new_record(
                customer_id=customer_id,
                service_name=service_name,
                appointment_instant=instant,
                notes=notes,
            )
            self._appointments[record.id] = record
        return record.model_copy(), taken + 1

    async def compare_and_set_status(
        self,
        appointment_id: str,
        expected: Iterable[AppointmentStatus],
        status: AppointmentStatus,
    ) -> Tuple[Optional[Appointment], Optional[Appointment]]:
        """Move an appointment to ``status`` if its current status is expected.

        Returns ``(updated, current)``. ``updated`` is ``None`` when the
        appointment is missing or its status did not match, in which case
        ``current`` holds the record as it is now (or ``None`` if missing).
        """

        allowed = set(expected)
        with self._lock:
            record = self._appointments.get(appointment_id)
            if record is None:
                return None, None
            if record.status not in allowed:
                return None, record.model_copy()
            updated = record.model_copy(
                update={"status": status, "revision": record.revision + 1}
            )
            self._appointments[appointment_id] = updated
        return updated.model_copy(), updated.model_copy()

    async def delete(self, appointment_id: str) -> Optional[Appointment]:
        with self._lock:
            return self._appointments.pop(appointment_id, None)


class SlotConfigRepository:
    def __init__(self) -> None:
        self._configs: Dict[str, SlotConfig] = {}
        self._lock = Lock()

    async def get(self, slot_label: str) -> Optional[SlotConfig]:
        config = self._configs.get(slot_label)
        return config.model_copy() if config is not None else None

    async def list(self) -> List[SlotConfig]:
        return [config.model_copy() for config in self._configs.values()]

    async def upsert(
        self, slot_label: str, capacity: int
    ) -> Tuple[SlotConfig, Optional[SlotConfig]]:
        with self._lock:
            previous = self._configs.get(slot_label)
            revision = previous.revision + 1 if previous else 1
            config = SlotConfig(slot_label=slot_label, capacity=capacity, revision=revision)
            self._configs[slot_label] = config
        return config.model_copy(), previous


class WalletRepository(_BaseRepository):
    """In-memory wallet ledger: wallets plus their append-only transactions."""

    def __init__(self) -> None:
        super().__init__("TXN")
        self._wallets: Dict[str, Wallet] = {}
        self._transactions: List[Transaction] = []
        self._seed_defaults()

    def _seed_defaults(self) -> None:
        self._wallets["CUST-DEMO"] = Wallet(
            customer_id="CUST-DEMO", balance=Decimal("200"), points=200
        )

    def _append(self, customer_id: str, service: str, amount: Decimal) -> Transaction:
        transaction = Transaction(
            id=self._next_id(),
            customer_id=customer_id,
            service=service,
            amount=amount,
            created_at=_utc_now(),
        )
        self._transactions.append(transaction)
        return transaction

    async def get_wallet(self, customer_id: str) -> Optional[Wallet]:
        wallet = self._wallets.get(customer_id)
        return wallet.model_copy() if wallet is not None else None

    async def open_wallet(self, customer_id: str) -> Wallet:
        with self._lock:
            wallet = self._wallets.setdefault(customer_id, Wallet(customer_id=customer_id))
        return wallet.model_copy()

    async def list_wallets(self) -> List[Wallet]:
        return [wallet.model_copy() for wallet in self._wallets.values()]

    async def credit(
        self, customer_id: str, amount: Decimal, points: int, service: str
    ) -> Tuple[Wallet, Transaction]:
        with self._lock:
            wallet = self._wallets.get(customer_id)
            if wallet is None:
                raise WalletNotFoundError(customer_id)
            transaction = self._append(customer_id, service, amount)
            updated = wallet.model_copy(
                update={"balance": wallet.balance + amount, "points": wallet.points + points}
            )
            self._wallets[customer_id] = updated
        return updated.model_copy(), transaction

    async def debit(
        self,
        customer_id: str,
        amount: Decimal,
        service: str,
        *,
        require_funds: bool = True,
    ) -> Tuple[Wallet, Transaction]:
        with self._lock:
            wallet = self._wallets.get(customer_id)
            if wallet is None:
                raise WalletNotFoundError(customer_id)
            if require_funds and wallet.balance < amount:
                raise InsufficientBalanceError(customer_id, amount, wallet.balance)
            transaction = self._append(customer_id, service, amount)
            updated = wallet.model_copy(
                update={
                    "balance": wallet.balance - amount,
                    "total_spent": wallet.total_spent + amount,
                    "visit_count": wallet.visit_count + 1,
                    "last_visit": transaction.created_at,
                }
            )
            self._wallets[customer_id] = updated
        return updated.model_copy(), transaction

    async def list_transactions(self, customer_id: Optional[str] = None) -> List[Transaction]:
        items = [
            transaction.model_copy()
            for transaction in self._transactions
            if customer_id is None or transaction.customer_id == customer_id
        ]
        items.reverse()
        return items


class NotificationRepository(_BaseRepository):
    def __init__(self) -> None:
        super().__init__("NTF")
        self._notifications: Dict[str, Notification] = {}

    async def notify(
        self, customer_id: Optional[str], title: str, message: str, kind: str = "info"
    ) -> Notification:
        with self._lock:
            notification = Notification(
                id=self._next_id(),
                customer_id=customer_id,
                title=title,
                message=message,
                kind=kind,
                created_at=_utc_now(),
            )
            self._notifications[notification.id] = notification
        return notification

    async def list(
        self, customer_id: Optional[str] = None, *, admin_only: bool = False
    ) -> List[Notification]:
        items = [
            notification.model_copy()
            for notification in self._notifications.values()
            if (admin_only and notification.customer_id is None)
            or (not admin_only and (customer_id is None or notification.customer_id == customer_id))
        ]
        items.sort(key=lambda item: item.created_at, reverse=True)
        return items

    async def delete(self, notification_id: str) -> bool:
        return self._notifications.pop(notification_id, None) is not None


class ServiceCatalogRepository:
    def __init__(self) -> None:
        self._offerings: Dict[str, ServiceOffering] = {}
        self._seed_defaults()

    def _seed_defaults(self) -> None:
        for name, price in (
            ("Classic Haircut", "40"),
            ("Luxury Facial", "85"),
            ("Deep Tissue Massage", "120"),
            ("Manicure & Pedicure", "70"),
            ("Beard Trim", "30"),
            ("Full Body Aromatherapy", "150"),
            ("Signature Color Styling", "1680"),
            ("Senior Director Cut", "380"),
            ("Caviar Scalp Treatment", "680"),
            ("Japanese Air Perm", "1280"),
            ("Gentleman's Pompadour", "280"),
        ):
            self.add(ServiceOffering(name=name, price=Decimal(price)))

    def add(self, offering: ServiceOffering) -> None:
        self._offerings[offering.name.lower()] = offering

    def get(self, name: str) -> Optional[ServiceOffering]:
        return self._offerings.get(name.strip().lower())

    def list(self) -> List[ServiceOffering]:
        return sorted(self._offerings.values(), key=lambda offering: offering.name)


@dataclass
class MockDataStore:
    appointments: AppointmentRepository
    slot_configs: SlotConfigRepository
    wallets: WalletRepository
    notifications: NotificationRepository
    catalog: ServiceCatalogRepository


_mock_store: Optional[MockDataStore] = None


def get_mock_store() -> MockDataStore:
    global _mock_store
    if _mock_store is None:
        _mock_store = MockDataStore(
            appointments=AppointmentRepository(),
            slot_configs=SlotConfigRepository(),
            wallets=WalletRepository(),
            notifications=NotificationRepository(),
            catalog=ServiceCatalogRepository(),
        )
    return _mock_store


def reset_mock_store() -> None:
    global _mock_store
    _mock_store = None
