import asyncio
from datetime import date, datetime, timezone

import pytest

from conftest import FUTURE_DAY, TZ, MockLatencyClient
from storefront.config import Settings
from storefront.schemas.appointment import AppointmentStatus, BookingRequest
from storefront.schemas.common import Actor, ActorRole, FailureCode
from storefront.schemas.events import AppointmentCreated, CapacityChanged
from storefront.services import slot_grid
from storefront.services.availability import AvailabilityCalculator
from storefront.services.booking import BookingReservationService
from storefront.services.events import get_change_feed
from storefront.services.exceptions import ServiceError
from storefront.services.lifecycle import AppointmentLifecycleManager
from storefront.services.mock_store import AppointmentRepository, get_mock_store
from storefront.services.slots import SlotCapacityRegistry


def _at(label: str, day: date = FUTURE_DAY) -> datetime:
    return slot_grid.instant_for(day, label, TZ)


class CountingRepository(AppointmentRepository):
    """Appointment repository that records every seat read."""

    def __init__(self) -> None:
        super().__init__()
        self.reads = 0

    async def count_at(self, instant):
        self.reads += 1
        return await super().count_at(instant)

    async def reserve(self, **kwargs):
        self.reads += 1
        return await super().reserve(**kwargs)


class FailingRepository(AppointmentRepository):
    async def reserve(self, **kwargs):
        raise ServiceError("database unavailable")


# --- slot grid ---------------------------------------------------------------


def test_slot_grid_has_morning_and_afternoon_windows() -> None:
    assert slot_grid.SLOT_LABELS == [
        "09:00", "09:30", "10:00", "10:30", "11:00", "11:30",
        "15:00", "15:30", "16:00", "16:30",
    ]
    assert slot_grid.window_for("11:30") == "morning"
    assert slot_grid.window_for("15:00") == "afternoon"
    with pytest.raises(ValueError):
        slot_grid.window_for("12:00")


def test_slot_labels_are_computed_in_reference_timezone() -> None:
    instant = datetime(2026, 10, 21, 7, 30, tzinfo=timezone.utc)

    assert slot_grid.label_for(instant, TZ) == "15:30"
    assert slot_grid.local_date(instant, TZ) == FUTURE_DAY
    assert slot_grid.label_for(datetime(2026, 10, 21, 9, 15), TZ) is None
    assert slot_grid.label_for(datetime(2026, 10, 21, 9, 0, 30), TZ) is None


# --- capacity registry -------------------------------------------------------


def test_capacity_defaults_then_tracks_admin_updates(client) -> None:
    registry = SlotCapacityRegistry(client)
    subscription = get_change_feed().subscribe()

    assert asyncio.run(registry.get_capacity("09:00")) == 2

    first = asyncio.run(registry.set_capacity("09:00", 3))
    second = asyncio.run(registry.set_capacity("09:00", 1))

    assert asyncio.run(registry.get_capacity("09:00")) == 1
    assert (first.revision, second.revision) == (1, 2)
    assert client.latency_called is True

    events = [subscription.get_nowait(), subscription.get_nowait()]
    assert all(isinstance(event, CapacityChanged) for event in events)
    assert events[0].previous is None
    assert events[1].previous == 3
    assert events[1].capacity == 1


def test_capacity_rejects_negative_values_and_unknown_labels(client) -> None:
    registry = SlotCapacityRegistry(client)

    with pytest.raises(ValueError):
        asyncio.run(registry.set_capacity("09:00", -1))
    with pytest.raises(ValueError):
        asyncio.run(registry.set_capacity("13:00", 2))

    assert asyncio.run(get_mock_store().slot_configs.list()) == []


def test_list_capacities_covers_every_slot(client) -> None:
    registry = SlotCapacityRegistry(client)
    asyncio.run(registry.set_capacity("15:30", 0))

    capacities = asyncio.run(registry.list_capacities())

    assert list(capacities) == slot_grid.SLOT_LABELS
    assert capacities["15:30"] == 0
    assert capacities["09:00"] == 2


# --- booking -----------------------------------------------------------------


def test_two_customers_fill_slot_and_third_is_rejected(client, clock) -> None:
    service = BookingReservationService(client, clock=clock)

    first = asyncio.run(service.attempt_booking("CUST-A", "Classic Haircut", _at("09:00")))
    second = asyncio.run(service.attempt_booking("CUST-B", "Beard Trim", _at("09:00")))
    third = asyncio.run(service.attempt_booking("CUST-C", "Classic Haircut", _at("09:00")))

    assert first.ok and second.ok
    assert (first.booked_count, second.booked_count) == (1, 2)
    assert first.appointment.status == AppointmentStatus.PENDING
    assert first.slot_label == "09:00"

    assert third.ok is False
    assert third.failure == FailureCode.SLOT_FULL
    assert third.booked_count == 2
    assert third.capacity == 2
    assert asyncio.run(get_mock_store().appointments.count_at(_at("09:00"))) == 2


def test_sequential_bookings_never_exceed_capacity(client, clock) -> None:
    registry = SlotCapacityRegistry(client)
    asyncio.run(registry.set_capacity("10:30", 3))
    service = BookingReservationService(client, clock=clock)

    results = [
        asyncio.run(service.attempt_booking(f"CUST-{index}", "Beard Trim", _at("10:30")))
        for index in range(6)
    ]

    assert sum(1 for result in results if result.ok) == 3
    assert all(result.failure == FailureCode.SLOT_FULL for result in results[3:])
    assert asyncio.run(get_mock_store().appointments.count_at(_at("10:30"))) == 3


def test_concurrent_bookings_respect_capacity_with_atomic_reservations(clock) -> None:
    client = MockLatencyClient(yield_control=True)
    service = BookingReservationService(client, clock=clock)

    async def contend():
        return await asyncio.gather(
            *(
                service.attempt_booking(f"CUST-{index}", "Classic Haircut", _at("11:00"))
                for index in range(5)
            )
        )

    results = asyncio.run(contend())

    assert sum(1 for result in results if result.ok) == 2
    assert sum(1 for result in results if result.failure == FailureCode.SLOT_FULL) == 3
    assert asyncio.run(get_mock_store().appointments.count_at(_at("11:00"))) == 2


def test_read_then_write_path_can_overbook_under_contention(clock) -> None:
    client = MockLatencyClient(yield_control=True)
    settings = Settings(atomic_reservations=False)
    service = BookingReservationService(client, settings=settings, clock=clock)

    async def contend():
        return await asyncio.gather(
            *(
                service.attempt_booking(f"CUST-{index}", "Classic Haircut", _at("11:00"))
                for index in range(3)
            )
        )

    results = asyncio.run(contend())

    assert all(result.ok for result in results)
    assert asyncio.run(get_mock_store().appointments.count_at(_at("11:00"))) == 3


def test_closed_slot_rejects_booking_without_reading_counts(clock) -> None:
    admin_client = MockLatencyClient()
    asyncio.run(SlotCapacityRegistry(admin_client).set_capacity("15:30", 0))

    booking_client = MockLatencyClient()
    repository = CountingRepository()
    service = BookingReservationService(booking_client, repository=repository, clock=clock)

    for day in (FUTURE_DAY, date(2026, 11, 2), date(2027, 1, 15)):
        result = asyncio.run(service.attempt_booking("CUST-A", "Luxury Facial", _at("15:30", day)))
        assert result.failure == FailureCode.SLOT_CLOSED
        assert result.capacity == 0

    assert repository.reads == 0
    assert booking_client.latency_called is False


def test_closing_slot_keeps_existing_bookings(client, clock) -> None:
    service = BookingReservationService(client, clock=clock)
    asyncio.run(service.attempt_booking("CUST-A", "Classic Haircut", _at("09:30")))
    asyncio.run(service.attempt_booking("CUST-B", "Classic Haircut", _at("09:30")))

    asyncio.run(SlotCapacityRegistry(client).set_capacity("09:30", 1))
    result = asyncio.run(service.attempt_booking("CUST-C", "Classic Haircut", _at("09:30")))

    assert result.failure == FailureCode.SLOT_FULL
    assert result.booked_count == 2
    assert asyncio.run(get_mock_store().appointments.count_at(_at("09:30"))) == 2


def test_off_grid_and_past_instants_are_closed(client, clock) -> None:
    service = BookingReservationService(client, clock=clock)

    off_grid = asyncio.run(
        service.attempt_booking("CUST-A", "Beard Trim", datetime(2026, 10, 21, 12, 0, tzinfo=TZ))
    )
    past = asyncio.run(
        service.attempt_booking("CUST-A", "Beard Trim", _at("09:00", date(2026, 10, 18)))
    )

    assert off_grid.failure == FailureCode.SLOT_CLOSED
    assert off_grid.slot_label is None
    assert past.failure == FailureCode.SLOT_CLOSED
    assert past.slot_label == "09:00"
    assert asyncio.run(get_mock_store().appointments.list()) == []


def test_naive_instant_is_read_as_local_wall_clock(client, clock) -> None:
    service = BookingReservationService(client, clock=clock)

    result = asyncio.run(
        service.attempt_booking("CUST-A", "Beard Trim", datetime(2026, 10, 21, 16, 0))
    )

    assert result.ok
    assert result.slot_label == "16:00"
    assert result.appointment.appointment_instant == datetime(2026, 10, 21, 8, 0, tzinfo=timezone.utc)


def test_successful_booking_publishes_event_and_notifies_admin(client, clock) -> None:
    subscription = get_change_feed().subscribe()
    service = BookingReservationService(client, clock=clock)

    result = asyncio.run(
        service.attempt_booking("CUST-A", "Deep Tissue Massage", _at("16:30"), notes="Window seat")
    )

    event = subscription.get_nowait()
    assert isinstance(event, AppointmentCreated)
    assert event.appointment.id == result.appointment.id
    assert event.appointment.notes == "Window seat"

    inbox = asyncio.run(get_mock_store().notifications.list(admin_only=True))
    assert len(inbox) == 1
    assert inbox[0].title == "New appointment"
    assert "CUST-A" in inbox[0].message
    assert "2026-10-21 16:30" in inbox[0].message


def test_backend_failure_maps_to_unknown(client, clock) -> None:
    service = BookingReservationService(client, repository=FailingRepository(), clock=clock)

    result = asyncio.run(service.attempt_booking("CUST-A", "Beard Trim", _at("09:00")))

    assert result.failure == FailureCode.UNKNOWN
    assert result.message == "Something went wrong on our side. Please try again."


def test_book_request_resolves_actor_and_slot(client, clock) -> None:
    service = BookingReservationService(client, clock=clock)
    customer = Actor(actor_id="CUST-A", role=ActorRole.CUSTOMER)
    admin = Actor(actor_id="ADMIN-1", role=ActorRole.ADMIN)

    own = asyncio.run(
        service.book(
            BookingRequest(service_name="Beard Trim", customer_id="CUST-X", date=FUTURE_DAY, slot_label="10:00"),
            customer,
        )
    )
    on_behalf = asyncio.run(
        service.book(
            BookingRequest(service_name="Beard Trim", customer_id="CUST-B", date=FUTURE_DAY, slot_label="10:00"),
            admin,
        )
    )
    missing_customer = asyncio.run(
        service.book(BookingRequest(service_name="Beard Trim", date=FUTURE_DAY, slot_label="10:00"), admin)
    )
    bad_label = asyncio.run(
        service.book(BookingRequest(service_name="Beard Trim", date=FUTURE_DAY, slot_label="10:15"), customer)
    )

    assert own.appointment.customer_id == "CUST-A"
    assert own.appointment.appointment_instant == _at("10:00")
    assert on_behalf.appointment.customer_id == "CUST-B"
    assert missing_customer.failure == FailureCode.NOT_FOUND
    assert bad_label.failure == FailureCode.SLOT_CLOSED


def test_booking_request_requires_instant_or_slot() -> None:
    with pytest.raises(ValueError):
        BookingRequest(service_name="Beard Trim", date=FUTURE_DAY)


# --- availability ------------------------------------------------------------


def test_cancelling_frees_a_seat_in_availability(client, clock) -> None:
    booking = BookingReservationService(client, clock=clock)
    lifecycle = AppointmentLifecycleManager(client, clock=clock)
    calculator = AvailabilityCalculator(client)

    first = asyncio.run(booking.attempt_booking("CUST-A", "Classic Haircut", _at("10:00")))
    asyncio.run(booking.attempt_booking("CUST-B", "Classic Haircut", _at("10:00")))
    assert asyncio.run(calculator.count_booked(FUTURE_DAY, "10:00")) == 2

    asyncio.run(
        lifecycle.cancel(first.appointment.id, Actor(actor_id="CUST-A", role=ActorRole.CUSTOMER))
    )

    assert asyncio.run(calculator.count_booked(FUTURE_DAY, "10:00")) == 1


def test_day_availability_reports_every_slot(client, clock) -> None:
    asyncio.run(SlotCapacityRegistry(client).set_capacity("15:30", 0))
    booking = BookingReservationService(client, clock=clock)
    asyncio.run(booking.attempt_booking("CUST-A", "Classic Haircut", _at("09:00")))
    asyncio.run(booking.attempt_booking("CUST-B", "Classic Haircut", _at("09:00")))
    asyncio.run(booking.attempt_booking("CUST-C", "Classic Haircut", _at("09:00", date(2026, 10, 22))))

    response = asyncio.run(AvailabilityCalculator(client).day_availability(FUTURE_DAY))
    slots = {slot.slot_label: slot for slot in response.slots}

    assert response.timezone == "Asia/Shanghai"
    assert len(response.slots) == 10
    assert slots["09:00"].booked == 2
    assert slots["09:00"].remaining == 0
    assert slots["09:00"].full is True
    assert slots["15:30"].closed is True
    assert slots["16:00"].remaining == 2
    assert slots["16:00"].window == "afternoon"


def test_off_grid_appointments_are_listed_but_not_counted(client) -> None:
    store = get_mock_store()
    asyncio.run(
        store.appointments.insert(
            customer_id="CUST-LEGACY",
            service_name="Beard Trim",
            appointment_instant=datetime(2026, 10, 21, 9, 15, tzinfo=TZ),
        )
    )

    calculator = AvailabilityCalculator(client)

    assert asyncio.run(calculator.count_booked(FUTURE_DAY, "09:00")) == 0
    assert len(asyncio.run(store.appointments.list("CUST-LEGACY"))) == 1


