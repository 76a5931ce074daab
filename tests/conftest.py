"""Shared test fixtures and helpers."""

import os

# Tests always run against the in-process store and the local auth shortcut.
os.environ.setdefault("ENV", "local")
os.environ.setdefault("STORE_PROVIDER", "memory")

import datetime as dt
import uuid
from typing import Optional

import pytest

from booking_core.modules.availability.schemas import TimeSlotIn
from booking_core.modules.availability.service import AvailabilityService
from booking_core.modules.assignment.service import AssignmentService
from booking_core.modules.bookings.schemas import Booking, BookingCreate, PaymentStatus
from booking_core.modules.bookings.service import BookingService
from booking_core.modules.providers.schemas import Provider
from booking_core.modules.slots.service import SlotService
from booking_core.platform.adapters.store_memory import MemoryStore

NOW = dt.datetime(2030, 1, 1, 8, 0)
MONDAY = dt.date(2030, 1, 7)
TUESDAY = dt.date(2030, 1, 8)
SUNDAY = dt.date(2030, 1, 6)


class FakePayments:
    def __init__(self):
        self.captures: list[Booking] = []
        self.refunds: list[tuple[Booking, float]] = []
        self.fail = False

    async def request_capture(self, booking: Booking) -> None:
        if self.fail:
            raise RuntimeError("payment gateway down")
        self.captures.append(booking)

    async def request_refund(self, booking: Booking, amount: float) -> None:
        if self.fail:
            raise RuntimeError("payment gateway down")
        self.refunds.append((booking, amount))


class FakeNotifier:
    def __init__(self):
        self.events: list[tuple[str, Booking, dict]] = []

    async def notify(self, event: str, booking: Booking, **extra) -> None:
        self.events.append((event, booking, extra))

    def names(self) -> list[str]:
        return [e for e, _, _ in self.events]


class Clock:
    def __init__(self, now: dt.datetime = NOW):
        self.now = now

    def __call__(self) -> dt.datetime:
        return self.now


def ts(start: str, end: str, is_available: bool = True) -> TimeSlotIn:
    return TimeSlotIn(start_time=start, end_time=end, is_available=is_available)


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def payments():
    return FakePayments()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def availability(store, clock):
    return AvailabilityService(store, clock)


@pytest.fixture
def bookings(store, payments, notifier, clock):
    return BookingService(store, payments, notifier, clock)


@pytest.fixture
def assignment(store, payments, notifier, clock):
    return AssignmentService(store, payments, notifier, clock)


@pytest.fixture
def slots(store, clock):
    return SlotService(store, clock)


async def add_provider(
    store,
    name: str = "Pandit Sharma",
    rating: float = 4.5,
    capabilities: tuple[str, ...] = ("puja", "havan"),
    is_verified: bool = True,
    user_id: Optional[uuid.UUID] = None,
    **kw,
) -> Provider:
    """Helper to register a provider straight into a store."""
    p = Provider(name=name, rating=rating, capabilities=capabilities, is_verified=is_verified, user_id=user_id, **kw)
    await store.providers.add(p)
    await store.commit()
    return p


def make_request(
    on: dt.date = MONDAY,
    start: str = "10:00",
    end: str = "11:00",
    service_id: str = "puja",
    provider_id: Optional[uuid.UUID] = None,
    slot_id: Optional[uuid.UUID] = None,
    auto_assign: bool = False,
    total_amount: float = 0.0,
    payment_status: PaymentStatus = PaymentStatus.PENDING,
) -> BookingCreate:
    """Helper to create a BookingCreate."""
    return BookingCreate(
        service_id=service_id, date=on, start_time=start, end_time=end, provider_id=provider_id,
        slot_id=slot_id, auto_assign=auto_assign, total_amount=total_amount, payment_status=payment_status,
    )
