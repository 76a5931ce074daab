import datetime as dt
import uuid
from dataclasses import dataclass
from typing import Iterable, Protocol, Sequence, runtime_checkable

from booking_core.core.intervals import TimeWindow
from booking_core.modules.availability.schemas import AvailabilityRecord
from booking_core.modules.bookings.schemas import Booking, BookingStatus
from booking_core.modules.providers.schemas import Provider
from booking_core.modules.slots.schemas import Slot


@runtime_checkable
class ProviderRegistryPort(Protocol):
    async def get(self, provider_id: uuid.UUID) -> Provider | None: ...
    async def find_eligible(self, service_id: str | None = None) -> Sequence[Provider]: ...
    async def add(self, provider: Provider) -> Provider: ...
    async def save(self, provider: Provider) -> Provider: ...


@runtime_checkable
class AvailabilityStorePort(Protocol):
    async def get(self, provider_id: uuid.UUID) -> AvailabilityRecord | None: ...
    async def insert(self, record: AvailabilityRecord) -> AvailabilityRecord: ...
    async def save(self, record: AvailabilityRecord, expected_version: int) -> AvailabilityRecord: ...


@runtime_checkable
class BookingStorePort(Protocol):
    async def get(self, booking_id: uuid.UUID) -> Booking | None: ...
    async def find_overlapping(
        self, provider_id: uuid.UUID, on: dt.date, window: TimeWindow,
        statuses: Iterable[BookingStatus], exclude_id: uuid.UUID | None = None,
    ) -> Sequence[Booking]: ...
    async def list_for_provider_on(
        self, provider_id: uuid.UUID, on: dt.date, statuses: Iterable[BookingStatus]
    ) -> Sequence[Booking]: ...
    # "after" means the session starts strictly later than the given moment
    async def count_active_for_provider(
        self, provider_id: uuid.UUID, after: dt.datetime, statuses: Iterable[BookingStatus]
    ) -> int: ...
    # in-progress sessions are listed even though they have started
    async def list_upcoming_for_provider(
        self, provider_id: uuid.UUID, after: dt.datetime, statuses: Iterable[BookingStatus],
        limit: int = 50, offset: int = 0,
    ) -> Sequence[Booking]: ...


@runtime_checkable
class SlotStorePort(Protocol):
    async def get(self, slot_id: uuid.UUID) -> Slot | None: ...
    async def insert_many(self, slots: Sequence[Slot]) -> Sequence[Slot]: ...
    async def list_for_provider_on(self, provider_id: uuid.UUID, on: dt.date) -> Sequence[Slot]: ...
    async def find_exact(
        self, provider_id: uuid.UUID, on: dt.date, window: TimeWindow, service_id: str | None = None
    ) -> Slot | None: ...
    async def find_available(
        self, provider_id: uuid.UUID, start_date: dt.date, end_date: dt.date,
        service_id: str | None = None, duration: int | None = None,
    ) -> Sequence[Slot]: ...
    async def try_book(self, slot_id: uuid.UUID, booking_id: uuid.UUID) -> Slot | None: ...
    async def release(self, slot_id: uuid.UUID, booking_id: uuid.UUID) -> Slot | None: ...
    async def cancel(self, slot_id: uuid.UUID) -> Slot | None: ...


@dataclass(frozen=True)
class BookingWrite:
    """One booking change applied as a single unit.

    ``expected_version`` None means insert. ``provider_seq`` is the provider's
    ``booking_seq`` read before the availability check; the write only goes
    through if nobody advanced it since. ``claim_slot`` is booked before the
    booking is stored and ``release_slot`` is freed after it.
    """
    booking: Booking
    expected_version: int | None = None
    provider_seq: tuple[uuid.UUID, int] | None = None
    claim_slot: uuid.UUID | None = None
    release_slot: uuid.UUID | None = None


@runtime_checkable
class StorePort(Protocol):
    providers: ProviderRegistryPort
    availability: AvailabilityStorePort
    bookings: BookingStorePort
    slots: SlotStorePort

    async def apply(self, change: BookingWrite) -> Booking:
        """Raises ConcurrentUpdate on a stale version or sequence, SlotConflict if the slot is gone."""
        ...

    async def commit(self) -> None: ...
    async def rollback(self) -> None: ...
