"""In-process store for local runs and tests.

Reads yield to the event loop once so concurrent requests really interleave.
Every write checks its preconditions and applies its changes without
awaiting in between, which makes each write atomic on a single loop.
"""
import asyncio
import datetime as dt
import logging
import uuid
from dataclasses import dataclass, field
from typing import Iterable, Sequence

from booking_core.core.base import _utcnow
from booking_core.core.errors import ConcurrentUpdate, SlotConflict
from booking_core.core.intervals import TimeWindow
from booking_core.modules.availability.schemas import AvailabilityRecord
from booking_core.modules.bookings.schemas import Booking, BookingStatus
from booking_core.modules.providers.schemas import Provider
from booking_core.modules.slots.schemas import Slot, SlotStatus
from booking_core.platform.ports.store import BookingWrite

log = logging.getLogger("store.memory")


@dataclass
class _State:
    providers: dict[uuid.UUID, Provider] = field(default_factory=dict)
    records: dict[uuid.UUID, AvailabilityRecord] = field(default_factory=dict)
    bookings: dict[uuid.UUID, Booking] = field(default_factory=dict)
    slots: dict[uuid.UUID, Slot] = field(default_factory=dict)


class MemoryProviderRegistry:
    def __init__(self, state: _State): self._s = state

    async def get(self, provider_id: uuid.UUID) -> Provider | None:
        await asyncio.sleep(0)
        return self._s.providers.get(provider_id)

    async def find_eligible(self, service_id: str | None = None) -> Sequence[Provider]:
        await asyncio.sleep(0)
        return [p for p in self._s.providers.values() if p.is_eligible and p.can_perform(service_id)]

    async def add(self, provider: Provider) -> Provider:
        self._s.providers[provider.id] = provider
        return provider

    async def save(self, provider: Provider) -> Provider:
        self._s.providers[provider.id] = provider
        return provider


class MemoryAvailabilityStore:
    def __init__(self, state: _State): self._s = state

    async def get(self, provider_id: uuid.UUID) -> AvailabilityRecord | None:
        await asyncio.sleep(0)
        return self._s.records.get(provider_id)

    async def insert(self, record: AvailabilityRecord) -> AvailabilityRecord:
        # first writer wins; a racing creator gets the stored record back
        return self._s.records.setdefault(record.provider_id, record)

    async def save(self, record: AvailabilityRecord, expected_version: int) -> AvailabilityRecord:
        cur = self._s.records.get(record.provider_id)
        if cur is None or cur.version != expected_version:
            raise ConcurrentUpdate("Availability was changed by another request")
        saved = record.model_copy(update={"version": cur.version + 1, "booking_seq": cur.booking_seq + 1})
        self._s.records[record.provider_id] = saved
        return saved


class MemoryBookingStore:
    def __init__(self, state: _State): self._s = state

    def _for(self, provider_id: uuid.UUID, statuses: Iterable[BookingStatus]) -> list[Booking]:
        wanted = set(statuses)
        return [b for b in self._s.bookings.values() if b.provider_id == provider_id and b.status in wanted]

    async def get(self, booking_id: uuid.UUID) -> Booking | None:
        await asyncio.sleep(0)
        return self._s.bookings.get(booking_id)

    async def find_overlapping(self, provider_id, on, window: TimeWindow, statuses, exclude_id=None) -> Sequence[Booking]:
        await asyncio.sleep(0)
        return [
            b for b in self._for(provider_id, statuses)
            if b.date == on and b.id != exclude_id and b.window.overlaps(window)
        ]

    async def list_for_provider_on(self, provider_id, on, statuses) -> Sequence[Booking]:
        await asyncio.sleep(0)
        return sorted((b for b in self._for(provider_id, statuses) if b.date == on), key=lambda b: b.window.start)

    async def count_active_for_provider(self, provider_id, after: dt.datetime, statuses) -> int:
        await asyncio.sleep(0)
        return sum(1 for b in self._for(provider_id, statuses) if b.starts_at > after)

    async def list_upcoming_for_provider(self, provider_id, after: dt.datetime, statuses, limit=50, offset=0) -> Sequence[Booking]:
        await asyncio.sleep(0)
        rows = sorted(
            (b for b in self._for(provider_id, statuses) if b.starts_at > after or b.status == BookingStatus.IN_PROGRESS),
            key=lambda b: b.starts_at,
        )
        return rows[offset:offset + limit]


class MemorySlotStore:
    def __init__(self, state: _State): self._s = state

    async def get(self, slot_id: uuid.UUID) -> Slot | None:
        await asyncio.sleep(0)
        return self._s.slots.get(slot_id)

    async def insert_many(self, slots: Sequence[Slot]) -> Sequence[Slot]:
        for s in slots:
            self._s.slots[s.id] = s
        return list(slots)

    async def list_for_provider_on(self, provider_id, on) -> Sequence[Slot]:
        await asyncio.sleep(0)
        found = [s for s in self._s.slots.values() if s.provider_id == provider_id and s.date == on and s.status != SlotStatus.CANCELLED]
        return sorted(found, key=lambda s: s.window.start)

    async def find_exact(self, provider_id, on, window: TimeWindow, service_id=None) -> Slot | None:
        await asyncio.sleep(0)
        for s in self._s.slots.values():
            same = s.window.start == window.start and s.window.end == window.end
            if s.provider_id == provider_id and s.date == on and same and s.has_capacity and s.serves(service_id):
                return s
        return None

    async def find_available(self, provider_id, start_date, end_date, service_id=None, duration=None) -> Sequence[Slot]:
        await asyncio.sleep(0)
        found = [
            s for s in self._s.slots.values()
            if s.provider_id == provider_id and start_date <= s.date <= end_date and s.has_capacity
            and s.serves(service_id) and (duration is None or s.window.duration == duration)
        ]
        return sorted(found, key=lambda s: s.starts_at)

    async def try_book(self, slot_id: uuid.UUID, booking_id: uuid.UUID) -> Slot | None:
        cur = self._s.slots.get(slot_id)
        nxt = cur.claimed_by(booking_id) if cur else None
        if nxt is not None:
            self._s.slots[slot_id] = nxt
        return nxt

    async def release(self, slot_id: uuid.UUID, booking_id: uuid.UUID) -> Slot | None:
        cur = self._s.slots.get(slot_id)
        nxt = cur.released_by(booking_id) if cur else None
        if nxt is not None:
            self._s.slots[slot_id] = nxt
        return nxt

    async def cancel(self, slot_id: uuid.UUID) -> Slot | None:
        cur = self._s.slots.get(slot_id)
        if cur is None or cur.current_participants > 0 or cur.status == SlotStatus.CANCELLED:
            return None
        nxt = cur.model_copy(update={"status": SlotStatus.CANCELLED, "version": cur.version + 1})
        self._s.slots[slot_id] = nxt
        return nxt


class MemoryStore:
    def __init__(self):
        self._state = _State()
        self.providers = MemoryProviderRegistry(self._state)
        self.availability = MemoryAvailabilityStore(self._state)
        self.bookings = MemoryBookingStore(self._state)
        self.slots = MemorySlotStore(self._state)

    async def apply(self, change: BookingWrite) -> Booking:
        s, b = self._state, change.booking
        rec = None
        if change.provider_seq is not None:
            pid, seq = change.provider_seq
            rec = s.records.get(pid)
            if rec is None or rec.booking_seq != seq:
                raise ConcurrentUpdate("Provider schedule changed while booking")
        if change.expected_version is not None:
            cur = s.bookings.get(b.id)
            if cur is None or cur.version != change.expected_version:
                raise ConcurrentUpdate("Booking was changed by another request")
        claimed = released = None
        if change.claim_slot is not None:
            slot = s.slots.get(change.claim_slot)
            claimed = slot.claimed_by(b.id) if slot else None
            if claimed is None:
                raise SlotConflict("Slot is no longer available")
        if change.release_slot is not None:
            slot = s.slots.get(change.release_slot)
            released = slot.released_by(b.id) if slot else None
            if released is None:
                log.warning(f"slot {change.release_slot} had nothing to release for booking {b.booking_number}")

        now = _utcnow()
        if rec is not None:
            s.records[rec.provider_id] = rec.model_copy(update={"booking_seq": rec.booking_seq + 1})
        if claimed is not None:
            s.slots[claimed.id] = claimed
        if change.expected_version is None:
            saved = b.model_copy(update={"version": 1, "created_at": now, "updated_at": now})
        else:
            saved = b.model_copy(update={"version": change.expected_version + 1, "updated_at": now})
        s.bookings[b.id] = saved
        if released is not None:
            s.slots[released.id] = released
        return saved

    async def commit(self) -> None:
        return None

    async def rollback(self) -> None:
        return None
