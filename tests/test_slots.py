"""Tests for the pre-generated slot inventory."""

import datetime as dt
import uuid

import pytest

from booking_core.core.errors import AlreadyTerminal, InvalidRequest, InvalidTimeWindow, NotFound, SlotConflict
from booking_core.modules.availability.recurrence import Frequency
from booking_core.modules.slots.schemas import Slot, SlotCreate, SlotGenerate, SlotStatus
from booking_core.core.intervals import make_window
from tests.conftest import MONDAY, NOW, TUESDAY, add_provider, make_request


def create(provider_id, on=MONDAY, start="10:00", end="11:00", **kw) -> SlotCreate:
    return SlotCreate(provider_id=provider_id, date=on, start_time=start, end_time=end, **kw)


class TestSlotModel:
    def test_claim_and_release(self):
        s = Slot(provider_id=uuid.uuid4(), date=MONDAY, window=make_window("10:00", "11:00"))
        b = uuid.uuid4()
        taken = s.claimed_by(b)
        assert taken.status == SlotStatus.BOOKED and taken.booking_id == b and taken.version == 2
        assert taken.claimed_by(uuid.uuid4()) is None
        assert taken.released_by(uuid.uuid4()) is None
        freed = taken.released_by(b)
        assert freed.status == SlotStatus.AVAILABLE and freed.booking_id is None

    def test_service_match(self):
        s = Slot(provider_id=uuid.uuid4(), date=MONDAY, window=make_window("10:00", "11:00"), service_id="puja")
        assert s.serves("puja") and s.serves(None) and not s.serves("havan")


class TestCreateSlot:
    @pytest.mark.asyncio
    async def test_create(self, store, slots, availability):
        p = await add_provider(store)
        await availability.update_settings(p.id, timezone="Asia/Kathmandu")
        s = await slots.create_slot(create(p.id, price=501), created_by="admin")
        assert s.status == SlotStatus.AVAILABLE and s.timezone == "Asia/Kathmandu"
        assert await slots.get_slot(s.id) == s

    @pytest.mark.asyncio
    async def test_unknown_provider(self, slots):
        with pytest.raises(NotFound):
            await slots.create_slot(create(uuid.uuid4()))

    @pytest.mark.asyncio
    async def test_must_be_in_future(self, store, slots):
        p = await add_provider(store)
        with pytest.raises(InvalidRequest):
            await slots.create_slot(create(p.id, on=NOW.date(), start="07:00", end="08:00"))

    @pytest.mark.asyncio
    async def test_overlapping_slots_rejected(self, store, slots):
        p = await add_provider(store)
        await slots.create_slot(create(p.id))
        with pytest.raises(SlotConflict):
            await slots.create_slot(create(p.id, start="10:30", end="11:30"))
        await slots.create_slot(create(p.id, start="11:00", end="12:00"))

    @pytest.mark.asyncio
    async def test_bad_window(self, store, slots):
        p = await add_provider(store)
        with pytest.raises(InvalidTimeWindow):
            await slots.create_slot(create(p.id, start="11:00", end="10:00"))


class TestGenerate:
    @pytest.mark.asyncio
    async def test_weekly_generation(self, store, slots):
        p = await add_provider(store)
        made = await slots.generate_recurring_slots(SlotGenerate(
            provider_id=p.id, frequency=Frequency.WEEKLY, start_date=MONDAY, end_date=MONDAY + dt.timedelta(days=24),
            start_time="06:00", end_time="07:00", days_of_week=["monday", "thursday"],
            exclude_dates=[MONDAY + dt.timedelta(days=7)],
        ))
        assert [s.date.isoformat() for s in made] == [
            "2030-01-07", "2030-01-10", "2030-01-17", "2030-01-21", "2030-01-24", "2030-01-28", "2030-01-31",
        ]
        assert len({s.recurrence_group for s in made}) == 1
        assert all(s.is_recurring for s in made)

    @pytest.mark.asyncio
    async def test_generation_skips_past_and_clashing(self, store, slots):
        p = await add_provider(store)
        await slots.create_slot(create(p.id, on=dt.date(2030, 1, 3), start="06:30", end="07:30"))
        made = await slots.generate_recurring_slots(SlotGenerate(
            provider_id=p.id, frequency=Frequency.DAILY, start_date=NOW.date(), end_date=dt.date(2030, 1, 4),
            start_time="06:00", end_time="07:00",
        ))
        # Jan 1 has already started, Jan 3 clashes with the existing slot
        assert [s.date.day for s in made] == [2, 4]

    @pytest.mark.asyncio
    async def test_generation_span_is_bounded(self, store, slots):
        p = await add_provider(store)
        with pytest.raises(InvalidRequest):
            await slots.generate_recurring_slots(SlotGenerate(
                provider_id=p.id, frequency=Frequency.DAILY, start_date=MONDAY, end_date=MONDAY + dt.timedelta(days=400),
                start_time="06:00", end_time="07:00",
            ))


class TestFind:
    @pytest.mark.asyncio
    async def test_find_available(self, store, slots, bookings):
        p = await add_provider(store)
        a = await slots.create_slot(create(p.id))
        b = await slots.create_slot(create(p.id, on=TUESDAY, service_id="havan"))
        c = await slots.create_slot(create(p.id, on=TUESDAY, start="12:00", end="12:30"))
        far = await slots.create_slot(create(p.id, on=MONDAY + dt.timedelta(days=60)))

        found = await slots.find_available_slots(p.id)
        assert [s.id for s in found] == [a.id, b.id, c.id]
        assert far.id not in [s.id for s in found]
        assert [s.id for s in await slots.find_available_slots(p.id, service_id="puja")] == [a.id, c.id]
        assert [s.id for s in await slots.find_available_slots(p.id, duration=30)] == [c.id]

        await bookings.create_booking(make_request(slot_id=a.id))
        assert a.id not in [s.id for s in await slots.find_available_slots(p.id)]

    @pytest.mark.asyncio
    async def test_inverted_range(self, store, slots):
        p = await add_provider(store)
        with pytest.raises(InvalidRequest):
            await slots.find_available_slots(p.id, start_date=TUESDAY, end_date=MONDAY)


class TestCancel:
    @pytest.mark.asyncio
    async def test_cancel_free_slot(self, store, slots):
        p = await add_provider(store)
        s = await slots.create_slot(create(p.id))
        assert (await slots.cancel_slot(s.id)).status == SlotStatus.CANCELLED
        with pytest.raises(AlreadyTerminal):
            await slots.cancel_slot(s.id)
        # a cancelled slot no longer blocks a new one
        await slots.create_slot(create(p.id))

    @pytest.mark.asyncio
    async def test_cannot_cancel_booked_slot(self, store, slots, bookings):
        p = await add_provider(store)
        s = await slots.create_slot(create(p.id))
        await bookings.create_booking(make_request(slot_id=s.id))
        with pytest.raises(SlotConflict, match="has bookings"):
            await slots.cancel_slot(s.id)
