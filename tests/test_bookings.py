"""Tests for the booking lifecycle: create, cancel, reschedule and session progress."""

import datetime as dt
import uuid

import pytest

from booking_core.core.errors import (
    AlreadyTerminal, InvalidRequest, NoSlotForNewWindow, NotFound, OutsideWorkingHours, RescheduleNotAllowed,
    SlotConflict,
)
from booking_core.modules.bookings.lifecycle import VALID_NEXT, new_booking_number
from booking_core.modules.bookings.schemas import BookingStatus, PaymentStatus, RefundStatus, RescheduleStatus
from booking_core.modules.bookings.service import BookingService
from booking_core.modules.slots.schemas import SlotCreate, SlotStatus
from tests.conftest import MONDAY, NOW, SUNDAY, TUESDAY, add_provider, make_request


async def paid_booking(store, bookings, **kw):
    p = await add_provider(store)
    b = await bookings.create_booking(make_request(provider_id=p.id, payment_status=PaymentStatus.PAID, total_amount=1100, **kw))
    return p, b


async def make_slot(slots, provider_id, on=MONDAY, start="10:00", end="11:00", **kw):
    return await slots.create_slot(SlotCreate(provider_id=provider_id, date=on, start_time=start, end_time=end, **kw))


class TestCreate:
    @pytest.mark.asyncio
    async def test_without_provider_is_pending(self, bookings, notifier):
        b = await bookings.create_booking(make_request(), actor="u-1")
        assert b.status == BookingStatus.PENDING
        assert b.provider_id is None
        assert b.booking_number.startswith("PB-20300101-")
        assert b.created_by == "u-1" and b.version == 1
        assert notifier.names() == ["created"]

    @pytest.mark.asyncio
    async def test_with_provider_is_confirmed_and_requests_capture(self, store, bookings, payments, notifier):
        p = await add_provider(store)
        b = await bookings.create_booking(make_request(provider_id=p.id, total_amount=501))
        assert b.status == BookingStatus.CONFIRMED
        assert b.provider_id == p.id
        assert [c.id for c in payments.captures] == [b.id]
        assert notifier.names() == ["confirmed"]

    @pytest.mark.asyncio
    async def test_paid_or_free_bookings_skip_capture(self, store, bookings, payments):
        p = await add_provider(store)
        await bookings.create_booking(make_request(provider_id=p.id))
        await bookings.create_booking(make_request(provider_id=p.id, start="11:00", end="12:00",
                                                   total_amount=100, payment_status=PaymentStatus.PAID))
        assert payments.captures == []

    @pytest.mark.asyncio
    async def test_past_start_rejected(self, bookings, clock):
        with pytest.raises(InvalidRequest, match="future"):
            await bookings.create_booking(make_request(on=NOW.date(), start="07:00", end="08:00"))

    @pytest.mark.asyncio
    async def test_provider_checks_apply(self, store, bookings):
        p = await add_provider(store)
        with pytest.raises(OutsideWorkingHours):
            await bookings.create_booking(make_request(provider_id=p.id, on=SUNDAY))
        await bookings.create_booking(make_request(provider_id=p.id))
        with pytest.raises(SlotConflict) as err:
            await bookings.create_booking(make_request(provider_id=p.id, start="10:30", end="11:30"))
        assert err.value.details["conflicting_bookings"]

    @pytest.mark.asyncio
    async def test_inactive_provider(self, store, bookings):
        p = await add_provider(store, is_active=False)
        with pytest.raises(InvalidRequest, match="not active"):
            await bookings.create_booking(make_request(provider_id=p.id))

    @pytest.mark.asyncio
    async def test_auto_assign_on_create(self, store, bookings):
        p = await add_provider(store)
        b = await bookings.create_booking(make_request(auto_assign=True))
        assert b.status == BookingStatus.CONFIRMED
        assert b.provider_id == p.id

    @pytest.mark.asyncio
    async def test_notification_failure_keeps_the_booking(self, store, payments, clock, caplog):
        class Broken:
            async def notify(self, event, booking, **extra):
                raise RuntimeError("smtp down")

        svc = BookingService(store, payments, Broken(), clock)
        p = await add_provider(store)
        b = await svc.create_booking(make_request(provider_id=p.id))
        assert (await store.bookings.get(b.id)).status == BookingStatus.CONFIRMED
        assert "notification confirmed" in caplog.text

    def test_booking_number_format(self):
        n = new_booking_number(NOW)
        assert n.startswith("PB-20300101-") and len(n) == len("PB-20300101-") + 5


class TestSlotBookings:
    @pytest.mark.asyncio
    async def test_slot_is_consumed(self, store, bookings, slots):
        p = await add_provider(store)
        s = await make_slot(slots, p.id)
        b = await bookings.create_booking(make_request(slot_id=s.id))
        assert b.status == BookingStatus.CONFIRMED
        assert (b.provider_id, b.slot_id) == (p.id, s.id)
        taken = await store.slots.get(s.id)
        assert taken.status == SlotStatus.BOOKED and taken.booking_id == b.id
        with pytest.raises(SlotConflict):
            await bookings.create_booking(make_request(slot_id=s.id))

    @pytest.mark.asyncio
    async def test_slot_outside_weekly_hours_is_bookable(self, store, bookings, slots):
        p = await add_provider(store)
        s = await make_slot(slots, p.id, on=SUNDAY, start="06:00", end="07:00")
        b = await bookings.create_booking(make_request(on=SUNDAY, start="06:00", end="07:00", slot_id=s.id))
        assert b.slot_id == s.id

    @pytest.mark.asyncio
    async def test_group_slot_takes_several_participants(self, store, bookings, slots):
        p = await add_provider(store)
        s = await make_slot(slots, p.id, max_participants=2)
        await bookings.create_booking(make_request(slot_id=s.id))
        await bookings.create_booking(make_request(slot_id=s.id))
        full = await store.slots.get(s.id)
        assert full.current_participants == 2 and full.status == SlotStatus.BOOKED and full.booking_id is None
        with pytest.raises(SlotConflict):
            await bookings.create_booking(make_request(slot_id=s.id))

    @pytest.mark.asyncio
    async def test_window_must_match_slot(self, store, bookings, slots):
        p = await add_provider(store)
        s = await make_slot(slots, p.id)
        with pytest.raises(InvalidRequest):
            await bookings.create_booking(make_request(slot_id=s.id, start="10:00", end="10:30"))

    @pytest.mark.asyncio
    async def test_slot_reserved_for_other_service(self, store, bookings, slots):
        p = await add_provider(store)
        s = await make_slot(slots, p.id, service_id="havan")
        with pytest.raises(InvalidRequest):
            await bookings.create_booking(make_request(slot_id=s.id, service_id="puja"))

    @pytest.mark.asyncio
    async def test_booked_slot_hides_window_from_generator(self, store, bookings, slots, availability):
        p = await add_provider(store)
        s = await make_slot(slots, p.id)
        await bookings.create_booking(make_request(slot_id=s.id))
        generated = await availability.get_available_slots(p.id, MONDAY, duration=60, buffer_time=0)
        assert "10:00" not in [g.start for g in generated]


class TestCancel:
    @pytest.mark.asyncio
    async def test_cancel_frees_the_window(self, store, bookings, availability):
        p = await add_provider(store)
        b = await bookings.create_booking(make_request(provider_id=p.id))
        assert not (await availability.check_availability(p.id, MONDAY, "10:00", "11:00")).available
        cancelled = await bookings.cancel_booking(b.id, "family emergency", cancelled_by="u-1")
        assert cancelled.status == BookingStatus.CANCELLED
        assert cancelled.cancellation.reason == "family emergency"
        assert cancelled.payment_status == PaymentStatus.CANCELLED
        assert (await availability.check_availability(p.id, MONDAY, "10:00", "11:00")).available

    @pytest.mark.asyncio
    async def test_paid_cancel_requests_refund(self, store, bookings, payments):
        _, b = await paid_booking(store, bookings)
        cancelled = await bookings.cancel_booking(b.id)
        assert cancelled.payment_status == PaymentStatus.REFUND_PENDING
        assert cancelled.cancellation.refund_status == RefundStatus.PENDING
        assert cancelled.cancellation.refund_amount == 1100
        assert [(r.id, amount) for r, amount in payments.refunds] == [(b.id, 1100)]

    @pytest.mark.asyncio
    async def test_late_paid_cancel_is_still_refunded(self, store, bookings, payments, clock):
        _, b = await paid_booking(store, bookings)
        # cancellation has no lead-time cutoff, only rescheduling does
        clock.now = dt.datetime(2030, 1, 7, 9, 50)
        cancelled = await bookings.cancel_booking(b.id)
        assert cancelled.status == BookingStatus.CANCELLED
        assert cancelled.cancellation.refund_status == RefundStatus.PENDING
        assert [r.id for r, _ in payments.refunds] == [b.id]

    @pytest.mark.asyncio
    async def test_cancel_releases_slot(self, store, bookings, slots):
        p = await add_provider(store)
        s = await make_slot(slots, p.id)
        b = await bookings.create_booking(make_request(slot_id=s.id))
        await bookings.cancel_booking(b.id)
        freed = await store.slots.get(s.id)
        assert freed.status == SlotStatus.AVAILABLE and freed.current_participants == 0 and freed.booking_id is None

    @pytest.mark.asyncio
    async def test_terminal_bookings_cannot_be_cancelled(self, store, bookings):
        p = await add_provider(store)
        b = await bookings.create_booking(make_request(provider_id=p.id))
        await bookings.cancel_booking(b.id)
        with pytest.raises(AlreadyTerminal, match="already cancelled or rejected"):
            await bookings.cancel_booking(b.id)

        other = await bookings.create_booking(make_request(provider_id=p.id))
        await bookings.complete_booking(other.id)
        with pytest.raises(AlreadyTerminal, match="Cannot cancel a completed booking"):
            await bookings.cancel_booking(other.id)

    @pytest.mark.asyncio
    async def test_reject_releases_slot(self, store, bookings, slots, notifier):
        p = await add_provider(store)
        s = await make_slot(slots, p.id)
        b = await bookings.create_booking(make_request(slot_id=s.id))
        rejected = await bookings.reject_booking(b.id, "not performing this ritual", rejected_by="priest")
        assert rejected.status == BookingStatus.REJECTED
        assert (await store.slots.get(s.id)).has_capacity
        assert notifier.names()[-1] == "rejected"

    @pytest.mark.asyncio
    async def test_unknown_booking(self, bookings):
        with pytest.raises(NotFound):
            await bookings.cancel_booking(uuid.uuid4())


class TestReschedule:
    @pytest.mark.asyncio
    async def test_request_keeps_window_and_blocks(self, store, bookings, availability):
        p, b = await paid_booking(store, bookings)
        moved = await bookings.request_reschedule(b.id, TUESDAY, "10:00", "11:00", reason="travel")
        assert moved.status == BookingStatus.RESCHEDULED
        assert (moved.date, moved.window) == (b.date, b.window)
        req = moved.reschedule_requests[-1]
        assert req.status == RescheduleStatus.REQUESTED and req.previous_status == BookingStatus.CONFIRMED
        assert not (await availability.check_availability(p.id, MONDAY, "10:00", "11:00")).available

    @pytest.mark.asyncio
    async def test_unpaid_booking_cannot_reschedule(self, store, bookings):
        p = await add_provider(store)
        b = await bookings.create_booking(make_request(provider_id=p.id))
        with pytest.raises(RescheduleNotAllowed):
            await bookings.request_reschedule(b.id, TUESDAY, "10:00", "11:00")

    @pytest.mark.asyncio
    async def test_second_request_while_pending(self, store, bookings):
        _, b = await paid_booking(store, bookings)
        await bookings.request_reschedule(b.id, TUESDAY, "10:00", "11:00")
        with pytest.raises(RescheduleNotAllowed):
            await bookings.request_reschedule(b.id, TUESDAY, "12:00", "13:00")

    @pytest.mark.asyncio
    async def test_same_window_rejected(self, store, bookings):
        _, b = await paid_booking(store, bookings)
        with pytest.raises(InvalidRequest):
            await bookings.request_reschedule(b.id, MONDAY, "10:00", "11:00")

    @pytest.mark.asyncio
    async def test_approve_moves_booking(self, store, bookings, availability, notifier):
        p, b = await paid_booking(store, bookings)
        req = (await bookings.request_reschedule(b.id, TUESDAY, "15:00", "16:00")).reschedule_requests[-1]
        done = await bookings.approve_reschedule(b.id, req.id, approved_by="admin", notes="ok")
        assert done.status == BookingStatus.CONFIRMED
        assert done.date == TUESDAY and done.window.label == "15:00-16:00"
        assert done.reschedule_requests[-1].status == RescheduleStatus.APPROVED
        assert (await availability.check_availability(p.id, MONDAY, "10:00", "11:00")).available
        assert not (await availability.check_availability(p.id, TUESDAY, "15:00", "16:00")).available
        assert notifier.names()[-1] == "reschedule_approved"

    @pytest.mark.asyncio
    async def test_reapprove_is_refused_without_change(self, store, bookings):
        _, b = await paid_booking(store, bookings)
        req = (await bookings.request_reschedule(b.id, TUESDAY, "15:00", "16:00")).reschedule_requests[-1]
        done = await bookings.approve_reschedule(b.id, req.id)
        with pytest.raises(AlreadyTerminal, match="already been processed"):
            await bookings.approve_reschedule(b.id, req.id)
        assert (await store.bookings.get(b.id)).version == done.version

    @pytest.mark.asyncio
    async def test_approve_into_taken_window(self, store, bookings):
        p, b = await paid_booking(store, bookings)
        req = (await bookings.request_reschedule(b.id, TUESDAY, "15:00", "16:00")).reschedule_requests[-1]
        await bookings.create_booking(make_request(provider_id=p.id, on=TUESDAY, start="15:30", end="16:30"))
        with pytest.raises(SlotConflict):
            await bookings.approve_reschedule(b.id, req.id)
        still = await store.bookings.get(b.id)
        assert still.status == BookingStatus.RESCHEDULED and still.date == MONDAY

    @pytest.mark.asyncio
    async def test_reject_restores_previous_status(self, store, bookings):
        _, b = await paid_booking(store, bookings)
        req = (await bookings.request_reschedule(b.id, TUESDAY, "15:00", "16:00")).reschedule_requests[-1]
        back = await bookings.reject_reschedule(b.id, req.id, rejected_by="priest", reason="busy")
        assert back.status == BookingStatus.CONFIRMED
        assert (back.date, back.window) == (b.date, b.window)
        assert back.reschedule_requests[-1].status == RescheduleStatus.REJECTED

    @pytest.mark.asyncio
    async def test_cancel_closes_open_request(self, store, bookings):
        _, b = await paid_booking(store, bookings)
        await bookings.request_reschedule(b.id, TUESDAY, "15:00", "16:00")
        cancelled = await bookings.cancel_booking(b.id)
        assert cancelled.reschedule_requests[-1].status == RescheduleStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_slot_backed_swap(self, store, bookings, slots):
        p = await add_provider(store)
        old = await make_slot(slots, p.id)
        new = await make_slot(slots, p.id, on=TUESDAY)
        b = await bookings.create_booking(make_request(slot_id=old.id, payment_status=PaymentStatus.PAID))
        req = (await bookings.request_reschedule(b.id, TUESDAY, "10:00", "11:00")).reschedule_requests[-1]
        done = await bookings.approve_reschedule(b.id, req.id)
        assert done.slot_id == new.id and done.date == TUESDAY
        assert (await store.slots.get(old.id)).status == SlotStatus.AVAILABLE
        taken = await store.slots.get(new.id)
        assert taken.status == SlotStatus.BOOKED and taken.booking_id == b.id

    @pytest.mark.asyncio
    async def test_slot_backed_without_target_slot(self, store, bookings, slots):
        p = await add_provider(store)
        old = await make_slot(slots, p.id)
        b = await bookings.create_booking(make_request(slot_id=old.id, payment_status=PaymentStatus.PAID))
        req = (await bookings.request_reschedule(b.id, TUESDAY, "10:00", "11:00")).reschedule_requests[-1]
        with pytest.raises(NoSlotForNewWindow, match="No available slot found for the requested time"):
            await bookings.approve_reschedule(b.id, req.id)
        assert (await store.slots.get(old.id)).booking_id == b.id


class TestProgress:
    @pytest.mark.asyncio
    async def test_session_flow(self, store, bookings, notifier):
        p = await add_provider(store)
        b = await bookings.create_booking(make_request(provider_id=p.id))
        started = await bookings.start_session(b.id, actor="priest")
        assert started.status == BookingStatus.IN_PROGRESS
        done = await bookings.complete_booking(b.id)
        assert done.status == BookingStatus.COMPLETED and done.is_terminal
        assert notifier.names()[-2:] == ["started", "completed"]

    @pytest.mark.asyncio
    async def test_pending_booking_cannot_start(self, bookings):
        b = await bookings.create_booking(make_request())
        with pytest.raises(AlreadyTerminal, match="pending to in_progress"):
            await bookings.start_session(b.id)

    @pytest.mark.asyncio
    async def test_no_show_only_from_confirmed(self, store, bookings):
        pending = await bookings.create_booking(make_request())
        with pytest.raises(AlreadyTerminal, match="Cannot move booking from pending to no_show"):
            await bookings.mark_no_show(pending.id)
        p = await add_provider(store)
        b = await bookings.create_booking(make_request(provider_id=p.id))
        assert (await bookings.mark_no_show(b.id)).status == BookingStatus.NO_SHOW

    def test_terminal_states_have_no_exits(self):
        for status in (BookingStatus.COMPLETED, BookingStatus.CANCELLED, BookingStatus.REJECTED, BookingStatus.NO_SHOW):
            assert VALID_NEXT[status] == set()

    @pytest.mark.asyncio
    async def test_payment_and_notes(self, bookings):
        b = await bookings.create_booking(make_request())
        paid = await bookings.record_payment(b.id, PaymentStatus.PAID, actor="gateway")
        assert paid.payment_status == PaymentStatus.PAID
        noted = await bookings.add_note(b.id, "  bring flowers ", created_by="u-1", is_private=True)
        assert noted.notes[-1].content == "bring flowers" and noted.notes[-1].is_private
        with pytest.raises(InvalidRequest):
            await bookings.add_note(b.id, "   ")

    @pytest.mark.asyncio
    async def test_provider_upcoming(self, store, bookings, clock):
        p = await add_provider(store)
        late = await bookings.create_booking(make_request(provider_id=p.id, on=TUESDAY))
        early = await bookings.create_booking(make_request(provider_id=p.id))
        cancelled = await bookings.create_booking(make_request(provider_id=p.id, start="15:00", end="16:00"))
        await bookings.cancel_booking(cancelled.id)
        upcoming = await bookings.list_provider_upcoming(p.id)
        assert [b.id for b in upcoming] == [early.id, late.id]
        assert [b.id for b in await bookings.list_provider_upcoming(p.id, limit=1, offset=1)] == [late.id]

    @pytest.mark.asyncio
    async def test_provider_upcoming_pages_skip_started_sessions(self, store, bookings, clock):
        p = await add_provider(store)
        started = await bookings.create_booking(make_request(provider_id=p.id, start="09:00", end="10:00"))
        noon = await bookings.create_booking(make_request(provider_id=p.id, start="12:00", end="13:00"))
        late = await bookings.create_booking(make_request(provider_id=p.id, on=TUESDAY))
        clock.now = dt.datetime(2030, 1, 7, 9, 30)
        assert [b.id for b in await bookings.list_provider_upcoming(p.id, limit=1)] == [noon.id]
        assert [b.id for b in await bookings.list_provider_upcoming(p.id, limit=1, offset=1)] == [late.id]
        assert started.id not in [b.id for b in await bookings.list_provider_upcoming(p.id)]
