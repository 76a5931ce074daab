import datetime as dt
import logging
import uuid
from typing import Callable

from booking_core.core.config import settings
from booking_core.core.errors import (
    AlreadyTerminal, InvalidRequest, NoSlotForNewWindow, NotFound, RescheduleNotAllowed, SlotConflict,
)
from booking_core.core.intervals import at, make_window
from booking_core.modules.assignment.service import AssignmentService
from booking_core.modules.bookings.lifecycle import Lifecycle, ensure_transition, new_booking_number
from booking_core.modules.bookings.schemas import (
    BLOCKING, Booking, BookingCreate, BookingNote, BookingStatus as S, Cancellation, PaymentStatus, RefundStatus,
    RescheduleStatus, RescheduleRequest,
)
from booking_core.modules.providers.schemas import Provider
from booking_core.platform.ports.store import BookingWrite

logger = logging.getLogger(__name__)


class BookingService(Lifecycle):
    def __init__(self, store, payments=None, notifier=None, clock=None):
        super().__init__(store, payments, notifier, clock)
        self.assignment = AssignmentService(store, self.payments, self.notifier, self.clock)

    # create

    async def create_booking(self, req: BookingCreate, actor: str | None = None) -> Booking:
        window = make_window(req.start_time, req.end_time)
        now = self.clock()
        if at(req.date, window.start) <= now:
            raise InvalidRequest("Booking time must be in the future")
        base = Booking(
            booking_number=new_booking_number(now), user_id=req.user_id, service_id=req.service_id,
            date=req.date, window=window, total_amount=req.total_amount, currency=req.currency,
            payment_status=req.payment_status, created_by=actor, updated_by=actor,
        )

        if req.slot_id is not None:
            saved = await self._retrying(lambda: self._create_on_slot(base, req.slot_id))
        elif req.provider_id is not None:
            provider = await self.store.providers.get(req.provider_id)
            if provider is None:
                raise NotFound.of("Provider", req.provider_id)
            if not provider.is_active:
                raise InvalidRequest("Provider is not active")
            saved = await self._retrying(lambda: self._create_with_provider(base, provider))
        else:
            saved = await self._write(BookingWrite(base))
            logger.info(f"booking {saved.booking_number} created as pending")
            await self._notify("created", saved)
            if req.auto_assign:
                # a failure here leaves the booking pending for a later assignment
                return await self.assignment.auto_assign(saved.id, actor=actor)
            return saved

        logger.info(f"booking {saved.booking_number} confirmed with provider {saved.provider_id}")
        await self._notify("confirmed", saved)
        if saved.payment_status == PaymentStatus.PENDING and saved.total_amount > 0:
            await self._capture(saved)
        return saved

    async def _create_with_provider(self, base: Booking, provider: Provider) -> Booking:
        rec = await self.availability.get_or_create(provider.id)
        check = await self.availability.check_window(provider.id, base.date, base.window, record=rec)
        check.raise_if_denied()
        booking = base.model_copy(update={"provider_id": provider.id, "status": S.CONFIRMED})
        return await self._write(BookingWrite(booking, provider_seq=(provider.id, rec.booking_seq)))

    async def _create_on_slot(self, base: Booking, slot_id: uuid.UUID) -> Booking:
        slot = await self.store.slots.get(slot_id)
        if slot is None:
            raise NotFound.of("Slot", slot_id)
        if slot.date != base.date or slot.window.start != base.window.start or slot.window.end != base.window.end:
            raise InvalidRequest(f"Requested time does not match the slot ({slot.date} {slot.window.label})")
        if not slot.serves(base.service_id):
            raise InvalidRequest("Slot is reserved for another service")
        if not slot.has_capacity:
            raise SlotConflict("Slot is no longer available")
        rec = await self.availability.get_or_create(slot.provider_id)
        # a slot is its own working-hours grant; only other bookings can conflict with it
        check = await self.availability.check_window(
            slot.provider_id, slot.date, slot.window, record=rec, exclude_slot_id=slot.id, check_hours=False
        )
        check.raise_if_denied()
        booking = base.model_copy(update={"provider_id": slot.provider_id, "slot_id": slot.id, "status": S.CONFIRMED})
        return await self._write(BookingWrite(
            booking, provider_seq=(slot.provider_id, rec.booking_seq), claim_slot=slot.id
        ))

    # cancel / reject

    async def cancel_booking(self, booking_id: uuid.UUID, reason: str = "", cancelled_by: str | None = None) -> Booking:
        async def attempt() -> Booking:
            b = await self._load(booking_id)
            if b.status in (S.CANCELLED, S.REJECTED):
                raise AlreadyTerminal("Booking is already cancelled or rejected")
            if b.status == S.COMPLETED:
                raise AlreadyTerminal("Cannot cancel a completed booking")
            ensure_transition(b, S.CANCELLED)
            return await self._write(self._closing(b, S.CANCELLED, reason, cancelled_by))

        saved = await self._retrying(attempt)
        logger.info(f"booking {saved.booking_number} cancelled by {cancelled_by}")
        await self._after_close(saved, "cancelled", reason)
        return saved

    async def reject_booking(self, booking_id: uuid.UUID, reason: str = "", rejected_by: str | None = None) -> Booking:
        async def attempt() -> Booking:
            b = await self._load(booking_id)
            if b.status not in (S.PENDING, S.CONFIRMED):
                raise AlreadyTerminal(f"Cannot reject a {b.status.value} booking")
            return await self._write(self._closing(b, S.REJECTED, reason, rejected_by))

        saved = await self._retrying(attempt)
        logger.info(f"booking {saved.booking_number} rejected by {rejected_by}")
        await self._after_close(saved, "rejected", reason)
        return saved

    def _closing(self, b: Booking, target: S, reason: str, actor: str | None) -> BookingWrite:
        paid = b.payment_status == PaymentStatus.PAID
        cancellation = Cancellation(
            reason=reason, cancelled_by=actor, cancelled_at=self.clock(),
            refund_amount=b.total_amount if paid else None,
            refund_status=RefundStatus.PENDING if paid else RefundStatus.NOT_ELIGIBLE,
        )
        if paid:
            payment = PaymentStatus.REFUND_PENDING
        elif b.payment_status == PaymentStatus.PENDING:
            payment = PaymentStatus.CANCELLED
        else:
            payment = b.payment_status
        requests = tuple(
            r.model_copy(update={"status": RescheduleStatus.CANCELLED, "processed_by": actor, "processed_at": self.clock()})
            if r.status == RescheduleStatus.REQUESTED else r
            for r in b.reschedule_requests
        )
        closed = b.model_copy(update={
            "status": target, "cancellation": cancellation, "payment_status": payment,
            "reschedule_requests": requests, "updated_by": actor,
        })
        return BookingWrite(closed, expected_version=b.version, release_slot=b.slot_id)

    async def _after_close(self, saved: Booking, event: str, reason: str) -> None:
        if saved.payment_status == PaymentStatus.REFUND_PENDING and saved.cancellation is not None:
            await self._refund(saved, saved.cancellation.refund_amount or 0.0)
        await self._notify(event, saved, reason=reason)

    # reschedule

    async def request_reschedule(
        self, booking_id: uuid.UUID, new_date: dt.date, new_start: str, new_end: str,
        reason: str = "", requested_by: str | None = None,
    ) -> Booking:
        window = make_window(new_start, new_end)

        async def attempt() -> Booking:
            b = await self._load(booking_id)
            now = self.clock()
            if b.status == S.RESCHEDULED:
                raise RescheduleNotAllowed("A reschedule request is already pending for this booking")
            if b.status != S.CONFIRMED:
                raise RescheduleNotAllowed(f"A {b.status.value} booking cannot be rescheduled")
            if not b.can_be_rescheduled(now):
                raise RescheduleNotAllowed(
                    f"Booking can only be rescheduled when paid and more than "
                    f"{settings.RESCHEDULE_LEAD_HOURS:g} hours before the session"
                )
            if at(new_date, window.start) <= now:
                raise InvalidRequest("New time must be in the future")
            if new_date == b.date and window.start == b.window.start and window.end == b.window.end:
                raise InvalidRequest("New time is the same as the current booking time")
            req = RescheduleRequest(
                previous_date=b.date, previous_window=b.window, new_date=new_date, new_window=window,
                reason=reason, requested_by=requested_by, previous_status=b.status, created_at=now,
            )
            updated = b.model_copy(update={
                "status": S.RESCHEDULED, "reschedule_requests": b.reschedule_requests + (req,), "updated_by": requested_by,
            })
            return await self._write(BookingWrite(updated, expected_version=b.version))

        saved = await self._retrying(attempt)
        logger.info(f"booking {saved.booking_number} reschedule requested to {new_date} {window.label}")
        await self._notify("reschedule_requested", saved, new_date=new_date.isoformat(), new_window=window.label)
        return saved

    def _pending_request(self, b: Booking, request_id: uuid.UUID) -> RescheduleRequest:
        req = b.reschedule_request(request_id)
        if req is None:
            raise NotFound.of("Reschedule request", request_id)
        if req.status != RescheduleStatus.REQUESTED:
            raise AlreadyTerminal("This reschedule request has already been processed")
        if b.status != S.RESCHEDULED:
            raise AlreadyTerminal(f"Cannot process a reschedule for a {b.status.value} booking")
        return req

    async def approve_reschedule(
        self, booking_id: uuid.UUID, request_id: uuid.UUID, approved_by: str | None = None, notes: str = ""
    ) -> Booking:
        async def attempt() -> Booking:
            b = await self._load(booking_id)
            req = self._pending_request(b, request_id)
            done = req.model_copy(update={
                "status": RescheduleStatus.APPROVED, "processed_by": approved_by, "processed_at": self.clock(), "notes": notes,
            })
            moved = b.model_copy(update={
                "date": req.new_date, "window": req.new_window, "status": S.CONFIRMED,
                "reschedule_requests": b.with_request(done), "updated_by": approved_by,
            })
            if b.provider_id is None:
                return await self._write(BookingWrite(moved, expected_version=b.version))
            rec = await self.availability.get_or_create(b.provider_id)
            if b.slot_id is not None:
                slot = await self.store.slots.find_exact(b.provider_id, req.new_date, req.new_window, b.service_id)
                if slot is None:
                    raise NoSlotForNewWindow("No available slot found for the requested time")
                check = await self.availability.check_window(
                    b.provider_id, req.new_date, req.new_window, record=rec,
                    exclude_booking_id=b.id, exclude_slot_id=slot.id, check_hours=False,
                )
                check.raise_if_denied()
                # new slot is claimed before the old one is let go, all in one write
                return await self._write(BookingWrite(
                    moved.model_copy(update={"slot_id": slot.id}), expected_version=b.version,
                    provider_seq=(b.provider_id, rec.booking_seq), claim_slot=slot.id, release_slot=b.slot_id,
                ))
            check = await self.availability.check_window(
                b.provider_id, req.new_date, req.new_window, record=rec, exclude_booking_id=b.id
            )
            check.raise_if_denied()
            return await self._write(BookingWrite(
                moved, expected_version=b.version, provider_seq=(b.provider_id, rec.booking_seq)
            ))

        saved = await self._retrying(attempt)
        logger.info(f"booking {saved.booking_number} moved to {saved.date} {saved.window.label}")
        await self._notify("reschedule_approved", saved)
        return saved

    async def reject_reschedule(
        self, booking_id: uuid.UUID, request_id: uuid.UUID, rejected_by: str | None = None, reason: str = ""
    ) -> Booking:
        async def attempt() -> Booking:
            b = await self._load(booking_id)
            req = self._pending_request(b, request_id)
            done = req.model_copy(update={
                "status": RescheduleStatus.REJECTED, "processed_by": rejected_by, "processed_at": self.clock(), "notes": reason,
            })
            restored = b.model_copy(update={
                "status": req.previous_status, "reschedule_requests": b.with_request(done), "updated_by": rejected_by,
            })
            return await self._write(BookingWrite(restored, expected_version=b.version))

        saved = await self._retrying(attempt)
        await self._notify("reschedule_rejected", saved, reason=reason)
        return saved

    # session progress

    async def _move(self, booking_id: uuid.UUID, target: S, actor: str | None, event: str,
                    check: Callable[[Booking], None] | None = None) -> Booking:
        async def attempt() -> Booking:
            b = await self._load(booking_id)
            ensure_transition(b, target)
            if check is not None:
                check(b)
            updated = b.model_copy(update={"status": target, "updated_by": actor})
            return await self._write(BookingWrite(updated, expected_version=b.version))

        saved = await self._retrying(attempt)
        logger.info(f"booking {saved.booking_number} is now {target.value}")
        await self._notify(event, saved)
        return saved

    async def start_session(self, booking_id: uuid.UUID, actor: str | None = None) -> Booking:
        def has_provider(b: Booking) -> None:
            if b.provider_id is None:
                raise InvalidRequest("A provider must be assigned before the session starts")
        return await self._move(booking_id, S.IN_PROGRESS, actor, "started", has_provider)

    async def complete_booking(self, booking_id: uuid.UUID, actor: str | None = None) -> Booking:
        return await self._move(booking_id, S.COMPLETED, actor, "completed")

    async def mark_no_show(self, booking_id: uuid.UUID, actor: str | None = None) -> Booking:
        return await self._move(booking_id, S.NO_SHOW, actor, "no_show")

    # bookkeeping

    async def record_payment(self, booking_id: uuid.UUID, payment_status: PaymentStatus, actor: str | None = None) -> Booking:
        async def attempt() -> Booking:
            b = await self._load(booking_id)
            updated = b.model_copy(update={"payment_status": PaymentStatus(payment_status), "updated_by": actor})
            return await self._write(BookingWrite(updated, expected_version=b.version))

        saved = await self._retrying(attempt)
        logger.info(f"booking {saved.booking_number} payment is {saved.payment_status.value}")
        return saved

    async def add_note(self, booking_id: uuid.UUID, content: str, created_by: str | None = None, is_private: bool = False) -> Booking:
        if not content.strip():
            raise InvalidRequest("Note content is required")

        async def attempt() -> Booking:
            b = await self._load(booking_id)
            note = BookingNote(content=content.strip(), created_by=created_by, created_at=self.clock(), is_private=is_private)
            updated = b.model_copy(update={"notes": b.notes + (note,), "updated_by": created_by})
            return await self._write(BookingWrite(updated, expected_version=b.version))

        return await self._retrying(attempt)

    async def get_booking(self, booking_id: uuid.UUID) -> Booking:
        return await self._load(booking_id)

    async def list_provider_upcoming(self, provider_id: uuid.UUID, limit: int = 50, offset: int = 0) -> list[Booking]:
        if await self.store.providers.get(provider_id) is None:
            raise NotFound.of("Provider", provider_id)
        rows = await self.store.bookings.list_upcoming_for_provider(provider_id, self.clock(), BLOCKING, limit=limit, offset=offset)
        return list(rows)
