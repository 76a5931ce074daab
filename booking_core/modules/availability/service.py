import datetime as dt
import logging
import uuid
from typing import Callable, Iterable, Sequence

from booking_core.core.config import settings
from booking_core.core.errors import ConcurrentUpdate, InvalidRequest, InvalidTimeWindow, NotFound, OutsideWorkingHours, SlotConflict
from booking_core.core.intervals import TimeWindow, Weekday, describe, ensure_disjoint, make_window
from booking_core.modules.availability.recurrence import Frequency, RecurrenceSpec, dates
from booking_core.modules.availability.schemas import (
    AvailabilityCheck, AvailabilityRecord, DateOverride, DaySchedule, GeneratedSlot, OverrideSlot, TimeSlotIn,
)
from booking_core.modules.bookings.schemas import BLOCKING, Booking
from booking_core.platform.ports.store import StorePort

logger = logging.getLogger(__name__)

MAX_RANGE_DAYS = 62


def _now() -> dt.datetime:
    # naive local wall clock, same as every date/time stored by the engine
    return dt.datetime.now()


def evaluate(
    record: AvailabilityRecord,
    on: dt.date,
    window: TimeWindow,
    bookings: Iterable[Booking],
    *,
    exclude_booking_id: uuid.UUID | None = None,
    exclude_slot_id: uuid.UUID | None = None,
    check_hours: bool = True,
) -> AvailabilityCheck:
    """Decide whether ``window`` on ``on`` can be booked, given a record and the day's bookings.

    Pure: the same snapshot and bookings always give the same answer.
    """
    if check_hours:
        day = record.effective_day(on)
        if not day.is_available:
            return AvailabilityCheck.deny(OutsideWorkingHours, day.reason)
        if not any(w.contains(window) for w in day.windows):
            return AvailabilityCheck.deny(
                OutsideWorkingHours,
                f"Outside available hours. Available time slots: {describe(day.windows) or 'none'}",
            )
        if day.break_time is not None and day.break_time.overlaps(window):
            return AvailabilityCheck.deny(
                OutsideWorkingHours, f"Requested time overlaps break time {day.break_time.label}"
            )
    conflicts = [
        b.as_ref() for b in bookings
        if b.status in BLOCKING
        and b.date == on
        and b.id != exclude_booking_id
        and (exclude_slot_id is None or b.slot_id != exclude_slot_id)
        and b.window.overlaps(window)
    ]
    if conflicts:
        return AvailabilityCheck.deny(SlotConflict, "Time slot already booked", conflicts)
    return AvailabilityCheck.ok()


def generate(
    record: AvailabilityRecord, on: dt.date, duration: int, buffer_time: int, bookings: Sequence[Booking]
) -> tuple[TimeWindow, ...]:
    """Candidate windows of ``duration`` minutes, ``buffer_time`` apart, that pass ``evaluate``."""
    day = record.effective_day(on)
    if not day.is_available:
        return ()
    out = []
    for w in day.windows:
        t = w.start
        while t + duration <= w.end:
            cand = TimeWindow(start=t, end=t + duration)
            if evaluate(record, on, cand, bookings).available:
                out.append(cand)
            t += duration + buffer_time
    return tuple(out)


def _windows(time_slots: Iterable[TimeSlotIn]) -> tuple[TimeWindow, ...]:
    # every supplied window is validated, including ones marked unavailable
    parsed = [(make_window(ts.start_time, ts.end_time), ts.is_available) for ts in time_slots]
    return ensure_disjoint(w for w, keep in parsed if keep)


def _override_slots(time_slots: Iterable[TimeSlotIn]) -> tuple[OverrideSlot, ...]:
    slots = []
    for ts in time_slots:
        w = make_window(ts.start_time, ts.end_time)
        slots.append(OverrideSlot(start=w.start, end=w.end, is_available=ts.is_available))
    return ensure_disjoint(slots)


class AvailabilityService:
    def __init__(self, store: StorePort, clock: Callable[[], dt.datetime] | None = None):
        self.store = store
        self.clock = clock or _now

    async def get_or_create(self, provider_id: uuid.UUID) -> AvailabilityRecord:
        rec = await self.store.availability.get(provider_id)
        if rec is not None:
            return rec
        if await self.store.providers.get(provider_id) is None:
            raise NotFound.of("Provider", provider_id)
        rec = await self.store.availability.insert(AvailabilityRecord(provider_id=provider_id, last_synced=self.clock()))
        await self.store.commit()
        logger.info(f"created default availability for provider {provider_id}")
        return rec

    def _pruned(self, rec: AvailabilityRecord) -> AvailabilityRecord:
        cutoff = self.clock().date() - dt.timedelta(days=settings.OVERRIDE_RETENTION_DAYS)
        kept = tuple(o for o in rec.overrides if o.date >= cutoff)
        if len(kept) == len(rec.overrides):
            return rec
        logger.debug(f"pruned {len(rec.overrides) - len(kept)} overrides older than {cutoff}")
        return rec.model_copy(update={"overrides": kept})

    async def _update(self, provider_id: uuid.UUID, change: Callable[[AvailabilityRecord], AvailabilityRecord]) -> AvailabilityRecord:
        for attempt in range(1, settings.WRITE_RETRY_ATTEMPTS + 1):
            rec = await self.get_or_create(provider_id)
            nxt = self._pruned(change(rec)).model_copy(update={"last_synced": self.clock()})
            try:
                saved = await self.store.availability.save(nxt, rec.version)
            except ConcurrentUpdate:
                await self.store.rollback()
                logger.info(f"availability of provider {provider_id} changed underneath us (attempt {attempt})")
                continue
            await self.store.commit()
            return saved
        raise ConcurrentUpdate("Availability is being changed by another request, please retry")

    async def set_default_availability(
        self, provider_id: uuid.UUID, day: str | int | Weekday, time_slots: Sequence[TimeSlotIn], is_available: bool = True
    ) -> AvailabilityRecord:
        weekday = Weekday.parse(day)
        windows = _windows(time_slots)
        if not is_available:
            windows = ()
        if is_available and not windows:
            raise InvalidTimeWindow(f"At least one time slot is required for {weekday.label}")

        def change(rec: AvailabilityRecord) -> AvailabilityRecord:
            if not is_available:
                schedule = DaySchedule(is_available=False, time_slots=())
            else:
                schedule = DaySchedule(is_available=True, time_slots=windows)
            return rec.model_copy(update={"weekly": rec.weekly.with_day(weekday, schedule)})

        saved = await self._update(provider_id, change)
        logger.info(f"provider {provider_id} default {weekday.label}: available={is_available} slots={describe(windows)}")
        return saved

    async def set_custom_availability(
        self,
        provider_id: uuid.UUID,
        on: dt.date,
        time_slots: Sequence[TimeSlotIn] = (),
        is_available: bool = True,
        reason: str = "",
        is_recurring: bool = False,
        recurring_pattern: str | None = None,
        recurring_end_date: dt.date | None = None,
        exclude_dates: Iterable[dt.date] = (),
    ) -> AvailabilityRecord:
        """Upsert the override for ``on``; a recurring request upserts every date it expands to."""
        excluded = tuple(exclude_dates)
        slots = _override_slots(time_slots)
        if not is_available:
            slots = ()
        if is_available and not any(s.is_available for s in slots):
            raise InvalidTimeWindow("Provide at least one available time slot or mark the date unavailable")
        if is_recurring:
            if recurring_pattern is None or recurring_end_date is None:
                raise InvalidRequest("Recurring availability needs a pattern and an end date")
            if recurring_pattern not in ("daily", "weekly", "monthly"):
                raise InvalidRequest(f"Unknown recurring pattern {recurring_pattern!r}")
            if recurring_end_date <= on:
                raise InvalidRequest("Recurring end date must be after the start date")
            spec = RecurrenceSpec(
                frequency=Frequency(recurring_pattern), start_date=on, end_date=recurring_end_date,
                exclude_dates=frozenset(excluded),
            )
            targets = dates(spec)
        else:
            targets = (on,)

        base = DateOverride(
            date=on,
            is_available=is_available,
            reason="" if is_available else reason,
            time_slots=slots,
            is_recurring=is_recurring,
            recurring_pattern=recurring_pattern if is_recurring else None,
            recurring_end_date=recurring_end_date if is_recurring else None,
            exclude_dates=excluded if is_recurring else (),
        )
        produced = [base.model_copy(update={"date": d}) for d in targets]
        replaced = set(targets)

        def change(rec: AvailabilityRecord) -> AvailabilityRecord:
            kept = [o for o in rec.overrides if o.date not in replaced]
            return rec.model_copy(update={"overrides": tuple(sorted(kept + produced, key=lambda o: o.date))})

        saved = await self._update(provider_id, change)
        logger.info(f"provider {provider_id} custom availability on {len(produced)} date(s) from {on}")
        return saved

    async def remove_custom_availability(self, provider_id: uuid.UUID, on: dt.date) -> AvailabilityRecord:
        rec = await self.get_or_create(provider_id)
        if rec.override_for(on) is None:
            raise NotFound(f"No custom availability on {on.isoformat()}")
        return await self._update(
            provider_id,
            lambda r: r.model_copy(update={"overrides": tuple(o for o in r.overrides if o.date != on)}),
        )

    async def set_break_time(self, provider_id: uuid.UUID, start: str | None = None, end: str | None = None) -> AvailabilityRecord:
        if start is None and end is None:
            window = None
        elif start is None or end is None:
            raise InvalidTimeWindow("Break time needs both a start and an end")
        else:
            window = make_window(start, end)
        return await self._update(
            provider_id,
            lambda r: r.model_copy(update={"weekly": r.weekly.model_copy(update={"break_time": window})}),
        )

    async def update_settings(
        self, provider_id: uuid.UUID, timezone: str | None = None, buffer_time: int | None = None
    ) -> AvailabilityRecord:
        updates: dict = {}
        if buffer_time is not None:
            if not 0 <= buffer_time <= 120:
                raise InvalidRequest("Buffer time must be between 0 and 120 minutes")
            updates["buffer_time"] = buffer_time
        if timezone is not None:
            if not timezone.strip() or len(timezone) > 64:
                raise InvalidRequest("Timezone must be an IANA name such as Asia/Kolkata")
            updates["timezone"] = timezone.strip()
        return await self._update(provider_id, lambda r: r.model_copy(update=updates))

    async def check_window(
        self,
        provider_id: uuid.UUID,
        on: dt.date,
        window: TimeWindow,
        *,
        record: AvailabilityRecord | None = None,
        exclude_booking_id: uuid.UUID | None = None,
        exclude_slot_id: uuid.UUID | None = None,
        check_hours: bool = True,
    ) -> AvailabilityCheck:
        rec = record or await self.get_or_create(provider_id)
        bookings = await self.store.bookings.find_overlapping(provider_id, on, window, BLOCKING, exclude_id=exclude_booking_id)
        return evaluate(
            rec, on, window, bookings,
            exclude_booking_id=exclude_booking_id, exclude_slot_id=exclude_slot_id, check_hours=check_hours,
        )

    async def check_availability(
        self, provider_id: uuid.UUID, on: dt.date, start: str | int, end: str | int,
        exclude_booking_id: uuid.UUID | None = None,
    ) -> AvailabilityCheck:
        return await self.check_window(provider_id, on, make_window(start, end), exclude_booking_id=exclude_booking_id)

    async def get_available_slots(
        self, provider_id: uuid.UUID, on: dt.date, duration: int | None = None, buffer_time: int | None = None
    ) -> tuple[GeneratedSlot, ...]:
        duration = duration or settings.DEFAULT_SLOT_MINUTES
        if duration < 1:
            raise InvalidRequest("Duration must be a positive number of minutes")
        rec = await self.get_or_create(provider_id)
        buffer = rec.buffer_time if buffer_time is None else buffer_time
        if not 0 <= buffer <= 120:
            raise InvalidRequest("Buffer time must be between 0 and 120 minutes")
        bookings = await self.store.bookings.list_for_provider_on(provider_id, on, BLOCKING)
        return tuple(GeneratedSlot.of(w) for w in generate(rec, on, duration, buffer, bookings))

    async def get_availability_range(
        self, provider_id: uuid.UUID, start_date: dt.date, end_date: dt.date, duration: int | None = None
    ) -> dict[dt.date, tuple[GeneratedSlot, ...]]:
        if end_date < start_date:
            raise InvalidRequest("End date must not be before start date")
        if (end_date - start_date).days >= MAX_RANGE_DAYS:
            raise InvalidRequest(f"Date range is limited to {MAX_RANGE_DAYS} days")
        out = {}
        d = start_date
        while d <= end_date:
            out[d] = await self.get_available_slots(provider_id, d, duration)
            d += dt.timedelta(days=1)
        return out
