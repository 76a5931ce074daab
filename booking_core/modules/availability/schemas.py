import datetime as dt
import uuid
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from booking_core.core.config import settings
from booking_core.core.errors import BookingError, OutsideWorkingHours, SlotConflict
from booking_core.core.intervals import TimeWindow, Weekday, make_window

RecurringPattern = Literal["daily", "weekly", "monthly"]


class DaySchedule(BaseModel):
    model_config = ConfigDict(frozen=True)

    is_available: bool = True
    time_slots: tuple[TimeWindow, ...] = ()


def _default_days() -> tuple[DaySchedule, ...]:
    working = DaySchedule(is_available=True, time_slots=(make_window("09:00", "18:00"),))
    sunday = DaySchedule(is_available=False, time_slots=(make_window("09:00", "13:00"),))
    return (working,) * 6 + (sunday,)


class WeeklyAvailability(BaseModel):
    """Seven day schedules indexed by Weekday plus one break shared by every day."""
    model_config = ConfigDict(frozen=True)

    days: tuple[DaySchedule, DaySchedule, DaySchedule, DaySchedule, DaySchedule, DaySchedule, DaySchedule] = Field(
        default_factory=_default_days
    )
    break_time: TimeWindow | None = Field(default_factory=lambda: make_window("13:00", "14:00"))

    def day(self, weekday: Weekday) -> DaySchedule:
        return self.days[weekday]

    def with_day(self, weekday: Weekday, schedule: DaySchedule) -> "WeeklyAvailability":
        days = list(self.days)
        days[weekday] = schedule
        return self.model_copy(update={"days": tuple(days)})


class OverrideSlot(TimeWindow):
    is_available: bool = True


class DateOverride(BaseModel):
    model_config = ConfigDict(frozen=True)

    date: dt.date
    is_available: bool = True
    reason: str = ""
    time_slots: tuple[OverrideSlot, ...] = ()
    is_recurring: bool = False
    recurring_pattern: RecurringPattern | None = None
    recurring_end_date: dt.date | None = None
    exclude_dates: tuple[dt.date, ...] = ()


class EffectiveDay(BaseModel):
    """What a provider offers on one calendar date after overrides are applied."""
    model_config = ConfigDict(frozen=True)

    is_available: bool
    reason: str = ""
    windows: tuple[TimeWindow, ...] = ()
    break_time: TimeWindow | None = None
    source: Literal["override", "weekly"] = "weekly"


class AvailabilityRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    provider_id: uuid.UUID
    weekly: WeeklyAvailability = Field(default_factory=WeeklyAvailability)
    overrides: tuple[DateOverride, ...] = ()
    buffer_time: int = Field(default=settings.DEFAULT_BUFFER_MINUTES, ge=0, le=120)
    timezone: str = settings.DEFAULT_TIMEZONE
    is_active: bool = True
    last_synced: dt.datetime | None = None
    version: int = 1
    booking_seq: int = 0

    def override_for(self, on: dt.date) -> DateOverride | None:
        for o in self.overrides:
            if o.date == on:
                return o
        return None

    def effective_day(self, on: dt.date) -> EffectiveDay:
        o = self.override_for(on)
        if o is not None:
            if not o.is_available:
                return EffectiveDay(is_available=False, reason=o.reason or "Not available on this date", source="override")
            windows = tuple(TimeWindow(start=s.start, end=s.end) for s in o.time_slots if s.is_available)
            return EffectiveDay(is_available=True, windows=windows, source="override")
        weekday = Weekday.of(on)
        day = self.weekly.day(weekday)
        if not day.is_available:
            return EffectiveDay(is_available=False, reason=f"Not available on {weekday.label.capitalize()}s")
        return EffectiveDay(is_available=True, windows=day.time_slots, break_time=self.weekly.break_time)


class BookingWindowRef(BaseModel):
    model_config = ConfigDict(frozen=True)

    booking_id: uuid.UUID
    booking_number: str
    date: dt.date
    window: TimeWindow
    status: str


_DENIALS: dict[str, type[BookingError]] = {
    OutsideWorkingHours.code: OutsideWorkingHours,
    SlotConflict.code: SlotConflict,
}


class AvailabilityCheck(BaseModel):
    model_config = ConfigDict(frozen=True)

    available: bool
    code: str | None = None
    reason: str | None = None
    conflicting_bookings: tuple[BookingWindowRef, ...] = ()

    @classmethod
    def ok(cls) -> "AvailabilityCheck":
        return cls(available=True)

    @classmethod
    def deny(cls, error: type[BookingError], reason: str, conflicts=()) -> "AvailabilityCheck":
        return cls(available=False, code=error.code, reason=reason, conflicting_bookings=tuple(conflicts))

    def raise_if_denied(self) -> None:
        if self.available:
            return
        details = {}
        if self.conflicting_bookings:
            details["conflicting_bookings"] = [str(b.booking_id) for b in self.conflicting_bookings]
        raise _DENIALS[self.code](self.reason, **details)


class GeneratedSlot(BaseModel):
    model_config = ConfigDict(frozen=True)

    start: str
    end: str
    duration: int

    @classmethod
    def of(cls, w: TimeWindow) -> "GeneratedSlot":
        d = w.model_dump()
        return cls(start=d["start"], end=d["end"], duration=w.duration)


# API payloads

class TimeSlotIn(BaseModel):
    start_time: str
    end_time: str
    is_available: bool = True


class DefaultAvailabilityUpdate(BaseModel):
    day_of_week: str | None = None
    time_slots: list[TimeSlotIn] = []
    is_available: bool = True
    timezone: str | None = None
    buffer_time: int | None = Field(default=None, ge=0, le=120)


class CustomAvailabilityCreate(BaseModel):
    date: dt.date
    time_slots: list[TimeSlotIn] = []
    is_available: bool = True
    reason: str = Field(default="", max_length=200)
    is_recurring: bool = False
    recurring_pattern: RecurringPattern | None = None
    recurring_end_date: dt.date | None = None
    exclude_dates: list[dt.date] = []


class BreakTimeUpdate(BaseModel):
    start_time: str | None = None
    end_time: str | None = None


class AvailabilityCheckQuery(BaseModel):
    date: dt.date
    start_time: str
    end_time: str
    exclude_booking_id: uuid.UUID | None = None


class AvailabilityOut(BaseModel):
    provider_id: uuid.UUID
    weekly: WeeklyAvailability
    overrides: tuple[DateOverride, ...]
    buffer_time: int
    timezone: str
    last_synced: dt.datetime | None
    version: int

    @classmethod
    def of(cls, r: AvailabilityRecord) -> "AvailabilityOut":
        return cls(
            provider_id=r.provider_id, weekly=r.weekly, overrides=r.overrides, buffer_time=r.buffer_time,
            timezone=r.timezone, last_synced=r.last_synced, version=r.version,
        )
