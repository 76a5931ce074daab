"""Minute-of-day interval helpers.

All scheduling arithmetic works on naive wall-clock values: a date plus a
minute offset from local midnight. Windows are half-open ``[start, end)``.
"""
import re
from datetime import date, datetime, timedelta
from enum import IntEnum
from typing import Iterable

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator, model_validator

from booking_core.core.errors import InvalidTimeWindow

MINUTES_PER_DAY = 24 * 60
_HHMM = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


class Weekday(IntEnum):
    MONDAY = 0
    TUESDAY = 1
    WEDNESDAY = 2
    THURSDAY = 3
    FRIDAY = 4
    SATURDAY = 5
    SUNDAY = 6

    @property
    def label(self) -> str:
        return self.name.lower()

    @classmethod
    def of(cls, d: date) -> "Weekday":
        return cls(d.weekday())

    @classmethod
    def parse(cls, value: "str | int | Weekday") -> "Weekday":
        if isinstance(value, Weekday):
            return value
        if isinstance(value, int):
            try:
                return cls(value)
            except ValueError:
                raise InvalidTimeWindow(f"Invalid day of week: {value}") from None
        try:
            return cls[str(value).strip().upper()]
        except KeyError:
            raise InvalidTimeWindow(f"Invalid day of week: {value}") from None


def parse_hhmm(value: str) -> int:
    """'09:30' -> 570. Raises InvalidTimeWindow on anything else."""
    m = _HHMM.match(value.strip()) if isinstance(value, str) else None
    if not m:
        raise InvalidTimeWindow(f"Invalid time {value!r}. Please use HH:MM format")
    return int(m.group(1)) * 60 + int(m.group(2))


def format_hhmm(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def _to_minutes(value) -> int:
    if isinstance(value, bool):
        raise InvalidTimeWindow(f"Invalid time {value!r}")
    if isinstance(value, int):
        if not 0 <= value < MINUTES_PER_DAY:
            raise InvalidTimeWindow(f"Invalid minute of day {value}")
        return value
    return parse_hhmm(value)


class TimeWindow(BaseModel):
    """A ``[start, end)`` window inside one day, in minutes past midnight."""
    model_config = ConfigDict(frozen=True)

    start: int = Field(ge=0, lt=MINUTES_PER_DAY)
    end: int = Field(ge=0, lt=MINUTES_PER_DAY)

    @field_validator("start", "end", mode="before")
    @classmethod
    def _coerce(cls, v):
        try:
            return _to_minutes(v)
        except InvalidTimeWindow as e:
            raise ValueError(e.reason) from None

    @model_validator(mode="after")
    def _ordered(self):
        if self.end <= self.start:
            raise ValueError("End time must be after start time")
        return self

    @field_serializer("start", "end")
    def _as_hhmm(self, v: int) -> str:
        return format_hhmm(v)

    @property
    def duration(self) -> int:
        return self.end - self.start

    @property
    def label(self) -> str:
        return f"{format_hhmm(self.start)}-{format_hhmm(self.end)}"

    def overlaps(self, other: "TimeWindow") -> bool:
        return overlaps(self.start, self.end, other.start, other.end)

    def contains(self, other: "TimeWindow") -> bool:
        return self.start <= other.start and other.end <= self.end


def make_window(start, end) -> TimeWindow:
    """Build a window from 'HH:MM' strings or minute ints, raising InvalidTimeWindow."""
    s, e = _to_minutes(start), _to_minutes(end)
    if e <= s:
        raise InvalidTimeWindow(
            f"End time must be after start time ({format_hhmm(s)}-{format_hhmm(e)})"
        )
    return TimeWindow(start=s, end=e)


def overlaps(a_start: int, a_end: int, b_start: int, b_end: int) -> bool:
    return a_start < b_end and a_end > b_start


def ensure_disjoint(windows: Iterable[TimeWindow]) -> tuple[TimeWindow, ...]:
    """Sort windows and reject any pair that overlaps."""
    ordered = tuple(sorted(windows, key=lambda w: (w.start, w.end)))
    for prev, nxt in zip(ordered, ordered[1:]):
        if prev.overlaps(nxt):
            raise InvalidTimeWindow(f"Time slots {prev.label} and {nxt.label} overlap")
    return ordered


def at(d: date, minute: int) -> datetime:
    """Naive local datetime for a minute offset on a date."""
    return datetime(d.year, d.month, d.day) + timedelta(minutes=minute)


def describe(windows: Iterable[TimeWindow]) -> str:
    return ", ".join(w.label for w in windows)
