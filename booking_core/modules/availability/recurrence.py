"""Recurrence expansion.

Turns a repeating availability or slot specification into the concrete dated
windows it stands for. Everything here is a pure function of its input: the
same spec always expands to the same tuple.
"""
import calendar
import datetime as dt
from enum import Enum
from typing import Iterator

from pydantic import BaseModel, ConfigDict, model_validator

from booking_core.core.errors import InvalidRequest
from booking_core.core.intervals import TimeWindow, Weekday, at


class Frequency(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    BI_WEEKLY = "bi-weekly"
    MONTHLY = "monthly"


class RecurrenceSpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    frequency: Frequency
    start_date: dt.date
    end_date: dt.date
    window: TimeWindow | None = None
    days_of_week: tuple[Weekday, ...] = ()
    exclude_dates: frozenset[dt.date] = frozenset()

    @model_validator(mode="after")
    def _range(self):
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class DatedWindow(BaseModel):
    model_config = ConfigDict(frozen=True)

    date: dt.date
    window: TimeWindow

    @property
    def starts_at(self) -> dt.datetime:
        return at(self.date, self.window.start)

    @property
    def ends_at(self) -> dt.datetime:
        return at(self.date, self.window.end)


def _clamped(year: int, month: int, day: int) -> dt.date:
    return dt.date(year, month, min(day, calendar.monthrange(year, month)[1]))


def _monthly(spec: RecurrenceSpec) -> Iterator[dt.date]:
    # always offset from the start date, so a 31st never drifts to the 28th
    first = spec.start_date
    i = 0
    while True:
        m = first.month - 1 + i
        d = _clamped(first.year + m // 12, m % 12 + 1, first.day)
        if d > spec.end_date:
            return
        yield d
        i += 1


def _by_day(spec: RecurrenceSpec) -> Iterator[dt.date]:
    days = set(spec.days_of_week) or {Weekday.of(spec.start_date)}
    d = spec.start_date
    while d <= spec.end_date:
        if spec.frequency is Frequency.DAILY:
            yield d
        elif Weekday.of(d) in days:
            week = (d - spec.start_date).days // 7
            if spec.frequency is Frequency.WEEKLY or week % 2 == 0:
                yield d
        d += dt.timedelta(days=1)


def dates(spec: RecurrenceSpec) -> tuple[dt.date, ...]:
    gen = _monthly(spec) if spec.frequency is Frequency.MONTHLY else _by_day(spec)
    return tuple(d for d in gen if d not in spec.exclude_dates)


def expand(spec: RecurrenceSpec) -> tuple[DatedWindow, ...]:
    if spec.window is None:
        raise InvalidRequest("A recurring window needs a start and end time")
    return tuple(DatedWindow(date=d, window=spec.window) for d in dates(spec))
