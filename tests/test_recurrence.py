"""Tests for recurrence expansion."""

import datetime as dt

import pytest
from pydantic import ValidationError

from booking_core.core.errors import InvalidRequest
from booking_core.core.intervals import Weekday, make_window
from booking_core.modules.availability.recurrence import Frequency, RecurrenceSpec, dates, expand


def spec(freq, start, end, **kw) -> RecurrenceSpec:
    return RecurrenceSpec(frequency=freq, start_date=start, end_date=end, **kw)


class TestDates:
    def test_daily_is_inclusive(self):
        out = dates(spec(Frequency.DAILY, dt.date(2030, 1, 1), dt.date(2030, 1, 3)))
        assert out == (dt.date(2030, 1, 1), dt.date(2030, 1, 2), dt.date(2030, 1, 3))

    def test_weekly_defaults_to_start_weekday(self):
        out = dates(spec(Frequency.WEEKLY, dt.date(2030, 1, 7), dt.date(2030, 1, 31)))
        assert out == (dt.date(2030, 1, 7), dt.date(2030, 1, 14), dt.date(2030, 1, 21), dt.date(2030, 1, 28))

    def test_weekly_on_chosen_days(self):
        out = dates(spec(
            Frequency.WEEKLY, dt.date(2030, 1, 7), dt.date(2030, 1, 13),
            days_of_week=(Weekday.MONDAY, Weekday.FRIDAY),
        ))
        assert out == (dt.date(2030, 1, 7), dt.date(2030, 1, 11))

    def test_bi_weekly_skips_alternate_weeks(self):
        out = dates(spec(Frequency.BI_WEEKLY, dt.date(2030, 1, 7), dt.date(2030, 2, 10)))
        assert out == (dt.date(2030, 1, 7), dt.date(2030, 1, 21), dt.date(2030, 2, 4))

    def test_monthly_clamps_without_drift(self):
        out = dates(spec(Frequency.MONTHLY, dt.date(2031, 1, 31), dt.date(2031, 3, 31)))
        assert out == (dt.date(2031, 1, 31), dt.date(2031, 2, 28), dt.date(2031, 3, 31))

    def test_monthly_crosses_year_end(self):
        out = dates(spec(Frequency.MONTHLY, dt.date(2030, 11, 15), dt.date(2031, 2, 1)))
        assert out == (dt.date(2030, 11, 15), dt.date(2030, 12, 15), dt.date(2031, 1, 15))

    def test_exclusions_are_dropped(self):
        out = dates(spec(
            Frequency.DAILY, dt.date(2030, 1, 1), dt.date(2030, 1, 3),
            exclude_dates=frozenset({dt.date(2030, 1, 2)}),
        ))
        assert out == (dt.date(2030, 1, 1), dt.date(2030, 1, 3))

    def test_expansion_is_deterministic(self):
        s = spec(Frequency.WEEKLY, dt.date(2030, 1, 1), dt.date(2030, 6, 30), days_of_week=(Weekday.TUESDAY,))
        assert dates(s) == dates(s)

    def test_end_before_start_is_invalid(self):
        with pytest.raises(ValidationError):
            spec(Frequency.DAILY, dt.date(2030, 1, 2), dt.date(2030, 1, 1))


class TestExpand:
    def test_expand_attaches_window(self):
        w = make_window("06:00", "07:00")
        out = expand(spec(Frequency.DAILY, dt.date(2030, 1, 1), dt.date(2030, 1, 2), window=w))
        assert [d.window for d in out] == [w, w]
        assert out[0].starts_at == dt.datetime(2030, 1, 1, 6, 0)
        assert out[1].ends_at == dt.datetime(2030, 1, 2, 7, 0)

    def test_expand_needs_window(self):
        with pytest.raises(InvalidRequest):
            expand(spec(Frequency.DAILY, dt.date(2030, 1, 1), dt.date(2030, 1, 2)))
