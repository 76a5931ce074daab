"""Tests for minute-of-day windows and weekday parsing."""

import datetime as dt

import pytest

from booking_core.core.errors import InvalidTimeWindow
from booking_core.core.intervals import (
    TimeWindow, Weekday, at, ensure_disjoint, format_hhmm, make_window, overlaps, parse_hhmm,
)


class TestParsing:
    def test_parse_hhmm(self):
        assert parse_hhmm("09:30") == 570
        assert parse_hhmm("00:00") == 0
        assert parse_hhmm("23:59") == 1439

    @pytest.mark.parametrize("bad", ["9:30", "24:00", "12:60", "noon", "", "12-30"])
    def test_parse_hhmm_rejects_garbage(self, bad):
        with pytest.raises(InvalidTimeWindow, match="HH:MM"):
            parse_hhmm(bad)

    def test_format_round_trip(self):
        assert format_hhmm(parse_hhmm("07:05")) == "07:05"

    def test_weekday_parse_accepts_names_and_ints(self):
        assert Weekday.parse("monday") is Weekday.MONDAY
        assert Weekday.parse(" Sunday ") is Weekday.SUNDAY
        assert Weekday.parse(2) is Weekday.WEDNESDAY
        assert Weekday.of(dt.date(2030, 1, 7)) is Weekday.MONDAY

    def test_weekday_parse_rejects_unknown(self):
        with pytest.raises(InvalidTimeWindow):
            Weekday.parse("funday")
        with pytest.raises(InvalidTimeWindow):
            Weekday.parse(7)


class TestWindows:
    def test_make_window_from_strings(self):
        w = make_window("09:00", "10:30")
        assert (w.start, w.end, w.duration) == (540, 630, 90)
        assert w.label == "09:00-10:30"

    def test_end_must_follow_start(self):
        with pytest.raises(InvalidTimeWindow, match="End time must be after start time"):
            make_window("10:00", "10:00")
        with pytest.raises(InvalidTimeWindow):
            make_window("11:00", "10:00")

    def test_half_open_overlap(self):
        a = make_window("09:00", "10:00")
        assert not a.overlaps(make_window("10:00", "11:00"))
        assert a.overlaps(make_window("09:59", "10:30"))
        assert overlaps(0, 10, 5, 15)
        assert not overlaps(0, 10, 10, 20)

    def test_contains(self):
        day = make_window("09:00", "18:00")
        assert day.contains(make_window("09:00", "18:00"))
        assert not day.contains(make_window("17:30", "18:30"))

    def test_serializes_as_hhmm(self):
        w = TimeWindow(start="09:15", end=600)
        assert w.model_dump() == {"start": "09:15", "end": "10:00"}
        assert TimeWindow.model_validate(w.model_dump()) == w

    def test_ensure_disjoint_sorts_and_rejects_overlap(self):
        out = ensure_disjoint([make_window("14:00", "15:00"), make_window("09:00", "10:00")])
        assert [w.label for w in out] == ["09:00-10:00", "14:00-15:00"]
        with pytest.raises(InvalidTimeWindow, match="overlap"):
            ensure_disjoint([make_window("09:00", "11:00"), make_window("10:00", "12:00")])

    def test_at_builds_naive_datetime(self):
        assert at(dt.date(2030, 1, 7), 570) == dt.datetime(2030, 1, 7, 9, 30)
