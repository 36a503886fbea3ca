"""Tests for recurrence.py: next-cycle windows."""

from datetime import datetime, timedelta

import pytest

from betbook.core.errors import RecurrenceError
from betbook.core.recurrence import next_cycle

# 2026-03-02 is a Monday
MONDAY = datetime(2026, 3, 2, 9, 30)
FRIDAY = datetime(2026, 3, 6, 9, 30)


def test_daily_adds_one_day():
    window = next_cycle(MONDAY, MONDAY + timedelta(hours=8), "daily")
    assert window.open_time == datetime(2026, 3, 3, 9, 30)
    assert window.close_time == datetime(2026, 3, 3, 17, 30)
    assert window.result_time is None


def test_weekly_adds_seven_days():
    window = next_cycle(MONDAY, MONDAY + timedelta(hours=2), "weekly")
    assert window.open_time == MONDAY + timedelta(days=7)


def test_custom_behaves_as_daily():
    window = next_cycle(MONDAY, MONDAY + timedelta(hours=2), "custom")
    assert window.open_time == MONDAY + timedelta(days=1)


@pytest.mark.parametrize("start, expected", [
    (MONDAY, datetime(2026, 3, 3, 9, 30)),
    (FRIDAY, datetime(2026, 3, 9, 9, 30)),                    # Saturday → Monday
    (datetime(2026, 3, 7, 9, 30), datetime(2026, 3, 9, 9, 30)),  # Saturday → Monday
])
def test_weekdays_skips_weekend(start, expected):
    window = next_cycle(start, start + timedelta(hours=8), "weekdays")
    assert window.open_time == expected
    assert window.open_time.weekday() < 5


def test_window_spanning_midnight_keeps_shape():
    close = FRIDAY + timedelta(hours=16)   # Saturday 01:30
    window = next_cycle(FRIDAY, close, "weekdays", result_time=close + timedelta(hours=1))
    assert window.close_time - window.open_time == close - FRIDAY
    assert window.result_time == window.close_time + timedelta(hours=1)


def test_match_time_moves_with_window():
    start = FRIDAY + timedelta(hours=4)
    window = next_cycle(FRIDAY, start, "weekdays", match_time=start)
    assert window.match_time == start + timedelta(days=3)
    assert window.match_time == window.close_time


def test_match_time_optional():
    assert next_cycle(MONDAY, MONDAY + timedelta(hours=2), "daily").match_time is None


@pytest.mark.parametrize("open_time, close_time, pattern", [
    (None, MONDAY, "daily"),
    (MONDAY, None, "daily"),
    (MONDAY, MONDAY, "daily"),
    (MONDAY, MONDAY + timedelta(hours=1), None),
    (MONDAY, MONDAY + timedelta(hours=1), "fortnightly"),
])
def test_invalid_inputs(open_time, close_time, pattern):
    with pytest.raises(RecurrenceError):
        next_cycle(open_time, close_time, pattern)
