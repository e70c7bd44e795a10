from __future__ import annotations

from datetime import timedelta

import pytest

from conftest import BERLIN, berlin
from farmreset.clock import latest_due_instant, next_reset_instant, progress_fraction, progress_label


def test_never_reset_before_hour_is_today():
    now = berlin(2026, 1, 1, 8, 0)
    assert next_reset_instant(now, 0, 12, 30) == berlin(2026, 1, 1, 12, 0)


def test_never_reset_after_hour_is_tomorrow():
    now = berlin(2026, 1, 1, 13, 0)
    assert next_reset_instant(now, 0, 12, 30) == berlin(2026, 1, 2, 12, 0)


def test_never_reset_exactly_at_hour_rolls_to_tomorrow():
    now = berlin(2026, 1, 1, 12, 0)
    assert next_reset_instant(now, 0, 12, 30) == berlin(2026, 1, 2, 12, 0)


def test_next_reset_forces_reset_hour_on_interval_day():
    last = int(berlin(2026, 5, 1, 17, 42).timestamp())
    now = berlin(2026, 5, 10, 9, 0)
    assert next_reset_instant(now, last, 12, 30) == berlin(2026, 5, 31, 12, 0)


def test_stale_state_skips_whole_intervals():
    last = int(berlin(2025, 1, 1, 12, 0).timestamp())
    now = berlin(2026, 6, 15, 8, 0)
    result = next_reset_instant(now, last, 12, 30)

    assert result > now
    assert result - timedelta(days=30) <= now


@pytest.mark.parametrize("interval", [1, 7, 30])
@pytest.mark.parametrize("hour", [0, 12, 23])
@pytest.mark.parametrize("offset_hours", [0, 5, 240, 2000])
def test_next_reset_is_future_multiple_of_interval(interval, hour, offset_hours):
    last = int(berlin(2026, 6, 3, 9, 15).timestamp())
    now = berlin(2026, 6, 3, 9, 15) + timedelta(hours=offset_hours)
    first = berlin(2026, 6, 3, hour) + timedelta(days=interval)

    result = next_reset_instant(now, last, hour, interval)

    assert result > now
    assert (result.hour, result.minute, result.second) == (hour, 0, 0)
    days = (result.date() - first.date()).days
    assert days >= 0
    assert days % interval == 0


def test_now_in_other_timezone_is_normalised():
    now = berlin(2026, 1, 1, 8, 0).astimezone(tz=None)
    result = next_reset_instant(now, 0, 12, 30)
    assert result.tzinfo is BERLIN
    assert result == berlin(2026, 1, 1, 12, 0)


def test_latest_due_is_none_before_first_scheduled():
    last = int(berlin(2026, 5, 1, 12, 0).timestamp())
    assert latest_due_instant(berlin(2026, 5, 31, 11, 59), last, 12, 30) is None
    assert latest_due_instant(berlin(2026, 5, 31, 11, 59), 0, 12, 30) is None


def test_latest_due_inside_due_minute():
    last = int(berlin(2026, 5, 1, 12, 0).timestamp())
    assert latest_due_instant(berlin(2026, 5, 31, 12, 0, 30), last, 12, 30) == berlin(2026, 5, 31, 12, 0)


def test_progress_fraction_is_clamped():
    now = berlin(2026, 5, 1, 12, 0)
    interval = 30 * 86_400
    assert progress_fraction(now, now + timedelta(days=15), interval) == pytest.approx(0.5)
    assert progress_fraction(now, now + timedelta(days=45), interval) == 0.0
    assert progress_fraction(now, now - timedelta(days=1), interval) == 1.0


def test_progress_label_formats_remaining_time():
    now = berlin(2026, 5, 1, 8, 58, 30)
    label = progress_label(now, berlin(2026, 5, 3, 12, 0), 12)
    assert label == "Farm reset in 2 days, 03:01:30 (03.05.2026 at 12:00)"
