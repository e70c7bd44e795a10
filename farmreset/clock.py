"""Reset schedule arithmetic.

All functions are pure. Every instant is evaluated in a single fixed timezone so
that the operator and every player see the same reset time, whatever the host
locale is.
"""

from __future__ import annotations

from datetime import datetime, timedelta, tzinfo
from typing import Optional
from zoneinfo import ZoneInfo

DEFAULT_TIMEZONE = "Europe/Berlin"
SCHEDULE_TZ = ZoneInfo(DEFAULT_TIMEZONE)
SECONDS_PER_DAY = 86_400


def _at_hour(moment: datetime, hour: int) -> datetime:
    return moment.replace(hour=hour, minute=0, second=0, microsecond=0)


def _first_scheduled(last_reset: int, reset_hour: int, interval_days: int, tz: tzinfo) -> datetime:
    last = datetime.fromtimestamp(last_reset, tz)
    return _at_hour(last + timedelta(days=interval_days), reset_hour)


def next_reset_instant(
    now: datetime,
    last_reset: int,
    reset_hour: int,
    interval_days: int,
    tz: tzinfo = SCHEDULE_TZ,
) -> datetime:
    """Return the next scheduled reset strictly after ``now``.

    With no recorded reset (``last_reset == 0``) the next reset is today at
    ``reset_hour``, or tomorrow when that hour has already started. Otherwise it
    is ``last_reset + interval_days`` at ``reset_hour``, pushed forward by whole
    intervals until it lies in the future.
    """
    now = now.astimezone(tz)
    if last_reset == 0:
        candidate = _at_hour(now, reset_hour)
        if candidate <= now:
            candidate += timedelta(days=1)
        return candidate

    step = timedelta(days=interval_days)
    candidate = _first_scheduled(last_reset, reset_hour, interval_days, tz)
    while candidate <= now:
        candidate += step
    return candidate


def latest_due_instant(
    now: datetime,
    last_reset: int,
    reset_hour: int,
    interval_days: int,
    tz: tzinfo = SCHEDULE_TZ,
) -> Optional[datetime]:
    """Return the most recent scheduled reset at or before ``now``.

    ``None`` when nothing has come due since ``last_reset`` (or no reset was
    ever recorded).
    """
    if last_reset == 0:
        return None
    upcoming = next_reset_instant(now, last_reset, reset_hour, interval_days, tz)
    if upcoming == _first_scheduled(last_reset, reset_hour, interval_days, tz):
        return None
    return upcoming - timedelta(days=interval_days)


def seconds_until(now: datetime, moment: datetime) -> float:
    return moment.timestamp() - now.timestamp()


def progress_fraction(now: datetime, next_reset: datetime, interval_seconds: float) -> float:
    if interval_seconds <= 0:
        return 1.0
    fraction = 1.0 - seconds_until(now, next_reset) / interval_seconds
    return max(0.0, min(1.0, fraction))


def progress_label(now: datetime, next_reset: datetime, reset_hour: int) -> str:
    total = max(0, int(seconds_until(now, next_reset)))
    days, rest = divmod(total, SECONDS_PER_DAY)
    hours, rest = divmod(rest, 3600)
    minutes, seconds = divmod(rest, 60)
    return (
        f"Farm reset in {days} days, {hours:02d}:{minutes:02d}:{seconds:02d} "
        f"({next_reset.strftime('%d.%m.%Y')} at {reset_hour:02d}:00)"
    )
