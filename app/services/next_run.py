"""Next-run calculator.

Pure function from ``(schedule, timezone, now)`` to the next absolute instant
at which a reminder fires, or ``None`` when a one-time schedule has already
passed. All date arithmetic happens on the local civil calendar of the
reminder's zone so that wall-clock times survive DST transitions; comparisons
happen in UTC. A candidate equal to ``now`` counts as already passed.
"""

from __future__ import annotations

import calendar
from datetime import date, datetime, time, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

from app.types.errors import InvalidTimezone, ScheduleComputationError
from app.types.schedule import Daily, Monthly, MultipleDays, Once, Relative, Schedule, Weekly
from app.utils.timezone import UTC, ensure_aware, get_zone


def compute_next_run(schedule: Schedule, timezone: str, now: datetime) -> Optional[datetime]:
    """Return the next UTC instant strictly after *now*, or ``None``.

    Raises ``ScheduleComputationError`` when no civil date can be built
    (unknown zone, calendar overflow, unschedulable variant).
    """
    try:
        zone = get_zone(timezone)
    except InvalidTimezone as exc:
        raise ScheduleComputationError(str(exc)) from exc

    now_utc = ensure_aware(now)
    local_now = now_utc.astimezone(zone)

    try:
        if isinstance(schedule, Once):
            return _once(schedule, zone, now_utc)
        if isinstance(schedule, Daily):
            return _daily(schedule, zone, local_now, now_utc)
        if isinstance(schedule, Weekly):
            return _weekly(schedule, zone, local_now, now_utc)
        if isinstance(schedule, Monthly):
            return _monthly(schedule, zone, local_now, now_utc)
    except (ValueError, OverflowError) as exc:
        raise ScheduleComputationError(
            f"cannot compute next run for {schedule.frequency} schedule: {exc}"
        ) from exc

    if isinstance(schedule, (Relative, MultipleDays)):
        raise ScheduleComputationError(
            f"{schedule.frequency} schedules must be expanded before scheduling"
        )
    raise ScheduleComputationError(f"unknown schedule type {type(schedule).__name__}")


def _at(day: date, schedule, zone: ZoneInfo) -> datetime:
    """Local ``day`` at the schedule's wall-clock time, as a UTC instant."""
    local = datetime.combine(day, time(schedule.hour, schedule.minute), tzinfo=zone)
    return local.astimezone(UTC)


def _once(schedule: Once, zone: ZoneInfo, now_utc: datetime) -> Optional[datetime]:
    candidate = _at(schedule.date, schedule, zone)
    if candidate > now_utc:
        return candidate
    return None


def _daily(schedule: Daily, zone: ZoneInfo, local_now: datetime, now_utc: datetime) -> datetime:
    today = local_now.date()
    candidate = _at(today, schedule, zone)
    if candidate <= now_utc:
        candidate = _at(today + timedelta(days=1), schedule, zone)
    return candidate


def day_of_week(day: date) -> int:
    """0 = Sunday ... 6 = Saturday."""
    return (day.weekday() + 1) % 7


def _weekly(schedule: Weekly, zone: ZoneInfo, local_now: datetime, now_utc: datetime) -> datetime:
    today = local_now.date()
    days_until = (schedule.day_of_week - day_of_week(today) + 7) % 7
    if days_until == 0 and _at(today, schedule, zone) <= now_utc:
        days_until = 7
    return _at(today + timedelta(days=days_until), schedule, zone)


def _clamped(year: int, month: int, day_of_month: int) -> date:
    last = calendar.monthrange(year, month)[1]
    return date(year, month, min(day_of_month, last))


def _monthly(schedule: Monthly, zone: ZoneInfo, local_now: datetime, now_utc: datetime) -> datetime:
    year, month = local_now.year, local_now.month
    candidate = _at(_clamped(year, month, schedule.day_of_month), schedule, zone)
    if candidate <= now_utc:
        month += 1
        if month > 12:
            month = 1
            year += 1
        candidate = _at(_clamped(year, month, schedule.day_of_month), schedule, zone)
    return candidate
