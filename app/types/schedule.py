"""Pydantic models describing *when* a reminder fires.

A schedule is a closed tagged union discriminated by ``frequency``; each case
carries exactly the fields it needs. Models are frozen so they compare and hash
by value and round-trip through JSON unchanged.
"""

from __future__ import annotations

import datetime as dt
import re
from datetime import datetime, timedelta
from typing import Any, FrozenSet, List, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator
from typing_extensions import Annotated

from app.types.errors import InvalidSchedule
from app.utils.timezone import ensure_aware, get_zone

DAY_NAMES = ("Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday")

_TIME_RE = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")


def _normalise_time(v: Any) -> str:
    if not isinstance(v, str):
        raise ValueError("time must be a 'HH:MM' string")
    m = _TIME_RE.match(v.strip())
    if not m:
        raise ValueError(f"time '{v}' is not a valid 24-hour HH:MM value")
    return f"{int(m.group(1)):02d}:{m.group(2)}"


class _TimedSchedule(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    time: str

    @field_validator("time", mode="before")
    def _validate_time(cls, v):  # noqa: N805
        return _normalise_time(v)

    @property
    def hour(self) -> int:
        return int(self.time[:2])

    @property
    def minute(self) -> int:
        return int(self.time[3:])


# ──────────────────────────────
# Variants
# ──────────────────────────────


class Once(_TimedSchedule):
    """Fires once at ``date`` + ``time`` local, then the reminder is retired.

    ``fixed_instant`` marks a schedule resolved from a relative request: its
    absolute instant is kept when the owner's timezone changes.
    """

    frequency: Literal["once"] = "once"
    date: dt.date
    fixed_instant: bool = False


class Daily(_TimedSchedule):
    frequency: Literal["daily"] = "daily"


class Weekly(_TimedSchedule):
    frequency: Literal["weekly"] = "weekly"
    day_of_week: int = Field(ge=0, le=6)  # 0 = Sunday


class MultipleDays(_TimedSchedule):
    """Expanded into one ``Weekly`` per day at creation; never stored."""

    frequency: Literal["multiple_days"] = "multiple_days"
    days_of_week: FrozenSet[Annotated[int, Field(ge=0, le=6)]]

    @field_validator("days_of_week")
    def _non_empty(cls, v):  # noqa: N805
        if not v:
            raise ValueError("days_of_week must contain at least one day")
        return v


class Monthly(_TimedSchedule):
    frequency: Literal["monthly"] = "monthly"
    day_of_month: int = Field(ge=1, le=31)


class Relative(BaseModel):
    """``minutes_from_creation`` after creation; resolved into ``Once``."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    frequency: Literal["relative"] = "relative"
    minutes_from_creation: int = Field(ge=1)


Schedule = Annotated[
    Union[Once, Daily, Weekly, MultipleDays, Monthly, Relative],
    Field(discriminator="frequency"),
]

_SCHEDULE_ADAPTER: TypeAdapter[Schedule] = TypeAdapter(Schedule)


# ──────────────────────────────
# Helpers
# ──────────────────────────────


def parse_schedule(data: Any) -> Schedule:
    """Build a schedule from a mapping (or pass through an existing one).

    Raises ``InvalidSchedule`` for any validation failure.
    """
    if isinstance(data, (Once, Daily, Weekly, MultipleDays, Monthly, Relative)):
        return data
    try:
        return _SCHEDULE_ADAPTER.validate_python(data)
    except ValidationError as exc:
        raise InvalidSchedule(_summarise(exc)) from exc


def _summarise(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()))
        parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return "; ".join(parts) or "invalid schedule"


def expand_schedule(schedule: Schedule, timezone: str, now: datetime) -> List[Schedule]:
    """Creation-time resolution of compound and relative schedules.

    ``MultipleDays`` fans out into independent ``Weekly`` schedules (ordered by
    day); ``Relative`` becomes a ``Once`` at ``now + minutes`` in *timezone*.
    """
    if isinstance(schedule, MultipleDays):
        return [Weekly(time=schedule.time, day_of_week=d) for d in sorted(schedule.days_of_week)]
    if isinstance(schedule, Relative):
        target = (ensure_aware(now) + timedelta(minutes=schedule.minutes_from_creation)).astimezone(
            get_zone(timezone)
        )
        return [Once(date=target.date(), time=target.strftime("%H:%M"), fixed_instant=True)]
    return [schedule]


def describe_schedule(schedule: Schedule) -> str:
    """Short human description used in confirmations and listings."""
    if isinstance(schedule, Once):
        return f"Once on {schedule.date.isoformat()} at {schedule.time}"
    if isinstance(schedule, Daily):
        return f"Every day at {schedule.time}"
    if isinstance(schedule, Weekly):
        return f"Every {DAY_NAMES[schedule.day_of_week]} at {schedule.time}"
    if isinstance(schedule, MultipleDays):
        names = " and ".join(DAY_NAMES[d] for d in sorted(schedule.days_of_week))
        return f"Every {names} at {schedule.time}"
    if isinstance(schedule, Monthly):
        return f"Every month on day {schedule.day_of_month} at {schedule.time}"
    return f"In {schedule.minutes_from_creation} minutes"
