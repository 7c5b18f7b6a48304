"""Reminder record and index entry contracts shared by stores and services."""

from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.types.schedule import Schedule
from app.utils.timezone import ensure_aware, utcnow, validate_timezone

ReminderStatus = Literal["active", "quarantined"]


class Reminder(BaseModel):
    """A stored reminder.

    ``next_run_at`` is cached, not recomputed on read. It is ``None`` only for
    quarantined reminders, which have no index entry.
    """

    id: str = ""
    owner_id: str
    text: str
    schedule: Schedule
    timezone: str
    next_run_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)
    status: ReminderStatus = "active"
    last_error: Optional[str] = None

    @field_validator("owner_id")
    def validate_owner_id(cls, v):  # noqa: N805
        if not isinstance(v, str) or not v.strip():
            raise ValueError("owner_id must be a non-empty string")
        return v

    @field_validator("timezone")
    def _validate_tz(cls, v):  # noqa: N805
        return validate_timezone(v)

    @field_validator("next_run_at", "created_at")
    def _to_utc(cls, v):  # noqa: N805
        return ensure_aware(v) if v is not None else v


class IndexEntry(BaseModel):
    """One row of the global time-ordered index."""

    model_config = ConfigDict(frozen=True)

    next_run_at: datetime
    owner_id: str
    reminder_id: str

    @field_validator("next_run_at")
    def _to_utc(cls, v):  # noqa: N805
        return ensure_aware(v)
