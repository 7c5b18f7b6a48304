"""
Caller-facing reminder operations: create, list, delete, re-timezone.

Each function takes the store explicitly so the HTTP layer, workers and tests
can all share one implementation. Caller errors are raised as
``InvalidSchedule`` / ``InvalidTimezone`` / ``NotFound`` and never retried.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, List, Optional

from app.types.errors import InvalidSchedule, ScheduleComputationError
from app.types.reminder import Reminder
from app.types.schedule import Once, Relative, Schedule, describe_schedule, expand_schedule, parse_schedule
from app.services.next_run import compute_next_run
from app.utils.timezone import ensure_aware, get_zone, utcnow, validate_timezone
from config import settings
from db.store import ReminderStore

_LOGGER = logging.getLogger(__name__)


async def owner_timezone(store: ReminderStore, owner_id: str) -> str:
    """Owner's saved zone, falling back to ``DEFAULT_TIMEZONE``."""
    return await store.get_owner_timezone(owner_id) or settings.DEFAULT_TIMEZONE


async def create_reminder(
    store: ReminderStore,
    owner_id: str,
    text: str,
    schedule: Schedule | dict[str, Any],
    timezone: Optional[str] = None,
    now: Optional[datetime] = None,
) -> List[Reminder]:
    """Validate, resolve and persist a reminder request.

    Returns every stored reminder; a ``multiple_days`` request yields one
    weekly reminder per day. Nothing is stored if any part is invalid.
    """
    parsed = parse_schedule(schedule)
    if not isinstance(text, str) or not text.strip():
        raise InvalidSchedule("reminder text must not be empty")
    if timezone is not None:
        zone = validate_timezone(timezone)
    else:
        zone = await owner_timezone(store, owner_id)
    now = ensure_aware(now or utcnow())

    drafts = []
    for part in expand_schedule(parsed, zone, now):
        if isinstance(parsed, Relative):
            next_run = now + timedelta(minutes=parsed.minutes_from_creation)
        else:
            try:
                next_run = compute_next_run(part, zone, now)
            except ScheduleComputationError as exc:
                raise InvalidSchedule(str(exc)) from exc
        if next_run is None:
            raise InvalidSchedule("that time has already passed")
        drafts.append(
            Reminder(
                owner_id=owner_id,
                text=text.strip(),
                schedule=part,
                timezone=zone,
                next_run_at=next_run,
                created_at=now,
            )
        )

    created = []
    for draft in drafts:
        rid = await store.put(draft)
        created.append(draft.model_copy(update={"id": rid}))
        _LOGGER.info(
            "Created reminder %s for %s (%s, %s). Next run: %s",
            rid, owner_id, describe_schedule(draft.schedule), zone, draft.next_run_at.isoformat(),
        )
    return created


async def list_reminders(store: ReminderStore, owner_id: str) -> List[Reminder]:
    """Owner's reminders, soonest first; quarantined ones last."""
    reminders = await store.list_for_owner(owner_id)
    return sorted(
        reminders,
        key=lambda r: (r.next_run_at is None, r.next_run_at or r.created_at, r.created_at, r.id),
    )


async def delete_reminder(store: ReminderStore, owner_id: str, reminder_id: str) -> None:
    await store.delete(owner_id, reminder_id)
    _LOGGER.info("Deleted reminder %s for %s", reminder_id, owner_id)


async def bulk_retimezone(
    store: ReminderStore,
    owner_id: str,
    timezone: str,
    now: Optional[datetime] = None,
) -> int:
    """Move every reminder of *owner_id* to *timezone*; return how many.

    Wall-clock schedules keep their local time in the new zone. One-time
    reminders resolved from a relative request keep their absolute instant.
    One-time reminders whose instant has passed in the new zone are deleted.
    """
    zone = validate_timezone(timezone)
    now = ensure_aware(now or utcnow())
    updated = 0

    for reminder in await store.list_for_owner(owner_id):
        schedule = reminder.schedule
        if isinstance(schedule, Once) and schedule.fixed_instant and reminder.next_run_at is not None:
            local = reminder.next_run_at.astimezone(get_zone(zone))
            schedule = Once(date=local.date(), time=local.strftime("%H:%M"), fixed_instant=True)
            next_run = reminder.next_run_at
        else:
            try:
                next_run = compute_next_run(schedule, zone, now)
            except ScheduleComputationError as exc:
                _LOGGER.error("Quarantining reminder %s during re-timezone: %s", reminder.id, exc)
                await store.replace(
                    reminder.model_copy(
                        update={"timezone": zone, "status": "quarantined", "next_run_at": None, "last_error": str(exc)}
                    )
                )
                continue
            if next_run is None:
                _LOGGER.warning("One-time reminder %s already passed in %s, deleting", reminder.id, zone)
                await store.delete(owner_id, reminder.id)
                continue

        await store.replace(
            reminder.model_copy(
                update={
                    "schedule": schedule,
                    "timezone": zone,
                    "next_run_at": next_run,
                    "status": "active",
                    "last_error": None,
                }
            )
        )
        updated += 1

    _LOGGER.info("Re-timezoned %d reminders for %s to %s", updated, owner_id, zone)
    return updated


async def set_owner_timezone(
    store: ReminderStore,
    owner_id: str,
    timezone: str,
    update_existing: bool = False,
    now: Optional[datetime] = None,
) -> int:
    """Save the owner's zone; optionally move existing reminders too.

    Returns the number of reminders updated (0 when ``update_existing`` is
    false: existing reminders keep the zone they were created with).
    """
    zone = validate_timezone(timezone)
    await store.set_owner_timezone(owner_id, zone)
    _LOGGER.info("Saved timezone %s for %s", zone, owner_id)
    if not update_existing:
        return 0
    return await bulk_retimezone(store, owner_id, zone, now=now)
