"""
Abstract reminder store.

Two logical structures live behind every implementation:

* a per-owner mapping ``reminder_id -> Reminder`` (the record), and
* a global index of ``(next_run_at, owner_id, reminder_id)`` ordered by time.

Backends guarantee atomic single-key operations only. Writes that touch both
structures may be observed half-applied after a crash; readers treat the
index as the authoritative *trigger* and the record's ``next_run_at`` as the
authoritative *value* to re-derive the index position from.
"""

from __future__ import annotations

import abc
from datetime import datetime
from typing import List, Optional

from app.types.reminder import IndexEntry, Reminder


class ReminderStore(abc.ABC):

    @abc.abstractmethod
    async def put(self, reminder: Reminder) -> str:
        """Assign a fresh id, store the record and insert its index entry."""

    @abc.abstractmethod
    async def get(self, owner_id: str, reminder_id: str) -> Reminder:
        """Return the record or raise ``NotFound``."""

    @abc.abstractmethod
    async def list_for_owner(self, owner_id: str) -> List[Reminder]:
        ...

    @abc.abstractmethod
    async def update_next_run(self, owner_id: str, reminder_id: str, next_run_at: datetime) -> None:
        """Re-stamp the record and move its index entry. ``NotFound`` if gone."""

    @abc.abstractmethod
    async def replace(self, reminder: Reminder) -> None:
        """Overwrite an existing record (same id) and re-derive its index entry."""

    @abc.abstractmethod
    async def delete(self, owner_id: str, reminder_id: str) -> None:
        """Remove record and index entry. ``NotFound`` if the record is gone."""

    @abc.abstractmethod
    async def due_entries(self, now: datetime) -> List[IndexEntry]:
        """Index entries with key <= *now*, ascending. Nothing is removed."""

    @abc.abstractmethod
    async def remove_index_entry(self, owner_id: str, reminder_id: str) -> None:
        """Drop an index entry without touching the record (no-op if absent)."""

    @abc.abstractmethod
    async def quarantine(self, owner_id: str, reminder_id: str, reason: str) -> None:
        """Unschedule a reminder but keep its record, flagged with *reason*."""

    @abc.abstractmethod
    async def get_owner_timezone(self, owner_id: str) -> Optional[str]:
        ...

    @abc.abstractmethod
    async def set_owner_timezone(self, owner_id: str, timezone: str) -> None:
        ...

    async def close(self) -> None:
        return None
