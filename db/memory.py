"""In-process reminder store used by tests and single-node development."""

from __future__ import annotations

import bisect
from datetime import datetime
from typing import Dict, List, Optional, Tuple
from uuid import uuid4

from app.types.errors import NotFound
from app.types.reminder import IndexEntry, Reminder
from app.utils.timezone import ensure_aware
from db.store import ReminderStore

_IndexKey = Tuple[datetime, str, str]


class InMemoryReminderStore(ReminderStore):
    """Dict-of-dicts records plus a sorted list index.

    Record and index writes are deliberately separate steps
    (``_write_record`` / ``_write_index``) so tests can fail one of them.
    """

    def __init__(self) -> None:
        self._records: Dict[str, Dict[str, Reminder]] = {}
        self._index: List[_IndexKey] = []
        self._positions: Dict[Tuple[str, str], datetime] = {}
        self._timezones: Dict[str, str] = {}

    # ------------------------------------------------------------------
    # Internal write steps
    # ------------------------------------------------------------------
    def _write_record(self, reminder: Reminder) -> None:
        self._records.setdefault(reminder.owner_id, {})[reminder.id] = reminder.model_copy(deep=True)

    def _drop_record(self, owner_id: str, reminder_id: str) -> None:
        owned = self._records.get(owner_id, {})
        owned.pop(reminder_id, None)
        if not owned:
            self._records.pop(owner_id, None)

    def _write_index(self, owner_id: str, reminder_id: str, next_run_at: Optional[datetime]) -> None:
        self._drop_index(owner_id, reminder_id)
        if next_run_at is None:
            return
        at = ensure_aware(next_run_at)
        bisect.insort(self._index, (at, owner_id, reminder_id))
        self._positions[(owner_id, reminder_id)] = at

    def _drop_index(self, owner_id: str, reminder_id: str) -> None:
        at = self._positions.pop((owner_id, reminder_id), None)
        if at is None:
            return
        i = bisect.bisect_left(self._index, (at, owner_id, reminder_id))
        if i < len(self._index) and self._index[i] == (at, owner_id, reminder_id):
            del self._index[i]

    def _record(self, owner_id: str, reminder_id: str) -> Reminder:
        try:
            return self._records[owner_id][reminder_id]
        except KeyError:
            raise NotFound(owner_id, reminder_id) from None

    # ------------------------------------------------------------------
    # ReminderStore
    # ------------------------------------------------------------------
    async def put(self, reminder: Reminder) -> str:
        rid = str(uuid4())
        stored = reminder.model_copy(update={"id": rid})
        self._write_record(stored)
        self._write_index(stored.owner_id, rid, stored.next_run_at)
        return rid

    async def get(self, owner_id: str, reminder_id: str) -> Reminder:
        return self._record(owner_id, reminder_id).model_copy(deep=True)

    async def list_for_owner(self, owner_id: str) -> List[Reminder]:
        return [r.model_copy(deep=True) for r in self._records.get(owner_id, {}).values()]

    async def update_next_run(self, owner_id: str, reminder_id: str, next_run_at: datetime) -> None:
        current = self._record(owner_id, reminder_id)
        self._write_record(current.model_copy(update={"next_run_at": ensure_aware(next_run_at)}))
        self._write_index(owner_id, reminder_id, next_run_at)

    async def replace(self, reminder: Reminder) -> None:
        self._record(reminder.owner_id, reminder.id)
        self._write_record(reminder)
        self._write_index(reminder.owner_id, reminder.id, reminder.next_run_at)

    async def delete(self, owner_id: str, reminder_id: str) -> None:
        self._record(owner_id, reminder_id)
        self._drop_record(owner_id, reminder_id)
        self._drop_index(owner_id, reminder_id)

    async def due_entries(self, now: datetime) -> List[IndexEntry]:
        cutoff = ensure_aware(now)
        entries = []
        for at, owner_id, reminder_id in self._index:
            if at > cutoff:
                break
            entries.append(IndexEntry(next_run_at=at, owner_id=owner_id, reminder_id=reminder_id))
        return entries

    async def remove_index_entry(self, owner_id: str, reminder_id: str) -> None:
        self._drop_index(owner_id, reminder_id)

    async def quarantine(self, owner_id: str, reminder_id: str, reason: str) -> None:
        current = self._record(owner_id, reminder_id)
        self._drop_index(owner_id, reminder_id)
        self._write_record(
            current.model_copy(update={"status": "quarantined", "next_run_at": None, "last_error": reason})
        )

    async def get_owner_timezone(self, owner_id: str) -> Optional[str]:
        return self._timezones.get(owner_id)

    async def set_owner_timezone(self, owner_id: str, timezone: str) -> None:
        self._timezones[owner_id] = timezone
