"""Short-window deduplication guard for reminder firings."""

from __future__ import annotations

from collections import OrderedDict
from datetime import datetime, timedelta
from typing import Hashable, NamedTuple

from app.utils.timezone import ensure_aware

BUCKET_SECONDS = 60


class DedupKey(NamedTuple):
    owner_id: str
    reminder_id: str
    bucket: int  # floor(epoch seconds / 60)

    @classmethod
    def for_firing(cls, owner_id: str, reminder_id: str, now: datetime) -> "DedupKey":
        return cls(owner_id, reminder_id, int(ensure_aware(now).timestamp()) // BUCKET_SECONDS)


class DedupWindow:
    """Time-windowed set of recently handled keys.

    Keys are kept in insertion order with the time they were recorded, so
    eviction only ever looks at the oldest end. ``max_entries`` bounds memory
    even if the clock stalls.
    """

    def __init__(self, retention: timedelta, max_entries: int = 10_000):
        if retention <= timedelta(0):
            raise ValueError("retention must be positive")
        self.retention = retention
        self.max_entries = max_entries
        self._seen: "OrderedDict[Hashable, datetime]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._seen)

    def __contains__(self, key: Hashable) -> bool:
        return key in self._seen

    def evict(self, now: datetime) -> int:
        """Drop keys older than the retention window; return how many."""
        cutoff = ensure_aware(now) - self.retention
        dropped = 0
        while self._seen:
            key, recorded = next(iter(self._seen.items()))
            if recorded > cutoff:
                break
            del self._seen[key]
            dropped += 1
        return dropped

    def check_and_add(self, key: Hashable, now: datetime) -> bool:
        """Record *key*; return ``False`` if it was already in the window."""
        if key in self._seen:
            return False
        self._seen[key] = ensure_aware(now)
        while len(self._seen) > self.max_entries:
            self._seen.popitem(last=False)
        return True

    def clear(self) -> None:
        self._seen.clear()
