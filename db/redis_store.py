"""Redis-backed reminder store.

Layout:

* ``reminders:{owner_id}`` – hash ``reminder_id -> Reminder JSON``
* ``reminder_schedule``    – sorted set of ``{owner_id}:{reminder_id}`` scored
  by next-run epoch milliseconds
* ``owner:{owner_id}:timezone`` – owner's preferred IANA zone

Writes that touch both the hash and the sorted set go through a MULTI/EXEC
pipeline. Existence checks before them are separate round trips, so a
concurrent delete can still leave a stray index member; the dispatcher drops
those when it finds them.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, List, Optional
from uuid import uuid4

from redis import asyncio as aioredis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from app.types.errors import NotFound, StoreUnavailable
from app.types.reminder import IndexEntry, Reminder
from app.utils.timezone import UTC, ensure_aware
from db.store import ReminderStore

INDEX_KEY = "reminder_schedule"

_LOGGER = logging.getLogger(__name__)


def records_key(owner_id: str) -> str:
    return f"reminders:{owner_id}"


def owner_timezone_key(owner_id: str) -> str:
    return f"owner:{owner_id}:timezone"


def index_member(owner_id: str, reminder_id: str) -> str:
    return f"{owner_id}:{reminder_id}"


def _score(at: datetime) -> int:
    return int(ensure_aware(at).timestamp() * 1000)


class RedisReminderStore(ReminderStore):

    def __init__(self, client: "aioredis.Redis"):
        self._redis = client

    @classmethod
    def from_url(cls, url: str, timeout: float | None = None) -> "RedisReminderStore":
        client = aioredis.from_url(
            url,
            decode_responses=True,
            socket_timeout=timeout,
            socket_connect_timeout=timeout,
        )
        return cls(client)

    @asynccontextmanager
    async def _guard(self) -> AsyncIterator[None]:
        try:
            yield
        except (RedisConnectionError, RedisTimeoutError, OSError) as exc:
            raise StoreUnavailable(f"redis unavailable: {exc}") from exc

    async def _load(self, owner_id: str, reminder_id: str) -> Reminder:
        raw = await self._redis.hget(records_key(owner_id), reminder_id)
        if raw is None:
            raise NotFound(owner_id, reminder_id)
        return Reminder.model_validate_json(raw)

    async def _save(self, reminder: Reminder) -> None:
        """Write record and index entry in one MULTI/EXEC."""
        member = index_member(reminder.owner_id, reminder.id)
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.hset(records_key(reminder.owner_id), reminder.id, reminder.model_dump_json())
            if reminder.next_run_at is None:
                pipe.zrem(INDEX_KEY, member)
            else:
                pipe.zadd(INDEX_KEY, {member: _score(reminder.next_run_at)})
            await pipe.execute()

    # ------------------------------------------------------------------
    # ReminderStore
    # ------------------------------------------------------------------
    async def put(self, reminder: Reminder) -> str:
        stored = reminder.model_copy(update={"id": str(uuid4())})
        async with self._guard():
            await self._save(stored)
        return stored.id

    async def get(self, owner_id: str, reminder_id: str) -> Reminder:
        async with self._guard():
            return await self._load(owner_id, reminder_id)

    async def list_for_owner(self, owner_id: str) -> List[Reminder]:
        async with self._guard():
            raw = await self._redis.hgetall(records_key(owner_id))
        return [Reminder.model_validate_json(v) for v in raw.values()]

    async def update_next_run(self, owner_id: str, reminder_id: str, next_run_at: datetime) -> None:
        async with self._guard():
            current = await self._load(owner_id, reminder_id)
            await self._save(current.model_copy(update={"next_run_at": ensure_aware(next_run_at)}))

    async def replace(self, reminder: Reminder) -> None:
        async with self._guard():
            await self._load(reminder.owner_id, reminder.id)
            await self._save(reminder)

    async def delete(self, owner_id: str, reminder_id: str) -> None:
        async with self._guard():
            if not await self._redis.hexists(records_key(owner_id), reminder_id):
                raise NotFound(owner_id, reminder_id)
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.hdel(records_key(owner_id), reminder_id)
                pipe.zrem(INDEX_KEY, index_member(owner_id, reminder_id))
                await pipe.execute()

    async def due_entries(self, now: datetime) -> List[IndexEntry]:
        async with self._guard():
            rows = await self._redis.zrangebyscore(INDEX_KEY, "-inf", _score(now), withscores=True)
        entries = []
        for member, score in rows:
            owner_id, sep, reminder_id = member.rpartition(":")
            if not sep:
                _LOGGER.warning("Ignoring malformed schedule member %r", member)
                continue
            entries.append(
                IndexEntry(
                    next_run_at=datetime.fromtimestamp(score / 1000, tz=UTC),
                    owner_id=owner_id,
                    reminder_id=reminder_id,
                )
            )
        return entries

    async def remove_index_entry(self, owner_id: str, reminder_id: str) -> None:
        async with self._guard():
            await self._redis.zrem(INDEX_KEY, index_member(owner_id, reminder_id))

    async def quarantine(self, owner_id: str, reminder_id: str, reason: str) -> None:
        async with self._guard():
            current = await self._load(owner_id, reminder_id)
            await self._save(
                current.model_copy(update={"status": "quarantined", "next_run_at": None, "last_error": reason})
            )

    async def get_owner_timezone(self, owner_id: str) -> Optional[str]:
        async with self._guard():
            return await self._redis.get(owner_timezone_key(owner_id))

    async def set_owner_timezone(self, owner_id: str, timezone: str) -> None:
        async with self._guard():
            await self._redis.set(owner_timezone_key(owner_id), timezone)

    async def close(self) -> None:
        await self._redis.aclose()
