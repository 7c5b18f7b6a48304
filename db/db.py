"""
Async SQL reminder store.
Uses SQLAlchemy 2.0 + asyncpg driver – no raw SQL strings in app code.

Record and index live in separate tables but every write touching both is
issued inside one transaction, so this backend never exposes a half-applied
update.
"""

from __future__ import annotations

import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, List, Optional
from uuid import uuid4

from sqlalchemy import JSON, DateTime, String, Text, delete, func, select
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from app.types.errors import NotFound, StoreUnavailable
from app.types.reminder import IndexEntry, Reminder
from app.utils.timezone import ensure_aware
from db.store import ReminderStore

# ──────────────────────────────────────────────────────────────────────
# 1. Declarative metadata
# ──────────────────────────────────────────────────────────────────────
class Base(DeclarativeBase):
    pass

# ──────────────────────────────────────────────────────────────────────
# 2. Lazy engine / session factory
# ──────────────────────────────────────────────────────────────────────
_engine = None
_session_maker: async_sessionmaker[AsyncSession] | None = None

def _build_url() -> str:
    url = os.getenv("DATABASE_URL") or os.getenv("DATABASE_PUBLIC_URL")
    if not url:
        raise RuntimeError("DATABASE_URL not set")
    if "+asyncpg" not in url:
        url = url.replace("postgres://", "postgresql+asyncpg://", 1).replace(
            "postgresql://", "postgresql+asyncpg://", 1
        )
    return url

def get_engine():
    global _engine
    if _engine is None:
        _engine = create_async_engine(_build_url(), pool_size=5, max_overflow=5, pool_pre_ping=True)
    return _engine

def get_session_maker() -> async_sessionmaker[AsyncSession]:
    global _session_maker
    if _session_maker is None:
        _session_maker = async_sessionmaker(get_engine(), expire_on_commit=False)
    return _session_maker

# ──────────────────────────────────────────────────────────────────────
# 3. ORM models
# ──────────────────────────────────────────────────────────────────────

class ReminderRow(Base):
    __tablename__ = "reminders"

    reminder_id:   Mapped[str] = mapped_column(String(36), primary_key=True)
    owner_id:      Mapped[str] = mapped_column(String, index=True)
    reminder_text: Mapped[str] = mapped_column(Text)
    schedule:      Mapped[dict[str, Any]] = mapped_column(JSON)
    timezone:      Mapped[str] = mapped_column(String(64))
    next_fire_at:  Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    status:        Mapped[str] = mapped_column(String(16), default="active")
    last_error:    Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at:    Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at:    Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class ScheduleEntry(Base):
    """Global time-ordered index: one row per scheduled reminder."""

    __tablename__ = "reminder_schedule"

    owner_id:     Mapped[str] = mapped_column(String, primary_key=True)
    reminder_id:  Mapped[str] = mapped_column(String(36), primary_key=True)
    next_fire_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)


class OwnerSetting(Base):
    __tablename__ = "owner_settings"

    owner_id: Mapped[str] = mapped_column(String, primary_key=True)
    timezone: Mapped[str] = mapped_column(String(64))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


# ──────────────────────────────────────────────────────────────────────
# 4. DDL helper (run once at startup or from Alembic)
# ──────────────────────────────────────────────────────────────────────
async def create_all():
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def dispose_engine():
    global _engine, _session_maker
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_maker = None


# ──────────────────────────────────────────────────────────────────────
# 5. Row <-> model mapping
# ──────────────────────────────────────────────────────────────────────
def _to_reminder(row: ReminderRow) -> Reminder:
    return Reminder(
        id=row.reminder_id,
        owner_id=row.owner_id,
        text=row.reminder_text,
        schedule=row.schedule,
        timezone=row.timezone,
        next_run_at=row.next_fire_at,
        created_at=row.created_at or datetime.now(timezone.utc),
        status=row.status,
        last_error=row.last_error,
    )


def _from_reminder(reminder: Reminder, row: ReminderRow | None = None) -> ReminderRow:
    row = row or ReminderRow(reminder_id=reminder.id, created_at=reminder.created_at)
    row.owner_id = reminder.owner_id
    row.reminder_text = reminder.text
    row.schedule = reminder.schedule.model_dump(mode="json")
    row.timezone = reminder.timezone
    row.next_fire_at = reminder.next_run_at
    row.status = reminder.status
    row.last_error = reminder.last_error
    return row


_TRANSIENT = (OperationalError, InterfaceError, OSError)


# ──────────────────────────────────────────────────────────────────────
# 6. Store
# ──────────────────────────────────────────────────────────────────────
class SqlReminderStore(ReminderStore):

    def __init__(self, session_maker: async_sessionmaker[AsyncSession] | None = None):
        self._session_maker = session_maker

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        maker = self._session_maker or get_session_maker()
        try:
            async with maker() as s:
                yield s
        except _TRANSIENT as exc:
            raise StoreUnavailable(f"database unavailable: {exc}") from exc

    @staticmethod
    async def _row(s: AsyncSession, owner_id: str, reminder_id: str) -> ReminderRow:
        row = await s.get(ReminderRow, reminder_id)
        if row is None or row.owner_id != owner_id:
            raise NotFound(owner_id, reminder_id)
        return row

    @staticmethod
    async def _set_index(s: AsyncSession, owner_id: str, reminder_id: str, at: datetime | None) -> None:
        entry = await s.get(ScheduleEntry, (owner_id, reminder_id))
        if at is None:
            if entry is not None:
                await s.delete(entry)
        elif entry is None:
            s.add(ScheduleEntry(owner_id=owner_id, reminder_id=reminder_id, next_fire_at=at))
        else:
            entry.next_fire_at = at

    # 6.1 Records --------------------------------------------------------
    async def put(self, reminder: Reminder) -> str:
        rid = str(uuid4())
        stored = reminder.model_copy(update={"id": rid})
        async with self._session() as s:
            s.add(_from_reminder(stored))
            if stored.next_run_at is not None:
                s.add(ScheduleEntry(owner_id=stored.owner_id, reminder_id=rid, next_fire_at=stored.next_run_at))
            await s.commit()
        return rid

    async def get(self, owner_id: str, reminder_id: str) -> Reminder:
        async with self._session() as s:
            return _to_reminder(await self._row(s, owner_id, reminder_id))

    async def list_for_owner(self, owner_id: str) -> List[Reminder]:
        async with self._session() as s:
            res = await s.execute(select(ReminderRow).where(ReminderRow.owner_id == owner_id))
            return [_to_reminder(r) for r in res.scalars()]

    async def update_next_run(self, owner_id: str, reminder_id: str, next_run_at: datetime) -> None:
        at = ensure_aware(next_run_at)
        async with self._session() as s:
            row = await self._row(s, owner_id, reminder_id)
            row.next_fire_at = at
            await self._set_index(s, owner_id, reminder_id, at)
            await s.commit()

    async def replace(self, reminder: Reminder) -> None:
        async with self._session() as s:
            row = await self._row(s, reminder.owner_id, reminder.id)
            _from_reminder(reminder, row)
            await self._set_index(s, reminder.owner_id, reminder.id, reminder.next_run_at)
            await s.commit()

    async def delete(self, owner_id: str, reminder_id: str) -> None:
        async with self._session() as s:
            row = await self._row(s, owner_id, reminder_id)
            await s.delete(row)
            await s.execute(
                delete(ScheduleEntry).where(
                    ScheduleEntry.owner_id == owner_id, ScheduleEntry.reminder_id == reminder_id
                )
            )
            await s.commit()

    # 6.2 Index ----------------------------------------------------------
    async def due_entries(self, now: datetime) -> List[IndexEntry]:
        async with self._session() as s:
            stmt = (
                select(ScheduleEntry)
                .where(ScheduleEntry.next_fire_at <= ensure_aware(now))
                .order_by(ScheduleEntry.next_fire_at, ScheduleEntry.owner_id, ScheduleEntry.reminder_id)
            )
            res = await s.execute(stmt)
            return [
                IndexEntry(next_run_at=e.next_fire_at, owner_id=e.owner_id, reminder_id=e.reminder_id)
                for e in res.scalars()
            ]

    async def remove_index_entry(self, owner_id: str, reminder_id: str) -> None:
        async with self._session() as s:
            await s.execute(
                delete(ScheduleEntry).where(
                    ScheduleEntry.owner_id == owner_id, ScheduleEntry.reminder_id == reminder_id
                )
            )
            await s.commit()

    async def quarantine(self, owner_id: str, reminder_id: str, reason: str) -> None:
        async with self._session() as s:
            row = await self._row(s, owner_id, reminder_id)
            row.status = "quarantined"
            row.next_fire_at = None
            row.last_error = reason
            await self._set_index(s, owner_id, reminder_id, None)
            await s.commit()

    # 6.3 Owner settings -------------------------------------------------
    async def get_owner_timezone(self, owner_id: str) -> Optional[str]:
        async with self._session() as s:
            setting = await s.get(OwnerSetting, owner_id)
            return setting.timezone if setting else None

    async def set_owner_timezone(self, owner_id: str, timezone: str) -> None:
        async with self._session() as s:
            await s.merge(OwnerSetting(owner_id=owner_id, timezone=timezone))
            await s.commit()

    async def close(self) -> None:
        if self._session_maker is None:
            await dispose_engine()
