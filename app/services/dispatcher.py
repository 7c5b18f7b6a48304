"""
Dispatch loop.

Polls the store's time-ordered index on a fixed interval, delivers every due
reminder once, then re-stamps recurring reminders and retires one-time ones.

States: *Idle* (waiting for the next tick) and *Processing* (draining one
snapshot of due entries). A pass always runs to completion regardless of
individual failures; a store failure at any point aborts the pass and the
next tick retries the entries still in the index. ``stop()`` is cooperative:
the entry being processed finishes, nothing new starts.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Optional, TypeVar

from pydantic import BaseModel

from app.services.dedup import DedupKey, DedupWindow
from app.services.next_run import compute_next_run
from app.types.delivery import Deliver, DeliveryResult
from app.types.errors import NotFound, ScheduleComputationError, StoreUnavailable
from app.types.reminder import IndexEntry, Reminder
from app.utils.timezone import ensure_aware, utcnow
from db.store import ReminderStore

_LOGGER = logging.getLogger(__name__)

Clock = Callable[[], datetime]
T = TypeVar("T")


class PassReport(BaseModel):
    """Counters for one Processing phase."""

    started_at: datetime
    due: int = 0
    delivered: int = 0
    failed: int = 0
    rescheduled: int = 0
    retired: int = 0
    quarantined: int = 0
    reconciled: int = 0
    dropped: int = 0
    skipped: int = 0
    errors: int = 0
    aborted: bool = False
    interrupted: bool = False


class Dispatcher:
    def __init__(
        self,
        store: ReminderStore,
        deliver: Deliver,
        *,
        clock: Clock = utcnow,
        poll_interval: float = 60.0,
        dedup: Optional[DedupWindow] = None,
        dedup_retention: Optional[float] = None,
        store_timeout: Optional[float] = None,
        delivery_timeout: Optional[float] = None,
    ):
        if poll_interval <= 0:
            raise ValueError("poll_interval must be positive")
        self.store = store
        self.poll_interval = poll_interval
        self.store_timeout = store_timeout
        self.delivery_timeout = delivery_timeout
        self._deliver = deliver
        self._clock = clock
        if dedup is None:
            retention = max(dedup_retention or 0.0, 10 * poll_interval)
            dedup = DedupWindow(timedelta(seconds=retention))
        self.dedup = dedup
        self._stop = asyncio.Event()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def stop(self) -> None:
        self._stop.set()

    @property
    def stopping(self) -> bool:
        return self._stop.is_set()

    async def run_forever(self) -> None:
        _LOGGER.info("Dispatcher started, checking every %ss", self.poll_interval)
        while not self._stop.is_set():
            await self.run_pass()
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self.poll_interval)
            except asyncio.TimeoutError:
                continue
        _LOGGER.info("Dispatcher stopped")

    # ------------------------------------------------------------------
    # Processing phase
    # ------------------------------------------------------------------
    async def run_pass(self) -> PassReport:
        now = ensure_aware(self._clock())
        report = PassReport(started_at=now)
        self.dedup.evict(now)

        try:
            entries = await self._store_call(self.store.due_entries(now))
        except StoreUnavailable as exc:
            _LOGGER.error("Store unavailable, skipping dispatch pass: %s", exc)
            report.aborted = True
            return report

        report.due = len(entries)
        for i, entry in enumerate(entries):
            if self._stop.is_set():
                _LOGGER.info("Shutdown requested, leaving %d due entries for later", len(entries) - i)
                report.interrupted = True
                break
            try:
                await self._process(entry, now, report)
            except StoreUnavailable as exc:
                _LOGGER.error(
                    "Store unavailable, aborting dispatch pass with %d entries left: %s", len(entries) - i, exc
                )
                report.aborted = True
                break

        if report.due:
            _LOGGER.info(
                "Dispatch pass: due=%d delivered=%d failed=%d rescheduled=%d retired=%d "
                "quarantined=%d skipped=%d errors=%d",
                report.due, report.delivered, report.failed, report.rescheduled,
                report.retired, report.quarantined, report.skipped, report.errors,
            )
        return report

    async def _process(self, entry: IndexEntry, now: datetime, report: PassReport) -> None:
        key = DedupKey.for_firing(entry.owner_id, entry.reminder_id, now)
        if not self.dedup.check_and_add(key, now):
            _LOGGER.debug("Reminder %s already handled this minute, skipping", entry.reminder_id)
            report.skipped += 1
            return
        try:
            await self._handle(entry, now, report)
        except StoreUnavailable:
            raise
        except Exception:  # noqa: BLE001
            report.errors += 1
            _LOGGER.exception("Error processing reminder %s for owner %s", entry.reminder_id, entry.owner_id)

    async def _handle(self, entry: IndexEntry, now: datetime, report: PassReport) -> None:
        owner_id, reminder_id = entry.owner_id, entry.reminder_id
        try:
            reminder = await self._store_call(self.store.get(owner_id, reminder_id))
        except NotFound:
            _LOGGER.warning("Dropping index entry for missing reminder %s (owner %s)", reminder_id, owner_id)
            await self._store_call(self.store.remove_index_entry(owner_id, reminder_id))
            report.dropped += 1
            return

        if reminder.status != "active" or reminder.next_run_at is None:
            _LOGGER.warning("Dropping index entry for unscheduled reminder %s", reminder_id)
            await self._store_call(self.store.remove_index_entry(owner_id, reminder_id))
            report.dropped += 1
            return

        if reminder.next_run_at > now:
            # Record re-stamped but index write lost: re-derive, don't fire.
            _LOGGER.info("Re-indexing reminder %s at %s", reminder_id, reminder.next_run_at.isoformat())
            await self._store_call(self.store.update_next_run(owner_id, reminder_id, reminder.next_run_at))
            report.reconciled += 1
            return

        result = await self._send(reminder)
        if result.ok:
            report.delivered += 1
            _LOGGER.info("Sent reminder %s to %s (%s)", reminder_id, owner_id, reminder.timezone)
        else:
            report.failed += 1
            _LOGGER.warning("Delivery of reminder %s to %s failed: %s", reminder_id, owner_id, result.error)

        try:
            next_run = compute_next_run(reminder.schedule, reminder.timezone, now)
        except ScheduleComputationError as exc:
            _LOGGER.error("Quarantining reminder %s: %s", reminder_id, exc)
            await self._store_call(self.store.quarantine(owner_id, reminder_id, str(exc)))
            report.quarantined += 1
            return

        try:
            if next_run is None:
                await self._store_call(self.store.delete(owner_id, reminder_id))
                report.retired += 1
                _LOGGER.info("Deleted one-time reminder %s", reminder_id)
            else:
                await self._store_call(self.store.update_next_run(owner_id, reminder_id, next_run))
                report.rescheduled += 1
                _LOGGER.info("Rescheduled reminder %s for %s", reminder_id, next_run.isoformat())
        except NotFound:
            _LOGGER.info("Reminder %s was deleted while being dispatched", reminder_id)

    async def _send(self, reminder: Reminder) -> DeliveryResult:
        try:
            return await asyncio.wait_for(
                self._deliver(reminder.owner_id, reminder.text), timeout=self.delivery_timeout
            )
        except asyncio.TimeoutError:
            return DeliveryResult.failed("delivery timed out")
        except Exception as exc:  # noqa: BLE001
            _LOGGER.exception("Delivery callback raised for reminder %s", reminder.id)
            return DeliveryResult.failed(str(exc))

    async def _store_call(self, call: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(call, timeout=self.store_timeout)
        except asyncio.TimeoutError as exc:
            raise StoreUnavailable("store call timed out") from exc
