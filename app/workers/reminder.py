"""Celery task that runs one dispatch pass per beat tick."""

from __future__ import annotations

import asyncio
import logging
from datetime import timedelta

from app.celery_app import celery_app
from app.services.dedup import DedupWindow
from app.services.dispatcher import Dispatcher, PassReport
from app.utils import sms
from config import settings
import db

_LOGGER = logging.getLogger(__name__)

# Survives across tasks within one worker process; advisory only.
_DEDUP = DedupWindow(
    timedelta(seconds=settings.dedup_retention),
    max_entries=settings.DEDUP_MAX_ENTRIES,
)


def build_store():
    return db.build_store(settings)


async def _run_pass() -> PassReport:
    store = build_store()
    dispatcher = Dispatcher(
        store,
        sms.deliver,
        poll_interval=settings.SCHEDULER_CHECK_INTERVAL,
        dedup=_DEDUP,
        store_timeout=settings.STORE_TIMEOUT,
        delivery_timeout=settings.DELIVERY_TIMEOUT,
    )
    try:
        return await dispatcher.run_pass()
    finally:
        await store.close()


# ---------------------------------------------------------------------------
# Celery Tasks
# ---------------------------------------------------------------------------

@celery_app.task(name="app.workers.reminder.dispatch_due", bind=True)
def dispatch_due(self):  # noqa: D401
    """Deliver due reminders and reschedule or retire them."""
    report = asyncio.run(_run_pass())
    if report.aborted:
        _LOGGER.warning("Dispatch pass aborted; retrying on next tick")
    return report.model_dump(mode="json")
