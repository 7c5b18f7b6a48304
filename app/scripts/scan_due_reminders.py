"""Standalone dispatcher process (alternative to Celery beat).

Run continuously:
    python -m app.scripts.scan_due_reminders
Run a single pass (e.g. from a platform cron every minute):
    python -m app.scripts.scan_due_reminders --once
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal

from app.services.dispatcher import Dispatcher
from app.utils import sms
from config import settings
import db


def build_dispatcher(store: db.ReminderStore) -> Dispatcher:
    return Dispatcher(
        store,
        sms.deliver,
        poll_interval=settings.SCHEDULER_CHECK_INTERVAL,
        dedup_retention=settings.dedup_retention,
        store_timeout=settings.STORE_TIMEOUT,
        delivery_timeout=settings.DELIVERY_TIMEOUT,
    )


async def main(once: bool = False) -> None:
    store = db.build_store(settings)
    dispatcher = build_dispatcher(store)
    try:
        if once:
            await dispatcher.run_pass()
            return
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, dispatcher.stop)
        await dispatcher.run_forever()
    finally:
        await store.close()


if __name__ == "__main__":  # pragma: no cover
    parser = argparse.ArgumentParser(description="Dispatch due reminders")
    parser.add_argument("--once", action="store_true", help="run a single pass and exit")
    args = parser.parse_args()

    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s", level=settings.LOG_LEVEL
    )
    print("[CRON] scan_due_reminders: job started")
    try:
        asyncio.run(main(once=args.once))
        print("[CRON] scan_due_reminders: job completed successfully")
    except Exception as e:
        print(f"[CRON] scan_due_reminders: job failed: {e}")
        raise
