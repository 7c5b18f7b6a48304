"""Celery application instance shared across the backend.

Start a worker and the beat scheduler with:
    celery -A app.celery_app worker -Q reminder -l info --concurrency=1
    celery -A app.celery_app beat -l info

Run a single worker process for the reminder queue: the dispatcher assumes a
single scheduler instance.
"""

import os
from celery import Celery

from config import settings

BROKER_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")

celery_app = Celery("reminder_engine", broker=BROKER_URL, backend=BROKER_URL)

# Global task settings
celery_app.conf.task_acks_late = True
celery_app.conf.task_reject_on_worker_lost = True

celery_app.conf.task_routes = {
    "app.workers.reminder.dispatch_due": {"queue": "reminder"},
}

# Beat schedule: poll the index for due reminders every interval
celery_app.conf.beat_schedule = {
    "dispatch-due-reminders": {
        "task": "app.workers.reminder.dispatch_due",
        "schedule": settings.SCHEDULER_CHECK_INTERVAL,
        # A pass older than one interval is superseded by the next tick
        "options": {"expires": settings.SCHEDULER_CHECK_INTERVAL},
    }
}

# --- Ensure tasks are registered ---
import app.workers.reminder
