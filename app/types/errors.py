"""Error taxonomy shared by the schedule model, stores, dispatcher and API."""

from __future__ import annotations


class ReminderError(Exception):
    """Base class for every error raised by the reminder engine."""


class InvalidSchedule(ReminderError, ValueError):
    """Caller supplied a schedule that can never be stored. Never retried."""


class InvalidTimezone(ReminderError, ValueError):
    """Timezone string is not a known IANA zone id."""

    def __init__(self, timezone: str):
        super().__init__(f"timezone '{timezone}' is not a valid IANA timezone")
        self.timezone = timezone


class ScheduleComputationError(ReminderError):
    """A next-run instant could not be derived for a stored schedule."""


class StoreUnavailable(ReminderError):
    """Transient store failure (connection refused, timeout, ...)."""


class DeliveryFailed(ReminderError):
    """Transport could not deliver a reminder message."""


class NotFound(ReminderError, LookupError):
    """No reminder with the given owner and id."""

    def __init__(self, owner_id: str, reminder_id: str):
        super().__init__(f"no such reminder {reminder_id} for owner {owner_id}")
        self.owner_id = owner_id
        self.reminder_id = reminder_id
