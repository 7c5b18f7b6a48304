import pytest
from datetime import datetime, timedelta, timezone

from app.types.delivery import DeliveryResult
from db import InMemoryReminderStore


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class RecordingDelivery:
    """Delivery callback that records calls and replays scripted outcomes."""

    def __init__(self):
        self.sent = []
        self.outcomes = []

    async def __call__(self, owner_id: str, text: str) -> DeliveryResult:
        self.sent.append((owner_id, text))
        if self.outcomes:
            outcome = self.outcomes.pop(0)
            if isinstance(outcome, BaseException):
                raise outcome
            return outcome
        return DeliveryResult(ok=True)


@pytest.fixture
def store():
    return InMemoryReminderStore()


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 3, 10, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def delivery():
    return RecordingDelivery()
