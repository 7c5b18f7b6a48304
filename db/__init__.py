from .store import ReminderStore  # noqa: F401
from .memory import InMemoryReminderStore  # noqa: F401


def build_store(settings) -> ReminderStore:
    """Instantiate the backend selected by ``settings.STORE_BACKEND``."""
    backend = settings.STORE_BACKEND
    if backend == "memory":
        return InMemoryReminderStore()
    if backend == "sql":
        from .db import SqlReminderStore
        return SqlReminderStore()
    if backend == "redis":
        if not settings.REDIS_URL:
            raise RuntimeError("REDIS_URL not set")
        from .redis_store import RedisReminderStore
        return RedisReminderStore.from_url(settings.REDIS_URL, timeout=settings.STORE_TIMEOUT)
    raise RuntimeError(f"unknown STORE_BACKEND '{backend}'")
