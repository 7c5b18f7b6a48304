import os

try:
    from dotenv import load_dotenv
    load_dotenv()
except ImportError:
    pass  # dotenv is optional for production, but useful locally

class Settings:
    # --- Storage ---
    # One of: memory, sql, redis
    STORE_BACKEND = os.environ.get("STORE_BACKEND", "memory").lower()
    DATABASE_URL = os.environ.get("DATABASE_URL")
    DATABASE_PUBLIC_URL = os.environ.get("DATABASE_PUBLIC_URL")

    # --- Redis (store + Celery broker) ---
    REDIS_URL = os.environ.get("REDIS_URL")

    # --- Telnyx (SMS delivery) ---
    TELNYX_API_KEY = os.environ.get("TELNYX_API_KEY")
    TELNYX_FROM_NUMBER = os.environ.get("TELNYX_FROM_NUMBER")

    # --- Timezone ---
    DEFAULT_TIMEZONE = os.environ.get("DEFAULT_TIMEZONE", "UTC")

    # --- Scheduler (seconds) ---
    SCHEDULER_CHECK_INTERVAL = float(os.environ.get("SCHEDULER_CHECK_INTERVAL", "60"))
    DEDUP_RETENTION = float(os.environ.get("DEDUP_RETENTION", "600"))
    DEDUP_MAX_ENTRIES = int(os.environ.get("DEDUP_MAX_ENTRIES", "10000"))
    STORE_TIMEOUT = float(os.environ.get("STORE_TIMEOUT", "10"))
    DELIVERY_TIMEOUT = float(os.environ.get("DELIVERY_TIMEOUT", "15"))

    # --- Logging ---
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

    @property
    def dedup_retention(self) -> float:
        """Retention never drops below ten poll intervals."""
        return max(self.DEDUP_RETENTION, 10 * self.SCHEDULER_CHECK_INTERVAL)

settings = Settings()
