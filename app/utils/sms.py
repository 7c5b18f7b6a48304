import asyncio
import logging
import re

import telnyx
from telnyx.error import TelnyxError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_random_exponential

from app.types.delivery import DeliveryResult
from app.types.errors import DeliveryFailed
from config import settings

FROM_NUM = settings.TELNYX_FROM_NUMBER
TELNYX_API_KEY = settings.TELNYX_API_KEY
if TELNYX_API_KEY:
    telnyx.api_key = TELNYX_API_KEY

_LOGGER = logging.getLogger(__name__)

_E164_RE = re.compile(r"^\+[1-9]\d{6,14}$")


# Transport-level retries; the dispatcher itself never retries a delivery.
@retry(
    wait=wait_random_exponential(multiplier=1, max=10),
    stop=stop_after_attempt(3),
    retry=retry_if_exception_type(TelnyxError),
    reraise=True,
)
def send_sms(to: str, body: str) -> None:
    if not TELNYX_API_KEY or not FROM_NUM:
        print("[SMS] DEV mode: would send to", to, ":", body)
        return
    if not _E164_RE.match(to):
        raise DeliveryFailed(f"'{to}' is not an E.164 phone number")
    telnyx.Message.create(from_=FROM_NUM, to=to, text=body)


def format_reminder(text: str) -> str:
    return f"⏰ Reminder: {text}"


async def deliver(owner_id: str, text: str) -> DeliveryResult:
    """Send a reminder SMS to *owner_id*; report failures instead of raising."""
    try:
        await asyncio.to_thread(send_sms, owner_id, format_reminder(text))
    except (TelnyxError, DeliveryFailed, OSError) as exc:
        _LOGGER.warning("SMS delivery to %s failed: %s", owner_id, exc)
        return DeliveryResult.failed(str(exc))
    return DeliveryResult(ok=True)
