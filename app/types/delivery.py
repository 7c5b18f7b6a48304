"""Contract between the dispatcher and a delivery transport."""

from __future__ import annotations

from typing import Awaitable, Callable, Optional

from pydantic import BaseModel


class DeliveryResult(BaseModel):
    ok: bool
    error: Optional[str] = None

    @classmethod
    def failed(cls, error: str) -> "DeliveryResult":
        return cls(ok=False, error=error)


# deliver(owner_id, text) -> DeliveryResult. Must not raise for expected
# transport failures (network errors, rate limits).
Deliver = Callable[[str, str], Awaitable[DeliveryResult]]
