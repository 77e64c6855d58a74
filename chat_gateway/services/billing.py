import logging
from typing import Optional, Protocol

import httpx

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = frozenset({"active", "trialing"})


class BillingError(Exception):
    pass


class BillingClient(Protocol):
    async def subscription_status(self, subscription_id: str) -> str: ...


class StripeBilling:
    """Reads a subscription's status from Stripe (``GET /v1/subscriptions/{id}``)."""

    def __init__(self, secret_key: str, *, base_url: str = "https://api.stripe.com/v1", timeout: float = 10.0) -> None:
        self.secret_key = secret_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    async def subscription_status(self, subscription_id: str) -> str:
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                r = await client.get(
                    f"{self.base_url}/subscriptions/{subscription_id}",
                    headers={"Authorization": f"Bearer {self.secret_key}"},
                )
        except httpx.HTTPError as e:
            raise BillingError(f"stripe unreachable: {e}") from e
        if not r.is_success:
            raise BillingError(f"stripe returned {r.status_code}")
        status: Optional[str] = r.json().get("status")
        if not status:
            raise BillingError("stripe response carried no status")
        return status


def is_active(status: str) -> bool:
    return status in ACTIVE_STATUSES
