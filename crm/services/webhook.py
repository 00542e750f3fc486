import logging
from typing import Any, Dict, Optional

import httpx

from crm.core.config import settings
from crm.core.exceptions import WebhookDeliveryError

logger = logging.getLogger(__name__)


class WebhookClient:
    """Single best-effort JSON POST; no retry is attempted here."""

    def __init__(self, timeout: Optional[float] = None) -> None:
        self._timeout: float = timeout or settings.HTTP_TIMEOUT_SECONDS

    async def post(self, url: str, payload: Dict[str, Any]) -> int:
        """POST *payload* to *url* and return the response status code."""
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(url, json=payload)
                response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise WebhookDeliveryError(
                f"Webhook failed: {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            logger.error("Webhook %s unreachable: %s", url, exc)
            raise WebhookDeliveryError(f"Webhook unreachable: {url}") from exc
        return response.status_code
