import logging
from typing import Any, Dict, Optional

import httpx

from crm.core.config import settings
from crm.core.exceptions import EmailDispatchError

logger = logging.getLogger(__name__)


class EmailTransport:
    """Transactional email over the Resend REST API.

    ``send`` either returns the provider's ``{"id": ...}`` payload or
    raises :class:`EmailDispatchError`; failures are never swallowed.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        api_url: Optional[str] = None,
        sender: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self._api_key: str = api_key if api_key is not None else settings.RESEND_API_KEY
        self._api_url: str = api_url or settings.RESEND_API_URL
        self.sender: str = sender or settings.EMAIL_FROM
        self._timeout: float = timeout or settings.HTTP_TIMEOUT_SECONDS

    async def send(self, to: str, subject: str, html_body: str) -> Dict[str, Any]:
        if not self._api_key:
            raise EmailDispatchError("RESEND_API_KEY not configured")
        if not to:
            raise EmailDispatchError("Recipient has no email address")

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(
                    self._api_url,
                    headers={"Authorization": f"Bearer {self._api_key}"},
                    json={
                        "from": self.sender,
                        "to": [to],
                        "subject": subject,
                        "html": html_body,
                    },
                )
                response.raise_for_status()
        except httpx.TimeoutException as exc:
            logger.error("Email provider timed out sending to %s", to)
            raise EmailDispatchError("Email provider timed out") from exc
        except httpx.HTTPStatusError as exc:
            logger.error(
                "Email provider returned %s: %s",
                exc.response.status_code,
                exc.response.text,
            )
            raise EmailDispatchError(
                f"Email provider returned {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            logger.error("Email provider unreachable: %s", exc)
            raise EmailDispatchError("Email provider unreachable") from exc

        payload = response.json()
        logger.info("Email sent to %s (id=%s)", to, payload.get("id"))
        return payload
