from typing import Any

from crm.models.email_message import EmailMessage
from crm.repositories.base import BaseRepository


class EmailRepository(BaseRepository):
    """Encapsulates inserts into the ``emails`` message log."""

    async def log_outbound(self, **kwargs: Any) -> EmailMessage:
        """Record one sent message."""
        message = EmailMessage(is_outbound=True, **kwargs)
        self._db.add(message)
        return message
