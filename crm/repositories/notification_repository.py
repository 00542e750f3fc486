from typing import Any

from crm.models.notification import Notification
from crm.repositories.base import BaseRepository


class NotificationRepository(BaseRepository):
    """Encapsulates inserts into the ``notifications`` table."""

    async def create(self, **kwargs: Any) -> Notification:
        """Insert a new notification."""
        notification = Notification(**kwargs)
        self._db.add(notification)
        await self._db.flush()
        return notification
