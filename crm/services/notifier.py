import logging
from typing import Optional
from uuid import UUID

from crm.repositories.notification_repository import NotificationRepository
from crm.schemas.common import NotificationType

logger = logging.getLogger(__name__)


class NotificationService:
    """Fire-and-forget notification sink.

    A failed insert is logged and rolled back; it never propagates to
    the caller, so a scoring pass is not aborted by a notification
    problem.
    """

    async def notify(
        self,
        notification_repo: NotificationRepository,
        owner_id: UUID,
        title: str,
        message: str,
        link: Optional[str] = None,
        notification_type: NotificationType = NotificationType.hot_lead,
    ) -> bool:
        """Insert and commit one notification; returns ``False`` on failure."""
        try:
            await notification_repo.create(
                user_id=owner_id,
                type=notification_type.value,
                title=title,
                message=message,
                link=link,
            )
            await notification_repo.commit()
        except Exception:
            logger.warning(
                "Failed to deliver %s notification to user %s",
                notification_type.value,
                owner_id,
                exc_info=True,
            )
            await notification_repo.rollback()
            return False
        return True
