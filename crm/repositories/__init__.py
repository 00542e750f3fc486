"""Repository layer – all database access goes through here.

Repositories encapsulate SQLAlchemy queries so that the service layer
only contains business logic.  Every read and write is scoped by the
owning ``user_id``, except the cross-owner poll selections.
"""

from crm.repositories.contact_repository import ContactRepository
from crm.repositories.activity_repository import ActivityRepository
from crm.repositories.task_repository import TaskRepository
from crm.repositories.deal_repository import DealRepository
from crm.repositories.lead_score_repository import LeadScoreRepository
from crm.repositories.notification_repository import NotificationRepository
from crm.repositories.sequence_repository import SequenceRepository
from crm.repositories.email_repository import EmailRepository
from crm.repositories.automation_repository import AutomationRepository

__all__ = [
    "ContactRepository",
    "ActivityRepository",
    "TaskRepository",
    "DealRepository",
    "LeadScoreRepository",
    "NotificationRepository",
    "SequenceRepository",
    "EmailRepository",
    "AutomationRepository",
]
