from crm.models.base import Base
from crm.models.company import Company
from crm.models.contact import Contact
from crm.models.deal import Deal
from crm.models.activity import Activity
from crm.models.task import Task
from crm.models.lead_score import LeadScore
from crm.models.notification import Notification
from crm.models.email_sequence import EmailSequence, SequenceStep, SequenceEnrollment
from crm.models.email_message import EmailMessage
from crm.models.automation import AutomationRule, AutomationExecutionLog

# Import event listeners to register them
from crm.models import listeners  # noqa: F401

__all__ = [
    "Base",
    "Company",
    "Contact",
    "Deal",
    "Activity",
    "Task",
    "LeadScore",
    "Notification",
    "EmailSequence",
    "SequenceStep",
    "SequenceEnrollment",
    "EmailMessage",
    "AutomationRule",
    "AutomationExecutionLog",
]
