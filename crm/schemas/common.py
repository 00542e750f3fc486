from enum import Enum
from pydantic import BaseModel


class EntityType(str, Enum):
    contact = "contact"
    company = "company"
    deal = "deal"


class SignalType(str, Enum):
    profile_completeness = "profile_completeness"
    activity_frequency = "activity_frequency"
    activity_recency = "activity_recency"
    task_completion = "task_completion"


class TaskStatus(str, Enum):
    pending = "pending"
    in_progress = "in_progress"
    completed = "completed"


class TaskPriority(str, Enum):
    high = "high"
    medium = "medium"
    low = "low"


class EnrollmentStatus(str, Enum):
    active = "active"
    paused = "paused"
    completed = "completed"


class StepOutcome(str, Enum):
    sent = "sent"
    completed = "completed"
    skipped = "skipped"
    failed = "failed"


class TriggerType(str, Enum):
    deal_stage_change = "deal_stage_change"
    task_overdue = "task_overdue"
    contact_inactive = "contact_inactive"


class ActionType(str, Enum):
    create_task = "create_task"
    send_notification = "send_notification"
    update_deal = "update_deal"
    trigger_webhook = "trigger_webhook"


class ExecutionStatus(str, Enum):
    success = "success"
    failed = "failed"


class NotificationType(str, Enum):
    hot_lead = "hot_lead"
    automation = "automation"


class SuccessResponse(BaseModel):
    """Generic success response base."""

    success: bool = True
