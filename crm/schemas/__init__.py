"""Pydantic schemas package – re-exports for convenience."""

# Common enums
from crm.schemas.common import (
    EntityType as EntityType,
    SignalType as SignalType,
    TaskStatus as TaskStatus,
    TaskPriority as TaskPriority,
    EnrollmentStatus as EnrollmentStatus,
    StepOutcome as StepOutcome,
    TriggerType as TriggerType,
    ActionType as ActionType,
    ExecutionStatus as ExecutionStatus,
    NotificationType as NotificationType,
    SuccessResponse as SuccessResponse,
)

# Lead-score schemas
from crm.schemas.lead_score import (
    Signal as Signal,
    ScoreHistoryEntry as ScoreHistoryEntry,
    LeadScoreOut as LeadScoreOut,
    ScoreRequest as ScoreRequest,
    ScoreResult as ScoreResult,
    ScoreResponse as ScoreResponse,
    HotLeadOut as HotLeadOut,
)

# Sequence schemas
from crm.schemas.sequence import (
    StepResultOut as StepResultOut,
    SequenceProcessResponse as SequenceProcessResponse,
)

# Automation schemas
from crm.schemas.automation import (
    RuleResultOut as RuleResultOut,
    AutomationProcessResponse as AutomationProcessResponse,
    ExecutionLogOut as ExecutionLogOut,
)
