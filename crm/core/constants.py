from typing import Dict, FrozenSet, Tuple

from crm.schemas.common import (
    ActionType,
    EnrollmentStatus,
    SignalType,
    TriggerType,
)

# ---------------------------------------------------------------------------
# Lead scoring
# ---------------------------------------------------------------------------

SIGNAL_MAX: Dict[str, int] = {
    SignalType.profile_completeness.value: 30,
    SignalType.activity_frequency.value: 40,
    SignalType.activity_recency.value: 20,
    SignalType.task_completion.value: 10,
}

MAX_LEAD_SCORE: int = 100

# profile_completeness points per present attribute
PROFILE_FIELD_POINTS: Dict[str, int] = {
    "email": 10,
    "phone": 5,
    "position": 5,
    "company_id": 10,
}

ACTIVITY_FREQUENCY_WINDOW_DAYS: int = 30
ACTIVITY_FREQUENCY_POINTS: int = 5

# (days-since-last-activity upper bound, exclusive) -> weight, checked in order
ACTIVITY_RECENCY_TIERS: Tuple[Tuple[int, int], ...] = (
    (7, 20),
    (14, 15),
    (30, 10),
    (60, 5),
)

TASK_COMPLETION_POINTS: int = 2

HOT_LEAD_THRESHOLD: int = 70
SCORE_HISTORY_LIMIT: int = 30

# ---------------------------------------------------------------------------
# Email sequences
# ---------------------------------------------------------------------------

ENROLLMENT_STATUSES: FrozenSet[str] = frozenset(s.value for s in EnrollmentStatus)
TERMINAL_ENROLLMENT_STATUSES: FrozenSet[str] = frozenset(
    {EnrollmentStatus.completed.value}
)
TEMPLATE_TOKENS: Tuple[str, ...] = ("first_name", "last_name", "email")

# ---------------------------------------------------------------------------
# Automation rules
# ---------------------------------------------------------------------------

TRIGGER_TYPES: FrozenSet[str] = frozenset(t.value for t in TriggerType)
# Trigger type names written by older rule editors
TRIGGER_TYPE_ALIASES: Dict[str, str] = {
    "deal_stage_changed": TriggerType.deal_stage_change.value,
}
ACTION_TYPES: FrozenSet[str] = frozenset(a.value for a in ActionType)

DEAL_STAGE_CHANGE_WINDOW_MINUTES: int = 15
DEFAULT_INACTIVE_DAYS: int = 30
DEFAULT_TASK_DUE_HOURS: int = 24
