"""Signal extraction for lead scoring.

Every function here is pure: the reference time is passed in, nothing is
read from the database and nothing is accumulated across calls.  Given
the same inputs and the same ``now`` the returned tuple is identical.
"""

from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Mapping, Optional, Sequence, Tuple

from crm.core.constants import (
    ACTIVITY_FREQUENCY_POINTS,
    ACTIVITY_FREQUENCY_WINDOW_DAYS,
    ACTIVITY_RECENCY_TIERS,
    PROFILE_FIELD_POINTS,
    SIGNAL_MAX,
    TASK_COMPLETION_POINTS,
)
from crm.core.exceptions import UnsupportedEntityTypeError
from crm.schemas.common import EntityType, SignalType, TaskStatus
from crm.schemas.lead_score import Signal

Record = Mapping[str, Any]


def _signal(signal_type: SignalType, weight: int) -> Signal:
    return Signal(type=signal_type, weight=weight, max=SIGNAL_MAX[signal_type.value])


def profile_completeness(contact: Record) -> Signal:
    """Fixed points for each attribute that is present; no partial credit."""
    weight = sum(
        points for field, points in PROFILE_FIELD_POINTS.items() if contact.get(field)
    )
    return _signal(SignalType.profile_completeness, weight)


def activity_frequency(activities: Sequence[Record], now: datetime) -> Signal:
    """5 points per activity in the trailing 30 days, hard-capped at 40."""
    window_start = now - timedelta(days=ACTIVITY_FREQUENCY_WINDOW_DAYS)
    recent = sum(
        1
        for a in activities
        if a.get("created_at") is not None and a["created_at"] > window_start
    )
    cap = SIGNAL_MAX[SignalType.activity_frequency.value]
    return _signal(
        SignalType.activity_frequency,
        min(cap, recent * ACTIVITY_FREQUENCY_POINTS),
    )


def _last_activity_at(activities: Sequence[Record]) -> Optional[datetime]:
    timestamps = [a["created_at"] for a in activities if a.get("created_at") is not None]
    return max(timestamps) if timestamps else None


def activity_recency(activities: Sequence[Record], now: datetime) -> Signal:
    """Step function of days since the latest activity; 0 with no history."""
    last = _last_activity_at(activities)
    weight = 0
    if last is not None:
        days_since = (now - last).total_seconds() / 86400
        for upper_bound, tier_weight in ACTIVITY_RECENCY_TIERS:
            if days_since < upper_bound:
                weight = tier_weight
                break
    return _signal(SignalType.activity_recency, weight)


def task_completion(tasks: Sequence[Record]) -> Signal:
    """2 points per completed task, hard-capped at 10."""
    completed = sum(1 for t in tasks if t.get("status") == TaskStatus.completed.value)
    cap = SIGNAL_MAX[SignalType.task_completion.value]
    return _signal(SignalType.task_completion, min(cap, completed * TASK_COMPLETION_POINTS))


def extract_contact_signals(
    contact: Record,
    activities: Sequence[Record],
    tasks: Sequence[Record],
    now: datetime,
) -> Tuple[Signal, ...]:
    """Return the full, fixed signal set of a contact in canonical order."""
    return (
        profile_completeness(contact),
        activity_frequency(activities, now),
        activity_recency(activities, now),
        task_completion(tasks),
    )


_EXTRACTORS: Dict[str, Callable[..., Tuple[Signal, ...]]] = {
    EntityType.contact.value: extract_contact_signals,
}


def extract_signals(
    entity_type: EntityType,
    entity: Record,
    activities: Sequence[Record],
    tasks: Sequence[Record],
    now: datetime,
) -> Tuple[Signal, ...]:
    """Dispatch to the signal set of *entity_type*.

    Raises:
        UnsupportedEntityTypeError: The entity kind has no signal set.
    """
    extractor = _EXTRACTORS.get(entity_type.value)
    if extractor is None:
        raise UnsupportedEntityTypeError(
            f"Lead scoring is not defined for entity type '{entity_type.value}'"
        )
    return extractor(entity, activities, tasks, now)
