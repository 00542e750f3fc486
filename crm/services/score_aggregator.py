from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence
from uuid import UUID

from pydantic import BaseModel, Field

from crm.core.constants import HOT_LEAD_THRESHOLD, MAX_LEAD_SCORE, SCORE_HISTORY_LIMIT
from crm.schemas.lead_score import Signal


class ScoreOutcome(BaseModel):
    """Result of one aggregation, ready to be written as a ``lead_scores`` row.

    ``previous_id`` / ``previous_calculated_at`` come from the same read
    that decided ``hot_lead``; the write is conditional on them.
    """

    contact_id: UUID
    score: int = Field(..., ge=0, le=MAX_LEAD_SCORE)
    signals: List[Dict[str, Any]]
    score_history: List[Dict[str, Any]]
    last_calculated_at: datetime
    previous_id: Optional[UUID] = None
    previous_calculated_at: Optional[datetime] = None
    hot_lead: bool = False

    @property
    def is_update(self) -> bool:
        return self.previous_id is not None

    def row_values(self) -> Dict[str, Any]:
        """Column values for the insert / conditional update."""
        return {
            "score": self.score,
            "signals": self.signals,
            "score_history": self.score_history,
            "last_calculated_at": self.last_calculated_at,
        }


def crosses_hot_threshold(score: int, previous_score: Optional[int]) -> bool:
    """Edge trigger: true only when the score rises above the threshold."""
    if score <= HOT_LEAD_THRESHOLD:
        return False
    return previous_score is None or previous_score <= HOT_LEAD_THRESHOLD


def append_history(
    history: Optional[Sequence[Dict[str, Any]]], score: int, now: datetime
) -> List[Dict[str, Any]]:
    """Append ``{score, timestamp}`` and keep the newest 30 entries (FIFO)."""
    entries = list(history or [])
    entries.append({"score": score, "timestamp": now.isoformat()})
    return entries[-SCORE_HISTORY_LIMIT:]


def aggregate(
    contact_id: UUID,
    signals: Sequence[Signal],
    previous: Optional[Any],
    now: datetime,
) -> ScoreOutcome:
    """Fold *signals* into a new score snapshot.

    *previous* is the current ``LeadScore`` row (or any object exposing
    ``id``, ``score``, ``score_history`` and ``last_calculated_at``), or
    ``None`` when the contact has never been scored.
    """
    score = sum(s.weight for s in signals)
    previous_score = previous.score if previous is not None else None
    return ScoreOutcome(
        contact_id=contact_id,
        score=score,
        signals=[s.model_dump(mode="json") for s in signals],
        score_history=append_history(
            previous.score_history if previous is not None else None, score, now
        ),
        last_calculated_at=now,
        previous_id=previous.id if previous is not None else None,
        previous_calculated_at=(
            previous.last_calculated_at if previous is not None else None
        ),
        hot_lead=crosses_hot_threshold(score, previous_score),
    )
