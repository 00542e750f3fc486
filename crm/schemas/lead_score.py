"""Lead-scoring Pydantic schemas (signals, history, API payloads)."""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator
from typing_extensions import Self

from crm.schemas.common import EntityType, SignalType, SuccessResponse


class Signal(BaseModel):
    """One weighted, bounded contribution to a contact's score."""

    model_config = ConfigDict(frozen=True)

    type: SignalType
    weight: int = Field(..., ge=0)
    max: int = Field(..., ge=0)

    @model_validator(mode="after")
    def validate_weight_within_max(self) -> Self:
        if self.weight > self.max:
            raise ValueError(
                f"{self.type.value} weight {self.weight} exceeds max {self.max}"
            )
        return self


class ScoreHistoryEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    score: int
    timestamp: datetime


class LeadScoreOut(BaseModel):
    """Persisted lead score as returned by the API."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    contact_id: UUID
    score: int
    signals: List[Signal]
    score_history: List[ScoreHistoryEntry]
    last_calculated_at: datetime


class ScoreRequest(BaseModel):
    """Body of POST /api/v1/lead-scores/calculate.

    Omitting ``entity_id`` rescores every contact of the caller.
    """

    entity_type: EntityType = EntityType.contact
    entity_id: Optional[UUID] = None


class ScoreResult(BaseModel):
    contact_id: UUID
    score: int
    hot_lead: bool


class ScoreResponse(SuccessResponse):
    message: str = "Lead scores calculated successfully"
    scores: List[ScoreResult] = []


class HotLeadOut(BaseModel):
    contact_id: UUID
    first_name: str
    last_name: str
    email: Optional[str] = None
    score: int
    last_calculated_at: datetime
