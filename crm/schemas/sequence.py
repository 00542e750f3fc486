from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel

from crm.schemas.common import StepOutcome, SuccessResponse


class StepResultOut(BaseModel):
    """Outcome of stepping one enrollment."""

    enrollment_id: UUID
    outcome: StepOutcome
    step_number: Optional[int] = None
    next_send_at: Optional[datetime] = None
    error: Optional[str] = None


class SequenceProcessResponse(SuccessResponse):
    processed: int
    results: List[StepResultOut]
    timestamp: datetime
