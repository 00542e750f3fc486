from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from crm.schemas.common import ExecutionStatus, SuccessResponse


class RuleResultOut(BaseModel):
    """Outcome of evaluating one rule in a poll.

    ``status`` is ``skipped`` when the trigger matched nothing; no log
    row exists for such an evaluation.
    """

    rule_id: UUID
    rule_name: str
    status: str
    actions_performed: Optional[List[Dict[str, Any]]] = None
    error: Optional[str] = None


class AutomationProcessResponse(SuccessResponse):
    processed: int
    results: List[RuleResultOut]


class ExecutionLogOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    automation_rule_id: UUID
    status: ExecutionStatus
    trigger_data: Optional[Dict[str, Any]] = None
    actions_performed: Optional[List[Dict[str, Any]]] = None
    error_message: Optional[str] = None
    executed_at: datetime
