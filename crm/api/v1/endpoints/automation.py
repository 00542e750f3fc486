from typing import Callable, List
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from crm.api.deps import (
    get_automation_evaluator,
    get_automation_repo,
    get_owner_id,
    get_session_factory,
)
from crm.core.exceptions import RuleNotFoundError
from crm.repositories.automation_repository import AutomationRepository
from crm.schemas.automation import (
    AutomationProcessResponse,
    ExecutionLogOut,
    RuleResultOut,
)
from crm.services.automation_evaluator import AutomationEvaluator
from crm.services.scheduler import run_automation_poll

router = APIRouter(prefix="/automation", tags=["Automation"])


@router.post("/process", response_model=AutomationProcessResponse)
async def process_automation_rules(
    session_factory: Callable[..., AsyncSession] = Depends(get_session_factory),
    evaluator: AutomationEvaluator = Depends(get_automation_evaluator),
) -> AutomationProcessResponse:
    """Evaluate every active rule once, outside the background schedule."""
    results = await run_automation_poll(session_factory, evaluator=evaluator)
    return AutomationProcessResponse(
        processed=len(results),
        results=[RuleResultOut(**r) for r in results],
    )


@router.get("/rules/{rule_id}/executions", response_model=List[ExecutionLogOut])
async def list_rule_executions(
    rule_id: UUID,
    limit: int = Query(50, ge=1, le=500, description="Max rows to return"),
    owner_id: UUID = Depends(get_owner_id),
    automation_repo: AutomationRepository = Depends(get_automation_repo),
) -> List[ExecutionLogOut]:
    """Execution log of one of the caller's rules, newest first."""
    rule = await automation_repo.get_rule_for_owner(owner_id, rule_id)
    if rule is None:
        raise RuleNotFoundError(f"Automation rule {rule_id} not found")
    executions = await automation_repo.list_executions(owner_id, rule_id, limit=limit)
    return [ExecutionLogOut.model_validate(e) for e in executions]
