from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request

from crm.api.deps import (
    get_activity_repo,
    get_contact_repo,
    get_lead_score_repo,
    get_lead_scoring_service,
    get_notification_repo,
    get_owner_id,
    get_task_repo,
)
from crm.core.constants import HOT_LEAD_THRESHOLD
from crm.core.exceptions import LeadScoreNotFoundError, UnsupportedEntityTypeError
from crm.core.rate_limit import limiter
from crm.repositories.activity_repository import ActivityRepository
from crm.repositories.contact_repository import ContactRepository
from crm.repositories.lead_score_repository import LeadScoreRepository
from crm.repositories.notification_repository import NotificationRepository
from crm.repositories.task_repository import TaskRepository
from crm.schemas.common import EntityType
from crm.schemas.lead_score import (
    HotLeadOut,
    LeadScoreOut,
    ScoreRequest,
    ScoreResponse,
    ScoreResult,
)
from crm.services.lead_scoring import LeadScoringService

router = APIRouter(prefix="/lead-scores", tags=["Lead Scores"])


@router.post("/calculate", response_model=ScoreResponse)
@limiter.limit("10/minute")
async def calculate_lead_scores(
    request: Request,
    request_body: ScoreRequest,
    owner_id: UUID = Depends(get_owner_id),
    service: LeadScoringService = Depends(get_lead_scoring_service),
    contact_repo: ContactRepository = Depends(get_contact_repo),
    activity_repo: ActivityRepository = Depends(get_activity_repo),
    task_repo: TaskRepository = Depends(get_task_repo),
    lead_score_repo: LeadScoreRepository = Depends(get_lead_score_repo),
    notification_repo: NotificationRepository = Depends(get_notification_repo),
) -> ScoreResponse:
    """Recalculate one contact's score, or every contact of the caller.

    Rate-limited to 10 requests/minute per IP; a full rescore touches
    every contact of the owner.
    """
    if request_body.entity_type != EntityType.contact:
        raise UnsupportedEntityTypeError(
            f"Scoring is not supported for entity type "
            f"'{request_body.entity_type.value}'"
        )

    repos = dict(
        contact_repo=contact_repo,
        activity_repo=activity_repo,
        task_repo=task_repo,
        lead_score_repo=lead_score_repo,
        notification_repo=notification_repo,
    )
    if request_body.entity_id is not None:
        results = [
            await service.score_contact(owner_id, request_body.entity_id, **repos)
        ]
    else:
        results = await service.score_all_contacts(owner_id, **repos)

    return ScoreResponse(scores=[ScoreResult(**r) for r in results])


@router.get("/hot", response_model=List[HotLeadOut])
async def list_hot_leads(
    limit: int = Query(50, ge=1, le=500, description="Max rows to return"),
    owner_id: UUID = Depends(get_owner_id),
    lead_score_repo: LeadScoreRepository = Depends(get_lead_score_repo),
) -> List[HotLeadOut]:
    """Contacts of the caller scoring above the hot-lead threshold."""
    rows = await lead_score_repo.list_hot(owner_id, HOT_LEAD_THRESHOLD, limit=limit)
    return [HotLeadOut(**row) for row in rows]


@router.get("/{contact_id}", response_model=LeadScoreOut)
async def get_lead_score(
    contact_id: UUID,
    owner_id: UUID = Depends(get_owner_id),
    lead_score_repo: LeadScoreRepository = Depends(get_lead_score_repo),
) -> LeadScoreOut:
    lead_score = await lead_score_repo.get_for_contact(owner_id, contact_id)
    if lead_score is None:
        raise LeadScoreNotFoundError(f"No lead score for contact {contact_id}")
    return LeadScoreOut.model_validate(lead_score)
