from datetime import datetime, timezone
from typing import Callable
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from crm.api.deps import (
    get_email_repo,
    get_owner_id,
    get_sequence_repo,
    get_sequence_stepper,
    get_session_factory,
)
from crm.repositories.email_repository import EmailRepository
from crm.repositories.sequence_repository import SequenceRepository
from crm.schemas.sequence import SequenceProcessResponse, StepResultOut
from crm.services.scheduler import run_sequence_poll
from crm.services.sequence_stepper import SequenceStepper

router = APIRouter(prefix="/sequences", tags=["Email Sequences"])


@router.post("/process", response_model=SequenceProcessResponse)
async def process_sequences(
    session_factory: Callable[..., AsyncSession] = Depends(get_session_factory),
    stepper: SequenceStepper = Depends(get_sequence_stepper),
) -> SequenceProcessResponse:
    """Run one sequence poll now, outside the background schedule."""
    results = await run_sequence_poll(session_factory, stepper=stepper)
    return SequenceProcessResponse(
        processed=len(results),
        results=[StepResultOut(**r) for r in results],
        timestamp=datetime.now(timezone.utc),
    )


@router.post("/enrollments/{enrollment_id}/send", response_model=StepResultOut)
async def send_enrollment_step(
    enrollment_id: UUID,
    owner_id: UUID = Depends(get_owner_id),
    stepper: SequenceStepper = Depends(get_sequence_stepper),
    sequence_repo: SequenceRepository = Depends(get_sequence_repo),
    email_repo: EmailRepository = Depends(get_email_repo),
) -> StepResultOut:
    """Send the next step of one of the caller's enrollments immediately.

    A transport failure surfaces as 502 and leaves the enrollment where
    it was.
    """
    result = await stepper.send_enrollment(
        enrollment_id, sequence_repo, email_repo, owner_id=owner_id
    )
    return StepResultOut(**result)
