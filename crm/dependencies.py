import logging
from typing import AsyncIterator, Callable, Optional
from uuid import UUID

from fastapi import Depends, Header
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from crm.core.config import settings
from crm.core.database import AsyncSessionLocal, get_db
from crm.core.exceptions import MissingOwnerError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Request owner
# ---------------------------------------------------------------------------


async def get_owner_id(
    x_user_id: Optional[UUID] = Header(None, alias="X-User-Id"),
) -> UUID:
    """Owning principal of an interactive request.

    A malformed header fails request validation (422); a missing one
    raises :class:`MissingOwnerError`.
    """
    if x_user_id is None:
        raise MissingOwnerError()
    return x_user_id


# ---------------------------------------------------------------------------
# Redis client factory
# ---------------------------------------------------------------------------


async def get_redis_client() -> AsyncIterator[Optional[Redis]]:
    """Yield an async Redis client, or ``None`` when Redis is unreachable."""
    client = Redis.from_url(settings.REDIS_URL, decode_responses=True)
    try:
        await client.ping()
    except Exception:
        logger.warning("Redis unavailable – scoring lock disabled for this request")
        await client.aclose()
        yield None
        return
    try:
        yield client
    finally:
        await client.aclose()


# ---------------------------------------------------------------------------
# Repository factory functions (one per repository, each gets the shared db)
# ---------------------------------------------------------------------------


async def get_contact_repo(
    db: AsyncSession = Depends(get_db),
):
    from crm.repositories.contact_repository import ContactRepository

    return ContactRepository(db)


async def get_activity_repo(
    db: AsyncSession = Depends(get_db),
):
    from crm.repositories.activity_repository import ActivityRepository

    return ActivityRepository(db)


async def get_task_repo(
    db: AsyncSession = Depends(get_db),
):
    from crm.repositories.task_repository import TaskRepository

    return TaskRepository(db)


async def get_lead_score_repo(
    db: AsyncSession = Depends(get_db),
):
    from crm.repositories.lead_score_repository import LeadScoreRepository

    return LeadScoreRepository(db)


async def get_notification_repo(
    db: AsyncSession = Depends(get_db),
):
    from crm.repositories.notification_repository import NotificationRepository

    return NotificationRepository(db)


async def get_sequence_repo(
    db: AsyncSession = Depends(get_db),
):
    from crm.repositories.sequence_repository import SequenceRepository

    return SequenceRepository(db)


async def get_email_repo(
    db: AsyncSession = Depends(get_db),
):
    from crm.repositories.email_repository import EmailRepository

    return EmailRepository(db)


async def get_automation_repo(
    db: AsyncSession = Depends(get_db),
):
    from crm.repositories.automation_repository import AutomationRepository

    return AutomationRepository(db)


# ---------------------------------------------------------------------------
# Cache service factory
# ---------------------------------------------------------------------------


async def get_cache_service(
    redis_client: Optional[Redis] = Depends(get_redis_client),
):
    """Build a :class:`CacheService` backed by the shared Redis client."""
    from crm.core.cache import CacheService

    return CacheService(redis_client=redis_client)


# ---------------------------------------------------------------------------
# Service factory functions
# ---------------------------------------------------------------------------


async def get_session_factory() -> Callable[..., AsyncSession]:
    """Session factory for poll endpoints, which open one session per item."""
    return AsyncSessionLocal


async def get_lead_scoring_service(
    cache=Depends(get_cache_service),
):
    from crm.services.lead_scoring import LeadScoringService

    return LeadScoringService(cache=cache)


async def get_sequence_stepper():
    from crm.services.sequence_stepper import SequenceStepper

    return SequenceStepper()


async def get_automation_evaluator():
    from crm.services.automation_evaluator import AutomationEvaluator

    return AutomationEvaluator()
