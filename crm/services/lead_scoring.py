import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import UUID

from crm.core.cache import CacheService
from crm.core.config import settings
from crm.core.exceptions import ContactNotFoundError, ScoreConflictError
from crm.repositories.activity_repository import ActivityRepository
from crm.repositories.contact_repository import ContactRepository
from crm.repositories.lead_score_repository import LeadScoreRepository
from crm.repositories.notification_repository import NotificationRepository
from crm.repositories.task_repository import TaskRepository
from crm.schemas.common import EntityType, NotificationType
from crm.services.notifier import NotificationService
from crm.services.score_aggregator import ScoreOutcome, aggregate
from crm.services.signal_extractor import extract_signals

logger = logging.getLogger(__name__)

# Pause between attempts when another pass holds the contact's lock
_LOCK_RETRY_DELAY_SECONDS = 0.2


class LeadScoringService:
    """Score contacts and persist the result.

    One pass over a contact is: owner-scoped load → signal extraction →
    read previous score → aggregate → conditional write → derived
    ``engagement_score`` update → commit → hot-lead notification.

    Concurrent passes on the same contact are serialised by a Redis
    lock when Redis is reachable; independently of that, the score
    write is conditional on the previously read row, and a lost race
    re-reads and recomputes.
    """

    def __init__(
        self,
        cache: Optional[CacheService] = None,
        notifier: Optional[NotificationService] = None,
        max_attempts: Optional[int] = None,
        lock_ttl: Optional[int] = None,
    ) -> None:
        self._cache: CacheService = cache or CacheService()
        self._notifier: NotificationService = notifier or NotificationService()
        self._max_attempts: int = max_attempts or settings.SCORE_WRITE_MAX_ATTEMPTS
        self._lock_ttl: int = lock_ttl or settings.SCORE_LOCK_TTL

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def score_contact(
        self,
        owner_id: UUID,
        contact_id: UUID,
        contact_repo: ContactRepository,
        activity_repo: ActivityRepository,
        task_repo: TaskRepository,
        lead_score_repo: LeadScoreRepository,
        notification_repo: NotificationRepository,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """Recalculate and persist one contact's score.

        Returns ``{"contact_id", "score", "hot_lead"}``.

        Raises:
            ContactNotFoundError: The contact does not exist for *owner_id*.
            ScoreConflictError: Every attempt lost a concurrent race.
        """
        now = now or datetime.now(timezone.utc)

        contact = await contact_repo.get_for_owner(owner_id, contact_id)
        if contact is None:
            raise ContactNotFoundError(f"Contact {contact_id} not found")
        # A lost write race rolls the session back and expires ``contact``
        display_name = f"{contact.first_name} {contact.last_name}"

        activities = await activity_repo.list_for_contact(owner_id, contact_id)
        tasks = await task_repo.list_for_contact(owner_id, contact_id)

        signals = extract_signals(
            EntityType.contact,
            {
                "email": contact.email,
                "phone": contact.phone,
                "position": contact.position,
                "company_id": contact.company_id,
            },
            [{"created_at": a.created_at} for a in activities],
            [{"status": t.status} for t in tasks],
            now,
        )

        outcome = await self._persist_with_retry(
            owner_id, contact_id, signals, now, contact_repo, lead_score_repo
        )

        if outcome.hot_lead:
            await self._notifier.notify(
                notification_repo,
                owner_id=owner_id,
                title="Hot Lead Identified",
                message=f"{display_name} scored {outcome.score}/100",
                link=f"/contacts/{contact_id}",
                notification_type=NotificationType.hot_lead,
            )

        logger.info(
            "Scored contact %s: %d (hot_lead=%s)",
            contact_id,
            outcome.score,
            outcome.hot_lead,
        )
        return {
            "contact_id": contact_id,
            "score": outcome.score,
            "hot_lead": outcome.hot_lead,
        }

    async def score_all_contacts(
        self,
        owner_id: UUID,
        contact_repo: ContactRepository,
        activity_repo: ActivityRepository,
        task_repo: TaskRepository,
        lead_score_repo: LeadScoreRepository,
        notification_repo: NotificationRepository,
        now: Optional[datetime] = None,
    ) -> List[Dict[str, Any]]:
        """Rescore every contact of *owner_id*.

        A contact that fails is logged and skipped; the rest of the
        batch still runs.
        """
        now = now or datetime.now(timezone.utc)
        results: List[Dict[str, Any]] = []

        for contact_id in await contact_repo.list_ids_for_owner(owner_id):
            try:
                results.append(
                    await self.score_contact(
                        owner_id,
                        contact_id,
                        contact_repo=contact_repo,
                        activity_repo=activity_repo,
                        task_repo=task_repo,
                        lead_score_repo=lead_score_repo,
                        notification_repo=notification_repo,
                        now=now,
                    )
                )
            except Exception:
                await lead_score_repo.rollback()
                logger.warning(
                    "Failed to score contact %s", contact_id, exc_info=True
                )
        return results

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _persist_with_retry(
        self,
        owner_id: UUID,
        contact_id: UUID,
        signals,
        now: datetime,
        contact_repo: ContactRepository,
        lead_score_repo: LeadScoreRepository,
    ) -> ScoreOutcome:
        lock_key = f"lead_score_lock:{contact_id}"

        for attempt in range(1, self._max_attempts + 1):
            async with self._cache.lock(lock_key, self._lock_ttl) as acquired:
                if not acquired:
                    logger.info(
                        "Contact %s is being scored elsewhere (attempt %d/%d)",
                        contact_id,
                        attempt,
                        self._max_attempts,
                    )
                    await asyncio.sleep(_LOCK_RETRY_DELAY_SECONDS)
                    continue
                try:
                    return await self._persist_once(
                        owner_id, contact_id, signals, now, contact_repo, lead_score_repo
                    )
                except ScoreConflictError:
                    logger.warning(
                        "Concurrent score write for contact %s (attempt %d/%d)",
                        contact_id,
                        attempt,
                        self._max_attempts,
                    )
                    await lead_score_repo.rollback()
                except Exception:
                    await lead_score_repo.rollback()
                    raise

        raise ScoreConflictError(
            f"Could not persist score for contact {contact_id} "
            f"after {self._max_attempts} attempts"
        )

    async def _persist_once(
        self,
        owner_id: UUID,
        contact_id: UUID,
        signals,
        now: datetime,
        contact_repo: ContactRepository,
        lead_score_repo: LeadScoreRepository,
    ) -> ScoreOutcome:
        # The single read that decides both upsert branch and notification
        previous = await lead_score_repo.get_for_contact(owner_id, contact_id)
        outcome = aggregate(contact_id, signals, previous, now)

        if outcome.is_update:
            await lead_score_repo.update_if_unchanged(
                owner_id,
                outcome.previous_id,
                outcome.previous_calculated_at,
                outcome.row_values(),
            )
        else:
            await lead_score_repo.insert(owner_id, contact_id, outcome.row_values())

        await contact_repo.set_engagement_score(owner_id, contact_id, outcome.score)
        await lead_score_repo.commit()
        return outcome
