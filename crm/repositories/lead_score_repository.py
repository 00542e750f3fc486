from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import insert, select, update
from sqlalchemy.exc import IntegrityError

from crm.core.exceptions import ScoreConflictError
from crm.models.contact import Contact
from crm.models.lead_score import LeadScore
from crm.repositories.base import BaseRepository


class LeadScoreRepository(BaseRepository):
    """Encapsulates queries against the ``lead_scores`` table.

    Writes are race-safe: inserts rely on ``UNIQUE(contact_id)`` and
    updates are conditional on the ``last_calculated_at`` that was read.
    Losing either race raises :class:`ScoreConflictError`.
    """

    async def get_for_contact(
        self, owner_id: UUID, contact_id: UUID
    ) -> Optional[LeadScore]:
        """Return the current score row of a contact, or ``None``."""
        result = await self._db.execute(
            select(LeadScore)
            .where(LeadScore.contact_id == contact_id, self._owned(LeadScore, owner_id))
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def insert(
        self,
        owner_id: UUID,
        contact_id: UUID,
        values: Dict[str, Any],
    ) -> UUID:
        """Insert the first score row of a contact and return its id."""
        try:
            result = await self._db.execute(
                insert(LeadScore)
                .values(user_id=owner_id, contact_id=contact_id, **values)
                .returning(LeadScore.id)
            )
        except IntegrityError as exc:
            raise ScoreConflictError(
                f"Lead score for contact {contact_id} was created concurrently"
            ) from exc
        return result.scalar_one()

    async def update_if_unchanged(
        self,
        owner_id: UUID,
        score_id: UUID,
        expected_calculated_at: datetime,
        values: Dict[str, Any],
    ) -> None:
        """Update a score row only if nobody rewrote it since it was read."""
        result = await self._db.execute(
            update(LeadScore)
            .where(
                LeadScore.id == score_id,
                self._owned(LeadScore, owner_id),
                LeadScore.last_calculated_at == expected_calculated_at,
            )
            .values(**values)
        )
        if result.rowcount != 1:
            raise ScoreConflictError(
                f"Lead score {score_id} was modified by a concurrent pass"
            )

    async def list_hot(
        self, owner_id: UUID, threshold: int, limit: int = 50
    ) -> List[Dict[str, Any]]:
        """Return the owner's contacts scoring above *threshold*, highest first."""
        query = (
            select(
                LeadScore.contact_id,
                Contact.first_name,
                Contact.last_name,
                Contact.email,
                LeadScore.score,
                LeadScore.last_calculated_at,
            )
            .join(Contact, Contact.id == LeadScore.contact_id)
            .where(self._owned(LeadScore, owner_id), LeadScore.score > threshold)
            .order_by(LeadScore.score.desc(), LeadScore.last_calculated_at.desc())
            .limit(limit)
        )
        rows = await self._db.execute(query)
        return [
            {
                "contact_id": row.contact_id,
                "first_name": row.first_name,
                "last_name": row.last_name,
                "email": row.email,
                "score": row.score,
                "last_calculated_at": row.last_calculated_at,
            }
            for row in rows
        ]
