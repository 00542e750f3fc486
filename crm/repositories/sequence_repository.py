from datetime import datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy import and_, or_, select, update
from sqlalchemy.orm import selectinload

from crm.models.email_sequence import SequenceEnrollment, SequenceStep
from crm.repositories.base import BaseRepository


class SequenceRepository(BaseRepository):
    """Encapsulates queries against sequence steps and enrollments."""

    @staticmethod
    def _due_clause(now: datetime):
        return and_(
            SequenceEnrollment.status == "active",
            SequenceEnrollment.next_send_at <= now,
            or_(
                SequenceEnrollment.claimed_until.is_(None),
                SequenceEnrollment.claimed_until < now,
            ),
        )

    async def find_due_ids(self, now: datetime, limit: int) -> List[UUID]:
        """Return up to *limit* active, due and unclaimed enrollment ids."""
        result = await self._db.execute(
            select(SequenceEnrollment.id)
            .where(self._due_clause(now))
            .order_by(SequenceEnrollment.next_send_at.asc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def claim(self, enrollment_id: UUID, now: datetime, until: datetime) -> bool:
        """Take the lease on a due enrollment; ``False`` if another worker has it."""
        result = await self._db.execute(
            update(SequenceEnrollment)
            .where(SequenceEnrollment.id == enrollment_id, self._due_clause(now))
            .values(claimed_until=until)
        )
        await self._db.commit()
        return result.rowcount == 1

    async def release(self, enrollment_id: UUID) -> None:
        """Drop the lease so the enrollment is eligible on the next poll."""
        await self._db.execute(
            update(SequenceEnrollment)
            .where(SequenceEnrollment.id == enrollment_id)
            .values(claimed_until=None)
        )
        await self._db.commit()

    async def get_enrollment(
        self, enrollment_id: UUID, owner_id: Optional[UUID] = None
    ) -> Optional[SequenceEnrollment]:
        """Return an enrollment with its contact loaded, or ``None``."""
        query = (
            select(SequenceEnrollment)
            .options(selectinload(SequenceEnrollment.contact))
            .where(SequenceEnrollment.id == enrollment_id)
            .execution_options(populate_existing=True)
        )
        if owner_id is not None:
            query = query.where(self._owned(SequenceEnrollment, owner_id))
        result = await self._db.execute(query)
        return result.scalar_one_or_none()

    async def get_step(
        self, sequence_id: UUID, step_number: int
    ) -> Optional[SequenceStep]:
        """Return the step at *step_number* of a sequence, or ``None``."""
        result = await self._db.execute(
            select(SequenceStep).where(
                SequenceStep.sequence_id == sequence_id,
                SequenceStep.step_number == step_number,
            )
        )
        return result.scalar_one_or_none()
