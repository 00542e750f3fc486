from datetime import datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select, update

from crm.models.contact import Contact
from crm.repositories.base import BaseRepository


class ContactRepository(BaseRepository):
    """Encapsulates every SQL query that touches the ``contacts`` table.

    All reads and writes are scoped by ``user_id``.
    """

    async def get_for_owner(self, owner_id: UUID, contact_id: UUID) -> Optional[Contact]:
        """Return a single contact of *owner_id*, or ``None``."""
        result = await self._db.execute(
            select(Contact).where(Contact.id == contact_id, self._owned(Contact, owner_id))
        )
        return result.scalar_one_or_none()

    async def list_ids_for_owner(self, owner_id: UUID) -> List[UUID]:
        """Return the ids of every contact owned by *owner_id*."""
        result = await self._db.execute(
            select(Contact.id)
            .where(self._owned(Contact, owner_id))
            .order_by(Contact.created_at, Contact.id)
        )
        return list(result.scalars().all())

    async def set_engagement_score(
        self, owner_id: UUID, contact_id: UUID, score: int
    ) -> None:
        """Write the derived ``engagement_score``.

        ``updated_at`` is pinned to its current value: a recomputed score
        is not a user touch and must not reset the inactivity clock used
        by the ``contact_inactive`` automation trigger.
        """
        await self._db.execute(
            update(Contact)
            .where(Contact.id == contact_id, self._owned(Contact, owner_id))
            .values(engagement_score=score, updated_at=Contact.updated_at)
        )

    async def find_inactive(self, owner_id: UUID, cutoff: datetime) -> List[Contact]:
        """Return contacts of *owner_id* not updated since *cutoff*, oldest first."""
        result = await self._db.execute(
            select(Contact)
            .where(self._owned(Contact, owner_id), Contact.updated_at < cutoff)
            .order_by(Contact.created_at, Contact.id)
        )
        return list(result.scalars().all())
