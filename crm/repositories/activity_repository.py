from typing import List
from uuid import UUID

from sqlalchemy import select

from crm.models.activity import Activity
from crm.repositories.base import BaseRepository


class ActivityRepository(BaseRepository):
    """Encapsulates queries against the ``activities`` table."""

    async def list_for_contact(self, owner_id: UUID, contact_id: UUID) -> List[Activity]:
        """Return every activity of a contact in creation order."""
        result = await self._db.execute(
            select(Activity)
            .where(Activity.contact_id == contact_id, self._owned(Activity, owner_id))
            .order_by(Activity.created_at.asc())
        )
        return list(result.scalars().all())
