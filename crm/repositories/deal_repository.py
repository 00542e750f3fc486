from datetime import datetime
from typing import List
from uuid import UUID

from sqlalchemy import select, update

from crm.models.deal import Deal
from crm.repositories.base import BaseRepository


class DealRepository(BaseRepository):
    """Encapsulates queries against the ``deals`` table."""

    async def find_recent_in_stage(
        self, owner_id: UUID, stage: str, since: datetime
    ) -> List[Deal]:
        """Return deals of *owner_id* in *stage* updated at or after *since*."""
        result = await self._db.execute(
            select(Deal)
            .where(
                self._owned(Deal, owner_id),
                Deal.stage == stage,
                Deal.updated_at >= since,
            )
            .order_by(Deal.created_at, Deal.id)
        )
        return list(result.scalars().all())

    async def update_stage(self, owner_id: UUID, deal_id: UUID, stage: str) -> int:
        """Move a deal to *stage*; returns the number of rows touched."""
        result = await self._db.execute(
            update(Deal)
            .where(Deal.id == deal_id, self._owned(Deal, owner_id))
            .values(stage=stage)
        )
        return result.rowcount
