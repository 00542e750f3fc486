from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession


class BaseRepository:
    """Holds the ``AsyncSession`` shared by the repositories of one unit of work.

    A unit of work is one scoring pass, one enrollment step or one rule
    evaluation; the service driving it decides when to commit.
    """

    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    @staticmethod
    def _owned(model: Any, owner_id: UUID):
        """Restrict *model* rows to those of a single CRM user."""
        return model.user_id == owner_id

    async def commit(self) -> None:
        await self._db.commit()

    async def rollback(self) -> None:
        await self._db.rollback()
