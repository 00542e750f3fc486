from datetime import datetime
from typing import Any, List
from uuid import UUID

from sqlalchemy import select

from crm.models.task import Task
from crm.repositories.base import BaseRepository


class TaskRepository(BaseRepository):
    """Encapsulates queries against the ``tasks`` table."""

    async def list_for_contact(self, owner_id: UUID, contact_id: UUID) -> List[Task]:
        """Return every task linked to a contact."""
        result = await self._db.execute(
            select(Task).where(Task.contact_id == contact_id, self._owned(Task, owner_id))
        )
        return list(result.scalars().all())

    async def find_overdue(self, owner_id: UUID, now: datetime) -> List[Task]:
        """Return pending tasks of *owner_id* whose due date has passed."""
        result = await self._db.execute(
            select(Task)
            .where(
                self._owned(Task, owner_id),
                Task.status == "pending",
                Task.due_date < now,
            )
            .order_by(Task.created_at, Task.id)
        )
        return list(result.scalars().all())

    async def create(self, **kwargs: Any) -> Task:
        """Insert a new task and flush so its id is available."""
        task = Task(**kwargs)
        self._db.add(task)
        await self._db.flush()
        return task
