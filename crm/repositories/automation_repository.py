from typing import Any, List, Optional
from uuid import UUID

from sqlalchemy import select

from crm.models.automation import AutomationExecutionLog, AutomationRule
from crm.repositories.base import BaseRepository


class AutomationRepository(BaseRepository):
    """Encapsulates queries against automation rules and their execution log."""

    async def get_active_rules(self) -> List[AutomationRule]:
        """Return every enabled rule across all owners."""
        result = await self._db.execute(
            select(AutomationRule)
            .where(AutomationRule.is_active.is_(True))
            .order_by(AutomationRule.created_at, AutomationRule.id)
        )
        return list(result.scalars().all())

    async def get_rule_for_owner(
        self, owner_id: UUID, rule_id: UUID
    ) -> Optional[AutomationRule]:
        result = await self._db.execute(
            select(AutomationRule).where(
                AutomationRule.id == rule_id, self._owned(AutomationRule, owner_id)
            )
        )
        return result.scalar_one_or_none()

    async def log_execution(self, **kwargs: Any) -> AutomationExecutionLog:
        """Append one execution log row (never updated afterwards)."""
        entry = AutomationExecutionLog(**kwargs)
        self._db.add(entry)
        await self._db.flush()
        return entry

    async def list_executions(
        self, owner_id: UUID, rule_id: UUID, limit: int = 50
    ) -> List[AutomationExecutionLog]:
        """Return the latest executions of a rule, newest first."""
        result = await self._db.execute(
            select(AutomationExecutionLog)
            .where(
                AutomationExecutionLog.automation_rule_id == rule_id,
                self._owned(AutomationExecutionLog, owner_id),
            )
            .order_by(AutomationExecutionLog.executed_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())
