"""Automation rule evaluation.

Every enabled rule is evaluated on its own once per poll: its trigger
predicate is run against the owner's recent data, the first matching
record (natural ``created_at, id`` order) becomes ``trigger_data``, and
the rule's single action is executed against it.  Outcomes are written
to the append-only execution log.  Nothing is deduplicated against that
log, so a predicate that stays true re-fires on every poll.
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, List, NamedTuple, Optional, Union

from pydantic import TypeAdapter, ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from crm.core.constants import (
    DEAL_STAGE_CHANGE_WINDOW_MINUTES,
    DEFAULT_INACTIVE_DAYS,
    DEFAULT_TASK_DUE_HOURS,
    TRIGGER_TYPE_ALIASES,
)
from crm.core.exceptions import InvalidRuleConfigError
from crm.models.automation import AutomationRule
from crm.repositories.automation_repository import AutomationRepository
from crm.repositories.contact_repository import ContactRepository
from crm.repositories.deal_repository import DealRepository
from crm.repositories.notification_repository import NotificationRepository
from crm.repositories.task_repository import TaskRepository
from crm.schemas.common import (
    ActionType,
    ExecutionStatus,
    NotificationType,
    TaskPriority,
    TaskStatus,
    TriggerType,
)
from crm.services.webhook import WebhookClient

logger = logging.getLogger(__name__)

TriggerData = Dict[str, Any]


class RuleRepositories(NamedTuple):
    """Repositories sharing one session for the evaluation of one rule."""

    automation: AutomationRepository
    contacts: ContactRepository
    deals: DealRepository
    tasks: TaskRepository
    notifications: NotificationRepository

    @classmethod
    def from_session(cls, session: AsyncSession) -> "RuleRepositories":
        return cls(
            automation=AutomationRepository(session),
            contacts=ContactRepository(session),
            deals=DealRepository(session),
            tasks=TaskRepository(session),
            notifications=NotificationRepository(session),
        )


class RuleSnapshot(NamedTuple):
    """Plain copy of the rule columns the evaluator needs.

    Taken up front so a rollback mid-evaluation cannot expire them.
    """

    id: uuid.UUID
    user_id: uuid.UUID
    name: str
    trigger_type: str
    trigger_config: Dict[str, Any]
    action_type: str
    action_config: Dict[str, Any]

    @classmethod
    def of(cls, rule: Union[AutomationRule, "RuleSnapshot"]) -> "RuleSnapshot":
        return cls(
            id=rule.id,
            user_id=rule.user_id,
            name=rule.name,
            trigger_type=rule.trigger_type,
            trigger_config=dict(rule.trigger_config or {}),
            action_type=rule.action_type,
            action_config=dict(rule.action_config or {}),
        )


# ---------------------------------------------------------------------------
# Trigger predicates
# ---------------------------------------------------------------------------


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _str(value: Any) -> Optional[str]:
    return str(value) if value is not None else None


async def _deal_stage_change(
    rule: RuleSnapshot, repos: RuleRepositories, now: datetime
) -> Optional[TriggerData]:
    stage = rule.trigger_config.get("stage")
    if not stage:
        raise InvalidRuleConfigError("deal_stage_change requires trigger_config.stage")

    since = now - timedelta(minutes=DEAL_STAGE_CHANGE_WINDOW_MINUTES)
    deals = await repos.deals.find_recent_in_stage(rule.user_id, stage, since)
    if not deals:
        return None
    deal = deals[0]
    return {
        "entity": "deal",
        "id": _str(deal.id),
        "title": deal.title,
        "stage": deal.stage,
        "contact_id": _str(deal.contact_id),
        "updated_at": _iso(deal.updated_at),
    }


async def _task_overdue(
    rule: RuleSnapshot, repos: RuleRepositories, now: datetime
) -> Optional[TriggerData]:
    tasks = await repos.tasks.find_overdue(rule.user_id, now)
    if not tasks:
        return None
    task = tasks[0]
    return {
        "entity": "task",
        "id": _str(task.id),
        "title": task.title,
        "contact_id": _str(task.contact_id),
        "deal_id": _str(task.deal_id),
        "due_date": _iso(task.due_date),
    }


async def _contact_inactive(
    rule: RuleSnapshot, repos: RuleRepositories, now: datetime
) -> Optional[TriggerData]:
    config = rule.trigger_config
    # ``days_inactive`` is the key the rule editor writes
    raw_days = config.get("days", config.get("days_inactive", DEFAULT_INACTIVE_DAYS))
    try:
        days = int(raw_days)
    except (TypeError, ValueError) as exc:
        raise InvalidRuleConfigError(
            "contact_inactive trigger_config.days must be an integer"
        ) from exc

    contacts = await repos.contacts.find_inactive(rule.user_id, now - timedelta(days=days))
    if not contacts:
        return None
    contact = contacts[0]
    return {
        "entity": "contact",
        "id": _str(contact.id),
        "first_name": contact.first_name,
        "last_name": contact.last_name,
        "email": contact.email,
        "updated_at": _iso(contact.updated_at),
    }


TRIGGERS: Dict[
    str,
    Callable[[RuleSnapshot, RuleRepositories, datetime], Awaitable[Optional[TriggerData]]],
] = {
    TriggerType.deal_stage_change.value: _deal_stage_change,
    TriggerType.task_overdue.value: _task_overdue,
    TriggerType.contact_inactive.value: _contact_inactive,
}


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------


_DATETIME = TypeAdapter(datetime)


def _due_date(config: Dict[str, Any], now: datetime) -> datetime:
    """Explicit ``due_date`` if configured, else ``now + due_in_hours``."""
    explicit = config.get("due_date")
    if explicit:
        try:
            due = _DATETIME.validate_python(explicit)
        except ValidationError as exc:
            raise InvalidRuleConfigError(
                f"create_task action_config.due_date is not a datetime: {explicit!r}"
            ) from exc
        return due if due.tzinfo is not None else due.replace(tzinfo=timezone.utc)
    return now + timedelta(hours=float(config.get("due_in_hours", DEFAULT_TASK_DUE_HOURS)))


def _linked_id(trigger_data: TriggerData, entity: str) -> Optional[uuid.UUID]:
    """Id of the *entity* the trigger record is, or links to."""
    if trigger_data.get("entity") == entity:
        raw = trigger_data.get("id")
    else:
        raw = trigger_data.get(f"{entity}_id")
    return uuid.UUID(raw) if raw else None


class AutomationEvaluator:
    """Run trigger predicates and execute the configured action."""

    def __init__(self, webhook_client: Optional[WebhookClient] = None) -> None:
        self._webhook: WebhookClient = webhook_client or WebhookClient()
        self._actions: Dict[str, Callable[..., Awaitable[Dict[str, Any]]]] = {
            ActionType.create_task.value: self._create_task,
            ActionType.send_notification.value: self._send_notification,
            ActionType.update_deal.value: self._update_deal,
            ActionType.trigger_webhook.value: self._trigger_webhook,
        }

    async def evaluate_rule(
        self,
        rule: Union[AutomationRule, RuleSnapshot],
        repos: RuleRepositories,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """Evaluate one rule and log the outcome.

        Returns ``{"rule_id", "rule_name", "status"}`` plus
        ``actions_performed`` on success or ``error`` on failure.  A
        non-matching trigger returns ``status="skipped"`` and writes no
        log row.  Exceptions raised by the trigger or the action are
        captured in a ``failed`` log row, never re-raised.
        """
        now = now or datetime.now(timezone.utc)
        snapshot = RuleSnapshot.of(rule)
        result: Dict[str, Any] = {"rule_id": snapshot.id, "rule_name": snapshot.name}
        trigger_data: Optional[TriggerData] = None

        try:
            trigger_type = TRIGGER_TYPE_ALIASES.get(
                snapshot.trigger_type, snapshot.trigger_type
            )
            trigger = TRIGGERS.get(trigger_type)
            if trigger is None:
                raise InvalidRuleConfigError(
                    f"Unknown trigger type: {snapshot.trigger_type}"
                )
            action = self._actions.get(snapshot.action_type)
            if action is None:
                raise InvalidRuleConfigError(
                    f"Unknown action type: {snapshot.action_type}"
                )

            trigger_data = await trigger(snapshot, repos, now)
            if trigger_data is None:
                result["status"] = "skipped"
                return result

            performed = await action(snapshot, trigger_data, repos, now)
            await repos.automation.log_execution(
                automation_rule_id=snapshot.id,
                user_id=snapshot.user_id,
                status=ExecutionStatus.success.value,
                trigger_data=trigger_data,
                actions_performed=[performed],
                executed_at=now,
            )
            await repos.automation.commit()
        except Exception as exc:
            error = getattr(exc, "detail", None) or str(exc) or type(exc).__name__
            logger.warning(
                "Automation rule %s (%s) failed: %s",
                snapshot.id,
                snapshot.name,
                error,
                exc_info=True,
            )
            await repos.automation.rollback()
            await repos.automation.log_execution(
                automation_rule_id=snapshot.id,
                user_id=snapshot.user_id,
                status=ExecutionStatus.failed.value,
                trigger_data=trigger_data,
                error_message=error,
                executed_at=now,
            )
            await repos.automation.commit()
            result.update(status=ExecutionStatus.failed.value, error=error)
            return result

        logger.info(
            "Automation rule %s executed %s on %s %s",
            snapshot.id,
            snapshot.action_type,
            trigger_data.get("entity"),
            trigger_data.get("id"),
        )
        result.update(status=ExecutionStatus.success.value, actions_performed=[performed])
        return result

    # ------------------------------------------------------------------
    # Action executors
    # ------------------------------------------------------------------

    async def _create_task(
        self,
        rule: RuleSnapshot,
        trigger_data: TriggerData,
        repos: RuleRepositories,
        now: datetime,
    ) -> Dict[str, Any]:
        config = rule.action_config
        subject = trigger_data.get("title") or trigger_data.get("first_name") or ""

        task = await repos.tasks.create(
            user_id=rule.user_id,
            contact_id=_linked_id(trigger_data, "contact"),
            deal_id=_linked_id(trigger_data, "deal"),
            title=config.get("title") or f"Follow up on {subject}".strip(),
            description=config.get("description"),
            status=TaskStatus.pending.value,
            priority=config.get("priority") or TaskPriority.medium.value,
            due_date=_due_date(config, now),
        )
        return {"action": ActionType.create_task.value, "task_id": _str(task.id)}

    async def _send_notification(
        self,
        rule: RuleSnapshot,
        trigger_data: TriggerData,
        repos: RuleRepositories,
        now: datetime,
    ) -> Dict[str, Any]:
        config = rule.action_config
        await repos.notifications.create(
            user_id=rule.user_id,
            type=NotificationType.automation.value,
            title=config.get("title") or "Automation Alert",
            message=config.get("message") or f'Automation rule "{rule.name}" was triggered',
            link=config.get("link"),
        )
        return {"action": ActionType.send_notification.value}

    async def _update_deal(
        self,
        rule: RuleSnapshot,
        trigger_data: TriggerData,
        repos: RuleRepositories,
        now: datetime,
    ) -> Dict[str, Any]:
        new_stage = rule.action_config.get("new_stage")
        if not new_stage:
            raise InvalidRuleConfigError("update_deal requires action_config.new_stage")

        deal_id = _linked_id(trigger_data, "deal")
        if deal_id is not None:
            await repos.deals.update_stage(rule.user_id, deal_id, new_stage)
        return {
            "action": ActionType.update_deal.value,
            "deal_id": _str(deal_id),
            "new_stage": new_stage,
        }

    async def _trigger_webhook(
        self,
        rule: RuleSnapshot,
        trigger_data: TriggerData,
        repos: RuleRepositories,
        now: datetime,
    ) -> Dict[str, Any]:
        url = rule.action_config.get("url")
        if not url:
            raise InvalidRuleConfigError("trigger_webhook requires action_config.url")

        payload = dict(trigger_data)
        payload.update(rule_id=_str(rule.id), timestamp=now.isoformat())
        status_code = await self._webhook.post(url, payload)
        return {"action": ActionType.trigger_webhook.value, "status_code": status_code}


async def evaluate_active_rules(
    session_factory: Callable[..., AsyncSession],
    evaluator: Optional[AutomationEvaluator] = None,
    now: Optional[datetime] = None,
) -> List[Dict[str, Any]]:
    """One poll: evaluate every active rule, each in its own session."""
    evaluator = evaluator or AutomationEvaluator()
    now = now or datetime.now(timezone.utc)

    async with session_factory() as session:
        rules = await AutomationRepository(session).get_active_rules()
        snapshots = [RuleSnapshot.of(rule) for rule in rules]

    logger.info("Evaluating %d active automation rule(s)", len(snapshots))
    results: List[Dict[str, Any]] = []

    for snapshot in snapshots:
        async with session_factory() as session:
            try:
                results.append(
                    await evaluator.evaluate_rule(
                        snapshot, RuleRepositories.from_session(session), now=now
                    )
                )
            except Exception as exc:
                # Only reachable when the failure log itself could not be written
                logger.error(
                    "Could not record execution of rule %s", snapshot.id, exc_info=True
                )
                results.append(
                    {
                        "rule_id": snapshot.id,
                        "rule_name": snapshot.name,
                        "status": ExecutionStatus.failed.value,
                        "error": str(exc),
                    }
                )

    return results
