from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import pytest
from sqlalchemy.exc import MissingGreenlet

from crm.core.cache import CacheService
from crm.core.exceptions import ContactNotFoundError, ScoreConflictError
from crm.services.lead_scoring import LeadScoringService
from crm.services.notifier import NotificationService

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


def _make_contact(**overrides):
    contact = MagicMock()
    contact.id = overrides.get("id", uuid4())
    contact.first_name = "Ana"
    contact.last_name = "Silva"
    contact.email = overrides.get("email", "ana@example.com")
    contact.phone = overrides.get("phone")
    contact.position = overrides.get("position", "CTO")
    contact.company_id = overrides.get("company_id")
    return contact


class _ExpiringContact:
    """Contact row whose columns cannot be loaded once the session rolls back.

    Mirrors an ORM instance on an ``AsyncSession``: rollback expires it and
    the implicit refresh on next access is not allowed outside a greenlet.
    """

    def __init__(self, **fields):
        self.__dict__["_fields"] = fields
        self.__dict__["expired"] = False

    def __getattr__(self, name):
        fields = self.__dict__["_fields"]
        if name not in fields:
            raise AttributeError(name)
        if self.__dict__["expired"]:
            raise MissingGreenlet("greenlet_spawn has not been called")
        return fields[name]


def _make_repos(contact, activities=(), tasks=(), previous=None):
    contact_repo = AsyncMock()
    contact_repo.get_for_owner = AsyncMock(return_value=contact)
    contact_repo.list_ids_for_owner = AsyncMock(return_value=[contact.id] if contact else [])
    contact_repo.set_engagement_score = AsyncMock()

    activity_repo = AsyncMock()
    activity_repo.list_for_contact = AsyncMock(
        return_value=[SimpleNamespace(created_at=a) for a in activities]
    )
    task_repo = AsyncMock()
    task_repo.list_for_contact = AsyncMock(
        return_value=[SimpleNamespace(status=s) for s in tasks]
    )

    lead_score_repo = AsyncMock()
    lead_score_repo.get_for_contact = AsyncMock(return_value=previous)
    lead_score_repo.insert = AsyncMock(return_value=uuid4())
    lead_score_repo.update_if_unchanged = AsyncMock()

    notification_repo = AsyncMock()
    return dict(
        contact_repo=contact_repo,
        activity_repo=activity_repo,
        task_repo=task_repo,
        lead_score_repo=lead_score_repo,
        notification_repo=notification_repo,
    )


def _hot_activity():
    """Activity timestamps that, with a full profile, push a contact above 70."""
    return [NOW - timedelta(days=d) for d in range(8)]


@pytest.fixture
def service() -> LeadScoringService:
    # No Redis: the lock degrades to a no-op and the conditional write is the guard
    return LeadScoringService(cache=CacheService(redis_client=None))


class TestScoreContact:
    @pytest.mark.asyncio
    async def test_first_pass_inserts_and_mirrors_engagement_score(self, service):
        owner_id = uuid4()
        contact = _make_contact()
        repos = _make_repos(contact, activities=[NOW - timedelta(days=3)])

        result = await service.score_contact(owner_id, contact.id, now=NOW, **repos)

        # email 10 + position 5, one activity 5, recency 20
        assert result == {"contact_id": contact.id, "score": 40, "hot_lead": False}
        repos["lead_score_repo"].insert.assert_awaited_once()
        repos["lead_score_repo"].update_if_unchanged.assert_not_awaited()
        repos["contact_repo"].set_engagement_score.assert_awaited_once_with(
            owner_id, contact.id, 40
        )
        repos["lead_score_repo"].commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_existing_score_is_updated_conditionally(self, service):
        owner_id = uuid4()
        contact = _make_contact()
        previous = SimpleNamespace(
            id=uuid4(),
            score=10,
            score_history=[{"score": 10, "timestamp": (NOW - timedelta(days=1)).isoformat()}],
            last_calculated_at=NOW - timedelta(days=1),
        )
        repos = _make_repos(contact, previous=previous)

        await service.score_contact(owner_id, contact.id, now=NOW, **repos)

        call = repos["lead_score_repo"].update_if_unchanged.await_args
        assert call.args[1] == previous.id
        assert call.args[2] == previous.last_calculated_at
        assert len(call.args[3]["score_history"]) == 2
        repos["lead_score_repo"].insert.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_contact_raises(self, service):
        repos = _make_repos(None)
        with pytest.raises(ContactNotFoundError):
            await service.score_contact(uuid4(), uuid4(), now=NOW, **repos)
        repos["lead_score_repo"].insert.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_hot_lead_creates_notification(self, service):
        owner_id = uuid4()
        contact = _make_contact(phone="+1 555 0100", company_id=uuid4())
        repos = _make_repos(contact, activities=_hot_activity(), tasks=["completed"])

        result = await service.score_contact(owner_id, contact.id, now=NOW, **repos)

        assert result["hot_lead"] is True
        kwargs = repos["notification_repo"].create.await_args.kwargs
        assert kwargs["title"] == "Hot Lead Identified"
        assert kwargs["message"] == f"Ana Silva scored {result['score']}/100"
        assert kwargs["link"] == f"/contacts/{contact.id}"
        assert kwargs["type"] == "hot_lead"

    @pytest.mark.asyncio
    async def test_already_hot_contact_is_not_renotified(self, service):
        contact = _make_contact(phone="+1 555 0100", company_id=uuid4())
        previous = SimpleNamespace(
            id=uuid4(), score=90, score_history=[], last_calculated_at=NOW - timedelta(hours=1)
        )
        repos = _make_repos(
            contact, activities=_hot_activity(), tasks=["completed"], previous=previous
        )

        result = await service.score_contact(uuid4(), contact.id, now=NOW, **repos)

        assert result["hot_lead"] is False
        repos["notification_repo"].create.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_notification_failure_does_not_abort_pass(self, service):
        contact = _make_contact(phone="+1 555 0100", company_id=uuid4())
        repos = _make_repos(contact, activities=_hot_activity(), tasks=["completed"])
        repos["notification_repo"].create = AsyncMock(side_effect=Exception("db down"))

        result = await service.score_contact(uuid4(), contact.id, now=NOW, **repos)

        assert result["hot_lead"] is True
        repos["lead_score_repo"].commit.assert_awaited_once()
        repos["notification_repo"].rollback.assert_awaited_once()


class TestConcurrentWrites:
    @pytest.mark.asyncio
    async def test_lost_insert_race_rereads_and_updates(self, service):
        """Two passes both saw "no score": the loser retries as an update."""
        contact = _make_contact()
        winner_row = SimpleNamespace(
            id=uuid4(), score=15, score_history=[], last_calculated_at=NOW
        )
        repos = _make_repos(contact)
        repos["lead_score_repo"].get_for_contact = AsyncMock(side_effect=[None, winner_row])
        repos["lead_score_repo"].insert = AsyncMock(side_effect=ScoreConflictError())

        await service.score_contact(uuid4(), contact.id, now=NOW, **repos)

        repos["lead_score_repo"].rollback.assert_awaited_once()
        repos["lead_score_repo"].update_if_unchanged.assert_awaited_once()
        assert repos["lead_score_repo"].update_if_unchanged.await_args.args[1] == winner_row.id

    @pytest.mark.asyncio
    async def test_hot_lead_after_lost_race_still_notifies(self, service):
        """The retry rolls back the session; the notification must not reload the contact."""
        contact = _ExpiringContact(
            id=uuid4(),
            first_name="Ana",
            last_name="Silva",
            email="ana@example.com",
            phone="+1 555 0100",
            position="CTO",
            company_id=uuid4(),
        )
        cold_row = SimpleNamespace(
            id=uuid4(), score=50, score_history=[], last_calculated_at=NOW
        )
        repos = _make_repos(contact, activities=_hot_activity(), tasks=["completed"])
        repos["lead_score_repo"].get_for_contact = AsyncMock(side_effect=[None, cold_row])
        repos["lead_score_repo"].insert = AsyncMock(side_effect=ScoreConflictError())

        async def _expire():
            contact.__dict__["expired"] = True

        repos["lead_score_repo"].rollback = AsyncMock(side_effect=_expire)

        result = await service.score_contact(uuid4(), contact.id, now=NOW, **repos)

        assert result["hot_lead"] is True
        kwargs = repos["notification_repo"].create.await_args.kwargs
        assert kwargs["message"] == f"Ana Silva scored {result['score']}/100"

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self):
        service = LeadScoringService(cache=CacheService(redis_client=None), max_attempts=2)
        contact = _make_contact()
        repos = _make_repos(contact)
        repos["lead_score_repo"].insert = AsyncMock(side_effect=ScoreConflictError())

        with pytest.raises(ScoreConflictError):
            await service.score_contact(uuid4(), contact.id, now=NOW, **repos)

        assert repos["lead_score_repo"].insert.await_count == 2
        repos["contact_repo"].set_engagement_score.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_held_lock_waits_then_proceeds(self, mock_redis):
        mock_redis.set = AsyncMock(side_effect=[None, True])
        service = LeadScoringService(cache=CacheService(redis_client=mock_redis))
        contact = _make_contact()
        repos = _make_repos(contact)

        with patch("crm.services.lead_scoring.asyncio.sleep", new_callable=AsyncMock) as sleep:
            await service.score_contact(uuid4(), contact.id, now=NOW, **repos)

        sleep.assert_awaited_once()
        assert mock_redis.set.await_args.args[0] == f"lead_score_lock:{contact.id}"
        repos["lead_score_repo"].insert.assert_awaited_once()
        mock_redis.eval.assert_awaited_once()


class TestScoreAllContacts:
    @pytest.mark.asyncio
    async def test_failed_contact_is_skipped(self, service):
        good, bad = _make_contact(), _make_contact()
        repos = _make_repos(good)
        repos["contact_repo"].list_ids_for_owner = AsyncMock(return_value=[bad.id, good.id])
        repos["contact_repo"].get_for_owner = AsyncMock(side_effect=[None, good])

        results = await service.score_all_contacts(uuid4(), now=NOW, **repos)

        assert [r["contact_id"] for r in results] == [good.id]

    @pytest.mark.asyncio
    async def test_load_failure_rolls_back_before_next_contact(self, service):
        good, bad = _make_contact(), _make_contact()
        repos = _make_repos(good)
        repos["contact_repo"].list_ids_for_owner = AsyncMock(return_value=[bad.id, good.id])
        repos["contact_repo"].get_for_owner = AsyncMock(side_effect=[bad, good])
        repos["activity_repo"].list_for_contact = AsyncMock(
            side_effect=[Exception("aborted transaction"), []]
        )

        results = await service.score_all_contacts(uuid4(), now=NOW, **repos)

        assert [r["contact_id"] for r in results] == [good.id]
        repos["lead_score_repo"].rollback.assert_awaited_once()


class TestNotificationService:
    @pytest.mark.asyncio
    async def test_returns_true_and_commits(self):
        repo = AsyncMock()
        ok = await NotificationService().notify(repo, uuid4(), "Title", "Message")
        assert ok is True
        repo.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_swallows_and_rolls_back_on_failure(self):
        repo = AsyncMock()
        repo.commit = AsyncMock(side_effect=Exception("boom"))
        ok = await NotificationService().notify(repo, uuid4(), "Title", "Message")
        assert ok is False
        repo.rollback.assert_awaited_once()
