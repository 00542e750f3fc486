from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import pytest

from crm.core.exceptions import ContactNotFoundError, EmailDispatchError
from crm.dependencies import (
    get_activity_repo,
    get_automation_evaluator,
    get_automation_repo,
    get_contact_repo,
    get_email_repo,
    get_lead_score_repo,
    get_lead_scoring_service,
    get_notification_repo,
    get_sequence_repo,
    get_sequence_stepper,
    get_session_factory,
    get_task_repo,
)
from crm.main import app
from crm.services.sequence_stepper import SequenceStepper

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)
OWNER_ID = uuid4()
HEADERS = {"X-User-Id": str(OWNER_ID)}


def _override(dependency, value):
    app.dependency_overrides[dependency] = lambda: value
    return value


@pytest.fixture
def scoring_service() -> MagicMock:
    service = MagicMock()
    service.score_contact = AsyncMock()
    service.score_all_contacts = AsyncMock(return_value=[])
    _override(get_lead_scoring_service, service)
    for dependency in (
        get_contact_repo,
        get_activity_repo,
        get_task_repo,
        get_notification_repo,
    ):
        _override(dependency, AsyncMock())
    return service


@pytest.fixture
def lead_score_repo() -> AsyncMock:
    return _override(get_lead_score_repo, AsyncMock())


class TestHealth:
    @pytest.mark.asyncio
    async def test_health_ok(self, async_client):
        resp = await async_client.get("/api/v1/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}


class TestCalculateLeadScores:
    @pytest.mark.asyncio
    async def test_scores_single_contact(self, async_client, scoring_service, lead_score_repo):
        contact_id = uuid4()
        scoring_service.score_contact.return_value = {
            "contact_id": contact_id,
            "score": 72,
            "hot_lead": True,
        }

        resp = await async_client.post(
            "/api/v1/lead-scores/calculate",
            json={"entity_type": "contact", "entity_id": str(contact_id)},
            headers=HEADERS,
        )

        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["scores"] == [
            {"contact_id": str(contact_id), "score": 72, "hot_lead": True}
        ]
        assert scoring_service.score_contact.await_args.args == (OWNER_ID, contact_id)

    @pytest.mark.asyncio
    async def test_without_entity_id_scores_all(self, async_client, scoring_service, lead_score_repo):
        resp = await async_client.post(
            "/api/v1/lead-scores/calculate", json={}, headers=HEADERS
        )

        assert resp.status_code == 200
        scoring_service.score_all_contacts.assert_awaited_once()
        scoring_service.score_contact.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_owner_header_is_401(self, async_client, scoring_service, lead_score_repo):
        resp = await async_client.post("/api/v1/lead-scores/calculate", json={})

        assert resp.status_code == 401
        assert resp.json()["type"] == "missing_owner"

    @pytest.mark.asyncio
    async def test_malformed_owner_header_is_422(self, async_client, scoring_service, lead_score_repo):
        resp = await async_client.post(
            "/api/v1/lead-scores/calculate", json={}, headers={"X-User-Id": "nope"}
        )

        assert resp.status_code == 422
        assert resp.json()["type"] == "validation_error"

    @pytest.mark.asyncio
    async def test_company_scoring_is_unsupported(self, async_client, scoring_service, lead_score_repo):
        resp = await async_client.post(
            "/api/v1/lead-scores/calculate",
            json={"entity_type": "company", "entity_id": str(uuid4())},
            headers=HEADERS,
        )

        assert resp.status_code == 422
        assert resp.json()["type"] == "unsupported_entity_type"

    @pytest.mark.asyncio
    async def test_unknown_contact_is_404(self, async_client, scoring_service, lead_score_repo):
        scoring_service.score_contact.side_effect = ContactNotFoundError("Contact x not found")

        resp = await async_client.post(
            "/api/v1/lead-scores/calculate",
            json={"entity_id": str(uuid4())},
            headers=HEADERS,
        )

        assert resp.status_code == 404
        assert resp.json() == {"detail": "Contact x not found", "type": "contact_not_found"}

    @pytest.mark.asyncio
    async def test_rate_limited_after_ten_calls(self, async_client, scoring_service, lead_score_repo):
        for _ in range(10):
            resp = await async_client.post(
                "/api/v1/lead-scores/calculate", json={}, headers=HEADERS
            )
            assert resp.status_code == 200

        resp = await async_client.post(
            "/api/v1/lead-scores/calculate", json={}, headers=HEADERS
        )
        assert resp.status_code == 429


class TestReadLeadScores:
    @pytest.mark.asyncio
    async def test_get_score(self, async_client, lead_score_repo):
        contact_id = uuid4()
        lead_score_repo.get_for_contact.return_value = SimpleNamespace(
            id=uuid4(),
            contact_id=contact_id,
            score=67,
            signals=[
                {"type": "profile_completeness", "weight": 15, "max": 30},
                {"type": "activity_frequency", "weight": 30, "max": 40},
                {"type": "activity_recency", "weight": 20, "max": 20},
                {"type": "task_completion", "weight": 2, "max": 10},
            ],
            score_history=[{"score": 67, "timestamp": NOW.isoformat()}],
            last_calculated_at=NOW,
        )

        resp = await async_client.get(f"/api/v1/lead-scores/{contact_id}", headers=HEADERS)

        assert resp.status_code == 200
        body = resp.json()
        assert body["score"] == 67
        assert len(body["signals"]) == 4
        lead_score_repo.get_for_contact.assert_awaited_once_with(OWNER_ID, contact_id)

    @pytest.mark.asyncio
    async def test_unscored_contact_is_404(self, async_client, lead_score_repo):
        lead_score_repo.get_for_contact.return_value = None

        resp = await async_client.get(f"/api/v1/lead-scores/{uuid4()}", headers=HEADERS)

        assert resp.status_code == 404
        assert resp.json()["type"] == "lead_score_not_found"

    @pytest.mark.asyncio
    async def test_hot_leads(self, async_client, lead_score_repo):
        contact_id = uuid4()
        lead_score_repo.list_hot.return_value = [
            {
                "contact_id": contact_id,
                "first_name": "Ana",
                "last_name": "Silva",
                "email": None,
                "score": 88,
                "last_calculated_at": NOW,
            }
        ]

        resp = await async_client.get("/api/v1/lead-scores/hot", headers=HEADERS)

        assert resp.status_code == 200
        assert resp.json()[0]["contact_id"] == str(contact_id)
        assert lead_score_repo.list_hot.await_args.args == (OWNER_ID, 70)


class TestSequenceEndpoints:
    @pytest.mark.asyncio
    async def test_process_returns_results(self, async_client):
        _override(get_session_factory, MagicMock())
        _override(get_sequence_stepper, MagicMock())
        enrollment_id = uuid4()

        with patch(
            "crm.api.v1.endpoints.sequences.run_sequence_poll",
            new_callable=AsyncMock,
            return_value=[
                {
                    "enrollment_id": enrollment_id,
                    "outcome": "sent",
                    "step_number": 1,
                    "next_send_at": NOW + timedelta(days=1),
                }
            ],
        ):
            resp = await async_client.post("/api/v1/sequences/process")

        assert resp.status_code == 200
        body = resp.json()
        assert body["processed"] == 1
        assert body["results"][0]["outcome"] == "sent"
        assert "timestamp" in body

    @pytest.mark.asyncio
    async def test_send_dispatch_failure_is_502(self, async_client):
        stepper = _override(get_sequence_stepper, MagicMock())
        stepper.send_enrollment = AsyncMock(side_effect=EmailDispatchError("Email provider timed out"))
        _override(get_sequence_repo, AsyncMock())
        _override(get_email_repo, AsyncMock())

        resp = await async_client.post(
            f"/api/v1/sequences/enrollments/{uuid4()}/send", headers=HEADERS
        )

        assert resp.status_code == 502
        assert resp.json()["type"] == "email_dispatch_failed"

    @pytest.mark.asyncio
    async def test_send_unknown_enrollment_is_404(self, async_client):
        sequence_repo = _override(get_sequence_repo, AsyncMock())
        sequence_repo.get_enrollment.return_value = None
        _override(get_email_repo, AsyncMock())
        _override(get_sequence_stepper, SequenceStepper(transport=MagicMock()))

        resp = await async_client.post(
            f"/api/v1/sequences/enrollments/{uuid4()}/send", headers=HEADERS
        )

        assert resp.status_code == 404
        assert resp.json()["type"] == "enrollment_not_found"


class TestAutomationEndpoints:
    @pytest.mark.asyncio
    async def test_process_returns_results(self, async_client):
        _override(get_session_factory, MagicMock())
        _override(get_automation_evaluator, MagicMock())
        rule_id = uuid4()

        with patch(
            "crm.api.v1.endpoints.automation.run_automation_poll",
            new_callable=AsyncMock,
            return_value=[{"rule_id": rule_id, "rule_name": "Stale", "status": "skipped"}],
        ):
            resp = await async_client.post("/api/v1/automation/process")

        assert resp.status_code == 200
        assert resp.json()["results"][0]["status"] == "skipped"

    @pytest.mark.asyncio
    async def test_executions_for_unknown_rule_is_404(self, async_client):
        repo = _override(get_automation_repo, AsyncMock())
        repo.get_rule_for_owner.return_value = None

        resp = await async_client.get(
            f"/api/v1/automation/rules/{uuid4()}/executions", headers=HEADERS
        )

        assert resp.status_code == 404
        assert resp.json()["type"] == "rule_not_found"

    @pytest.mark.asyncio
    async def test_executions_listed(self, async_client):
        rule_id = uuid4()
        repo = _override(get_automation_repo, AsyncMock())
        repo.get_rule_for_owner.return_value = SimpleNamespace(id=rule_id)
        repo.list_executions.return_value = [
            SimpleNamespace(
                id=uuid4(),
                automation_rule_id=rule_id,
                status="failed",
                trigger_data=None,
                actions_performed=None,
                error_message="boom",
                executed_at=NOW,
            )
        ]

        resp = await async_client.get(
            f"/api/v1/automation/rules/{rule_id}/executions", headers=HEADERS
        )

        assert resp.status_code == 200
        assert resp.json()[0]["error_message"] == "boom"
        repo.list_executions.assert_awaited_once_with(OWNER_ID, rule_id, limit=50)
