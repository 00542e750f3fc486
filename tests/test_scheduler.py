import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from crm.services.scheduler import (
    run_automation_poll,
    run_sequence_poll,
    start_automation_loop,
    start_sequence_loop,
)


class TestOneShotPolls:
    @pytest.mark.asyncio
    async def test_sequence_poll_delegates_to_stepper(self):
        session_factory = MagicMock()
        results = [{"outcome": "sent"}, {"outcome": "failed", "error": "x"}]

        with patch(
            "crm.services.scheduler.process_due_enrollments",
            new_callable=AsyncMock,
            return_value=results,
        ) as mock_process:
            assert await run_sequence_poll(session_factory) == results

        mock_process.assert_awaited_once_with(session_factory, stepper=None)

    @pytest.mark.asyncio
    async def test_automation_poll_delegates_to_evaluator(self):
        session_factory = MagicMock()
        evaluator = MagicMock()

        with patch(
            "crm.services.scheduler.evaluate_active_rules",
            new_callable=AsyncMock,
            return_value=[],
        ) as mock_evaluate:
            assert await run_automation_poll(session_factory, evaluator=evaluator) == []

        mock_evaluate.assert_awaited_once_with(session_factory, evaluator=evaluator)


class TestLoops:
    @pytest.mark.asyncio
    async def test_sequence_loop_survives_failed_cycle(self):
        """A failing cycle is logged and the loop sleeps and runs again."""
        poll = AsyncMock(side_effect=[Exception("db down"), []])
        sleep = AsyncMock(side_effect=[None, asyncio.CancelledError()])

        with (
            patch("crm.services.scheduler.run_sequence_poll", poll),
            patch("crm.services.scheduler.asyncio.sleep", sleep),
        ):
            with pytest.raises(asyncio.CancelledError):
                await start_sequence_loop(MagicMock(), interval_seconds=5)

        assert poll.await_count == 2
        sleep.assert_awaited_with(5)

    @pytest.mark.asyncio
    async def test_automation_loop_uses_configured_interval(self):
        poll = AsyncMock(return_value=[])
        sleep = AsyncMock(side_effect=asyncio.CancelledError())

        with (
            patch("crm.services.scheduler.run_automation_poll", poll),
            patch("crm.services.scheduler.asyncio.sleep", sleep),
            patch("crm.services.scheduler.settings") as mock_settings,
        ):
            mock_settings.AUTOMATION_POLL_INTERVAL_SECONDS = 900
            with pytest.raises(asyncio.CancelledError):
                await start_automation_loop(MagicMock())

        poll.assert_awaited_once()
        sleep.assert_awaited_once_with(900)
