import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from crm.core.config import settings
from crm.services.automation_evaluator import AutomationEvaluator, evaluate_active_rules
from crm.services.sequence_stepper import SequenceStepper, process_due_enrollments

logger = logging.getLogger(__name__)


async def run_sequence_poll(
    session_factory: Callable[..., AsyncSession],
    stepper: Optional[SequenceStepper] = None,
) -> List[Dict[str, Any]]:
    """One-shot: step every due enrollment (bounded by the batch size)."""
    results = await process_due_enrollments(session_factory, stepper=stepper)
    sent = sum(1 for r in results if r.get("outcome") == "sent")
    failed = sum(1 for r in results if r.get("outcome") == "failed")
    logger.info(
        "Sequence poll complete: %d processed, %d sent, %d failed",
        len(results),
        sent,
        failed,
    )
    return results


async def run_automation_poll(
    session_factory: Callable[..., AsyncSession],
    evaluator: Optional[AutomationEvaluator] = None,
) -> List[Dict[str, Any]]:
    """One-shot: evaluate every active automation rule."""
    results = await evaluate_active_rules(session_factory, evaluator=evaluator)
    executed = sum(1 for r in results if r.get("status") == "success")
    logger.info(
        "Automation poll complete: %d rule(s), %d executed", len(results), executed
    )
    return results


async def start_sequence_loop(
    session_factory: Callable[..., AsyncSession],
    interval_seconds: Optional[int] = None,
) -> None:
    """Infinite loop that runs the sequence poll on a fixed interval.

    Parameters:
        session_factory: An async context-manager callable that yields
            an ``AsyncSession``.
    """
    interval = interval_seconds or settings.SEQUENCE_POLL_INTERVAL_SECONDS
    logger.info("Sequence background task started (interval=%ds)", interval)
    while True:
        try:
            await run_sequence_poll(session_factory)
        except Exception:
            logger.error("Sequence poll cycle failed", exc_info=True)
        await asyncio.sleep(interval)


async def start_automation_loop(
    session_factory: Callable[..., AsyncSession],
    interval_seconds: Optional[int] = None,
) -> None:
    """Infinite loop that runs the automation poll on a fixed interval."""
    interval = interval_seconds or settings.AUTOMATION_POLL_INTERVAL_SECONDS
    logger.info("Automation background task started (interval=%ds)", interval)
    while True:
        try:
            await run_automation_poll(session_factory)
        except Exception:
            logger.error("Automation poll cycle failed", exc_info=True)
        await asyncio.sleep(interval)
