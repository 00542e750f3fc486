"""Multi-step email sequence processing.

An enrollment is a cursor (``current_step``) of one contact through one
sequence.  Each due poll sends step ``current_step + 1`` and schedules
the next one, or completes the enrollment once the steps run out.  The
cursor only moves after the email transport accepted the message, so a
failed dispatch is retried on the next poll (at-least-once).
"""

import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from crm.core.config import settings
from crm.core.constants import TEMPLATE_TOKENS
from crm.core.exceptions import EnrollmentNotFoundError
from crm.models.email_sequence import SequenceEnrollment
from crm.repositories.email_repository import EmailRepository
from crm.repositories.sequence_repository import SequenceRepository
from crm.schemas.common import EnrollmentStatus, StepOutcome
from crm.services.email_transport import EmailTransport

logger = logging.getLogger(__name__)

_TOKEN_RE = re.compile(r"\{\{(" + "|".join(TEMPLATE_TOKENS) + r")\}\}")


def render_template(template: str, contact: Mapping[str, Any]) -> str:
    """Replace ``{{first_name}}``, ``{{last_name}}`` and ``{{email}}``.

    Substitution is a single literal pass, so a value that itself looks
    like a token is left as-is.  Missing values render as an empty
    string.  Values are not escaped.
    """

    def _replace(match: "re.Match[str]") -> str:
        value = contact.get(match.group(1))
        return "" if value is None else str(value)

    return _TOKEN_RE.sub(_replace, template or "")


def body_to_html(body: str) -> str:
    """Wrap each body line in a paragraph inside a 600px container.

    Only the layout is added; the rendered body is inserted verbatim.
    """
    paragraphs = "".join(f"<p>{line}</p>" for line in body.split("\n"))
    return (
        '<div style="font-family: sans-serif; max-width: 600px; margin: 0 auto;">'
        f"{paragraphs}</div>"
    )


def compute_next_send_at(now: datetime, delay_days: int, delay_hours: int) -> datetime:
    """``now + delay_days days + delay_hours hours``; the two are simply added."""
    return now + timedelta(days=delay_days or 0) + timedelta(hours=delay_hours or 0)


def _contact_tokens(contact: Any) -> Dict[str, Any]:
    return {
        "first_name": contact.first_name,
        "last_name": contact.last_name,
        "email": contact.email,
    }


class SequenceStepper:
    """Advance sequence enrollments by one step at a time."""

    def __init__(self, transport: Optional[EmailTransport] = None) -> None:
        self._transport: EmailTransport = transport or EmailTransport()

    async def step(
        self,
        enrollment: SequenceEnrollment,
        sequence_repo: SequenceRepository,
        email_repo: EmailRepository,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """Process one enrollment.

        Returns a result dict with ``outcome`` ``sent``, ``completed``
        or ``skipped``.

        Raises:
            EmailDispatchError: The transport rejected the message; the
                enrollment is left untouched.
        """
        now = now or datetime.now(timezone.utc)
        result: Dict[str, Any] = {"enrollment_id": enrollment.id}

        if enrollment.status != EnrollmentStatus.active.value:
            result["outcome"] = StepOutcome.skipped.value
            return result

        next_number = enrollment.current_step + 1
        step = await sequence_repo.get_step(enrollment.sequence_id, next_number)

        if step is None:
            enrollment.status = EnrollmentStatus.completed.value
            enrollment.completed_at = now
            enrollment.claimed_until = None
            await sequence_repo.commit()
            logger.info("Enrollment %s completed", enrollment.id)
            result["outcome"] = StepOutcome.completed.value
            return result

        contact = enrollment.contact
        tokens = _contact_tokens(contact)
        subject = render_template(step.subject, tokens)
        body = render_template(step.body, tokens)

        sent = await self._transport.send(contact.email, subject, body_to_html(body))

        next_send_at = compute_next_send_at(now, step.delay_days, step.delay_hours)
        enrollment.current_step = next_number
        enrollment.next_send_at = next_send_at
        enrollment.claimed_until = None
        await email_repo.log_outbound(
            user_id=enrollment.user_id,
            contact_id=contact.id,
            enrollment_id=enrollment.id,
            subject=subject,
            body=body,
            to_email=contact.email,
            from_email=self._transport.sender,
            external_id=sent.get("id"),
            sent_at=now,
        )
        await sequence_repo.commit()

        logger.info(
            "Enrollment %s sent step %d; next at %s",
            enrollment.id,
            next_number,
            next_send_at.isoformat(),
        )
        result.update(
            outcome=StepOutcome.sent.value,
            step_number=next_number,
            next_send_at=next_send_at,
        )
        return result

    async def send_enrollment(
        self,
        enrollment_id: UUID,
        sequence_repo: SequenceRepository,
        email_repo: EmailRepository,
        owner_id: Optional[UUID] = None,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """Step a single enrollment immediately, regardless of ``next_send_at``.

        Raises:
            EnrollmentNotFoundError: No such enrollment (for *owner_id*).
        """
        enrollment = await sequence_repo.get_enrollment(enrollment_id, owner_id)
        if enrollment is None:
            raise EnrollmentNotFoundError(f"Enrollment {enrollment_id} not found")
        return await self.step(enrollment, sequence_repo, email_repo, now=now)


async def process_due_enrollments(
    session_factory: Callable[..., AsyncSession],
    stepper: Optional[SequenceStepper] = None,
    now: Optional[datetime] = None,
    batch_size: Optional[int] = None,
    lease_seconds: Optional[int] = None,
) -> List[Dict[str, Any]]:
    """One poll: step every due enrollment, each in its own session.

    Parameters:
        session_factory: An async context-manager callable that yields
            an ``AsyncSession`` (e.g. ``AsyncSessionLocal``).

    A failing enrollment is recorded as ``failed`` and its lease
    released; the rest of the batch still runs.
    """
    stepper = stepper or SequenceStepper()
    now = now or datetime.now(timezone.utc)
    batch_size = batch_size or settings.SEQUENCE_BATCH_SIZE
    lease_until = now + timedelta(
        seconds=lease_seconds or settings.SEQUENCE_LEASE_SECONDS
    )

    async with session_factory() as session:
        due_ids = await SequenceRepository(session).find_due_ids(now, batch_size)

    logger.info("Found %d enrollment(s) to process", len(due_ids))
    results: List[Dict[str, Any]] = []

    for enrollment_id in due_ids:
        async with session_factory() as session:
            sequence_repo = SequenceRepository(session)
            email_repo = EmailRepository(session)
            try:
                if not await sequence_repo.claim(enrollment_id, now, lease_until):
                    results.append(
                        {
                            "enrollment_id": enrollment_id,
                            "outcome": StepOutcome.skipped.value,
                        }
                    )
                    continue
                enrollment = await sequence_repo.get_enrollment(enrollment_id)
                if enrollment is None:
                    raise EnrollmentNotFoundError(
                        f"Enrollment {enrollment_id} not found"
                    )
                results.append(
                    await stepper.step(enrollment, sequence_repo, email_repo, now=now)
                )
            except Exception as exc:
                logger.warning(
                    "Failed to process enrollment %s",
                    enrollment_id,
                    exc_info=True,
                )
                await sequence_repo.rollback()
                await _release_quietly(sequence_repo, enrollment_id)
                results.append(
                    {
                        "enrollment_id": enrollment_id,
                        "outcome": StepOutcome.failed.value,
                        "error": getattr(exc, "detail", str(exc)),
                    }
                )

    return results


async def _release_quietly(sequence_repo: SequenceRepository, enrollment_id: UUID) -> None:
    try:
        await sequence_repo.release(enrollment_id)
    except Exception:
        logger.warning(
            "Could not release lease on enrollment %s; it expires on its own",
            enrollment_id,
            exc_info=True,
        )
