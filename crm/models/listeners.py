from datetime import datetime, timezone
from sqlalchemy import event, inspect
from sqlalchemy.orm import Session

from crm.core.constants import ENROLLMENT_STATUSES, TERMINAL_ENROLLMENT_STATUSES
from crm.models.deal import Deal
from crm.models.task import Task
from crm.models.email_sequence import EmailSequence, SequenceEnrollment
from crm.models.automation import AutomationRule, AutomationExecutionLog


# Auto updated_at
@event.listens_for(Deal, "before_update")
@event.listens_for(Task, "before_update")
@event.listens_for(EmailSequence, "before_update")
@event.listens_for(AutomationRule, "before_update")
def update_timestamp(mapper, connection, target):
    target.updated_at = datetime.now(timezone.utc)


# Execution logs are write-once
@event.listens_for(AutomationExecutionLog, "before_update")
def block_execution_log_update(mapper, connection, target):
    raise ValueError("automation_execution_logs rows are append-only")


# Enrollments only move forward
@event.listens_for(Session, "before_flush")
def validate_enrollment_progress(session: Session, flush_context, instances):
    for obj in session.dirty:
        if not isinstance(obj, SequenceEnrollment):
            continue
        state = inspect(obj)

        status_hist = state.attrs.status.history
        if status_hist.has_changes():
            old = status_hist.deleted[0] if status_hist.deleted else None
            new = status_hist.added[0] if status_hist.added else None
            if new not in ENROLLMENT_STATUSES:
                raise ValueError(f"Unknown enrollment status: {new}")
            if old in TERMINAL_ENROLLMENT_STATUSES and new != old:
                raise ValueError(f"Invalid enrollment transition: {old} → {new}")

        step_hist = state.attrs.current_step.history
        if step_hist.has_changes() and step_hist.deleted and step_hist.added:
            old_step, new_step = step_hist.deleted[0], step_hist.added[0]
            if old_step is not None and new_step is not None and new_step < old_step:
                raise ValueError(
                    f"Enrollment step cannot move backward: {old_step} → {new_step}"
                )
