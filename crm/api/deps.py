"""API-layer dependency functions.

Re-exports all dependency factories from ``crm.dependencies`` so that
endpoint modules only need to import from ``crm.api.deps``.
"""

from crm.dependencies import (
    # Request owner
    get_owner_id,
    # Repository factories
    get_contact_repo,
    get_activity_repo,
    get_task_repo,
    get_lead_score_repo,
    get_notification_repo,
    get_sequence_repo,
    get_email_repo,
    get_automation_repo,
    # Service factories
    get_session_factory,
    get_lead_scoring_service,
    get_sequence_stepper,
    get_automation_evaluator,
    # Redis
    get_redis_client,
    get_cache_service,
)

__all__ = [
    "get_owner_id",
    "get_contact_repo",
    "get_activity_repo",
    "get_task_repo",
    "get_lead_score_repo",
    "get_notification_repo",
    "get_sequence_repo",
    "get_email_repo",
    "get_automation_repo",
    "get_session_factory",
    "get_lead_scoring_service",
    "get_sequence_stepper",
    "get_automation_evaluator",
    "get_redis_client",
    "get_cache_service",
]
