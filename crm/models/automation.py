from sqlalchemy import (
    Column,
    String,
    Text,
    Boolean,
    DateTime,
    ForeignKey,
    CheckConstraint,
    Index,
)
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import relationship
from crm.models.base import Base
from sqlalchemy.sql import func
from sqlalchemy import text


class AutomationRule(Base):
    """Trigger-predicate + action pair evaluated once per poll.

    ``trigger_config`` / ``action_config`` are free-form JSONB whose keys
    depend on ``trigger_type`` / ``action_type``.  The evaluator only
    reads rules; execution bookkeeping goes to
    ``automation_execution_logs``.
    """

    __tablename__ = "automation_rules"
    id = Column(
        UUID(as_uuid=True), primary_key=True, server_default=func.gen_random_uuid()
    )
    user_id = Column(UUID(as_uuid=True), nullable=False)
    name = Column(String(255), nullable=False)
    description = Column(Text)
    trigger_type = Column(String(50), nullable=False)
    trigger_config = Column(JSONB, nullable=False, server_default=text("'{}'::jsonb"))
    action_type = Column(String(50), nullable=False)
    action_config = Column(JSONB, nullable=False, server_default=text("'{}'::jsonb"))
    is_active = Column(Boolean, nullable=False, server_default=text("true"))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    executions = relationship(
        "AutomationExecutionLog", back_populates="rule", cascade="all, delete-orphan"
    )

    __table_args__ = (Index("ix_automation_rules_active", "is_active"),)


class AutomationExecutionLog(Base):
    """Append-only record of one rule evaluation that matched or failed."""

    __tablename__ = "automation_execution_logs"
    id = Column(
        UUID(as_uuid=True), primary_key=True, server_default=func.gen_random_uuid()
    )
    automation_rule_id = Column(
        UUID(as_uuid=True),
        ForeignKey("automation_rules.id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id = Column(UUID(as_uuid=True), nullable=False)
    status = Column(String(20), nullable=False)
    trigger_data = Column(JSONB)
    actions_performed = Column(JSONB)
    error_message = Column(Text)
    executed_at = Column(DateTime(timezone=True), server_default=func.now())

    rule = relationship("AutomationRule", back_populates="executions")

    __table_args__ = (
        CheckConstraint(
            "status IN ('success', 'failed')", name="ck_execution_status"
        ),
        Index("ix_execution_logs_rule_executed", "automation_rule_id", "executed_at"),
    )
