"""create engagement core tables

Revision ID: a1b2c3d4e5f6
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "a1b2c3d4e5f6"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _id() -> sa.Column:
    return sa.Column(
        "id",
        postgresql.UUID(as_uuid=True),
        primary_key=True,
        server_default=sa.text("gen_random_uuid()"),
    )


def _owner() -> sa.Column:
    return sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False)


def _timestamp(name: str) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), server_default=sa.func.now())


def upgrade() -> None:
    # --- CRM entities (read by the scoring pass and automation triggers) ---
    op.create_table(
        "companies",
        _id(),
        _owner(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("industry", sa.String(100)),
        sa.Column("website", sa.String(255)),
        sa.Column("phone", sa.String(50)),
        sa.Column("address", sa.Text()),
        sa.Column("notes", sa.Text()),
        _timestamp("created_at"),
        _timestamp("updated_at"),
    )
    op.create_index("ix_companies_user_id", "companies", ["user_id"])

    op.create_table(
        "contacts",
        _id(),
        _owner(),
        sa.Column(
            "company_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("companies.id", ondelete="SET NULL"),
        ),
        sa.Column("first_name", sa.String(100), nullable=False),
        sa.Column("last_name", sa.String(100), nullable=False),
        sa.Column("email", sa.String(255)),
        sa.Column("phone", sa.String(50)),
        sa.Column("position", sa.String(100)),
        sa.Column("notes", sa.Text()),
        sa.Column(
            "engagement_score", sa.Integer(), nullable=False, server_default=sa.text("0")
        ),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.CheckConstraint(
            "engagement_score BETWEEN 0 AND 100", name="ck_engagement_score_range"
        ),
    )
    op.create_index("ix_contacts_user_id", "contacts", ["user_id"])
    op.create_index("ix_contacts_user_updated", "contacts", ["user_id", "updated_at"])

    op.create_table(
        "deals",
        _id(),
        _owner(),
        sa.Column(
            "contact_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("contacts.id", ondelete="SET NULL"),
        ),
        sa.Column(
            "company_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("companies.id", ondelete="SET NULL"),
        ),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("stage", sa.String(50), server_default="lead"),
        sa.Column("amount", sa.Numeric(15, 2)),
        sa.Column("probability", sa.Integer()),
        sa.Column("expected_close_date", sa.Date()),
        sa.Column("notes", sa.Text()),
        _timestamp("created_at"),
        _timestamp("updated_at"),
    )
    op.create_index(
        "ix_deals_user_stage_updated", "deals", ["user_id", "stage", "updated_at"]
    )

    op.create_table(
        "activities",
        _id(),
        _owner(),
        sa.Column(
            "contact_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("contacts.id", ondelete="CASCADE"),
        ),
        sa.Column(
            "deal_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("deals.id", ondelete="CASCADE"),
        ),
        sa.Column("activity_type", sa.String(50), nullable=False),
        sa.Column("subject", sa.String(255)),
        sa.Column("description", sa.Text()),
        sa.Column("activity_date", sa.DateTime(timezone=True)),
        _timestamp("created_at"),
    )
    op.create_index(
        "ix_activities_contact_created", "activities", ["contact_id", "created_at"]
    )

    op.create_table(
        "tasks",
        _id(),
        _owner(),
        sa.Column(
            "contact_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("contacts.id", ondelete="CASCADE"),
        ),
        sa.Column(
            "deal_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("deals.id", ondelete="CASCADE"),
        ),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("priority", sa.String(20), nullable=False, server_default="medium"),
        sa.Column("due_date", sa.DateTime(timezone=True)),
        sa.Column("completed_at", sa.DateTime(timezone=True)),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.CheckConstraint(
            "status IN ('pending', 'in_progress', 'completed')", name="ck_task_status"
        ),
        sa.CheckConstraint(
            "priority IN ('high', 'medium', 'low')", name="ck_task_priority"
        ),
    )
    op.create_index(
        "ix_tasks_user_status_due", "tasks", ["user_id", "status", "due_date"]
    )

    # --- Lead scoring ---
    op.create_table(
        "lead_scores",
        _id(),
        _owner(),
        sa.Column(
            "contact_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("contacts.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("score", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column(
            "signals",
            postgresql.JSONB(),
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
        sa.Column(
            "score_history",
            postgresql.JSONB(),
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
        sa.Column("last_calculated_at", sa.DateTime(timezone=True), nullable=False),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.UniqueConstraint("contact_id", name="uq_lead_scores_contact_id"),
        sa.CheckConstraint("score BETWEEN 0 AND 100", name="ck_lead_score_range"),
    )
    op.create_index("ix_lead_scores_user_score", "lead_scores", ["user_id", "score"])

    op.create_table(
        "notifications",
        _id(),
        _owner(),
        sa.Column("type", sa.String(50), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("link", sa.String(255)),
        sa.Column("read", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        _timestamp("created_at"),
    )
    op.create_index(
        "ix_notifications_user_created", "notifications", ["user_id", "created_at"]
    )

    # --- Email sequences ---
    op.create_table(
        "email_sequences",
        _id(),
        _owner(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column(
            "is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")
        ),
        _timestamp("created_at"),
        _timestamp("updated_at"),
    )

    op.create_table(
        "sequence_steps",
        _id(),
        sa.Column(
            "sequence_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("email_sequences.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("step_number", sa.Integer(), nullable=False),
        sa.Column("subject", sa.String(255), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("delay_days", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column(
            "delay_hours", sa.Integer(), nullable=False, server_default=sa.text("0")
        ),
        _timestamp("created_at"),
        sa.UniqueConstraint(
            "sequence_id", "step_number", name="uq_sequence_step_number"
        ),
        sa.CheckConstraint("step_number >= 1", name="ck_step_number_positive"),
        sa.CheckConstraint(
            "delay_days >= 0 AND delay_hours >= 0", name="ck_step_delay_nonneg"
        ),
    )

    op.create_table(
        "sequence_enrollments",
        _id(),
        _owner(),
        sa.Column(
            "sequence_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("email_sequences.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "contact_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("contacts.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column(
            "current_step", sa.Integer(), nullable=False, server_default=sa.text("0")
        ),
        _timestamp("next_send_at"),
        sa.Column("claimed_until", sa.DateTime(timezone=True)),
        _timestamp("enrolled_at"),
        sa.Column("paused_at", sa.DateTime(timezone=True)),
        sa.Column("completed_at", sa.DateTime(timezone=True)),
        sa.CheckConstraint(
            "status IN ('active', 'paused', 'completed')", name="ck_enrollment_status"
        ),
        sa.CheckConstraint("current_step >= 0", name="ck_enrollment_step_nonneg"),
    )
    op.create_index(
        "ix_enrollments_status_next_send",
        "sequence_enrollments",
        ["status", "next_send_at"],
    )

    op.create_table(
        "emails",
        _id(),
        _owner(),
        sa.Column(
            "contact_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("contacts.id", ondelete="SET NULL"),
        ),
        sa.Column(
            "enrollment_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("sequence_enrollments.id", ondelete="SET NULL"),
        ),
        sa.Column("subject", sa.String(255)),
        sa.Column("body", sa.Text()),
        sa.Column("to_email", sa.String(255)),
        sa.Column("from_email", sa.String(255)),
        sa.Column("external_id", sa.String(255)),
        sa.Column(
            "is_outbound", sa.Boolean(), nullable=False, server_default=sa.text("true")
        ),
        sa.Column("sent_at", sa.DateTime(timezone=True)),
        _timestamp("created_at"),
    )
    op.create_index("ix_emails_user_contact", "emails", ["user_id", "contact_id"])

    # --- Automation rules ---
    op.create_table(
        "automation_rules",
        _id(),
        _owner(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("trigger_type", sa.String(50), nullable=False),
        sa.Column(
            "trigger_config",
            postgresql.JSONB(),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column("action_type", sa.String(50), nullable=False),
        sa.Column(
            "action_config",
            postgresql.JSONB(),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column(
            "is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")
        ),
        _timestamp("created_at"),
        _timestamp("updated_at"),
    )
    op.create_index("ix_automation_rules_active", "automation_rules", ["is_active"])

    op.create_table(
        "automation_execution_logs",
        _id(),
        sa.Column(
            "automation_rule_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("automation_rules.id", ondelete="CASCADE"),
            nullable=False,
        ),
        _owner(),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("trigger_data", postgresql.JSONB()),
        sa.Column("actions_performed", postgresql.JSONB()),
        sa.Column("error_message", sa.Text()),
        _timestamp("executed_at"),
        sa.CheckConstraint("status IN ('success', 'failed')", name="ck_execution_status"),
    )
    op.create_index(
        "ix_execution_logs_rule_executed",
        "automation_execution_logs",
        ["automation_rule_id", "executed_at"],
    )


def downgrade() -> None:
    op.drop_table("automation_execution_logs")
    op.drop_table("automation_rules")
    op.drop_table("emails")
    op.drop_table("sequence_enrollments")
    op.drop_table("sequence_steps")
    op.drop_table("email_sequences")
    op.drop_table("notifications")
    op.drop_table("lead_scores")
    op.drop_table("tasks")
    op.drop_table("activities")
    op.drop_table("deals")
    op.drop_table("contacts")
    op.drop_table("companies")
