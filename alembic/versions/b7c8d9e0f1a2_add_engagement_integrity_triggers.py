"""add engagement integrity triggers

Revision ID: b7c8d9e0f1a2
Revises: a1b2c3d4e5f6
Create Date: 2026-10-19 09:30:00.000000

"""

from alembic import op

# revision identifiers, used by Alembic.
revision = "b7c8d9e0f1a2"
down_revision = "a1b2c3d4e5f6"
branch_labels = None
depends_on = None


def upgrade() -> None:
    # ---------------------------------------------------------------
    # Trigger 1: Execution log rows are write-once
    # ---------------------------------------------------------------
    op.execute("""
        CREATE OR REPLACE FUNCTION block_execution_log_update()
        RETURNS TRIGGER AS $$
        BEGIN
            RAISE EXCEPTION 'automation_execution_logs is append-only';
        END;
        $$ LANGUAGE plpgsql;
    """)

    op.execute("""
        CREATE TRIGGER trg_block_execution_log_update
        BEFORE UPDATE ON automation_execution_logs
        FOR EACH ROW
        EXECUTE FUNCTION block_execution_log_update();
    """)

    # ---------------------------------------------------------------
    # Trigger 2: Enrollment cursor never moves backward
    # ---------------------------------------------------------------
    op.execute("""
        CREATE OR REPLACE FUNCTION enforce_enrollment_progress()
        RETURNS TRIGGER AS $$
        BEGIN
            IF OLD.status = 'completed' AND NEW.status <> 'completed' THEN
                RAISE EXCEPTION 'Completed enrollment % cannot be reopened', OLD.id;
            END IF;

            IF NEW.current_step < OLD.current_step THEN
                RAISE EXCEPTION 'Enrollment % step cannot decrease (% -> %)',
                    OLD.id, OLD.current_step, NEW.current_step;
            END IF;

            RETURN NEW;
        END;
        $$ LANGUAGE plpgsql;
    """)

    op.execute("""
        CREATE TRIGGER trg_enforce_enrollment_progress
        BEFORE UPDATE ON sequence_enrollments
        FOR EACH ROW
        EXECUTE FUNCTION enforce_enrollment_progress();
    """)

    # ---------------------------------------------------------------
    # Trigger 3: Auto-update updated_at (not on contacts: a rescore
    # must leave contacts.updated_at untouched)
    # ---------------------------------------------------------------
    op.execute("""
        CREATE OR REPLACE FUNCTION update_updated_at_column()
        RETURNS TRIGGER AS $$
        BEGIN
            NEW.updated_at = NOW();
            RETURN NEW;
        END;
        $$ LANGUAGE plpgsql;
    """)

    for table in ("deals", "tasks", "automation_rules", "email_sequences"):
        op.execute(f"""
            CREATE TRIGGER trg_{table}_updated_at
            BEFORE UPDATE ON {table}
            FOR EACH ROW
            EXECUTE FUNCTION update_updated_at_column();
        """)


def downgrade() -> None:
    for table in ("deals", "tasks", "automation_rules", "email_sequences"):
        op.execute(f"DROP TRIGGER IF EXISTS trg_{table}_updated_at ON {table};")
    op.execute("DROP FUNCTION IF EXISTS update_updated_at_column();")

    op.execute(
        "DROP TRIGGER IF EXISTS trg_enforce_enrollment_progress ON sequence_enrollments;"
    )
    op.execute("DROP FUNCTION IF EXISTS enforce_enrollment_progress();")

    op.execute(
        "DROP TRIGGER IF EXISTS trg_block_execution_log_update "
        "ON automation_execution_logs;"
    )
    op.execute("DROP FUNCTION IF EXISTS block_execution_log_update();")
