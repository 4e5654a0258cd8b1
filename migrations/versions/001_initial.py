"""001_initial: create the AppTrack tables.

Revision ID: 001_initial
Revises: None
Create Date: 2026-10-18
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision = "001_initial"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps(updated: bool = True) -> list:
    columns = [sa.Column("created_at", sa.DateTime(), nullable=False)]
    if updated:
        columns.append(sa.Column("updated_at", sa.DateTime(), nullable=False))
    return columns


def _user_fk() -> sa.Column:
    return sa.Column(
        "user_id", sa.String(32),
        sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
    )


def upgrade() -> None:
    # --- users ---
    op.create_table(
        "users",
        sa.Column("id", sa.String(32), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("password_hash", sa.Text(), nullable=False),
        sa.Column("first_name", sa.String(100), nullable=True),
        sa.Column("last_name", sa.String(100), nullable=True),
        sa.Column("phone", sa.String(50), nullable=True),
        sa.Column("location", sa.String(255), nullable=True),
        sa.Column("experience_level", sa.String(50), nullable=True),
        sa.Column("desired_salary_min", sa.Integer(), nullable=True),
        sa.Column("desired_salary_max", sa.Integer(), nullable=True),
        sa.Column("preferred_locations", sa.JSON(), nullable=False),
        sa.Column("skills", sa.JSON(), nullable=False),
        sa.Column("industries", sa.JSON(), nullable=False),
        sa.Column("job_types", sa.JSON(), nullable=False),
        sa.Column("resume_url", sa.Text(), nullable=True),
        sa.Column("linkedin_url", sa.Text(), nullable=True),
        sa.Column("github_url", sa.Text(), nullable=True),
        sa.Column("portfolio_url", sa.Text(), nullable=True),
        sa.Column("preferences", sa.JSON(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )

    # --- applications ---
    op.create_table(
        "applications",
        sa.Column("id", sa.String(32), nullable=False),
        _user_fk(),
        sa.Column("company", sa.String(255), nullable=False),
        sa.Column("position", sa.String(255), nullable=False),
        sa.Column("location", sa.String(255), nullable=True),
        sa.Column("job_type", sa.String(50), nullable=True),
        sa.Column("salary_range", sa.String(100), nullable=True),
        sa.Column("status", sa.String(50), nullable=False),
        sa.Column("priority", sa.String(20), nullable=False),
        sa.Column("applied_date", sa.DateTime(), nullable=True),
        sa.Column("response_date", sa.DateTime(), nullable=True),
        sa.Column("interview_date", sa.DateTime(), nullable=True),
        sa.Column("offer_date", sa.DateTime(), nullable=True),
        sa.Column("rejection_date", sa.DateTime(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("job_description", sa.Text(), nullable=True),
        sa.Column("requirements", sa.JSON(), nullable=False),
        sa.Column("contact_person", sa.String(255), nullable=True),
        sa.Column("contact_email", sa.String(255), nullable=True),
        sa.Column("contact_phone", sa.String(50), nullable=True),
        sa.Column("company_website", sa.Text(), nullable=True),
        sa.Column("job_url", sa.Text(), nullable=True),
        sa.Column("tags", sa.JSON(), nullable=False),
        sa.Column("ai_match_score", sa.Integer(), nullable=True),
        sa.Column("ai_insights", sa.JSON(), nullable=True),
        sa.Column("follow_up_date", sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_applications_user", "applications", ["user_id"])
    op.create_index("ix_applications_user_status", "applications", ["user_id", "status"])
    op.create_index("ix_applications_applied_date", "applications", ["applied_date"])
    op.create_index("ix_applications_company", "applications", ["company"])

    # --- application_history ---
    op.create_table(
        "application_history",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column(
            "application_id", sa.String(32),
            sa.ForeignKey("applications.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("field_changed", sa.Text(), nullable=False),
        sa.Column("old_value", sa.Text(), nullable=True),
        sa.Column("new_value", sa.Text(), nullable=True),
        sa.Column("changed_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_history_app_id", "application_history", ["application_id"])
    op.create_index("ix_history_changed_at", "application_history", ["changed_at"])

    # --- contacts ---
    op.create_table(
        "contacts",
        sa.Column("id", sa.String(32), nullable=False),
        _user_fk(),
        sa.Column("first_name", sa.String(100), nullable=False),
        sa.Column("last_name", sa.String(100), nullable=False),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("phone", sa.String(50), nullable=True),
        sa.Column("company", sa.String(255), nullable=True),
        sa.Column("position", sa.String(255), nullable=True),
        sa.Column("linkedin_url", sa.Text(), nullable=True),
        sa.Column("relationship_type", sa.String(50), nullable=True),
        sa.Column("connection_strength", sa.String(20), nullable=True),
        sa.Column("last_contact_date", sa.DateTime(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("tags", sa.JSON(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_contacts_user", "contacts", ["user_id"])
    op.create_index("ix_contacts_company", "contacts", ["company"])

    # --- reminders ---
    op.create_table(
        "reminders",
        sa.Column("id", sa.String(32), nullable=False),
        _user_fk(),
        sa.Column(
            "application_id", sa.String(32),
            sa.ForeignKey("applications.id", ondelete="CASCADE"), nullable=True,
        ),
        sa.Column("reminder_type", sa.String(50), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("due_date", sa.DateTime(), nullable=False),
        sa.Column("is_completed", sa.Boolean(), nullable=False),
        sa.Column("notified_at", sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_reminders_user_due", "reminders", ["user_id", "due_date"])
    op.create_index("ix_reminders_application", "reminders", ["application_id"])

    # --- ai_analyses ---
    op.create_table(
        "ai_analyses",
        sa.Column("id", sa.String(32), nullable=False),
        _user_fk(),
        sa.Column(
            "application_id", sa.String(32),
            sa.ForeignKey("applications.id", ondelete="SET NULL"), nullable=True,
        ),
        sa.Column("analysis_type", sa.String(50), nullable=False),
        sa.Column("input_data", sa.JSON(), nullable=True),
        sa.Column("analysis_result", sa.JSON(), nullable=True),
        sa.Column("confidence_score", sa.Float(), nullable=True),
        *_timestamps(updated=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_ai_analyses_user", "ai_analyses", ["user_id", "analysis_type"])

    # --- job_recommendations ---
    op.create_table(
        "job_recommendations",
        sa.Column("id", sa.String(32), nullable=False),
        _user_fk(),
        sa.Column("job_title", sa.String(255), nullable=False),
        sa.Column("company", sa.String(255), nullable=False),
        sa.Column("location", sa.String(255), nullable=True),
        sa.Column("salary_range", sa.String(100), nullable=True),
        sa.Column("job_description", sa.Text(), nullable=True),
        sa.Column("requirements", sa.JSON(), nullable=False),
        sa.Column("job_url", sa.Text(), nullable=True),
        sa.Column("source", sa.String(50), nullable=True),
        sa.Column("match_score", sa.Integer(), nullable=True),
        sa.Column("match_reasons", sa.JSON(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="new"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_job_recs_user_status", "job_recommendations", ["user_id", "status"])

    # --- workflow_rules / workflow_executions ---
    op.create_table(
        "workflow_rules",
        sa.Column("id", sa.String(32), nullable=False),
        _user_fk(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("trigger", sa.JSON(), nullable=False),
        sa.Column("conditions", sa.JSON(), nullable=False),
        sa.Column("actions", sa.JSON(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("priority", sa.Integer(), nullable=False),
        sa.Column("execution_count", sa.Integer(), nullable=False),
        sa.Column("last_executed", sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_workflow_rules_user", "workflow_rules", ["user_id", "is_active"])

    op.create_table(
        "workflow_executions",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column(
            "rule_id", sa.String(32),
            sa.ForeignKey("workflow_rules.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("user_id", sa.String(32), nullable=False),
        sa.Column("application_id", sa.String(32), nullable=True),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("result", sa.JSON(), nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("executed_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_workflow_exec_user", "workflow_executions", ["user_id", "executed_at"])

    # --- notifications ---
    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        _user_fk(),
        sa.Column("notification_type", sa.String(50), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("data", sa.JSON(), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False),
        *_timestamps(updated=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_notifications_user", "notifications", ["user_id", "is_read"])

    # --- backups ---
    op.create_table(
        "backups",
        sa.Column("id", sa.String(32), nullable=False),
        _user_fk(),
        sa.Column("timestamp", sa.DateTime(), nullable=False),
        sa.Column("version", sa.String(20), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("data_size", sa.Integer(), nullable=False),
        sa.Column("checksum", sa.String(64), nullable=False),
        sa.Column("backup_type", sa.String(20), nullable=False),
        sa.Column("application_count", sa.Integer(), nullable=False),
        sa.Column("parent_version", sa.String(32), nullable=True),
        sa.Column("changes_summary", sa.JSON(), nullable=True),
        sa.Column("tags", sa.JSON(), nullable=False),
        sa.Column("storage_key", sa.Text(), nullable=False),
        *_timestamps(updated=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_backups_user_ts", "backups", ["user_id", "timestamp"])


def downgrade() -> None:
    op.drop_table("backups")
    op.drop_table("notifications")
    op.drop_table("workflow_executions")
    op.drop_table("workflow_rules")
    op.drop_table("job_recommendations")
    op.drop_table("ai_analyses")
    op.drop_table("reminders")
    op.drop_table("contacts")
    op.drop_table("application_history")
    op.drop_table("applications")
    op.drop_table("users")
