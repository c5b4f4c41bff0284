"""Initial schema: users, roles, request types, submissions, leave, notifications

Revision ID: 0001
Revises: None
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create all tables."""

    # --- roles (no FK deps) ---
    op.create_table(
        "roles",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("label", sa.String(255), nullable=True),
        sa.Column("permissions", sa.JSON(), nullable=False),
        sa.Column("is_system", sa.Boolean(), server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_roles"),
        sa.UniqueConstraint("name", name="uq_roles_name"),
    )

    # --- users ---
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("name", sa.String(255)),
        sa.Column("position", sa.String(255), nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("last_login", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_users"),
        sa.UniqueConstraint("email", name="uq_users_email"),
    )
    op.create_index("ix_users_email", "users", ["email"])

    # --- user_roles (FK -> users, roles) ---
    op.create_table(
        "user_roles",
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("role_id", sa.Uuid(), nullable=False),
        sa.PrimaryKeyConstraint("user_id", "role_id", name="pk_user_roles"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], name="fk_user_roles_user_id_users", ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["role_id"], ["roles.id"], name="fk_user_roles_role_id_roles", ondelete="CASCADE"),
    )

    # --- request_types (self FK for version chains) ---
    op.create_table(
        "request_types",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("family_id", sa.Uuid(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("superseded_by_id", sa.Uuid(), nullable=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("kind", sa.String(50), nullable=False, server_default="generic"),
        sa.Column("has_fulfillment", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("approval_steps", sa.JSON(), nullable=False),
        sa.Column("document_template", sa.Text(), nullable=True),
        sa.Column("is_published", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("published_at", sa.DateTime(), nullable=True),
        sa.Column("created_by", sa.Uuid(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_request_types"),
        sa.ForeignKeyConstraint(
            ["superseded_by_id"],
            ["request_types.id"],
            name="fk_request_types_superseded_by_id_request_types",
            ondelete="SET NULL",
        ),
        sa.ForeignKeyConstraint(
            ["created_by"], ["users.id"], name="fk_request_types_created_by_users", ondelete="SET NULL",
        ),
    )
    op.create_index("ix_request_types_family_id", "request_types", ["family_id"])

    # --- request_fields (FK -> request_types) ---
    op.create_table(
        "request_fields",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("request_type_id", sa.Uuid(), nullable=False),
        sa.Column("field_key", sa.String(255), nullable=False),
        sa.Column("label", sa.String(255), nullable=False),
        sa.Column("field_type", sa.String(50), nullable=False),
        sa.Column("is_required", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("options", sa.JSON(), nullable=True),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
        sa.PrimaryKeyConstraint("id", name="pk_request_fields"),
        sa.UniqueConstraint("request_type_id", "field_key", name="uq_request_fields_type_key"),
        sa.ForeignKeyConstraint(
            ["request_type_id"],
            ["request_types.id"],
            name="fk_request_fields_request_type_id_request_types",
            ondelete="CASCADE",
        ),
    )
    op.create_index("ix_request_fields_request_type_id", "request_fields", ["request_type_id"])

    # --- request_submissions (FK -> request_types, users) ---
    op.create_table(
        "request_submissions",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("reference_code", sa.String(32), nullable=False),
        sa.Column("request_type_id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=True),
        sa.Column("status", sa.String(50), nullable=False, server_default="pending"),
        sa.Column("current_step_index", sa.Integer(), nullable=True),
        sa.Column("submitted_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("fulfilled_at", sa.DateTime(), nullable=True),
        sa.Column("document_path", sa.String(512), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_request_submissions"),
        sa.UniqueConstraint("reference_code", name="uq_request_submissions_reference_code"),
        sa.ForeignKeyConstraint(
            ["request_type_id"],
            ["request_types.id"],
            name="fk_request_submissions_request_type_id_request_types",
        ),
        sa.ForeignKeyConstraint(
            ["user_id"], ["users.id"], name="fk_request_submissions_user_id_users", ondelete="SET NULL",
        ),
    )
    op.create_index("ix_request_submissions_request_type_id", "request_submissions", ["request_type_id"])
    op.create_index("ix_request_submissions_user_id", "request_submissions", ["user_id"])
    op.create_index("ix_request_submissions_status", "request_submissions", ["status"])
    op.create_index("ix_request_submissions_submitted_at", "request_submissions", ["submitted_at"])

    # --- request_answers (FK -> request_submissions, request_fields) ---
    op.create_table(
        "request_answers",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("submission_id", sa.Uuid(), nullable=False),
        sa.Column("field_id", sa.Uuid(), nullable=False),
        sa.Column("value", sa.Text(), nullable=True),
        sa.Column("value_json", sa.JSON(), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_request_answers"),
        sa.ForeignKeyConstraint(
            ["submission_id"],
            ["request_submissions.id"],
            name="fk_request_answers_submission_id_request_submissions",
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["field_id"], ["request_fields.id"], name="fk_request_answers_field_id_request_fields", ondelete="CASCADE",
        ),
    )
    op.create_index("ix_request_answers_submission_id", "request_answers", ["submission_id"])

    # --- request_approval_actions (FK -> request_submissions, users) ---
    op.create_table(
        "request_approval_actions",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("submission_id", sa.Uuid(), nullable=False),
        sa.Column("step_index", sa.Integer(), nullable=False),
        sa.Column("step_name", sa.String(255), nullable=True),
        sa.Column("status", sa.String(50), nullable=False, server_default="pending"),
        sa.Column("acted_by_id", sa.Uuid(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("acted_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_request_approval_actions"),
        sa.UniqueConstraint("submission_id", "step_index", name="uq_approval_actions_submission_step"),
        sa.ForeignKeyConstraint(
            ["submission_id"],
            ["request_submissions.id"],
            name="fk_request_approval_actions_submission_id_request_submissions",
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["acted_by_id"], ["users.id"], name="fk_request_approval_actions_acted_by_id_users", ondelete="SET NULL",
        ),
    )
    op.create_index("ix_request_approval_actions_submission_id", "request_approval_actions", ["submission_id"])
    op.create_index("ix_request_approval_actions_status", "request_approval_actions", ["status"])

    # --- request_approval_approvers (FK -> actions, users, roles) ---
    op.create_table(
        "request_approval_approvers",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("action_id", sa.Uuid(), nullable=False),
        sa.Column("approver_type", sa.String(20), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=True),
        sa.Column("role_id", sa.Uuid(), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_request_approval_approvers"),
        sa.ForeignKeyConstraint(
            ["action_id"],
            ["request_approval_actions.id"],
            name="fk_request_approval_approvers_action_id_request_approval_actions",
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["user_id"], ["users.id"], name="fk_request_approval_approvers_user_id_users", ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["role_id"], ["roles.id"], name="fk_request_approval_approvers_role_id_roles", ondelete="CASCADE",
        ),
    )
    op.create_index("ix_request_approval_approvers_action_id", "request_approval_approvers", ["action_id"])
    op.create_index("ix_request_approval_approvers_user_id", "request_approval_approvers", ["user_id"])
    op.create_index("ix_request_approval_approvers_role_id", "request_approval_approvers", ["role_id"])

    # --- request_fulfillments (FK -> request_submissions, users) ---
    op.create_table(
        "request_fulfillments",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("submission_id", sa.Uuid(), nullable=False),
        sa.Column("fulfilled_by", sa.Uuid(), nullable=True),
        sa.Column("file_key", sa.String(512), nullable=True),
        sa.Column("file_url", sa.Text(), nullable=True),
        sa.Column("original_filename", sa.String(255), nullable=True),
        sa.Column("content_type", sa.String(255), nullable=True),
        sa.Column("size_bytes", sa.Integer(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("completed_at", sa.DateTime(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_request_fulfillments"),
        sa.UniqueConstraint("submission_id", name="uq_request_fulfillments_submission_id"),
        sa.ForeignKeyConstraint(
            ["submission_id"],
            ["request_submissions.id"],
            name="fk_request_fulfillments_submission_id_request_submissions",
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["fulfilled_by"], ["users.id"], name="fk_request_fulfillments_fulfilled_by_users", ondelete="SET NULL",
        ),
    )

    # --- submission_events (FK -> request_submissions, users) ---
    op.create_table(
        "submission_events",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("submission_id", sa.Uuid(), nullable=False),
        sa.Column("from_status", sa.String(50), nullable=True),
        sa.Column("to_status", sa.String(50), nullable=False),
        sa.Column("transition", sa.String(50), nullable=False),
        sa.Column("sequence", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("user_id", sa.Uuid(), nullable=True),
        sa.Column("comment", sa.Text(), nullable=True),
        sa.Column("extra_data", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_submission_events"),
        sa.ForeignKeyConstraint(
            ["submission_id"],
            ["request_submissions.id"],
            name="fk_submission_events_submission_id_request_submissions",
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["user_id"], ["users.id"], name="fk_submission_events_user_id_users", ondelete="SET NULL",
        ),
    )
    op.create_index("ix_submission_events_submission_id", "submission_events", ["submission_id"])
    op.create_index("ix_submission_events_created_at", "submission_events", ["created_at"])

    # --- leave_balances (FK -> users) ---
    op.create_table(
        "leave_balances",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("leave_type", sa.String(50), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("entitled", sa.Float(), nullable=False, server_default="0"),
        sa.Column("used", sa.Float(), nullable=False, server_default="0"),
        sa.Column("pending", sa.Float(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_leave_balances"),
        sa.UniqueConstraint("user_id", "leave_type", "year", name="uq_leave_balances_user_type_year"),
        sa.ForeignKeyConstraint(
            ["user_id"], ["users.id"], name="fk_leave_balances_user_id_users", ondelete="CASCADE",
        ),
    )
    op.create_index("ix_leave_balances_user_id", "leave_balances", ["user_id"])

    # --- holidays (no FK deps) ---
    op.create_table(
        "holidays",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_holidays"),
        sa.UniqueConstraint("date", name="uq_holidays_date"),
    )
    op.create_index("ix_holidays_date", "holidays", ["date"])

    # --- notification_logs (FK -> users, request_submissions) ---
    op.create_table(
        "notification_logs",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("channel", sa.String(50), nullable=False),
        sa.Column("event_type", sa.String(50), nullable=False),
        sa.Column("recipient", sa.String(255), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=True),
        sa.Column("submission_id", sa.Uuid(), nullable=True),
        sa.Column("subject", sa.String(512), nullable=True),
        sa.Column("body", sa.Text(), nullable=True),
        sa.Column("payload", sa.JSON(), nullable=True),
        sa.Column("status", sa.String(50), nullable=False, server_default="pending"),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("attempts", sa.Integer(), server_default="0"),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("sent_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_notification_logs"),
        sa.ForeignKeyConstraint(
            ["user_id"], ["users.id"], name="fk_notification_logs_user_id_users", ondelete="SET NULL",
        ),
        sa.ForeignKeyConstraint(
            ["submission_id"],
            ["request_submissions.id"],
            name="fk_notification_logs_submission_id_request_submissions",
            ondelete="SET NULL",
        ),
    )
    op.create_index("ix_notification_logs_submission_id", "notification_logs", ["submission_id"])
    op.create_index("ix_notification_logs_status", "notification_logs", ["status"])
    op.create_index("ix_notification_logs_created_at", "notification_logs", ["created_at"])


def downgrade() -> None:
    """Drop all tables in reverse dependency order."""
    op.drop_table("notification_logs")
    op.drop_table("holidays")
    op.drop_table("leave_balances")
    op.drop_table("submission_events")
    op.drop_table("request_fulfillments")
    op.drop_table("request_approval_approvers")
    op.drop_table("request_approval_actions")
    op.drop_table("request_answers")
    op.drop_table("request_submissions")
    op.drop_table("request_fields")
    op.drop_table("request_types")
    op.drop_table("user_roles")
    op.drop_table("users")
    op.drop_table("roles")
