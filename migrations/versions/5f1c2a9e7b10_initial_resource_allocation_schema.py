"""initial_resource_allocation_schema

Create departments, users, projects, phases, resource templates and pools,
resource requests, approval decisions, notifications and scheduled jobs.

Revision ID: 5f1c2a9e7b10
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "5f1c2a9e7b10"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "departments",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=150), nullable=False),
        sa.Column("unit_type", sa.String(length=20), nullable=False, server_default="operations"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name"),
    )

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("email", sa.String(length=200), nullable=False),
        sa.Column("full_name", sa.String(length=200), nullable=True),
        sa.Column("user_role", sa.String(length=30), nullable=False, server_default="member"),
        sa.Column("department_id", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["department_id"], ["departments.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )
    op.create_index("ix_users_department_id", "users", ["department_id"])

    op.create_table(
        "projects",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("client", sa.String(length=200), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=30), nullable=False, server_default="active"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "phases",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("project_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("order", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("start_date", sa.Date(), nullable=True),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_phases_project_id", "phases", ["project_id"])

    op.create_table(
        "resource_templates",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=150), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("category", sa.String(length=50), nullable=True),
        sa.Column("approval_levels", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("field_schema", sa.JSON(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name"),
    )

    op.create_table(
        "resource_pools",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("phase_id", sa.Integer(), nullable=False),
        sa.Column("resource_template_id", sa.Integer(), nullable=True),
        sa.Column("resource_type", sa.String(length=100), nullable=True),
        sa.Column("identifier", sa.String(length=100), nullable=True),
        sa.Column("total_qty", sa.Integer(), nullable=False),
        sa.Column("committed_qty", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("configuration", sa.JSON(), nullable=False),
        sa.Column("cost_per_unit", sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["phase_id"], ["phases.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["resource_template_id"], ["resource_templates.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("phase_id", "resource_template_id", name="uq_pool_phase_template"),
        sa.UniqueConstraint("phase_id", "resource_type", name="uq_pool_phase_type"),
        sa.CheckConstraint("total_qty > 0", name="ck_pool_total_positive"),
        sa.CheckConstraint("committed_qty >= 0", name="ck_pool_committed_non_negative"),
        sa.CheckConstraint(
            "(resource_template_id IS NULL) <> (resource_type IS NULL)",
            name="ck_pool_single_identity",
        ),
    )
    op.create_index("ix_resource_pools_phase_id", "resource_pools", ["phase_id"])
    op.create_index("ix_resource_pools_resource_template_id", "resource_pools", ["resource_template_id"])

    op.create_table(
        "resource_requests",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("requester_id", sa.Integer(), nullable=False),
        sa.Column("phase_id", sa.Integer(), nullable=False),
        sa.Column("pool_id", sa.Integer(), nullable=False),
        sa.Column("resource_template_id", sa.Integer(), nullable=True),
        sa.Column("resource_type", sa.String(length=100), nullable=True),
        sa.Column("requested_qty", sa.Integer(), nullable=False),
        sa.Column("requested_config", sa.JSON(), nullable=False),
        sa.Column("justification", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="PENDING"),
        sa.Column("current_level", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("required_levels", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("routed_to_fulfillment", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("assigned_to_id", sa.Integer(), nullable=True),
        sa.Column("assigned_by_id", sa.Integer(), nullable=True),
        sa.Column("assigned_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_by_id", sa.Integer(), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completion_notes", sa.Text(), nullable=True),
        sa.Column("credentials", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["requester_id"], ["users.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["phase_id"], ["phases.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["pool_id"], ["resource_pools.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["resource_template_id"], ["resource_templates.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["assigned_to_id"], ["users.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["assigned_by_id"], ["users.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["completed_by_id"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("requested_qty > 0", name="ck_request_qty_positive"),
    )
    op.create_index("ix_resource_requests_requester_id", "resource_requests", ["requester_id"])
    op.create_index("ix_resource_requests_phase_id", "resource_requests", ["phase_id"])
    op.create_index("ix_resource_requests_pool_id", "resource_requests", ["pool_id"])
    op.create_index("ix_resource_requests_status", "resource_requests", ["status"])
    op.create_index("ix_resource_requests_assigned_to_id", "resource_requests", ["assigned_to_id"])
    op.create_index("ix_request_pool_status", "resource_requests", ["pool_id", "status"])

    op.create_table(
        "approval_decisions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("request_id", sa.Integer(), nullable=False),
        sa.Column("level", sa.Integer(), nullable=False),
        sa.Column("decision", sa.String(length=20), nullable=False),
        sa.Column("approver_id", sa.Integer(), nullable=True),
        sa.Column("approver_name_snapshot", sa.String(length=255), nullable=True),
        sa.Column("comments", sa.Text(), nullable=True),
        sa.Column("decided_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["request_id"], ["resource_requests.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["approver_id"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("request_id", "level", name="uq_decision_request_level"),
        sa.CheckConstraint("level >= 1 AND level <= 3", name="ck_decision_level_range"),
    )
    op.create_index("ix_approval_decisions_request_id", "approval_decisions", ["request_id"])

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("recipient_id", sa.Integer(), nullable=True),
        sa.Column("title", sa.String(length=300), nullable=False),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column("category", sa.String(length=30), nullable=True),
        sa.Column("severity", sa.String(length=20), nullable=True),
        sa.Column("event_type", sa.String(length=50), nullable=True),
        sa.Column("entity_type", sa.String(length=30), nullable=True),
        sa.Column("entity_id", sa.Integer(), nullable=True),
        sa.Column("payload", sa.JSON(), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=True),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["recipient_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_notifications_recipient_id", "notifications", ["recipient_id"])

    op.create_table(
        "scheduled_jobs",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("job_name", sa.String(length=100), nullable=False),
        sa.Column("description", sa.String(length=500), nullable=True),
        sa.Column("schedule_type", sa.String(length=30), nullable=True),
        sa.Column("schedule_config", sa.JSON(), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=True),
        sa.Column("is_enabled", sa.Boolean(), nullable=True),
        sa.Column("last_run_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_run_status", sa.String(length=20), nullable=True),
        sa.Column("last_run_duration_ms", sa.Integer(), nullable=True),
        sa.Column("last_run_result", sa.JSON(), nullable=True),
        sa.Column("run_count", sa.Integer(), nullable=True),
        sa.Column("error_count", sa.Integer(), nullable=True),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("job_name"),
    )


def downgrade():
    op.drop_table("scheduled_jobs")
    op.drop_index("ix_notifications_recipient_id", table_name="notifications")
    op.drop_table("notifications")
    op.drop_index("ix_approval_decisions_request_id", table_name="approval_decisions")
    op.drop_table("approval_decisions")
    for ix in (
        "ix_request_pool_status",
        "ix_resource_requests_assigned_to_id",
        "ix_resource_requests_status",
        "ix_resource_requests_pool_id",
        "ix_resource_requests_phase_id",
        "ix_resource_requests_requester_id",
    ):
        op.drop_index(ix, table_name="resource_requests")
    op.drop_table("resource_requests")
    op.drop_index("ix_resource_pools_resource_template_id", table_name="resource_pools")
    op.drop_index("ix_resource_pools_phase_id", table_name="resource_pools")
    op.drop_table("resource_pools")
    op.drop_table("resource_templates")
    op.drop_index("ix_phases_project_id", table_name="phases")
    op.drop_table("phases")
    op.drop_table("projects")
    op.drop_index("ix_users_department_id", table_name="users")
    op.drop_table("users")
    op.drop_table("departments")
