"""Create employees, business_events, tasks, grey_areas and notifications

Revision ID: 4a7e1c2d9b30
Revises:
Create Date: 2026-10-18

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "4a7e1c2d9b30"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "employees",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("external_id", sa.String(), nullable=True),
        sa.Column("first_name", sa.String(), nullable=False),
        sa.Column("last_name", sa.String(), nullable=False),
        sa.Column("display_name", sa.String(), nullable=True),
        sa.Column("subsidiary_id", sa.String(), nullable=False),
        sa.Column("department_id", sa.String(), nullable=True),
        sa.Column("position_title", sa.String(), nullable=False),
        sa.Column("reporting_to", sa.String(), nullable=True),
        sa.Column("is_department_head", sa.Boolean(), nullable=False),
        sa.Column("employment_status", sa.String(), nullable=False),
        sa.Column("access_roles", sa.JSON(), nullable=False),
        sa.Column("skills", sa.JSON(), nullable=False),
        sa.Column("active_task_count", sa.Integer(), nullable=False),
        sa.Column("last_assigned_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_employees_email"), "employees", ["email"], unique=True)
    op.create_index(op.f("ix_employees_external_id"), "employees", ["external_id"], unique=True)
    op.create_index(op.f("ix_employees_subsidiary_id"), "employees", ["subsidiary_id"], unique=False)
    op.create_index(op.f("ix_employees_department_id"), "employees", ["department_id"], unique=False)
    op.create_index(op.f("ix_employees_employment_status"), "employees", ["employment_status"], unique=False)

    op.create_table(
        "business_events",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("event_type", sa.String(), nullable=False),
        sa.Column("category", sa.String(), nullable=False),
        sa.Column("source", sa.JSON(), nullable=False),
        sa.Column("trigger", sa.JSON(), nullable=True),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("metadata", sa.JSON(), nullable=False),
        sa.Column("subsidiary_id", sa.String(), nullable=False),
        sa.Column("processing_status", sa.String(), nullable=False),
        sa.Column("tasks_generated", sa.JSON(), nullable=False),
        sa.Column("retry_count", sa.Integer(), nullable=False),
        sa.Column("processed_at", sa.DateTime(), nullable=True),
        sa.Column("error_message", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_business_events_event_type"), "business_events", ["event_type"], unique=False)
    op.create_index(op.f("ix_business_events_subsidiary_id"), "business_events", ["subsidiary_id"], unique=False)
    op.create_index(op.f("ix_business_events_processing_status"), "business_events", ["processing_status"],
                    unique=False)

    op.create_table(
        "tasks",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("subsidiary_id", sa.String(), nullable=False),
        sa.Column("department_id", sa.String(), nullable=True),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("description", sa.String(), nullable=False),
        sa.Column("task_type", sa.String(), nullable=False),
        sa.Column("source", sa.String(), nullable=False),
        sa.Column("context", sa.JSON(), nullable=False),
        sa.Column("event_id", sa.String(), nullable=True),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("stage", sa.String(), nullable=False),
        sa.Column("priority", sa.String(), nullable=False),
        sa.Column("assignment", sa.JSON(), nullable=True),
        sa.Column("assignee_id", sa.String(), nullable=True),
        sa.Column("due_date", sa.DateTime(), nullable=True),
        sa.Column("dependencies", sa.JSON(), nullable=False),
        sa.Column("completion", sa.JSON(), nullable=True),
        sa.Column("escalations", sa.JSON(), nullable=False),
        sa.Column("search_terms", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_tasks_subsidiary_id"), "tasks", ["subsidiary_id"], unique=False)
    op.create_index(op.f("ix_tasks_department_id"), "tasks", ["department_id"], unique=False)
    op.create_index(op.f("ix_tasks_event_id"), "tasks", ["event_id"], unique=False)
    op.create_index(op.f("ix_tasks_status"), "tasks", ["status"], unique=False)
    op.create_index(op.f("ix_tasks_stage"), "tasks", ["stage"], unique=False)
    op.create_index(op.f("ix_tasks_assignee_id"), "tasks", ["assignee_id"], unique=False)
    op.create_index(op.f("ix_tasks_due_date"), "tasks", ["due_date"], unique=False)
    op.create_index("ix_tasks_event_task_type", "tasks", ["event_id", "task_type"], unique=False)

    op.create_table(
        "grey_areas",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("type", sa.String(), nullable=False),
        sa.Column("subsidiary_id", sa.String(), nullable=False),
        sa.Column("department_id", sa.String(), nullable=True),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("description", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("severity", sa.String(), nullable=False),
        sa.Column("detection_context", sa.JSON(), nullable=False),
        sa.Column("entity_type", sa.String(), nullable=False),
        sa.Column("entity_id", sa.String(), nullable=False),
        sa.Column("assigned_to", sa.JSON(), nullable=True),
        sa.Column("assignee_id", sa.String(), nullable=True),
        sa.Column("assigned_at", sa.DateTime(), nullable=True),
        sa.Column("reviewer_roles", sa.JSON(), nullable=False),
        sa.Column("current_escalation_level", sa.Integer(), nullable=False),
        sa.Column("resolution_deadline", sa.DateTime(), nullable=False),
        sa.Column("sla_hours", sa.Float(), nullable=False),
        sa.Column("inputs_required", sa.JSON(), nullable=False),
        sa.Column("escalations", sa.JSON(), nullable=False),
        sa.Column("activity_log", sa.JSON(), nullable=False),
        sa.Column("resolution", sa.JSON(), nullable=True),
        sa.Column("search_terms", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_grey_areas_subsidiary_id"), "grey_areas", ["subsidiary_id"], unique=False)
    op.create_index(op.f("ix_grey_areas_status"), "grey_areas", ["status"], unique=False)
    op.create_index(op.f("ix_grey_areas_assignee_id"), "grey_areas", ["assignee_id"], unique=False)
    op.create_index(op.f("ix_grey_areas_resolution_deadline"), "grey_areas", ["resolution_deadline"], unique=False)
    op.create_index("ix_grey_areas_entity", "grey_areas", ["entity_type", "entity_id"], unique=False)

    op.create_table(
        "notifications",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("type", sa.String(), nullable=False),
        sa.Column("recipient_id", sa.String(), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("body", sa.String(), nullable=False),
        sa.Column("data", sa.JSON(), nullable=False),
        sa.Column("channels", sa.JSON(), nullable=False),
        sa.Column("read", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_notifications_recipient_id"), "notifications", ["recipient_id"], unique=False)


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index(op.f("ix_notifications_recipient_id"), table_name="notifications")
    op.drop_table("notifications")
    op.drop_index("ix_grey_areas_entity", table_name="grey_areas")
    op.drop_index(op.f("ix_grey_areas_resolution_deadline"), table_name="grey_areas")
    op.drop_index(op.f("ix_grey_areas_assignee_id"), table_name="grey_areas")
    op.drop_index(op.f("ix_grey_areas_status"), table_name="grey_areas")
    op.drop_index(op.f("ix_grey_areas_subsidiary_id"), table_name="grey_areas")
    op.drop_table("grey_areas")
    op.drop_index("ix_tasks_event_task_type", table_name="tasks")
    for column in ("due_date", "assignee_id", "stage", "status", "event_id", "department_id", "subsidiary_id"):
        op.drop_index(op.f(f"ix_tasks_{column}"), table_name="tasks")
    op.drop_table("tasks")
    for column in ("processing_status", "subsidiary_id", "event_type"):
        op.drop_index(op.f(f"ix_business_events_{column}"), table_name="business_events")
    op.drop_table("business_events")
    for column in ("employment_status", "department_id", "subsidiary_id", "external_id", "email"):
        op.drop_index(op.f(f"ix_employees_{column}"), table_name="employees")
    op.drop_table("employees")
