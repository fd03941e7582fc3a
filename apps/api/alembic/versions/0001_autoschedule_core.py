"""auto-schedule core tables

Revision ID: 0001_autoschedule_core
Revises:
Create Date: 2026-10-18 00:00:00
"""

from typing import Sequence

import sqlalchemy as sa
from alembic import op

revision: str = "0001_autoschedule_core"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

ENUM_NAMES = (
    "role_enum",
    "client_status_enum",
    "subscription_status_enum",
    "day_pair_enum",
    "content_item_status_enum",
    "run_log_status_enum",
)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("full_name", sa.String(length=255), nullable=True),
        sa.Column("role", sa.Enum("OWNER", "ADMIN", "MEMBER", name="role_enum"), nullable=False),
        *_timestamps(),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email", name="uq_users_email"),
    )

    op.create_table(
        "clients",
        sa.Column("business_name", sa.String(length=255), nullable=False),
        sa.Column(
            "status",
            sa.Enum("ACTIVE", "PAUSED", "ARCHIVED", name="client_status_enum"),
            nullable=False,
        ),
        sa.Column(
            "subscription_status",
            sa.Enum("TRIAL", "ACTIVE", "PAST_DUE", "CANCELED", name="subscription_status_enum"),
            nullable=False,
        ),
        sa.Column("city", sa.String(length=120), nullable=True),
        sa.Column("state", sa.String(length=64), nullable=True),
        sa.Column("timezone", sa.String(length=64), nullable=False, server_default="America/Denver"),
        sa.Column("preferred_publish_time", sa.String(length=5), nullable=False, server_default="09:00"),
        sa.Column("auto_schedule_enabled", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("auto_schedule_frequency", sa.Integer(), nullable=False, server_default="2"),
        sa.Column(
            "schedule_day_pair",
            sa.Enum("MON_WED", "TUE_THU", "WED_FRI", "MON_THU", "TUE_FRI", "MON_FRI", name="day_pair_enum"),
            nullable=True,
        ),
        sa.Column("schedule_time_slot", sa.Integer(), nullable=True),
        sa.Column("last_auto_scheduled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rotation_cycle", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "schedule_time_slot IS NULL OR (schedule_time_slot >= 0 AND schedule_time_slot <= 9)",
            name="ck_clients_schedule_time_slot",
        ),
        sa.CheckConstraint("auto_schedule_frequency IN (1, 2)", name="ck_clients_auto_schedule_frequency"),
    )
    op.create_index("ix_clients_schedule", "clients", ["status", "auto_schedule_enabled", "schedule_time_slot"])
    op.create_index("ix_clients_created_at", "clients", ["created_at"])

    op.create_table(
        "client_paas",
        sa.Column("client_id", sa.Uuid(), nullable=False),
        sa.Column("question", sa.Text(), nullable=False),
        sa.Column("priority", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("is_custom", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("used_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("used_count", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
        sa.ForeignKeyConstraint(["client_id"], ["clients.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_client_paas_client_id", "client_paas", ["client_id"])
    op.create_index("ix_client_paas_rotation", "client_paas", ["client_id", "is_active", "priority"])

    op.create_table(
        "service_locations",
        sa.Column("client_id", sa.Uuid(), nullable=False),
        sa.Column("city", sa.String(length=120), nullable=False),
        sa.Column("state", sa.String(length=64), nullable=False),
        sa.Column("neighborhood", sa.String(length=120), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("is_headquarters", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("used_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("used_count", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
        sa.ForeignKeyConstraint(["client_id"], ["clients.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_service_locations_client_id", "service_locations", ["client_id"])

    op.create_table(
        "combination_usages",
        sa.Column("client_id", sa.Uuid(), nullable=False),
        sa.Column("client_paa_id", sa.Uuid(), nullable=False),
        sa.Column("service_location_id", sa.Uuid(), nullable=False),
        sa.Column("cycle", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("used_at", sa.DateTime(timezone=True), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["client_id"], ["clients.id"]),
        sa.ForeignKeyConstraint(["client_paa_id"], ["client_paas.id"]),
        sa.ForeignKeyConstraint(["service_location_id"], ["service_locations.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "client_id",
            "cycle",
            "client_paa_id",
            "service_location_id",
            name="uq_combination_usages_client_cycle_pair",
        ),
    )
    op.create_index("ix_combination_usages_client_cycle", "combination_usages", ["client_id", "cycle"])

    op.create_table(
        "content_items",
        sa.Column("client_id", sa.Uuid(), nullable=False),
        sa.Column("client_paa_id", sa.Uuid(), nullable=True),
        sa.Column("service_location_id", sa.Uuid(), nullable=True),
        sa.Column("paa_question", sa.Text(), nullable=False),
        sa.Column("scheduled_date", sa.Date(), nullable=False),
        sa.Column("scheduled_time", sa.String(length=5), nullable=True),
        sa.Column(
            "status",
            sa.Enum(
                "DRAFT",
                "SCHEDULED",
                "GENERATING",
                "REVIEW",
                "FAILED",
                "APPROVED",
                "PUBLISHED",
                name="content_item_status_enum",
            ),
            nullable=False,
        ),
        sa.Column("pipeline_step", sa.String(length=64), nullable=True),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("priority", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["client_id"], ["clients.id"]),
        sa.ForeignKeyConstraint(["client_paa_id"], ["client_paas.id"]),
        sa.ForeignKeyConstraint(["service_location_id"], ["service_locations.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_content_items_client_id", "content_items", ["client_id"])
    op.create_index("ix_content_items_scheduled_date", "content_items", ["scheduled_date"])

    op.create_table(
        "run_logs",
        sa.Column("client_id", sa.Uuid(), nullable=False),
        sa.Column("action", sa.String(length=100), nullable=False),
        sa.Column("status", sa.Enum("SUCCESS", "FAILED", name="run_log_status_enum"), nullable=False),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("response_json", sa.JSON(), nullable=False, server_default=sa.text("'{}'::json")),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("duration_ms", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
        sa.ForeignKeyConstraint(["client_id"], ["clients.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_run_logs_client_id", "run_logs", ["client_id"])
    op.create_index("ix_run_logs_action_created_at", "run_logs", ["action", "created_at"])

    op.create_table(
        "audit_logs",
        sa.Column("actor_user_id", sa.Uuid(), nullable=True),
        sa.Column("action", sa.String(length=100), nullable=False),
        sa.Column("target_type", sa.String(length=100), nullable=False),
        sa.Column("target_id", sa.String(length=255), nullable=False),
        sa.Column("metadata_json", sa.JSON(), nullable=False, server_default=sa.text("'{}'::json")),
        *_timestamps(),
        sa.ForeignKeyConstraint(["actor_user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_audit_logs_created_at", "audit_logs", ["created_at"])


def downgrade() -> None:
    op.drop_index("ix_audit_logs_created_at", table_name="audit_logs")
    op.drop_table("audit_logs")
    op.drop_index("ix_run_logs_action_created_at", table_name="run_logs")
    op.drop_index("ix_run_logs_client_id", table_name="run_logs")
    op.drop_table("run_logs")
    op.drop_index("ix_content_items_scheduled_date", table_name="content_items")
    op.drop_index("ix_content_items_client_id", table_name="content_items")
    op.drop_table("content_items")
    op.drop_index("ix_combination_usages_client_cycle", table_name="combination_usages")
    op.drop_table("combination_usages")
    op.drop_index("ix_service_locations_client_id", table_name="service_locations")
    op.drop_table("service_locations")
    op.drop_index("ix_client_paas_rotation", table_name="client_paas")
    op.drop_index("ix_client_paas_client_id", table_name="client_paas")
    op.drop_table("client_paas")
    op.drop_index("ix_clients_created_at", table_name="clients")
    op.drop_index("ix_clients_schedule", table_name="clients")
    op.drop_table("clients")
    op.drop_table("users")
    for name in ENUM_NAMES:
        op.execute(f"DROP TYPE IF EXISTS {name}")
