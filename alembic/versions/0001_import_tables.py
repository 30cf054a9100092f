"""Create import configuration and execution history tables

Revision ID: 0001
Revises:
Create Date: 2024-01-15 00:00:00
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None

# Enum columns store member names
AUTHENTICATION_TYPES = ("NONE", "API_KEY", "BASIC", "BEARER")
SCHEDULE_FREQUENCIES = ("NONE", "HOURLY", "DAILY", "WEEKLY", "MONTHLY")
IMPORT_STATES = ("IDLE", "SCHEDULED", "DUE", "RUNNING", "SUCCEEDED", "FAILED", "RETRY_PENDING")


def upgrade():
    op.create_table(
        "import_configurations",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.String(1000), nullable=True),
        sa.Column("target_source_id", sa.String(4), nullable=False),
        sa.Column("target_content_type", sa.String(255), nullable=False),
        sa.Column("api_url", sa.String(2048), nullable=False),
        sa.Column("http_method", sa.String(10), nullable=False),
        sa.Column("custom_headers", postgresql.JSONB(), nullable=True),
        sa.Column("auth_type", sa.Enum(*AUTHENTICATION_TYPES, name="authenticationtype"), nullable=False),
        sa.Column("auth_key_or_username", sa.String(255), nullable=True),
        sa.Column("auth_value_or_password", sa.String(2048), nullable=True),
        sa.Column("field_mappings", postgresql.JSONB(), nullable=True),
        sa.Column("id_field_mapping", sa.String(255), nullable=False),
        sa.Column("language_routing", sa.String(10), nullable=True),
        sa.Column("json_path", sa.String(500), nullable=True),
        sa.Column("schedule_frequency", sa.Enum(*SCHEDULE_FREQUENCIES, name="schedulefrequency"), nullable=False),
        sa.Column("schedule_interval_value", sa.Integer(), nullable=False),
        sa.Column("schedule_time_of_day", sa.Time(), nullable=True),
        sa.Column("schedule_day_of_week", sa.Integer(), nullable=True),
        sa.Column("schedule_day_of_month", sa.Integer(), nullable=True),
        sa.Column("state", sa.Enum(*IMPORT_STATES, name="importstate"), nullable=False),
        sa.Column("next_scheduled_run_at", sa.DateTime(), nullable=True),
        sa.Column("next_retry_at", sa.DateTime(), nullable=True),
        sa.Column("consecutive_failures", sa.Integer(), nullable=False),
        sa.Column("max_retries", sa.Integer(), nullable=False),
        sa.Column("running_since", sa.DateTime(), nullable=True),
        sa.Column("failure_notified_at", sa.DateTime(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("notification_email", sa.String(500), nullable=True),
        sa.Column("last_import_at", sa.DateTime(), nullable=True),
        sa.Column("last_import_count", sa.Integer(), nullable=True),
        sa.Column("last_import_success", sa.Boolean(), nullable=True),
        sa.Column("last_import_error", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("created_by", sa.String(255), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.Column("updated_by", sa.String(255), nullable=True),
    )
    op.create_index("ix_import_configurations_target_source_id", "import_configurations", ["target_source_id"])
    op.create_index("ix_import_configurations_next_scheduled_run_at", "import_configurations", ["next_scheduled_run_at"])
    op.create_index("ix_import_configurations_next_retry_at", "import_configurations", ["next_retry_at"])
    op.create_index("idx_import_config_due", "import_configurations", ["is_active", "next_scheduled_run_at"])
    op.create_index("idx_import_config_retry", "import_configurations", ["is_active", "next_retry_at"])

    op.create_table(
        "import_execution_history",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "import_configuration_id",
            sa.Uuid(),
            sa.ForeignKey("import_configurations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("executed_at", sa.DateTime(), nullable=False),
        sa.Column("success", sa.Boolean(), nullable=False),
        sa.Column("items_received", sa.Integer(), nullable=False),
        sa.Column("items_imported", sa.Integer(), nullable=False),
        sa.Column("items_skipped", sa.Integer(), nullable=False),
        sa.Column("items_failed", sa.Integer(), nullable=False),
        sa.Column("duration_seconds", sa.Float(), nullable=False),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("warnings", postgresql.JSONB(), nullable=True),
        sa.Column("was_retry", sa.Boolean(), nullable=False),
        sa.Column("retry_attempt", sa.Integer(), nullable=False),
        sa.Column("was_scheduled", sa.Boolean(), nullable=False),
    )
    op.create_index(
        "ix_import_execution_history_import_configuration_id",
        "import_execution_history",
        ["import_configuration_id"],
    )
    op.create_index("ix_import_execution_history_executed_at", "import_execution_history", ["executed_at"])
    op.create_index(
        "idx_import_history_config_executed",
        "import_execution_history",
        ["import_configuration_id", "executed_at"],
    )


def downgrade():
    op.drop_table("import_execution_history")
    op.drop_table("import_configurations")
    sa.Enum(name="importstate").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="schedulefrequency").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="authenticationtype").drop(op.get_bind(), checkfirst=True)
