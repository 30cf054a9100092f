from sqlalchemy import (
    Column, String, Integer, DateTime, Text, Boolean, Enum, Index, Time, Uuid
)
from sqlalchemy.orm import relationship
import uuid
from core.config import settings
from models.base import Base, JSONType, AuthenticationType, ScheduleFrequency, ImportState, utcnow


class ImportConfiguration(Base):
    """
    A saved recipe for importing data from one external API into one
    content type of a custom index source.

    Scheduling state:
    - next_scheduled_run_at drives the normal cadence
    - next_retry_at drives backoff retries between normal runs
    - consecutive_failures counts back-to-back failures since the last success
    - state/running_since hold the per-configuration run claim
    """
    __tablename__ = "import_configurations"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)

    name = Column(String(255), nullable=False)
    description = Column(String(1000), nullable=True)

    # Target in the search index
    target_source_id = Column(String(4), nullable=False, index=True)
    target_content_type = Column(String(255), nullable=False)

    # External API
    api_url = Column(String(2048), nullable=False)
    http_method = Column(String(10), nullable=False, default="GET")
    custom_headers = Column(JSONType, nullable=True)
    auth_type = Column(Enum(AuthenticationType), nullable=False, default=AuthenticationType.NONE)
    auth_key_or_username = Column(String(255), nullable=True)  # header name (api_key) or username (basic)
    auth_value_or_password = Column(String(2048), nullable=True)  # key, password or token

    # Mapping
    field_mappings = Column(JSONType, nullable=True)
    id_field_mapping = Column(String(255), nullable=False)
    language_routing = Column(String(10), nullable=True)
    json_path = Column(String(500), nullable=True)

    # Schedule descriptor
    schedule_frequency = Column(Enum(ScheduleFrequency), nullable=False, default=ScheduleFrequency.NONE)
    schedule_interval_value = Column(Integer, nullable=False, default=1)
    schedule_time_of_day = Column(Time, nullable=True)
    schedule_day_of_week = Column(Integer, nullable=True)  # 0 = Monday
    schedule_day_of_month = Column(Integer, nullable=True)

    # Scheduling state
    state = Column(Enum(ImportState), nullable=False, default=ImportState.IDLE)
    next_scheduled_run_at = Column(DateTime, nullable=True, index=True)
    next_retry_at = Column(DateTime, nullable=True, index=True)
    consecutive_failures = Column(Integer, nullable=False, default=0)
    max_retries = Column(Integer, nullable=False, default=lambda: settings.DEFAULT_MAX_RETRIES)
    running_since = Column(DateTime, nullable=True)
    failure_notified_at = Column(DateTime, nullable=True)

    is_active = Column(Boolean, nullable=False, default=True)
    notification_email = Column(String(500), nullable=True)

    # Last run
    last_import_at = Column(DateTime, nullable=True)
    last_import_count = Column(Integer, nullable=True)
    last_import_success = Column(Boolean, nullable=True)
    last_import_error = Column(Text, nullable=True)

    # Audit
    created_at = Column(DateTime, nullable=False, default=utcnow)
    created_by = Column(String(255), nullable=True)
    updated_at = Column(DateTime, nullable=True, onupdate=utcnow)
    updated_by = Column(String(255), nullable=True)

    history = relationship(
        "ImportExecutionHistory",
        back_populates="configuration",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        Index("idx_import_config_due", "is_active", "next_scheduled_run_at"),
        Index("idx_import_config_retry", "is_active", "next_retry_at"),
    )
