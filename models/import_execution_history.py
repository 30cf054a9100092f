from sqlalchemy import Column, Integer, DateTime, Float, Text, Boolean, ForeignKey, Index, Uuid
from sqlalchemy.orm import relationship
import uuid
from models.base import Base, JSONType, utcnow


class ImportExecutionHistory(Base):
    """
    One row per import attempt.

    Purpose:
    - Audit trail of scheduled and manual runs
    - Source data for per-configuration statistics
    - Retry tracking (was_retry / retry_attempt)

    Rows are append-only; old rows are pruned by age.
    """
    __tablename__ = "import_execution_history"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    import_configuration_id = Column(
        Uuid,
        ForeignKey("import_configurations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    executed_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    success = Column(Boolean, nullable=False)

    # Statistics
    items_received = Column(Integer, nullable=False, default=0)
    items_imported = Column(Integer, nullable=False, default=0)
    items_skipped = Column(Integer, nullable=False, default=0)
    items_failed = Column(Integer, nullable=False, default=0)
    duration_seconds = Column(Float, nullable=False, default=0.0)

    # Error tracking
    error_message = Column(Text, nullable=True)
    warnings = Column(JSONType, nullable=True)

    # Trigger
    was_retry = Column(Boolean, nullable=False, default=False)
    retry_attempt = Column(Integer, nullable=False, default=0)  # 0 = first run
    was_scheduled = Column(Boolean, nullable=False, default=True)

    configuration = relationship("ImportConfiguration", back_populates="history")

    __table_args__ = (
        Index("idx_import_history_config_executed", "import_configuration_id", "executed_at"),
    )
