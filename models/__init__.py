"""
SQLAlchemy ORM models for database tables.

This package defines the persisted shape of the import service:

Models:
    base: Base declarative class, JSON column type and shared enums
          (AuthenticationType, ScheduleFrequency, ImportState)
    import_configuration: Saved import recipes with schedule and retry state
    import_execution_history: Append-only audit trail, one row per attempt

Database Schema:
    JSON columns use JSONB on PostgreSQL and plain JSON elsewhere, so the
    same models run against SQLite in tests.

Usage:
    from models.import_configuration import ImportConfiguration
    from models.import_execution_history import ImportExecutionHistory
    from models.base import ScheduleFrequency, ImportState

Relationships:
    - ImportConfiguration → ImportExecutionHistory (one-to-many, cascade delete)
"""

__all__ = [
    "Base",
    "AuthenticationType",
    "ScheduleFrequency",
    "ImportState",
    "ImportConfiguration",
    "ImportExecutionHistory",
]
