"""
Core utilities and configuration for the import service.

This package provides foundational components used throughout the import
pipeline:

Modules:
    config: Application configuration and environment variable management
    database: Database engine, session factory and table creation
    exceptions: Custom exception hierarchy for error handling
    logging: Logging configuration and utilities

Usage:
    from core.config import settings
    from core.database import get_session, init_models
    from core.exceptions import FetchError, SyncError
    from core.logging import setup_logging

Example:
    # Initialize logging
    setup_logging()

    # Get database session
    async with async_session_maker() as session:
        store = SqlConfigurationStore(session)
"""

__all__ = [
    "settings",
    "get_session",
    "init_models",
    "setup_logging",
    # Exceptions
    "ImportPipelineError",
    "ConfigurationError",
    "SchemaNotFoundError",
    "FetchError",
    "NetworkError",
    "FetchTimeoutError",
    "AuthenticationError",
    "UpstreamNotFoundError",
    "BadResponseError",
    "InvalidJSONError",
    "JsonPathError",
    "SyncError",
    "BulkFormatError",
    "InvalidStateTransitionError",
    "ImportAlreadyRunningError",
    "ResourceNotFoundError",
]
