"""
Custom exceptions for the import pipeline with structured error context.

Every exception carries a human-readable message, a context dictionary and,
optionally, the original exception that was caught. The executor converts
fetch and sync errors into failed import results; the job driver is the
boundary where failures become retry state.

Exception Hierarchy:
    ImportPipelineError (base)
    ├── ConfigurationError
    │   └── SchemaNotFoundError
    ├── FetchError
    │   ├── NetworkError
    │   ├── FetchTimeoutError
    │   ├── AuthenticationError
    │   ├── UpstreamNotFoundError
    │   ├── BadResponseError
    │   ├── InvalidJSONError
    │   └── JsonPathError
    ├── SyncError
    ├── BulkFormatError
    ├── InvalidStateTransitionError
    ├── ImportAlreadyRunningError
    └── ResourceNotFoundError
"""

from typing import Optional, Dict, Any
from datetime import datetime, timezone


class ImportPipelineError(Exception):
    """
    Base exception for all import pipeline errors.

    Attributes:
        message: Human-readable error message
        context: Additional context information (config id, url, etc.)
        original_exception: The original exception that was caught (if any)
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        self.message = message
        self.context = context or {}
        self.original_exception = original_exception
        self.timestamp = datetime.now(timezone.utc)

        self.context["error_timestamp"] = self.timestamp.isoformat()

        super().__init__(message)
        if original_exception:
            self.__cause__ = original_exception

    def __str__(self) -> str:
        return self.message

    def describe(self) -> str:
        """Format error message with context and cause."""
        base_msg = f"{self.__class__.__name__}: {self.message}"

        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base_msg += f" | Context: {context_str}"

        if self.original_exception:
            base_msg += f" | Caused by: {type(self.original_exception).__name__}: {str(self.original_exception)}"

        return base_msg

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/storage."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "original_error": str(self.original_exception) if self.original_exception else None
        }


# ============================================================================
# Configuration Errors
# ============================================================================

class ConfigurationError(ImportPipelineError):
    """
    Raised when an import configuration cannot be executed as written.

    Examples: malformed API URL, unsupported HTTP method or auth type,
    missing id field mapping. The job driver skips the configuration and
    continues with the next one.
    """
    pass


class SchemaNotFoundError(ConfigurationError):
    """
    Raised when the target source or content type is not present in the index.

    Context should include:
        - source_id: Target source id
        - content_type: Target content type name
    """
    pass


# ============================================================================
# Fetch Errors
# ============================================================================

class FetchError(ImportPipelineError):
    """
    Base exception for external API fetch failures.

    Context should include:
        - api_url: The API endpoint that failed
        - status_code: HTTP status code (if applicable)
        - response_body: Response body (truncated)
    """
    pass


class NetworkError(FetchError):
    """Connection-level failures (DNS, refused, reset)."""
    pass


class FetchTimeoutError(FetchError):
    """The external API did not answer within the configured timeout."""
    pass


class AuthenticationError(FetchError):
    """Authentication failures (HTTP 401, 403)."""
    pass


class UpstreamNotFoundError(FetchError):
    """The external API answered HTTP 404."""
    pass


class BadResponseError(FetchError):
    """Any other non-2xx response from the external API."""

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None,
        status_code: Optional[int] = None
    ):
        super().__init__(message, context, original_exception)
        self.status_code = status_code
        if status_code is not None:
            self.context["status_code"] = status_code


class InvalidJSONError(FetchError):
    """The response body is not valid JSON."""
    pass


class JsonPathError(FetchError):
    """The configured JSON path does not lead to an array."""
    pass


# ============================================================================
# Sync / Format Errors
# ============================================================================

class SyncError(ImportPipelineError):
    """
    Raised when the search index rejects a bulk payload or cannot be reached.

    Context should include:
        - source_id: Target source id
        - status_code: HTTP status code (if applicable)
    """
    pass


class BulkFormatError(ImportPipelineError):
    """
    Raised when a bulk ingest payload violates the line format.

    Context should include:
        - line_number: 1-based line number of the offending line
    """
    pass


# ============================================================================
# Scheduling Errors
# ============================================================================

class InvalidStateTransitionError(ImportPipelineError):
    """Raised when a configuration is moved to a state it cannot reach."""
    pass


class ImportAlreadyRunningError(ImportPipelineError):
    """Raised when a configuration is already claimed by another runner."""
    pass


class ResourceNotFoundError(ImportPipelineError):
    """Raised when an import configuration id does not exist."""
    pass
