"""
Pydantic schemas for data validation and serialization.

This package defines Pydantic models used by the import pipeline and the
operator API:

Schemas:
    imports: Field mappings, mapped items, bulk operations, import results,
             content-type schemas, statistics and configuration payloads
    api: Health check and error responses

Usage:
    from schemas.imports import FieldMapping, ImportResult, ExecutionStatistics
    from schemas.api import HealthCheckResponse

Example:
    mapping = FieldMapping(source_path="price", target_property="Price", transformation="to_float")
    result = ImportResult.failed("API returned 500: Internal Server Error")
    assert result.success is False
"""

__all__ = [
    "FieldMapping",
    "CustomDataItem",
    "BulkOperation",
    "MappingOutcome",
    "ImportResult",
    "FetchResult",
    "ConnectionTestResult",
    "PreviewResult",
    "ContentTypeSchema",
    "ExecutionStatistics",
    "ImportConfigurationExport",
    "HealthCheckResponse",
    "ErrorResponse",
]
