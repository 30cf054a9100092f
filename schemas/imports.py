"""
Pydantic schemas for the import pipeline: mapping rules, mapped items,
execution results and statistics
"""

from pydantic import BaseModel, Field, validator
from typing import Optional, List, Dict, Any
from datetime import datetime, time
from uuid import UUID
import enum

from core.config import settings
from models.base import AuthenticationType, ImportState, ScheduleFrequency

# ============================================================================
# Mapping Schemas
# ============================================================================

class TransformationType(str, enum.Enum):
    """Conversion applied to a resolved source value before it is stored"""
    NONE = "none"
    TO_STRING = "to_string"
    TO_INT = "to_int"
    TO_FLOAT = "to_float"
    TO_BOOLEAN = "to_boolean"
    TO_DATE = "to_date"
    TO_DATETIME = "to_datetime"


class FieldMapping(BaseModel):
    """Maps one path in the external JSON to one target property"""
    source_path: str = Field(..., min_length=1)
    target_property: str = Field(..., min_length=1)
    transformation: Optional[TransformationType] = None
    default_value: Optional[Any] = None

    class Config:
        use_enum_values = True
        json_schema_extra = {
            "example": {
                "source_path": "attributes.title",
                "target_property": "Title",
                "transformation": "to_string",
            }
        }


class CustomDataItem(BaseModel):
    """One item ready to be pushed to the search index"""
    id: str
    language_routing: Optional[str] = None
    properties: Dict[str, Any] = Field(default_factory=dict)

    @validator("language_routing")
    def blank_routing_is_none(cls, v):
        # An empty tag is never written to the bulk action line
        return v or None


class BulkAction(str, enum.Enum):
    INDEX = "index"
    DELETE = "delete"


class BulkOperation(BaseModel):
    """A decoded operation from a bulk ingest payload"""
    action: BulkAction
    id: str
    language_routing: Optional[str] = None
    properties: Optional[Dict[str, Any]] = None

    @validator("language_routing")
    def blank_routing_is_none(cls, v):
        return v or None


class MappingOutcome(BaseModel):
    """Items produced by the field mapper along with per-element warnings"""
    items: List[CustomDataItem] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    received: int = 0
    skipped: int = 0


# ============================================================================
# Execution Schemas
# ============================================================================

class ImportResult(BaseModel):
    """Outcome of a single import attempt"""
    success: bool
    total_items_received: int = 0
    items_imported: int = 0
    items_skipped: int = 0
    items_failed: int = 0
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    duration_seconds: float = 0.0

    @classmethod
    def successful(
        cls,
        received: int,
        imported: int,
        skipped: int = 0,
        failed: int = 0,
        warnings: Optional[List[str]] = None,
        duration_seconds: float = 0.0,
    ) -> "ImportResult":
        return cls(
            success=True,
            total_items_received=received,
            items_imported=imported,
            items_skipped=skipped,
            items_failed=failed,
            warnings=list(warnings or []),
            duration_seconds=duration_seconds,
        )

    @classmethod
    def failed(cls, message: str, duration_seconds: float = 0.0) -> "ImportResult":
        return cls(success=False, errors=[message], duration_seconds=duration_seconds)

    @property
    def error_message(self) -> Optional[str]:
        """All errors joined into one line, or None."""
        return "; ".join(self.errors) if self.errors else None


class FetchResult(BaseModel):
    success: bool
    data: Optional[List[Any]] = None
    error: Optional[str] = None


class ConnectionTestResult(BaseModel):
    success: bool
    message: str
    sample_json: Optional[str] = None


class PreviewResult(BaseModel):
    items: List[CustomDataItem] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    total_items_received: int = 0
    items_skipped: int = 0


# ============================================================================
# Index Schema
# ============================================================================

class ContentTypeProperty(BaseModel):
    name: str
    type: str
    searchable: bool = False


class ContentTypeSchema(BaseModel):
    """A content type as registered in the search index"""
    name: str
    label: Optional[str] = None
    base_type: Optional[str] = None
    properties: List[ContentTypeProperty] = Field(default_factory=list)


# ============================================================================
# Statistics Schemas
# ============================================================================

class ExecutionStatistics(BaseModel):
    """Aggregated execution history for one configuration"""
    total_executions: int = 0
    successful_executions: int = 0
    failed_executions: int = 0
    success_rate: float = Field(0.0, ge=0, le=100, description="Success rate percentage")
    average_duration_seconds: float = 0.0
    total_items_imported: int = 0
    last_successful_execution: Optional[datetime] = None
    last_failed_execution: Optional[datetime] = None


class ExecutionHistoryResponse(BaseModel):
    id: UUID
    import_configuration_id: UUID
    executed_at: datetime
    success: bool
    items_received: int
    items_imported: int
    items_skipped: int
    items_failed: int
    duration_seconds: float
    error_message: Optional[str] = None
    warnings: Optional[List[str]] = None
    was_retry: bool
    retry_attempt: int
    was_scheduled: bool

    class Config:
        from_attributes = True


# ============================================================================
# Configuration Schemas
# ============================================================================

ALLOWED_HTTP_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE", "HEAD")


class ImportConfigurationBase(BaseModel):
    """Operator-editable fields of an import configuration"""
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=1000)

    target_source_id: str = Field(..., pattern=r"^[a-z0-9]{1,4}$")
    target_content_type: str = Field(..., min_length=1, max_length=255)

    api_url: str = Field(..., min_length=1, max_length=2048)
    http_method: str = "GET"
    custom_headers: Optional[Dict[str, str]] = None
    auth_type: AuthenticationType = AuthenticationType.NONE
    auth_key_or_username: Optional[str] = Field(None, max_length=255)
    auth_value_or_password: Optional[str] = Field(None, max_length=2048)

    field_mappings: List[FieldMapping] = Field(default_factory=list)
    id_field_mapping: str = Field(..., min_length=1, max_length=255)
    language_routing: Optional[str] = Field(None, max_length=10)
    json_path: Optional[str] = Field(None, max_length=500)

    schedule_frequency: ScheduleFrequency = ScheduleFrequency.NONE
    schedule_interval_value: int = Field(1, ge=1)
    schedule_time_of_day: Optional[time] = None
    schedule_day_of_week: Optional[int] = Field(None, ge=0, le=6)
    schedule_day_of_month: Optional[int] = Field(None, ge=1, le=31)

    max_retries: int = Field(default_factory=lambda: settings.DEFAULT_MAX_RETRIES, ge=0)
    is_active: bool = True
    notification_email: Optional[str] = Field(None, max_length=500)

    @validator("http_method")
    def validate_http_method(cls, v):
        if v.upper() not in ALLOWED_HTTP_METHODS:
            raise ValueError(f"http_method must be one of: {', '.join(ALLOWED_HTTP_METHODS)}")
        return v.upper()

    @validator("api_url")
    def validate_api_url(cls, v):
        if not v.lower().startswith(("http://", "https://")):
            raise ValueError("api_url must be an absolute http(s) URL")
        return v


class ImportConfigurationCreate(ImportConfigurationBase):
    created_by: Optional[str] = None


class ImportConfigurationUpdate(ImportConfigurationBase):
    updated_by: Optional[str] = None


class ImportConfigurationResponse(ImportConfigurationBase):
    id: UUID
    state: ImportState
    next_scheduled_run_at: Optional[datetime] = None
    next_retry_at: Optional[datetime] = None
    consecutive_failures: int = 0
    last_import_at: Optional[datetime] = None
    last_import_count: Optional[int] = None
    last_import_success: Optional[bool] = None
    last_import_error: Optional[str] = None
    created_at: datetime
    created_by: Optional[str] = None
    updated_at: Optional[datetime] = None
    updated_by: Optional[str] = None

    class Config:
        from_attributes = True
        use_enum_values = True


class ImportConfigurationExport(ImportConfigurationBase):
    """
    Portable shape of a configuration for export/import between environments.

    Carries every operator-editable field (credentials included) and none of
    the scheduling state, so importing an export yields an equivalent
    configuration with a fresh schedule.
    """

    class Config:
        from_attributes = True
        json_schema_extra = {
            "example": {
                "name": "Products feed",
                "target_source_id": "prod",
                "target_content_type": "Product",
                "api_url": "https://api.example.com/products",
                "http_method": "GET",
                "auth_type": "bearer",
                "auth_value_or_password": "token",
                "field_mappings": [
                    {"source_path": "title", "target_property": "Title"},
                    {"source_path": "price", "target_property": "Price", "transformation": "to_float"},
                ],
                "id_field_mapping": "sku",
                "json_path": "data.items",
                "schedule_frequency": "daily",
                "schedule_time_of_day": "02:00:00",
                "max_retries": 3,
            }
        }


# ============================================================================
# Index Sync Schemas
# ============================================================================

class SyncOutcome(BaseModel):
    """Response of a bulk push; rejected maps item id to the index's reason"""
    job_id: str
    items_sent: int
    rejected: Dict[str, str] = Field(default_factory=dict)
