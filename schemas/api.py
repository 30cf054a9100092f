"""
Pydantic schemas for API request/response models
"""

from pydantic import BaseModel, Field, validator
from typing import Optional
from datetime import datetime

from models.base import utcnow

# ============================================================================
# Health Check Schemas
# ============================================================================

class HealthCheckResponse(BaseModel):
    """Health check response model"""
    timestamp: datetime = Field(default_factory=utcnow)
    database_connected: bool
    scheduler_running: bool = False
    total_configurations: int = 0
    active_configurations: int = 0
    failing_configurations: int = 0
    # Declared last so the validator sees the counters
    status: str = Field("healthy", description="Overall system status: healthy, degraded, unhealthy")

    @validator("status", pre=True, always=True)
    def determine_status(cls, v, values):
        """Determine overall health status"""
        if not values.get("database_connected", False):
            return "unhealthy"

        failing = values.get("failing_configurations", 0)
        active = values.get("active_configurations", 0)

        if active == 0 or failing == 0:
            return "healthy"
        elif failing < active:
            return "degraded"
        else:
            return "unhealthy"

    class Config:
        json_schema_extra = {
            "example": {
                "status": "healthy",
                "timestamp": "2024-01-15T10:30:00Z",
                "database_connected": True,
                "scheduler_running": True,
                "total_configurations": 4,
                "active_configurations": 3,
                "failing_configurations": 0,
            }
        }


# ============================================================================
# Error Response Schema
# ============================================================================

class ErrorResponse(BaseModel):
    """Standard error response"""
    error: str
    detail: Optional[str] = None
    timestamp: datetime = Field(default_factory=utcnow)

    class Config:
        json_schema_extra = {
            "example": {
                "error": "ResourceNotFoundError",
                "detail": "Import configuration 550e8400-e29b-41d4-a716-446655440000 not found",
                "timestamp": "2024-01-15T10:30:00Z"
            }
        }
