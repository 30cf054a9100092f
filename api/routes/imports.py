"""
Import configuration endpoints: CRUD, operator tools, history and export
"""

from datetime import datetime, timezone
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, Response, status
from api.dependencies import get_executor, get_job_driver, get_scheduler
from core.exceptions import ResourceNotFoundError
from ingestion.executor import ImportExecutor
from ingestion.job import ImportJobDriver
from ingestion.scheduler import ImportScheduler
from models.import_configuration import ImportConfiguration
from schemas.imports import (
    ConnectionTestResult,
    ExecutionHistoryResponse,
    ExecutionStatistics,
    ImportConfigurationBase,
    ImportConfigurationCreate,
    ImportConfigurationExport,
    ImportConfigurationResponse,
    ImportConfigurationUpdate,
    ImportResult,
    PreviewResult,
)
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/imports", tags=["Imports"])

_SCHEDULE_FIELDS = (
    "schedule_frequency",
    "schedule_interval_value",
    "schedule_time_of_day",
    "schedule_day_of_week",
    "schedule_day_of_month",
    "is_active",
)


def _column_values(payload: ImportConfigurationBase) -> dict:
    """Editable fields as ORM column values."""
    values = payload.model_dump(exclude={"created_by", "updated_by"})
    values["field_mappings"] = [m.model_dump(mode="json") for m in payload.field_mappings]
    return values


async def _load(scheduler: ImportScheduler, config_id: UUID) -> ImportConfiguration:
    config = await scheduler.configurations.get(config_id)
    if config is None:
        raise ResourceNotFoundError(
            f"Import configuration {config_id} not found",
            context={"config_id": str(config_id)}
        )
    return config


async def _create(scheduler: ImportScheduler, payload: ImportConfigurationBase, created_by: Optional[str]) -> ImportConfiguration:
    config = ImportConfiguration(**_column_values(payload), created_by=created_by)
    config = await scheduler.configurations.add(config)
    return await scheduler.initialize_schedule(config)


# ============================================================================
# Export / import (declared before /{config_id})
# ============================================================================

@router.get("/export", response_model=List[ImportConfigurationExport])
async def export_configurations(scheduler: ImportScheduler = Depends(get_scheduler)):
    """Every configuration in its portable form."""
    configs = await scheduler.configurations.list_all()
    return [ImportConfigurationExport.model_validate(config) for config in configs]


@router.post("/import", response_model=List[ImportConfigurationResponse], status_code=status.HTTP_201_CREATED)
async def import_configurations(
    payload: List[ImportConfigurationExport],
    scheduler: ImportScheduler = Depends(get_scheduler),
):
    """Create one configuration per exported entry, each with a fresh schedule."""
    created = [await _create(scheduler, entry, created_by="import") for entry in payload]
    logger.info(f"Imported {len(created)} import configurations")
    return created


# ============================================================================
# CRUD
# ============================================================================

@router.get("", response_model=List[ImportConfigurationResponse])
async def list_configurations(scheduler: ImportScheduler = Depends(get_scheduler)):
    return await scheduler.configurations.list_all()


@router.post("", response_model=ImportConfigurationResponse, status_code=status.HTTP_201_CREATED)
async def create_configuration(
    payload: ImportConfigurationCreate,
    scheduler: ImportScheduler = Depends(get_scheduler),
):
    return await _create(scheduler, payload, created_by=payload.created_by)


@router.get("/{config_id}", response_model=ImportConfigurationResponse)
async def get_configuration(config_id: UUID, scheduler: ImportScheduler = Depends(get_scheduler)):
    return await _load(scheduler, config_id)


@router.put("/{config_id}", response_model=ImportConfigurationResponse)
async def update_configuration(
    config_id: UUID,
    payload: ImportConfigurationUpdate,
    scheduler: ImportScheduler = Depends(get_scheduler),
):
    """
    Replace the editable fields of a configuration.

    A change to the schedule (or re-activation) recomputes the next run.
    """
    config = await _load(scheduler, config_id)
    values = _column_values(payload)

    schedule_changed = any(getattr(config, field) != values[field] for field in _SCHEDULE_FIELDS)

    for field, value in values.items():
        setattr(config, field, value)
    config.updated_by = payload.updated_by

    if schedule_changed:
        return await scheduler.initialize_schedule(config)
    return await scheduler.configurations.save(config)


@router.delete("/{config_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_configuration(config_id: UUID, scheduler: ImportScheduler = Depends(get_scheduler)):
    if not await scheduler.configurations.delete(config_id):
        raise ResourceNotFoundError(
            f"Import configuration {config_id} not found",
            context={"config_id": str(config_id)}
        )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ============================================================================
# Operator tools
# ============================================================================

@router.post("/{config_id}/test-connection", response_model=ConnectionTestResult)
async def test_connection(
    config_id: UUID,
    scheduler: ImportScheduler = Depends(get_scheduler),
    executor: ImportExecutor = Depends(get_executor),
):
    config = await _load(scheduler, config_id)
    return await executor.test_connection(config)


@router.post("/{config_id}/preview", response_model=PreviewResult)
async def preview_import(
    config_id: UUID,
    scheduler: ImportScheduler = Depends(get_scheduler),
    executor: ImportExecutor = Depends(get_executor),
):
    config = await _load(scheduler, config_id)
    return await executor.preview_import(config)


@router.post("/{config_id}/run", response_model=ImportResult)
async def run_import(
    config_id: UUID,
    request: Request,
    driver: ImportJobDriver = Depends(get_job_driver),
):
    """Run an import now; the attempt is recorded like a scheduled one."""
    request_id = getattr(request.state, "request_id", None)
    logger.info(f"[{request_id}] Manual run requested for {config_id}")
    return await driver.run_manual(config_id)


@router.post("/{config_id}/schedule/initialize", response_model=ImportConfigurationResponse)
async def initialize_schedule(config_id: UUID, scheduler: ImportScheduler = Depends(get_scheduler)):
    config = await _load(scheduler, config_id)
    return await scheduler.initialize_schedule(config)


# ============================================================================
# History
# ============================================================================

@router.get("/{config_id}/history", response_model=List[ExecutionHistoryResponse])
async def get_history(
    config_id: UUID,
    limit: int = Query(50, ge=1, le=500, description="Number of executions to return"),
    failures_only: bool = Query(False, description="Only failed executions"),
    scheduler: ImportScheduler = Depends(get_scheduler),
):
    await _load(scheduler, config_id)
    if failures_only:
        return await scheduler.history.get_recent_failures(config_id, limit=limit)
    return await scheduler.history.get_by_configuration(config_id, limit=limit)


@router.get("/{config_id}/statistics", response_model=ExecutionStatistics)
async def get_statistics(
    config_id: UUID,
    from_date: Optional[datetime] = Query(None, description="Only executions at or after this time (UTC)"),
    scheduler: ImportScheduler = Depends(get_scheduler),
):
    await _load(scheduler, config_id)
    if from_date is not None and from_date.tzinfo is not None:
        from_date = from_date.astimezone(timezone.utc).replace(tzinfo=None)
    return await scheduler.history.get_statistics(config_id, from_date=from_date)
