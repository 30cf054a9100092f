"""
Health check endpoint with database and import status
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, text, case
from api.dependencies import get_db
from schemas.api import HealthCheckResponse
from models.import_configuration import ImportConfiguration
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthCheckResponse)
async def health_check(request: Request, db: AsyncSession = Depends(get_db)):
    """
    Health check endpoint.

    Returns:
    - Database connectivity status
    - Whether the import scheduler is running
    - Configuration counts (total, active, currently failing)
    """
    db_connected = False

    try:
        await db.execute(text("SELECT 1"))
        db_connected = True
    except Exception as e:
        logger.error(f"Database connection failed: {str(e)}")

    total = active = failing = 0

    if db_connected:
        try:
            C = ImportConfiguration
            row = (await db.execute(
                select(
                    func.count(C.id),
                    func.sum(case((C.is_active.is_(True), 1), else_=0)),
                    func.sum(case(((C.is_active.is_(True)) & (C.consecutive_failures > 0), 1), else_=0)),
                )
            )).one()
            total, active, failing = row[0] or 0, int(row[1] or 0), int(row[2] or 0)
        except Exception as e:
            logger.error(f"Failed to count import configurations: {str(e)}")

    driver = getattr(request.app.state, "job_driver", None)

    return HealthCheckResponse(
        database_connected=db_connected,
        scheduler_running=bool(driver and driver.apscheduler.running),
        total_configurations=total,
        active_configurations=active,
        failing_configurations=failing,
    )
