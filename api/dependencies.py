"""
FastAPI dependencies shared by the routers
"""

from typing import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncSession

from core.database import get_session
from ingestion.executor import ImportExecutor
from ingestion.job import ImportJobDriver
from ingestion.scheduler import ImportScheduler
from ingestion.stores.sql_store import SqlConfigurationStore, SqlHistoryStore
from fastapi import Depends, Request


async def get_db() -> AsyncIterator[AsyncSession]:
    async for session in get_session():
        yield session


def get_job_driver(request: Request) -> ImportJobDriver:
    return request.app.state.job_driver


def get_executor(driver: ImportJobDriver = Depends(get_job_driver)) -> ImportExecutor:
    return driver.executor


def get_scheduler(db: AsyncSession = Depends(get_db)) -> ImportScheduler:
    return ImportScheduler(SqlConfigurationStore(db), SqlHistoryStore(db))
