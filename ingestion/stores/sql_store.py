"""
SQLAlchemy implementations of the configuration and history stores.

Every mutating call commits its own transaction, so a failure recorded for
one configuration is durable before the next configuration is processed.
"""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy import and_, case, delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ingestion.stores.base import ConfigurationStore, HistoryStore
from models.base import ImportState, ScheduleFrequency
from models.import_configuration import ImportConfiguration
from models.import_execution_history import ImportExecutionHistory
from schemas.imports import ExecutionStatistics
import logging

logger = logging.getLogger(__name__)


class SqlConfigurationStore(ConfigurationStore):

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    async def get(self, config_id: UUID) -> Optional[ImportConfiguration]:
        return await self.db.get(ImportConfiguration, config_id)

    async def list_all(self) -> List[ImportConfiguration]:
        result = await self.db.execute(
            select(ImportConfiguration).order_by(ImportConfiguration.created_at)
        )
        return list(result.scalars().all())

    async def list_due(self, now: datetime, stale_before: datetime) -> List[ImportConfiguration]:
        C = ImportConfiguration

        schedule_due = and_(
            C.schedule_frequency != ScheduleFrequency.NONE,
            C.next_scheduled_run_at.isnot(None),
            C.next_scheduled_run_at <= now,
        )
        retry_due = and_(
            C.consecutive_failures > 0,
            C.next_retry_at.isnot(None),
            C.next_retry_at <= now,
        )
        not_held = or_(
            C.state != ImportState.RUNNING,
            C.running_since.is_(None),
            C.running_since < stale_before,
        )

        result = await self.db.execute(
            select(C)
            .where(C.is_active.is_(True), or_(schedule_due, retry_due), not_held)
            .order_by(C.created_at)
        )
        return list(result.scalars().all())

    async def add(self, config: ImportConfiguration) -> ImportConfiguration:
        self.db.add(config)
        await self.db.commit()
        await self.db.refresh(config)
        logger.info(f"Created import configuration '{config.name}' ({config.id})")
        return config

    async def save(self, config: ImportConfiguration) -> ImportConfiguration:
        self.db.add(config)
        await self.db.commit()
        return config

    async def delete(self, config_id: UUID) -> bool:
        # History is removed explicitly; SQLite does not enforce ON DELETE CASCADE by default
        await self.db.execute(
            delete(ImportExecutionHistory).where(ImportExecutionHistory.import_configuration_id == config_id)
        )
        result = await self.db.execute(
            delete(ImportConfiguration).where(ImportConfiguration.id == config_id)
        )
        await self.db.commit()

        deleted = result.rowcount > 0
        if deleted:
            logger.info(f"Deleted import configuration {config_id}")
        return deleted

    async def try_claim(self, config_id: UUID, now: datetime, stale_before: datetime) -> bool:
        C = ImportConfiguration

        result = await self.db.execute(
            update(C)
            .where(
                C.id == config_id,
                or_(
                    C.state != ImportState.RUNNING,
                    C.running_since.is_(None),
                    C.running_since < stale_before,
                ),
            )
            .values(state=ImportState.RUNNING, running_since=now)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()

        claimed = result.rowcount == 1
        if claimed:
            config = await self.get(config_id)
            if config is not None:
                await self.db.refresh(config)
        else:
            logger.info(f"Import configuration {config_id} is already claimed by another runner")
        return claimed


class SqlHistoryStore(HistoryStore):

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    async def append(self, entry: ImportExecutionHistory) -> ImportExecutionHistory:
        self.db.add(entry)
        await self.db.commit()
        return entry

    async def get_by_configuration(self, config_id: UUID, limit: int = 50) -> List[ImportExecutionHistory]:
        H = ImportExecutionHistory
        result = await self.db.execute(
            select(H)
            .where(H.import_configuration_id == config_id)
            .order_by(H.executed_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def get_recent_failures(self, config_id: UUID, limit: int = 10) -> List[ImportExecutionHistory]:
        H = ImportExecutionHistory
        result = await self.db.execute(
            select(H)
            .where(H.import_configuration_id == config_id, H.success.is_(False))
            .order_by(H.executed_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def get_last_execution(self, config_id: UUID) -> Optional[ImportExecutionHistory]:
        entries = await self.get_by_configuration(config_id, limit=1)
        return entries[0] if entries else None

    async def delete_by_configuration(self, config_id: UUID) -> int:
        result = await self.db.execute(
            delete(ImportExecutionHistory).where(ImportExecutionHistory.import_configuration_id == config_id)
        )
        await self.db.commit()
        return result.rowcount

    async def delete_older_than(self, cutoff: datetime) -> int:
        result = await self.db.execute(
            delete(ImportExecutionHistory).where(ImportExecutionHistory.executed_at < cutoff)
        )
        await self.db.commit()

        logger.info(f"Pruned {result.rowcount} execution history rows older than {cutoff.isoformat()}")
        return result.rowcount

    async def get_statistics(self, config_id: UUID, from_date: Optional[datetime] = None) -> ExecutionStatistics:
        """
        Aggregate history for one configuration.

        success_rate is a percentage rounded to one decimal place and is 0
        when there is no history.
        """
        H = ImportExecutionHistory

        conditions = [H.import_configuration_id == config_id]
        if from_date is not None:
            conditions.append(H.executed_at >= from_date)

        totals = (await self.db.execute(
            select(
                func.count(H.id),
                func.sum(case((H.success.is_(True), 1), else_=0)),
                func.avg(H.duration_seconds),
                func.sum(H.items_imported),
            ).where(*conditions)
        )).one()

        total, successful, avg_duration, items_imported = totals
        total = total or 0
        successful = int(successful or 0)

        if total == 0:
            return ExecutionStatistics()

        last_success = (await self.db.execute(
            select(func.max(H.executed_at)).where(*conditions, H.success.is_(True))
        )).scalar()
        last_failure = (await self.db.execute(
            select(func.max(H.executed_at)).where(*conditions, H.success.is_(False))
        )).scalar()

        return ExecutionStatistics(
            total_executions=total,
            successful_executions=successful,
            failed_executions=total - successful,
            success_rate=round(successful / total * 100, 1),
            average_duration_seconds=round(float(avg_duration or 0.0), 2),
            total_items_imported=int(items_imported or 0),
            last_successful_execution=last_success,
            last_failed_execution=last_failure,
        )
