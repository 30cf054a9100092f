"""
Import job driver: one tick processes every due configuration in sequence.

Per configuration:
1. Claim it (skip when another runner holds it)
2. Validate it and resolve its content-type schema (skip on configuration errors)
3. Execute the import
4. Record exactly one history row and update scheduling state
5. Notify on recovery or on exhausted retries

One configuration's failure never stops the others.
"""

import logging
from typing import Callable, Optional, Tuple
from uuid import UUID

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from core.database import async_session_maker
from core.exceptions import (
    ConfigurationError,
    ImportAlreadyRunningError,
    ResourceNotFoundError,
    SchemaNotFoundError,
    SyncError,
)
from ingestion.executor import ImportExecutor
from ingestion.index_client import IndexClient
from ingestion.notifications import NotificationDispatcher
from ingestion.scheduler import ImportScheduler
from ingestion.stores.sql_store import SqlConfigurationStore, SqlHistoryStore
from models.base import ImportState, utcnow
from models.import_configuration import ImportConfiguration
from schemas.imports import ContentTypeSchema, ImportResult

logger = logging.getLogger(__name__)

NOTHING_DUE = "No import configurations are due for execution."

# Outcome labels returned by _process
SUCCEEDED, FAILED, SKIPPED = "succeeded", "failed", "skipped"


class ImportJobDriver:
    """
    Drives scheduled and manual import runs.

    Attributes:
        session_factory: Callable returning an AsyncSession context manager
        executor: ImportExecutor running the fetch → sync pipeline
        index_client: IndexClient used for schema lookup
        notifier: NotificationDispatcher for failure/recovery emails
    """

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession] = async_session_maker,
        executor: Optional[ImportExecutor] = None,
        index_client: Optional[IndexClient] = None,
        notifier: Optional[NotificationDispatcher] = None,
    ):
        self.session_factory = session_factory
        self.index_client = index_client or IndexClient()
        self.executor = executor or ImportExecutor(index_client=self.index_client)
        self.notifier = notifier or NotificationDispatcher()
        self.apscheduler = AsyncIOScheduler()
        self._stop_signaled = False

    def _scheduler_for(self, session: AsyncSession) -> ImportScheduler:
        return ImportScheduler(SqlConfigurationStore(session), SqlHistoryStore(session))

    # ========================================================================
    # Scheduled tick
    # ========================================================================

    def stop(self) -> None:
        """Ask a running tick to stop after the current configuration."""
        self._stop_signaled = True
        logger.info("Stop requested for import job")

    async def execute(self) -> str:
        """
        Process every due configuration once.

        Returns:
            Human-readable summary of the tick
        """
        self._stop_signaled = False
        logger.info("Import job started")

        processed = succeeded = failed = skipped = 0

        async with self.session_factory() as session:
            scheduler = self._scheduler_for(session)

            try:
                due = await scheduler.get_due_configurations(utcnow())
            except Exception as e:
                logger.error(f"Import job failed while listing due configurations: {e}", exc_info=True)
                return f"Job failed with error: {e}"

            if not due:
                logger.info(NOTHING_DUE)
                return NOTHING_DUE

            due_ids = [config.id for config in due]

            for position, config_id in enumerate(due_ids, start=1):
                if self._stop_signaled:
                    logger.info("Stop signal received, aborting import job")
                    break

                try:
                    # Reloaded by id: a rollback below expires every loaded instance
                    config = await scheduler.configurations.get(config_id)
                    if config is None:
                        continue

                    logger.info(f"Processing import '{config.name}' ({config_id}) [{position}/{len(due_ids)}]")
                    outcome, _ = await self._process(scheduler, config, was_scheduled=True)
                except Exception as e:
                    # Store failures; everything else becomes a recorded attempt in _process
                    logger.error(f"Error processing import {config_id}: {e}", exc_info=True)
                    await session.rollback()
                    await self._release_abandoned_claim(session, scheduler, config_id)
                    failed += 1
                    processed += 1
                    continue

                if outcome == SKIPPED:
                    skipped += 1
                    continue

                processed += 1
                if outcome == SUCCEEDED:
                    succeeded += 1
                else:
                    failed += 1

        message = f"Processed {processed} imports. Success: {succeeded}, Failed: {failed}, Skipped: {skipped}"
        logger.info(f"Import job completed: {message}")
        return message

    # ========================================================================
    # Manual run
    # ========================================================================

    async def run_manual(self, config_id: UUID) -> ImportResult:
        """
        Run one configuration now, outside its schedule.

        Raises:
            ResourceNotFoundError: Unknown configuration id
            ImportAlreadyRunningError: Another runner holds the configuration
            ConfigurationError: The configuration cannot be executed
        """
        async with self.session_factory() as session:
            scheduler = self._scheduler_for(session)

            config = await scheduler.configurations.get(config_id)
            if config is None:
                raise ResourceNotFoundError(
                    f"Import configuration {config_id} not found",
                    context={"config_id": str(config_id)}
                )

            _, result = await self._process(scheduler, config, was_scheduled=False)
            return result

    # ========================================================================
    # One configuration
    # ========================================================================

    async def _resolve_schema(self, config: ImportConfiguration) -> ContentTypeSchema:
        schema = await self.index_client.get_content_type_schema(
            config.target_source_id, config.target_content_type
        )
        if schema is None:
            raise SchemaNotFoundError(
                f"Content type '{config.target_content_type}' not found in source '{config.target_source_id}'",
                context={
                    "source_id": config.target_source_id,
                    "content_type": config.target_content_type,
                }
            )
        return schema

    async def _process(
        self,
        scheduler: ImportScheduler,
        config: ImportConfiguration,
        was_scheduled: bool,
    ) -> Tuple[str, Optional[ImportResult]]:
        if not await scheduler.begin_execution(config, utcnow()):
            if not was_scheduled:
                raise ImportAlreadyRunningError(
                    f"Import '{config.name}' is already running",
                    context={"config_id": str(config.id)}
                )
            logger.info(f"Import '{config.name}' is claimed by another runner, skipping")
            return SKIPPED, None

        # --------------------------------------------------
        # Pre-attempt checks: no history row on failure
        # --------------------------------------------------
        try:
            self.executor.validate_configuration(config)
            schema = await self._resolve_schema(config)
        except (ConfigurationError, SyncError) as e:
            logger.warning(
                f"Skipping import '{config.name}': {e}",
                extra={"error_context": e.to_dict()}
            )
            await scheduler.release(config)
            if not was_scheduled:
                raise
            return SKIPPED, None
        except Exception as e:
            logger.error(f"Unexpected error preparing import '{config.name}': {e}", exc_info=True)
            schema = None
            result = ImportResult.failed(str(e))

        # --------------------------------------------------
        # Attempt
        # --------------------------------------------------
        was_retry = (config.consecutive_failures or 0) > 0
        retry_attempt = config.consecutive_failures or 0

        if schema is not None:
            try:
                result = await self.executor.execute_import(config, schema, config.target_source_id)
            except Exception as e:
                logger.error(f"Unexpected error executing import '{config.name}': {e}", exc_info=True)
                result = ImportResult.failed(str(e))

        await scheduler.record_execution(
            config.id, result, was_retry, retry_attempt, was_scheduled=was_scheduled
        )
        await scheduler.update_configuration_after_execution(
            config,
            was_success=result.success,
            error_message=result.error_message,
            items_imported=result.items_imported,
        )

        # --------------------------------------------------
        # Notifications
        # --------------------------------------------------
        if result.success:
            logger.info(f"Import '{config.name}' succeeded: {result.items_imported} items imported")
            if was_retry:
                await self.notifier.send_recovery_notification(config, result)
            return SUCCEEDED, result

        logger.warning(f"Import '{config.name}' failed: {result.error_message}")
        if config.consecutive_failures >= config.max_retries and config.failure_notified_at is None:
            await self.notifier.send_failure_notification(config, result, config.consecutive_failures)
            await scheduler.mark_failure_notified(config)
        return FAILED, result

    async def _release_abandoned_claim(self, session: AsyncSession, scheduler: ImportScheduler, config_id: UUID) -> None:
        """Drop a claim left behind when recording an attempt failed."""
        try:
            config = await scheduler.configurations.get(config_id)
            if config is not None and config.state == ImportState.RUNNING:
                await scheduler.release(config)
        except Exception as e:
            logger.error(f"Could not release claim on import {config_id}: {e}", exc_info=True)
            await session.rollback()

    # ========================================================================
    # Housekeeping
    # ========================================================================

    async def prune_history(self) -> int:
        async with self.session_factory() as session:
            return await self._scheduler_for(session).prune_history()

    # ========================================================================
    # APScheduler lifecycle
    # ========================================================================

    def start(self) -> None:
        """Register the import tick and the daily history prune, then start."""
        self.apscheduler.add_job(
            self.execute,
            trigger=IntervalTrigger(minutes=settings.IMPORT_JOB_INTERVAL_MINUTES),
            id="import_job",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self.apscheduler.add_job(
            self.prune_history,
            trigger=CronTrigger(hour=3, minute=0),
            id="import_history_prune",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self.apscheduler.start()
        logger.info(f"Import scheduler started (every {settings.IMPORT_JOB_INTERVAL_MINUTES} minutes)")

    def shutdown(self) -> None:
        self.stop()
        if self.apscheduler.running:
            self.apscheduler.shutdown(wait=False)
        logger.info("Import scheduler stopped")
