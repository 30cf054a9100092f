"""
Import scheduling: which configurations are due, when they run next, and
how their retry state evolves after each attempt.

Times are naive UTC throughout, matching the DateTime columns.
"""

import calendar
from datetime import datetime, time, timedelta, timezone
from typing import List, Optional
from uuid import UUID

from core.config import settings
from core.exceptions import ImportAlreadyRunningError
from ingestion.state import can_transition, resting_state, transition
from ingestion.stores.base import ConfigurationStore, HistoryStore
from models.base import ImportState, ScheduleFrequency, utcnow
from models.import_configuration import ImportConfiguration
from models.import_execution_history import ImportExecutionHistory
from schemas.imports import ImportResult
import logging

logger = logging.getLogger(__name__)

# Minutes to wait before retry n (1-based); the last entry is the cap
RETRY_DELAYS_MINUTES = (1, 5, 15, 30)


def _as_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class ImportScheduler:
    """
    Owns the scheduling fields of import configurations.

    Attributes:
        configurations: ConfigurationStore used for due lookups and updates
        history: HistoryStore receiving one row per attempt
        claim_timeout: Age after which a RUNNING claim is considered abandoned
    """

    def __init__(
        self,
        configurations: ConfigurationStore,
        history: HistoryStore,
        claim_timeout: Optional[timedelta] = None,
    ):
        self.configurations = configurations
        self.history = history
        self.claim_timeout = claim_timeout or timedelta(minutes=settings.RUN_CLAIM_TIMEOUT_MINUTES)

    # ========================================================================
    # Time calculations
    # ========================================================================

    @staticmethod
    def calculate_next_run_time(config, from_time: datetime) -> Optional[datetime]:
        """
        Next normal-cadence run strictly after ``from_time``.

        Hourly adds schedule_interval_value hours (minimum 1). Daily, weekly
        and monthly pick the next occurrence of schedule_time_of_day (midnight
        when unset) on the configured day; a monthly day past the end of a
        short month falls on that month's last day. Returns None for
        ScheduleFrequency.NONE.
        """
        from_time = _as_naive_utc(from_time)
        frequency = ScheduleFrequency(config.schedule_frequency or ScheduleFrequency.NONE)
        time_of_day = config.schedule_time_of_day or time(0, 0)

        if frequency is ScheduleFrequency.NONE:
            return None

        if frequency is ScheduleFrequency.HOURLY:
            hours = max(1, config.schedule_interval_value or 1)
            return from_time + timedelta(hours=hours)

        if frequency is ScheduleFrequency.DAILY:
            candidate = datetime.combine(from_time.date(), time_of_day)
            if candidate <= from_time:
                candidate += timedelta(days=1)
            return candidate

        if frequency is ScheduleFrequency.WEEKLY:
            weekday = config.schedule_day_of_week if config.schedule_day_of_week is not None else 0
            days_ahead = (weekday - from_time.weekday()) % 7
            candidate = datetime.combine(from_time.date() + timedelta(days=days_ahead), time_of_day)
            if candidate <= from_time:
                candidate += timedelta(days=7)
            return candidate

        # Monthly
        day_of_month = config.schedule_day_of_month or 1
        year, month = from_time.year, from_time.month
        while True:
            day = min(day_of_month, calendar.monthrange(year, month)[1])
            candidate = datetime.combine(datetime(year, month, day).date(), time_of_day)
            if candidate > from_time:
                return candidate
            year, month = (year + 1, 1) if month == 12 else (year, month + 1)

    @staticmethod
    def calculate_retry_delay(consecutive_failures: int) -> timedelta:
        """1 → 1 min, 2 → 5 min, 3 → 15 min, 4 and above → 30 min."""
        index = min(max(consecutive_failures, 1), len(RETRY_DELAYS_MINUTES)) - 1
        return timedelta(minutes=RETRY_DELAYS_MINUTES[index])

    # ========================================================================
    # Due lookup and claims
    # ========================================================================

    async def get_due_configurations(self, now: Optional[datetime] = None) -> List[ImportConfiguration]:
        """
        Active configurations whose schedule or retry time is at or before now.

        Each returned configuration is moved to DUE.
        """
        now = _as_naive_utc(now or utcnow())
        due = await self.configurations.list_due(now, now - self.claim_timeout)

        for config in due:
            if can_transition(config.state, ImportState.DUE):
                transition(config, ImportState.DUE)
                await self.configurations.save(config)

        logger.info(f"Found {len(due)} import configurations due at {now.isoformat()}")
        return due

    async def begin_execution(self, config: ImportConfiguration, now: Optional[datetime] = None) -> bool:
        """Claim ``config`` for one attempt; False when another runner holds it."""
        now = _as_naive_utc(now or utcnow())
        return await self.configurations.try_claim(config.id, now, now - self.claim_timeout)

    async def release(self, config: ImportConfiguration) -> None:
        """Drop a claim without recording an attempt."""
        config.running_since = None
        transition(config, resting_state(config))
        await self.configurations.save(config)

    # ========================================================================
    # Recording attempts
    # ========================================================================

    async def record_execution(
        self,
        config_id: UUID,
        result: ImportResult,
        was_retry: bool,
        retry_attempt: int,
        was_scheduled: bool = True,
        executed_at: Optional[datetime] = None,
    ) -> ImportExecutionHistory:
        entry = ImportExecutionHistory(
            import_configuration_id=config_id,
            executed_at=_as_naive_utc(executed_at or utcnow()),
            success=result.success,
            items_received=result.total_items_received,
            items_imported=result.items_imported,
            items_skipped=result.items_skipped,
            items_failed=result.items_failed,
            duration_seconds=result.duration_seconds,
            error_message=result.error_message,
            warnings=list(result.warnings) or None,
            was_retry=was_retry,
            retry_attempt=retry_attempt,
            was_scheduled=was_scheduled,
        )
        return await self.history.append(entry)

    async def update_configuration_after_execution(
        self,
        config: ImportConfiguration,
        was_success: bool,
        error_message: Optional[str] = None,
        now: Optional[datetime] = None,
        items_imported: Optional[int] = None,
    ) -> ImportConfiguration:
        """
        Apply the outcome of an attempt to the configuration's scheduling state.

        Success resets the failure counter and retry time and schedules the
        next normal run. Failure increments the counter and sets the next
        retry time from the backoff table. A future scheduled run is left
        untouched; one that has already passed moves to the next occurrence,
        so retries are driven by next_retry_at alone.
        """
        now = _as_naive_utc(now or utcnow())

        if config.state != ImportState.RUNNING:
            transition(config, ImportState.RUNNING)

        config.running_since = None
        config.last_import_at = now
        config.last_import_success = was_success

        if was_success:
            transition(config, ImportState.SUCCEEDED)
            config.consecutive_failures = 0
            config.next_retry_at = None
            config.failure_notified_at = None
            config.next_scheduled_run_at = self.calculate_next_run_time(config, now)
            config.last_import_count = items_imported
            config.last_import_error = None
            transition(config, resting_state(config))
        else:
            transition(config, ImportState.FAILED)
            config.consecutive_failures = (config.consecutive_failures or 0) + 1
            config.next_retry_at = now + self.calculate_retry_delay(config.consecutive_failures)
            if config.next_scheduled_run_at is not None and config.next_scheduled_run_at <= now:
                # A passed slot must not keep the configuration due on every tick
                config.next_scheduled_run_at = self.calculate_next_run_time(config, now)
            config.last_import_error = error_message
            transition(config, ImportState.RETRY_PENDING)

            logger.warning(
                f"Import '{config.name}' failed ({config.consecutive_failures} consecutive), "
                f"retry at {config.next_retry_at.isoformat()}"
            )

        return await self.configurations.save(config)

    async def mark_failure_notified(self, config: ImportConfiguration, now: Optional[datetime] = None) -> None:
        config.failure_notified_at = _as_naive_utc(now or utcnow())
        await self.configurations.save(config)

    # ========================================================================
    # Operator actions
    # ========================================================================

    async def initialize_schedule(self, config: ImportConfiguration, now: Optional[datetime] = None) -> ImportConfiguration:
        """
        Reset retry state and set the first future run.

        Raises:
            ImportAlreadyRunningError: The configuration holds a live claim
        """
        now = _as_naive_utc(now or utcnow())

        if (
            config.state == ImportState.RUNNING
            and config.running_since is not None
            and config.running_since >= now - self.claim_timeout
        ):
            raise ImportAlreadyRunningError(
                f"Import '{config.name}' is running",
                context={"config_id": str(config.id)}
            )

        config.consecutive_failures = 0
        config.next_retry_at = None
        config.failure_notified_at = None
        config.running_since = None
        config.next_scheduled_run_at = self.calculate_next_run_time(config, now)
        transition(config, resting_state(config))

        logger.info(
            f"Initialized schedule for '{config.name}': next run "
            f"{config.next_scheduled_run_at.isoformat() if config.next_scheduled_run_at else 'none'}"
        )
        return await self.configurations.save(config)

    async def prune_history(self, now: Optional[datetime] = None) -> int:
        now = _as_naive_utc(now or utcnow())
        cutoff = now - timedelta(days=settings.HISTORY_RETENTION_DAYS)
        return await self.history.delete_older_than(cutoff)
