"""
Storage abstractions consumed by the scheduler, job driver and API.

The import pipeline never talks to the database directly; it goes through
these two interfaces so the relational engine can be swapped (or faked in
tests) without touching scheduling logic.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from models.import_configuration import ImportConfiguration
from models.import_execution_history import ImportExecutionHistory
from schemas.imports import ExecutionStatistics


class ConfigurationStore(ABC):
    """Persistence for import configurations and their scheduling state"""

    @abstractmethod
    async def get(self, config_id: UUID) -> Optional[ImportConfiguration]:
        pass

    @abstractmethod
    async def list_all(self) -> List[ImportConfiguration]:
        pass

    @abstractmethod
    async def list_due(self, now: datetime, stale_before: datetime) -> List[ImportConfiguration]:
        """
        Active configurations whose schedule or retry time has arrived.

        Configurations held by a claim newer than ``stale_before`` are left out.
        """
        pass

    @abstractmethod
    async def add(self, config: ImportConfiguration) -> ImportConfiguration:
        pass

    @abstractmethod
    async def save(self, config: ImportConfiguration) -> ImportConfiguration:
        """Persist changes made to a loaded configuration."""
        pass

    @abstractmethod
    async def delete(self, config_id: UUID) -> bool:
        """Delete a configuration and its history; False when it does not exist."""
        pass

    @abstractmethod
    async def try_claim(self, config_id: UUID, now: datetime, stale_before: datetime) -> bool:
        """
        Atomically mark a configuration RUNNING.

        Succeeds when the configuration is not running, or when its claim
        started before ``stale_before``. Returns False otherwise.
        """
        pass


class HistoryStore(ABC):
    """Append-only execution history"""

    @abstractmethod
    async def append(self, entry: ImportExecutionHistory) -> ImportExecutionHistory:
        pass

    @abstractmethod
    async def get_by_configuration(self, config_id: UUID, limit: int = 50) -> List[ImportExecutionHistory]:
        """Newest first."""
        pass

    @abstractmethod
    async def get_recent_failures(self, config_id: UUID, limit: int = 10) -> List[ImportExecutionHistory]:
        pass

    @abstractmethod
    async def get_last_execution(self, config_id: UUID) -> Optional[ImportExecutionHistory]:
        pass

    @abstractmethod
    async def delete_by_configuration(self, config_id: UUID) -> int:
        pass

    @abstractmethod
    async def delete_older_than(self, cutoff: datetime) -> int:
        pass

    @abstractmethod
    async def get_statistics(self, config_id: UUID, from_date: Optional[datetime] = None) -> ExecutionStatistics:
        pass
