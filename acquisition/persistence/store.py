"""Run record store used by the orchestrator and the scheduler.

:class:`RunStore` is the storage contract the pipeline depends on. It covers
run create/update/read, the scheduler singleton and a few history queries.
:class:`SqlRunStore` implements it on top of the SQLAlchemy session
factory, with one short transaction per call.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, List, Optional

from acquisition.domain.models import Run, RunStatus, SchedulerConfig, TriggerType

from .database import get_session
from .repositories import RunRepository, SchedulerConfigRepository


class RunStore(ABC):
    """Durable storage for run records and the scheduler configuration."""

    @abstractmethod
    def create_run(self, trigger_type: TriggerType, started_at: datetime) -> Run:
        """Insert a RUNNING run and return it with its assigned id."""

    @abstractmethod
    def update_run(self, run_id: int, **changes: Any) -> Run:
        """Apply field changes to a run and return the updated record."""

    @abstractmethod
    def get_run(self, run_id: int) -> Optional[Run]:
        """Return a run by id, or None."""

    @abstractmethod
    def list_runs(self, limit: int = 50) -> List[Run]:
        """Return the most recent runs, newest first."""

    @abstractmethod
    def count_runs(self, status: Optional[RunStatus] = None) -> int:
        """Count runs, optionally by status."""

    @abstractmethod
    def get_scheduler_config(self) -> Optional[SchedulerConfig]:
        """Return the scheduler configuration, or None if never created."""

    @abstractmethod
    def save_scheduler_config(self, config: SchedulerConfig) -> SchedulerConfig:
        """Create or overwrite the scheduler configuration."""


class SqlRunStore(RunStore):
    """RunStore backed by the database initialized with init_database()."""

    def create_run(self, trigger_type: TriggerType, started_at: datetime) -> Run:
        with get_session() as session:
            return RunRepository(session).create(trigger_type, started_at)

    def update_run(self, run_id: int, **changes: Any) -> Run:
        with get_session() as session:
            return RunRepository(session).update(run_id, **changes)

    def get_run(self, run_id: int) -> Optional[Run]:
        with get_session() as session:
            return RunRepository(session).get_by_id(run_id)

    def list_runs(self, limit: int = 50) -> List[Run]:
        with get_session() as session:
            return RunRepository(session).list_recent(limit)

    def count_runs(self, status: Optional[RunStatus] = None) -> int:
        with get_session() as session:
            return RunRepository(session).count(status)

    def get_scheduler_config(self) -> Optional[SchedulerConfig]:
        with get_session() as session:
            return SchedulerConfigRepository(session).get()

    def save_scheduler_config(self, config: SchedulerConfig) -> SchedulerConfig:
        with get_session() as session:
            return SchedulerConfigRepository(session).upsert(config)
