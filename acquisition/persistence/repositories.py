"""Data access layer (repositories) for run and scheduler records.

Repositories operate on a caller-provided session and return domain models
rather than ORM rows.
"""

from datetime import datetime
from typing import Any, List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from acquisition.domain.models import (
    SCHEDULER_CONFIG_ID,
    Run,
    RunStatus,
    SchedulerConfig,
    TriggerType,
)
from acquisition.logging import get_logger
from acquisition.utils.timestamps import to_storage

from .exceptions import PersistenceError, RecordNotFoundError
from .schema import RUN_COLUMN_ENCODERS, RunModel, SchedulerConfigModel

logger = get_logger(__name__, component="database")


class RunRepository:
    """Repository for pipeline run records."""

    def __init__(self, session: Session):
        self.session = session

    def create(self, trigger_type: TriggerType, started_at: datetime) -> Run:
        """Insert a new run in RUNNING status.

        Args:
            trigger_type: MANUAL or SCHEDULED
            started_at: When the run was accepted (UTC)

        Returns:
            The persisted Run with its assigned id

        Raises:
            PersistenceError: If database error occurs
        """
        try:
            run_model = RunModel(
                status=RunStatus.RUNNING.value,
                trigger_type=TriggerType(trigger_type).value,
                started_at=to_storage(started_at),
                output="",
                sellers_processed=0,
                products_scraped=0,
            )
            self.session.add(run_model)
            self.session.flush()
            return run_model.to_domain()

        except SQLAlchemyError as e:
            logger.error(f"Error creating run: {e}", exc_info=True)
            raise PersistenceError(f"Failed to create run: {e}") from e

    def update(self, run_id: int, **changes: Any) -> Run:
        """Apply field changes to an existing run.

        Accepted fields: status, completed_at, output, error_message,
        sellers_processed, products_scraped.

        Raises:
            ValueError: If an unknown field is passed
            RecordNotFoundError: If run_id doesn't exist
            PersistenceError: If database error occurs
        """
        unknown = set(changes) - set(RUN_COLUMN_ENCODERS)
        if unknown:
            raise ValueError(f"Cannot update run fields: {', '.join(sorted(unknown))}")

        try:
            run_model = self.session.get(RunModel, run_id)
            if run_model is None:
                raise RecordNotFoundError(f"Run {run_id} not found")

            for field_name, value in changes.items():
                setattr(run_model, field_name, RUN_COLUMN_ENCODERS[field_name](value))

            self.session.flush()
            return run_model.to_domain()

        except RecordNotFoundError:
            raise
        except SQLAlchemyError as e:
            logger.error(f"Error updating run {run_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to update run: {e}") from e

    def get_by_id(self, run_id: int) -> Optional[Run]:
        """Retrieve a run by id, or None if it doesn't exist."""
        try:
            run_model = self.session.get(RunModel, run_id)
            return run_model.to_domain() if run_model else None

        except SQLAlchemyError as e:
            logger.error(f"Error retrieving run {run_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve run: {e}") from e

    def list_recent(self, limit: int = 50) -> List[Run]:
        """Most recent runs first.

        Raises:
            PersistenceError: If database error occurs
        """
        try:
            stmt = select(RunModel).order_by(RunModel.id.desc()).limit(limit)
            return [row.to_domain() for row in self.session.execute(stmt).scalars().all()]

        except SQLAlchemyError as e:
            logger.error(f"Error listing runs: {e}", exc_info=True)
            raise PersistenceError(f"Failed to list runs: {e}") from e

    def count(self, status: Optional[RunStatus] = None) -> int:
        """Count runs, optionally restricted to one status."""
        try:
            stmt = select(func.count()).select_from(RunModel)
            if status is not None:
                stmt = stmt.where(RunModel.status == RunStatus(status).value)
            return int(self.session.execute(stmt).scalar_one())

        except SQLAlchemyError as e:
            logger.error(f"Error counting runs: {e}", exc_info=True)
            raise PersistenceError(f"Failed to count runs: {e}") from e


class SchedulerConfigRepository:
    """Repository for the singleton scheduler configuration row."""

    def __init__(self, session: Session):
        self.session = session

    def get(self) -> Optional[SchedulerConfig]:
        """Return the configuration, or None if it was never created."""
        try:
            row = self.session.get(SchedulerConfigModel, SCHEDULER_CONFIG_ID)
            return row.to_domain() if row else None

        except SQLAlchemyError as e:
            logger.error(f"Error reading scheduler config: {e}", exc_info=True)
            raise PersistenceError(f"Failed to read scheduler config: {e}") from e

    def upsert(self, config: SchedulerConfig) -> SchedulerConfig:
        """Create the row if missing, otherwise overwrite enabled and cron_expr."""
        try:
            row = self.session.get(SchedulerConfigModel, SCHEDULER_CONFIG_ID)

            if row is None:
                row = SchedulerConfigModel.from_domain(
                    config.model_copy(update={"id": SCHEDULER_CONFIG_ID})
                )
                self.session.add(row)
            else:
                row.enabled = config.enabled
                row.cron_expr = config.cron_expr

            self.session.flush()
            return row.to_domain()

        except SQLAlchemyError as e:
            logger.error(f"Error saving scheduler config: {e}", exc_info=True)
            raise PersistenceError(f"Failed to save scheduler config: {e}") from e
