"""Database schema definition and ORM models.

Two tables back the orchestrator:
- pipeline_runs: one row per pipeline execution
- scheduler_config: the singleton recurring-trigger configuration (id = 1)

Timestamps are stored as ISO 8601 strings in UTC, enums as their values.
"""

from sqlalchemy import Boolean, Column, Index, Integer, String, Text, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base

from acquisition.domain.models import Run, RunStatus, SchedulerConfig, TriggerType
from acquisition.logging import get_logger
from acquisition.utils.timestamps import from_storage, to_storage

logger = get_logger(__name__, component="database")

Base = declarative_base()


class RunModel(Base):
    """ORM model for the pipeline_runs table."""

    __tablename__ = "pipeline_runs"

    # Ids are never reused
    id = Column(Integer, primary_key=True, autoincrement=True)

    status = Column(String(32), nullable=False, default=RunStatus.RUNNING.value)
    trigger_type = Column(String(16), nullable=False)

    started_at = Column(String(50), nullable=False)
    completed_at = Column(String(50), nullable=True)

    output = Column(Text, nullable=False, default="")
    error_message = Column(Text, nullable=True)

    sellers_processed = Column(Integer, nullable=False, default=0)
    products_scraped = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        Index("idx_pipeline_runs_started_at", "started_at"),
        Index("idx_pipeline_runs_status", "status"),
        {"sqlite_autoincrement": True},
    )

    def to_domain(self) -> Run:
        """Convert ORM row to the Run domain model."""
        return Run(
            id=self.id,
            status=RunStatus(self.status),
            trigger_type=TriggerType(self.trigger_type),
            started_at=from_storage(self.started_at),
            completed_at=from_storage(self.completed_at),
            output=self.output or "",
            error_message=self.error_message,
            sellers_processed=self.sellers_processed or 0,
            products_scraped=self.products_scraped or 0,
        )


class SchedulerConfigModel(Base):
    """ORM model for the scheduler_config table."""

    __tablename__ = "scheduler_config"

    id = Column(Integer, primary_key=True, autoincrement=False)
    enabled = Column(Boolean, nullable=False, default=False)
    cron_expr = Column(String(120), nullable=False)

    def to_domain(self) -> SchedulerConfig:
        return SchedulerConfig(id=self.id, enabled=self.enabled, cron_expr=self.cron_expr)

    @classmethod
    def from_domain(cls, config: SchedulerConfig) -> "SchedulerConfigModel":
        return cls(id=config.id, enabled=config.enabled, cron_expr=config.cron_expr)


# Run fields the orchestrator may change after creation, with their column encoders
RUN_COLUMN_ENCODERS = {
    "status": lambda value: RunStatus(value).value,
    "completed_at": to_storage,
    "output": lambda value: value or "",
    "error_message": lambda value: value,
    "sellers_processed": int,
    "products_scraped": int,
}


def create_schema(engine: Engine) -> None:
    """Create all tables and indexes if they don't exist (idempotent)."""
    try:
        Base.metadata.create_all(engine, checkfirst=True)
        tables = inspect(engine).get_table_names()
        logger.info(
            f"Database schema ready. Tables: {', '.join(tables)}",
            extra={"event": "database.schema.ready"},
        )
    except Exception as e:
        logger.error(f"Failed to create database schema: {e}", exc_info=True)
        raise
