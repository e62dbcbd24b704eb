"""Core domain models for pipeline runs and scheduling.

This module defines the data structures shared by the orchestrator, the
scheduler and the persistence layer:
- RunStatus / TriggerType / PipelineStep: enumerations of run lifecycle values
- Run: one row per pipeline execution
- SchedulerConfig: the singleton recurring-trigger configuration
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from acquisition.utils.timestamps import ensure_utc

DEFAULT_CRON_EXPRESSION = "0 9,21 * * *"
SCHEDULER_CONFIG_ID = 1


class RunStatus(str, Enum):
    """Persisted status of a pipeline run."""

    RUNNING = "RUNNING"
    ENRICHING = "ENRICHING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    AUTH_REQUIRED = "AUTH_REQUIRED"
    ENRICHMENT_FAILED = "ENRICHMENT_FAILED"
    PROCESSING_FAILED = "PROCESSING_FAILED"

    @property
    def is_terminal(self) -> bool:
        """Whether the run has finished (successfully or not)."""
        return self not in (RunStatus.RUNNING, RunStatus.ENRICHING, RunStatus.PROCESSING)


class TriggerType(str, Enum):
    """How a run was started."""

    MANUAL = "MANUAL"
    SCHEDULED = "SCHEDULED"


class PipelineStep(str, Enum):
    """In-memory step of the orchestrator; never persisted."""

    IDLE = "IDLE"
    SCRAPING = "SCRAPING"
    ENRICHING = "ENRICHING"
    PROCESSING = "PROCESSING"


class Run(BaseModel):
    """A single end-to-end execution of the three-stage pipeline.

    The orchestrator is the only writer. ``output`` holds the concatenated
    stdout/stderr of every stage that ran and is filled in at finalization.
    """

    id: int = Field(..., ge=1, description="Monotonically assigned run identifier")
    status: RunStatus = Field(RunStatus.RUNNING, description="Current run status")
    trigger_type: TriggerType = Field(..., description="MANUAL or SCHEDULED")
    started_at: datetime = Field(..., description="When the run was accepted (UTC)")
    completed_at: Optional[datetime] = Field(None, description="When the run finished (UTC)")
    output: str = Field("", description="Combined output of all stages")
    error_message: Optional[str] = Field(None, description="Failure reason, if any")
    sellers_processed: int = Field(0, ge=0)
    products_scraped: int = Field(0, ge=0)

    @field_validator("started_at", "completed_at")
    @classmethod
    def normalize_timestamps(cls, v: Optional[datetime]) -> Optional[datetime]:
        """Ensure timestamps are timezone-aware UTC."""
        return ensure_utc(v)

    @property
    def is_finished(self) -> bool:
        """Whether the run reached a terminal status."""
        return self.status.is_terminal


class SchedulerConfig(BaseModel):
    """Singleton configuration for the recurring pipeline trigger."""

    id: int = Field(SCHEDULER_CONFIG_ID, description="Always 1")
    enabled: bool = Field(False, description="Whether scheduled runs are active")
    cron_expr: str = Field(
        DEFAULT_CRON_EXPRESSION, description="Five-field crontab expression"
    )

    @field_validator("cron_expr")
    @classmethod
    def strip_cron_expr(cls, v: str) -> str:
        """Collapse surrounding whitespace in the expression."""
        return " ".join(v.split())

    @classmethod
    def default(cls) -> "SchedulerConfig":
        """Disabled configuration with the twice-daily expression."""
        return cls(id=SCHEDULER_CONFIG_ID, enabled=False, cron_expr=DEFAULT_CRON_EXPRESSION)
