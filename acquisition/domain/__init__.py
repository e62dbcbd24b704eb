"""Domain models for pipeline runs and scheduler configuration."""

from .models import (
    DEFAULT_CRON_EXPRESSION,
    SCHEDULER_CONFIG_ID,
    PipelineStep,
    Run,
    RunStatus,
    SchedulerConfig,
    TriggerType,
)

__all__ = [
    "Run",
    "RunStatus",
    "TriggerType",
    "PipelineStep",
    "SchedulerConfig",
    "DEFAULT_CRON_EXPRESSION",
    "SCHEDULER_CONFIG_ID",
]
