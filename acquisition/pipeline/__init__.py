"""Pipeline orchestration: external stage execution, output streaming and run lifecycle."""

from .broadcaster import OutputBroadcaster, OutputStream
from .exceptions import AlreadyRunningError, PipelineError
from .models import (
    OutputEvent,
    OutputKind,
    PipelineOutcome,
    PipelineStatus,
    ProcessResult,
    RunStatistics,
    StartResult,
)
from .orchestrator import PIPELINE_STAGES, PipelineOrchestrator, StageDefinition
from .process import ProcessRunner
from .statistics import parse_run_statistics

__all__ = [
    "PipelineOrchestrator",
    "ProcessRunner",
    "OutputBroadcaster",
    "OutputStream",
    "parse_run_statistics",
    "PIPELINE_STAGES",
    "StageDefinition",
    # Models
    "OutputEvent",
    "OutputKind",
    "ProcessResult",
    "RunStatistics",
    "PipelineOutcome",
    "StartResult",
    "PipelineStatus",
    # Exceptions
    "PipelineError",
    "AlreadyRunningError",
]
