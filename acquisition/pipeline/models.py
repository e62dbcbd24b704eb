"""Data models for pipeline execution, output streaming and status reporting."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from acquisition.domain.models import PipelineStep, RunStatus
from acquisition.utils.timestamps import utc_now


class OutputKind(str, Enum):
    """Kind of event delivered to output subscribers."""

    STDOUT = "stdout"
    STDERR = "stderr"
    STATUS = "status"
    COMPLETE = "complete"


@dataclass(frozen=True)
class OutputEvent:
    """
    One chunk of pipeline output or a lifecycle notification.

    Attributes:
        kind: stdout/stderr for process output, status for banners and
            warnings, complete for the single end-of-run event
        text: Output text; for complete events, the final run status
        timestamp: When the event was produced (UTC)
    """

    kind: OutputKind
    text: str
    timestamp: datetime = field(default_factory=utc_now)


@dataclass(frozen=True)
class ProcessResult:
    """
    Result of running one external command.

    Attributes:
        exit_code: Process exit code (1 when the process could not be started)
        output: Combined stdout/stderr text; stderr lines carry an [ERROR] prefix
    """

    exit_code: int
    output: str = ""

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0


@dataclass(frozen=True)
class RunStatistics:
    """Counters extracted from the combined output of a run."""

    sellers_processed: int = 0
    products_scraped: int = 0


@dataclass(frozen=True)
class PipelineOutcome:
    """Terminal status of a run plus the failure reason, if any."""

    status: RunStatus
    error_message: Optional[str] = None


@dataclass(frozen=True)
class StartResult:
    """Returned when a start request is accepted."""

    run_id: int


@dataclass(frozen=True)
class PipelineStatus:
    """Snapshot of the orchestrator's in-memory state."""

    is_running: bool
    current_step: PipelineStep
    current_run_id: Optional[int] = None
