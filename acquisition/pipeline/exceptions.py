"""Pipeline orchestration exceptions."""

from acquisition.domain.models import PipelineStep


class PipelineError(Exception):
    """Base exception for orchestration errors surfaced to callers."""

    pass


class AlreadyRunningError(PipelineError):
    """Raised when a start is requested while another run is in progress.

    Attributes:
        current_step: Step the active run is in
        current_run_id: Id of the active run, if already assigned
    """

    def __init__(self, current_step: PipelineStep, current_run_id=None):
        self.current_step = current_step
        self.current_run_id = current_run_id
        super().__init__(f"Pipeline is already running (step: {PipelineStep(current_step).value})")
