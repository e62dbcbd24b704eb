"""Control surface for the acquisition pipeline.

:class:`PipelineControlService` wires the orchestrator, the scheduler, the
output broadcaster and the run store together and exposes the operations a
CLI or an HTTP layer needs. It is constructed explicitly and has a
``start()`` / ``shutdown()`` lifecycle; nothing here is a module-level
singleton.
"""

from typing import Callable, List, Optional

from acquisition.config.models import AppConfig
from acquisition.domain.models import Run, RunStatus, SchedulerConfig, TriggerType
from acquisition.logging import get_logger
from acquisition.persistence.store import RunStore, SqlRunStore
from acquisition.pipeline.broadcaster import OutputBroadcaster, OutputCallback, OutputStream
from acquisition.pipeline.models import PipelineStatus, StartResult
from acquisition.pipeline.orchestrator import PipelineOrchestrator
from acquisition.pipeline.process import ProcessRunner
from acquisition.scheduler.service import SchedulerService

logger = get_logger(__name__, component="service")


class PipelineControlService:
    """Facade over pipeline execution, scheduling and run history."""

    def __init__(
        self,
        app_config: AppConfig,
        store: Optional[RunStore] = None,
        runner: Optional[ProcessRunner] = None,
        broadcaster: Optional[OutputBroadcaster] = None,
    ):
        """
        Build the service graph.

        Args:
            app_config: Validated application configuration
            store: Run store (default: SqlRunStore on the initialized database)
            runner: Process runner override, mainly for tests
            broadcaster: Output broadcaster override
        """
        self.app_config = app_config
        self.store = store or SqlRunStore()
        self.broadcaster = broadcaster or OutputBroadcaster()
        self.orchestrator = PipelineOrchestrator(
            stages=app_config.stages,
            store=self.store,
            broadcaster=self.broadcaster,
            runner=runner,
            auth_markers=app_config.auth_markers,
        )
        self.scheduler = SchedulerService(
            orchestrator=self.orchestrator,
            store=self.store,
            settings=app_config.scheduler,
        )

    # Lifecycle

    def start(self) -> None:
        """Start the scheduler and install the stored trigger."""
        self.scheduler.start()
        logger.info("Pipeline control service started", extra={"event": "service.started"})

    def shutdown(self, wait_for_run: bool = False, timeout: Optional[float] = None) -> None:
        """
        Stop scheduling new runs.

        Args:
            wait_for_run: Also wait for a run in progress to finish
            timeout: Upper bound on that wait, in seconds
        """
        self.scheduler.shutdown(wait=False)

        if wait_for_run and self.orchestrator.is_running():
            logger.info(
                "Waiting for the current run to finish",
                extra={"event": "service.shutdown.waiting", "run_id": self.orchestrator.current_run_id()},
            )
            if not self.orchestrator.wait(timeout):
                logger.warning(
                    "Run still in progress at shutdown",
                    extra={"event": "service.shutdown.run_in_progress"},
                )

        logger.info("Pipeline control service stopped", extra={"event": "service.stopped"})

    # Pipeline control

    def start_run(self, trigger_type: TriggerType = TriggerType.MANUAL) -> StartResult:
        """Start a run; raises AlreadyRunningError if one is in progress."""
        return self.orchestrator.start(trigger_type)

    def stop_run(self) -> bool:
        return self.orchestrator.stop()

    def get_status(self) -> PipelineStatus:
        return self.orchestrator.get_status()

    def wait_for_run(self, timeout: Optional[float] = None) -> bool:
        return self.orchestrator.wait(timeout)

    # Live output

    def subscribe_to_output(self, callback: OutputCallback) -> Callable[[], None]:
        """Register a callback for live output; returns the unsubscribe function."""
        return self.broadcaster.subscribe(callback)

    def open_output_stream(self, max_pending: int = 1000) -> OutputStream:
        return self.broadcaster.open_stream(max_pending=max_pending)

    # Scheduling

    def get_scheduler_config(self) -> SchedulerConfig:
        return self.scheduler.get_config()

    def set_scheduler_config(self, enabled: bool, cron_expr: str) -> SchedulerConfig:
        """
        Persist and apply a scheduler configuration.

        Raises:
            InvalidCronExpressionError: If cron_expr is invalid (the write is
                still persisted, with scheduling disabled)
        """
        return self.scheduler.configure(enabled, cron_expr)

    # Run history

    def get_run(self, run_id: int) -> Optional[Run]:
        return self.store.get_run(run_id)

    def list_runs(self, limit: int = 50) -> List[Run]:
        return self.store.list_runs(limit)

    def count_runs(self, status: Optional[RunStatus] = None) -> int:
        return self.store.count_runs(status)
