"""Pipeline orchestration: Scrape → Enrich → Process."""

import threading
import time
from dataclasses import dataclass
from typing import List, Optional, Sequence

from acquisition.config.models import DEFAULT_AUTH_MARKERS, StagesConfig
from acquisition.domain.models import PipelineStep, RunStatus, TriggerType
from acquisition.logging import get_logger
from acquisition.logging.context import log_context
from acquisition.persistence.store import RunStore
from acquisition.utils.timestamps import utc_now

from .broadcaster import OutputBroadcaster
from .exceptions import AlreadyRunningError
from .models import OutputKind, PipelineOutcome, PipelineStatus, ProcessResult, StartResult
from .process import ProcessRunner
from .statistics import parse_run_statistics

logger = get_logger(__name__, component="pipeline")

ABORT_MESSAGE = "Pipeline aborted by user"
AUTH_REQUIRED_MESSAGE = "Scraper authentication required: complete the interactive login and retry"
BANNER_RULE = "=" * 50


@dataclass(frozen=True)
class StageDefinition:
    """
    Static description of one pipeline stage.

    Attributes:
        name: Key of the stage in StagesConfig
        step: In-memory step while the stage runs
        banner: Status line announced before the stage starts
        run_status: Run status written when the stage starts (None keeps RUNNING)
        failure_status: Terminal status on a non-zero exit
        failure_message: Error message template; receives ``exit_code``
        detects_auth: Whether the stage output is checked for auth markers
    """

    name: str
    step: PipelineStep
    banner: str
    run_status: Optional[RunStatus]
    failure_status: RunStatus
    failure_message: str
    detects_auth: bool = False


PIPELINE_STAGES = (
    StageDefinition(
        name="scrape",
        step=PipelineStep.SCRAPING,
        banner="Starting scraper (Run #{run_id})...",
        run_status=None,
        failure_status=RunStatus.FAILED,
        failure_message="Scraping failed with exit code {exit_code}",
        detects_auth=True,
    ),
    StageDefinition(
        name="enrich",
        step=PipelineStep.ENRICHING,
        banner="Starting enrichment...",
        run_status=RunStatus.ENRICHING,
        failure_status=RunStatus.ENRICHMENT_FAILED,
        failure_message="Enrichment failed with exit code {exit_code}",
    ),
    StageDefinition(
        name="process",
        step=PipelineStep.PROCESSING,
        banner="Updating database...",
        run_status=RunStatus.PROCESSING,
        failure_status=RunStatus.PROCESSING_FAILED,
        failure_message="Database processing failed with exit code {exit_code}",
    ),
)


class PipelineOrchestrator:
    """
    Runs the three pipeline stages, one run at a time.

    ``start`` claims the single flight under a lock, creates the run record
    and hands the stages to a worker thread. Whatever happens in the worker
    (success, a failing stage, an auth challenge, an abort or an unexpected
    exception), it ends in :meth:`_finalize`. That method persists the
    terminal status, publishes exactly one ``complete`` event and returns the
    orchestrator to IDLE.

    Abort is cooperative: ``stop`` sets a flag that is checked after each
    successful stage that has a successor. A running external process is never killed.
    """

    def __init__(
        self,
        stages: StagesConfig,
        store: RunStore,
        broadcaster: Optional[OutputBroadcaster] = None,
        runner: Optional[ProcessRunner] = None,
        auth_markers: Sequence[str] = DEFAULT_AUTH_MARKERS,
    ):
        """
        Initialize the orchestrator.

        Args:
            stages: Commands for the scrape, enrich and process stages
            store: Run record storage
            broadcaster: Output fan-out (a private one is created if omitted)
            runner: Process runner (defaults to one publishing on the broadcaster)
            auth_markers: Output substrings meaning stage 1 needs a login
        """
        self.stages = stages
        self.store = store
        self.broadcaster = broadcaster or OutputBroadcaster()
        self.runner = runner or ProcessRunner(self.broadcaster)
        self.auth_markers = tuple(auth_markers)

        self._lock = threading.Lock()
        self._step = PipelineStep.IDLE
        self._run_id: Optional[int] = None
        self._abort_requested = threading.Event()
        self._finished = threading.Event()
        self._finished.set()

    # ------------------------------------------------------------------
    # Observers
    # ------------------------------------------------------------------

    def is_running(self) -> bool:
        with self._lock:
            return self._step is not PipelineStep.IDLE

    def current_step(self) -> PipelineStep:
        with self._lock:
            return self._step

    def current_run_id(self) -> Optional[int]:
        with self._lock:
            return self._run_id

    def get_status(self) -> PipelineStatus:
        """Consistent snapshot of step, run id and running flag."""
        with self._lock:
            return PipelineStatus(
                is_running=self._step is not PipelineStep.IDLE,
                current_step=self._step,
                current_run_id=self._run_id,
            )

    def wait(self, timeout: Optional[float] = None) -> bool:
        """
        Block until the current run (if any) has been finalized.

        Returns:
            True if no run is in progress on return, False on timeout
        """
        with self._lock:
            finished = self._finished
        return finished.wait(timeout)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def start(self, trigger_type: TriggerType = TriggerType.MANUAL) -> StartResult:
        """
        Accept a new run and start it in the background.

        Args:
            trigger_type: MANUAL or SCHEDULED

        Returns:
            StartResult with the id of the new run

        Raises:
            AlreadyRunningError: If a run is in progress (no record is created)
            PersistenceError: If the run record cannot be created
        """
        trigger_type = TriggerType(trigger_type)

        with self._lock:
            if self._step is not PipelineStep.IDLE:
                logger.warning(
                    "Pipeline start rejected: run already in progress",
                    extra={
                        "event": "pipeline.run.rejected",
                        "trigger_type": trigger_type,
                        "current_step": self._step,
                        "current_run_id": self._run_id,
                    },
                )
                raise AlreadyRunningError(self._step, self._run_id)

            self._step = PipelineStep.SCRAPING
            self._abort_requested.clear()
            finished = threading.Event()
            self._finished = finished

        try:
            run = self.store.create_run(trigger_type, utc_now())
        except Exception:
            logger.error(
                "Could not create run record; start aborted",
                extra={"event": "pipeline.run.create_failed", "trigger_type": trigger_type},
                exc_info=True,
            )
            with self._lock:
                self._reset_state()
            finished.set()
            raise

        with self._lock:
            self._run_id = run.id

        logger.info(
            f"Pipeline run {run.id} accepted",
            extra={
                "event": "pipeline.run.accepted",
                "run_id": run.id,
                "trigger_type": trigger_type,
            },
        )

        worker = threading.Thread(
            target=self._execute,
            args=(run.id, trigger_type, finished),
            name=f"pipeline-run-{run.id}",
            daemon=True,
        )
        worker.start()

        return StartResult(run_id=run.id)

    def stop(self) -> bool:
        """
        Request a cooperative abort of the current run.

        Returns:
            True if an abort was registered, False if the pipeline is idle
        """
        with self._lock:
            if self._step is PipelineStep.IDLE:
                return False
            self._abort_requested.set()
            step = self._step
            run_id = self._run_id

        logger.warning(
            "Abort requested; pipeline will stop after the current step",
            extra={"event": "pipeline.abort.requested", "run_id": run_id, "current_step": step},
        )
        self.broadcaster.emit(
            OutputKind.STATUS,
            "\nAbort requested. Pipeline will stop after current step completes.\n",
        )
        return True

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------

    def _execute(self, run_id: int, trigger_type: TriggerType, finished: threading.Event) -> None:
        output: List[str] = []

        with log_context(run_id=run_id, trigger_type=trigger_type.value):
            logger.info("Pipeline run started", extra={"event": "pipeline.run.started"})
            started = time.monotonic()

            try:
                outcome = self._run_stages(run_id, output)
            except Exception as e:
                logger.error(
                    f"Unexpected error during pipeline run: {e}",
                    extra={"event": "pipeline.run.crashed", "error_type": type(e).__name__},
                    exc_info=True,
                )
                outcome = PipelineOutcome(
                    status=RunStatus.FAILED,
                    error_message=str(e) or type(e).__name__,
                )

            self._finalize(run_id, outcome, "".join(output), time.monotonic() - started, finished)

    def _run_stages(self, run_id: int, output: List[str]) -> PipelineOutcome:
        """Walk the stage table; return at the first terminal outcome.

        Abort is checked between stages only: the stage in flight when stop()
        is called always runs to completion, and a stop during the last stage
        does not change a successful outcome.
        """
        for index, stage in enumerate(PIPELINE_STAGES):
            result = self._run_stage(run_id, stage)
            output.append(result.output)

            if stage.detects_auth and self._requires_auth(result.output):
                logger.warning(
                    "Scraper requires authentication",
                    extra={"event": "pipeline.stage.auth_required", "stage": stage.name},
                )
                return PipelineOutcome(
                    status=RunStatus.AUTH_REQUIRED, error_message=AUTH_REQUIRED_MESSAGE
                )

            if not result.succeeded:
                return PipelineOutcome(
                    status=stage.failure_status,
                    error_message=stage.failure_message.format(exit_code=result.exit_code),
                )

            next_stages = PIPELINE_STAGES[index + 1 :]
            if next_stages and self._abort_requested.is_set():
                logger.warning(
                    f"Pipeline aborted before stage {next_stages[0].name}",
                    extra={"event": "pipeline.run.aborted", "next_stage": next_stages[0].name},
                )
                return PipelineOutcome(status=RunStatus.FAILED, error_message=ABORT_MESSAGE)

        return PipelineOutcome(status=RunStatus.COMPLETED)

    def _run_stage(self, run_id: int, stage: StageDefinition) -> ProcessResult:
        with self._lock:
            self._step = stage.step

        if stage.run_status is not None:
            self.store.update_run(run_id, status=stage.run_status)

        number = PIPELINE_STAGES.index(stage) + 1
        self._announce(f"[STEP {number}/{len(PIPELINE_STAGES)}] {stage.banner.format(run_id=run_id)}")

        stage_config = getattr(self.stages, stage.name)

        with log_context(stage=stage.name):
            logger.info(
                f"Stage {stage.name} started: {stage_config.describe()}",
                extra={"event": "pipeline.stage.started"},
            )
            started = time.monotonic()

            result = self.runner.run(
                stage_config.command,
                stage_config.args,
                stage_config.working_directory,
                env=stage_config.env,
            )

            duration_ms = int((time.monotonic() - started) * 1000)
            if result.succeeded:
                logger.info(
                    f"Stage {stage.name} completed",
                    extra={"event": "pipeline.stage.completed", "duration_ms": duration_ms},
                )
            else:
                logger.error(
                    f"Stage {stage.name} exited with code {result.exit_code}",
                    extra={
                        "event": "pipeline.stage.failed",
                        "exit_code": result.exit_code,
                        "duration_ms": duration_ms,
                    },
                )

        return result

    def _requires_auth(self, output: str) -> bool:
        return any(marker in output for marker in self.auth_markers)

    def _finalize(
        self,
        run_id: int,
        outcome: PipelineOutcome,
        output: str,
        duration_seconds: float,
        finished: threading.Event,
    ) -> None:
        """Persist the terminal state, announce it and return to IDLE."""
        try:
            stats = parse_run_statistics(output)

            try:
                self.store.update_run(
                    run_id,
                    status=outcome.status,
                    completed_at=utc_now(),
                    output=output,
                    error_message=outcome.error_message,
                    sellers_processed=stats.sellers_processed,
                    products_scraped=stats.products_scraped,
                )
            except Exception as e:
                logger.error(
                    f"Failed to persist final state of run {run_id}: {e}",
                    extra={"event": "pipeline.run.persist_failed", "status": outcome.status},
                    exc_info=True,
                )

            self._announce(f"Pipeline finished with status: {outcome.status.value}")
            self.broadcaster.emit(OutputKind.COMPLETE, outcome.status.value)

            log = logger.info if outcome.status is RunStatus.COMPLETED else logger.warning
            log(
                f"Pipeline run {run_id} finished: {outcome.status.value}",
                extra={
                    "event": "pipeline.run.completed",
                    "status": outcome.status,
                    "error_message": outcome.error_message,
                    "sellers_processed": stats.sellers_processed,
                    "products_scraped": stats.products_scraped,
                    "duration_ms": int(duration_seconds * 1000),
                },
            )
        finally:
            with self._lock:
                self._reset_state()
            finished.set()

    def _reset_state(self) -> None:
        """Return to IDLE. Caller holds the lock."""
        self._step = PipelineStep.IDLE
        self._run_id = None
        self._abort_requested.clear()

    def _announce(self, message: str) -> None:
        self.broadcaster.emit(OutputKind.STATUS, f"\n{BANNER_RULE}\n{message}\n{BANNER_RULE}\n")
