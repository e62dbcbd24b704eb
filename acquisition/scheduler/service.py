"""Scheduler service for cron-triggered pipeline runs."""

import threading
from datetime import datetime
from typing import Optional

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler

from acquisition.config.models import SchedulerSettings
from acquisition.domain.models import SchedulerConfig, TriggerType
from acquisition.logging import get_logger
from acquisition.persistence.exceptions import PersistenceError
from acquisition.persistence.store import RunStore
from acquisition.pipeline.exceptions import AlreadyRunningError
from acquisition.pipeline.orchestrator import PipelineOrchestrator
from acquisition.utils.cron import InvalidCronExpressionError, build_cron_trigger

logger = get_logger(__name__, component="scheduler")

SCHEDULED_JOB_ID = "pipeline-run"


class SchedulerService:
    """
    Wraps APScheduler to start the pipeline on a cron schedule.

    The persisted :class:`SchedulerConfig` decides whether a trigger is
    installed. At most one trigger exists at a time; installing replaces it.
    Each firing calls ``orchestrator.start(SCHEDULED)``. A firing that finds a
    run in progress is skipped.
    """

    def __init__(
        self,
        orchestrator: PipelineOrchestrator,
        store: RunStore,
        settings: Optional[SchedulerSettings] = None,
    ):
        """
        Initialize the scheduler service.

        Args:
            orchestrator: Pipeline started on each firing
            store: Storage holding the scheduler configuration
            settings: Default expression, timezone and misfire tolerance
        """
        self.orchestrator = orchestrator
        self.store = store
        self.settings = settings or SchedulerSettings()
        self._lock = threading.Lock()

        self.scheduler = BackgroundScheduler(
            job_defaults={
                "max_instances": 1,  # Prevent overlapping firings
                "coalesce": True,  # Missed firings collapse into one
                "misfire_grace_time": self.settings.misfire_grace_seconds,
            },
            timezone=self.settings.timezone,
        )

    def start(self) -> None:
        """
        Start the scheduler and install the stored trigger, if enabled.

        A missing configuration is created with the default (disabled)
        expression. When storage is unavailable the scheduler runs with no
        trigger installed.
        """
        if not self.scheduler.running:
            self.scheduler.start()

        try:
            config = self.store.get_scheduler_config()
            if config is None:
                config = self.store.save_scheduler_config(self._default_config())
                logger.info(
                    "Created default scheduler configuration",
                    extra={"event": "scheduler.config.created", "cron_expr": config.cron_expr},
                )
        except PersistenceError as e:
            logger.warning(
                f"Scheduler configuration unavailable, no trigger installed: {e}",
                extra={"event": "scheduler.init.storage_unavailable", "error_type": type(e).__name__},
            )
            return

        if not config.enabled:
            logger.info(
                "Scheduled runs are disabled",
                extra={"event": "scheduler.started", "enabled": False, "cron_expr": config.cron_expr},
            )
            return

        try:
            self.install(config.cron_expr)
        except InvalidCronExpressionError as e:
            logger.error(
                f"Stored cron expression is invalid, no trigger installed: {e}",
                extra={"event": "scheduler.init.invalid_cron", "cron_expr": config.cron_expr},
            )
            return

        logger.info(
            f"Scheduler started with cron expression: {config.cron_expr}",
            extra={
                "event": "scheduler.started",
                "enabled": True,
                "cron_expr": config.cron_expr,
                "next_run_time": self._next_run_iso(),
            },
        )

    def get_config(self) -> SchedulerConfig:
        """
        Current scheduler configuration.

        Returns the default configuration if none is stored or storage is
        unavailable.
        """
        try:
            config = self.store.get_scheduler_config()
        except PersistenceError as e:
            logger.warning(
                f"Could not read scheduler configuration, using default: {e}",
                extra={"event": "scheduler.config.read_failed"},
            )
            return self._default_config()
        return config or self._default_config()

    def configure(self, enabled: bool, cron_expr: str) -> SchedulerConfig:
        """
        Persist a new configuration and apply it to the trigger.

        An invalid expression is still persisted, but with ``enabled=False``,
        and any installed trigger is removed before the error is raised.

        Args:
            enabled: Whether scheduled runs should fire
            cron_expr: Five-field crontab expression

        Returns:
            The persisted configuration

        Raises:
            InvalidCronExpressionError: If cron_expr cannot be parsed
            PersistenceError: If the configuration cannot be saved
        """
        cron_expr = " ".join(str(cron_expr).split())

        with self._lock:
            error: Optional[InvalidCronExpressionError] = None
            try:
                build_cron_trigger(cron_expr, timezone=self.settings.timezone)
            except InvalidCronExpressionError as e:
                error = e

            saved = self.store.save_scheduler_config(
                SchedulerConfig(enabled=bool(enabled) and error is None, cron_expr=cron_expr)
            )

            logger.info(
                "Scheduler configuration saved",
                extra={
                    "event": "scheduler.config.saved",
                    "enabled": saved.enabled,
                    "cron_expr": saved.cron_expr,
                },
            )

            if error is not None:
                self.uninstall()
                logger.warning(
                    f"Rejected cron expression: {error}",
                    extra={"event": "scheduler.config.invalid_cron", "cron_expr": cron_expr},
                )
                raise error

            if saved.enabled:
                self.install(saved.cron_expr)
            else:
                self.uninstall()

        return saved

    def install(self, cron_expr: str) -> None:
        """
        Install (or replace) the recurring trigger.

        Raises:
            InvalidCronExpressionError: If cron_expr cannot be parsed
        """
        trigger = build_cron_trigger(cron_expr, timezone=self.settings.timezone)

        self.scheduler.add_job(
            func=self._fire,
            trigger=trigger,
            id=SCHEDULED_JOB_ID,
            name="Acquisition Pipeline Run",
            replace_existing=True,
        )

        logger.info(
            f"Scheduled trigger installed: {cron_expr}",
            extra={
                "event": "scheduler.trigger.installed",
                "cron_expr": cron_expr,
                "next_run_time": self._next_run_iso(),
            },
        )

    def uninstall(self) -> bool:
        """
        Remove the recurring trigger. Safe to call when none is installed.

        Returns:
            True if a trigger was removed
        """
        try:
            self.scheduler.remove_job(SCHEDULED_JOB_ID)
        except JobLookupError:
            return False

        logger.info("Scheduled trigger removed", extra={"event": "scheduler.trigger.removed"})
        return True

    def is_installed(self) -> bool:
        return self.scheduler.get_job(SCHEDULED_JOB_ID) is not None

    def is_running(self) -> bool:
        """
        Check if the scheduler is currently running.

        Returns:
            True if scheduler is running, False otherwise
        """
        return self.scheduler.running

    def get_next_run_time(self) -> Optional[datetime]:
        """
        Get the next scheduled run time.

        Returns:
            Next run time, or None if no trigger is installed or the
            scheduler has not been started
        """
        job = self.scheduler.get_job(SCHEDULED_JOB_ID)
        return getattr(job, "next_run_time", None) if job else None

    def shutdown(self, wait: bool = False) -> None:
        """
        Shutdown the scheduler gracefully.

        Args:
            wait: If True, wait for a firing in progress to return
        """
        logger.info(
            "Shutting down scheduler",
            extra={"event": "scheduler.stopping", "wait_for_jobs": wait},
        )

        if self.scheduler.running:
            self.scheduler.shutdown(wait=wait)

        logger.info("Scheduler shutdown complete", extra={"event": "scheduler.stopped"})

    def _fire(self) -> None:
        """Job callback: start a scheduled run unless one is in progress."""
        logger.info("Scheduled trigger fired", extra={"event": "scheduler.trigger.fired"})

        try:
            result = self.orchestrator.start(TriggerType.SCHEDULED)
        except AlreadyRunningError as e:
            logger.info(
                f"Scheduled run skipped: {e}",
                extra={
                    "event": "scheduler.trigger.skipped",
                    "current_step": e.current_step,
                    "current_run_id": e.current_run_id,
                },
            )
            return
        except PersistenceError as e:
            logger.error(
                f"Scheduled run could not be recorded: {e}",
                extra={"event": "scheduler.trigger.failed", "error_type": type(e).__name__},
            )
            return

        logger.info(
            f"Scheduled run {result.run_id} started",
            extra={"event": "scheduler.run.started", "run_id": result.run_id},
        )

    def _default_config(self) -> SchedulerConfig:
        return SchedulerConfig(enabled=False, cron_expr=self.settings.default_cron)

    def _next_run_iso(self) -> Optional[str]:
        next_run = self.get_next_run_time()
        return next_run.isoformat() if next_run else None
