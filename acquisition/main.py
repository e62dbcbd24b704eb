"""Main entry point for the acquisition pipeline service."""

from dotenv import load_dotenv
load_dotenv()

import argparse
import signal
import sys
import threading
import time
from pathlib import Path
from typing import List, Optional, Tuple

from acquisition.config.environment import EnvironmentConfig
from acquisition.config.exceptions import ConfigurationError
from acquisition.config.loader import load_config
from acquisition.config.models import AppConfig
from acquisition.domain.models import Run, RunStatus, TriggerType
from acquisition.logging import get_logger
from acquisition.logging.config import configure_logging
from acquisition.persistence.database import close_database, init_database
from acquisition.pipeline.broadcaster import OutputStream
from acquisition.pipeline.exceptions import AlreadyRunningError
from acquisition.pipeline.models import OutputKind
from acquisition.service import PipelineControlService
from acquisition.utils.cron import InvalidCronExpressionError
from acquisition.utils.timestamps import elapsed_seconds, format_timestamp

logger = get_logger(__name__, component="cli")

SHUTDOWN_GRACE_SECONDS = 30.0


def load_runtime_config(
    config_path: Optional[Path], log_level_override: Optional[str]
) -> Tuple[AppConfig, EnvironmentConfig]:
    """
    Load configuration and settle the effective log level.

    Log level priority: CLI > LOG_LEVEL environment variable > config file.

    Raises:
        ConfigurationError: If configuration is invalid
    """
    app_config, env_config = load_config(config_path)

    if log_level_override:
        env_config.log_level = log_level_override
    elif env_config.log_level:
        pass
    elif app_config.logging and app_config.logging.level:
        env_config.log_level = app_config.logging.level
    else:
        env_config.log_level = "INFO"

    return app_config, env_config


def format_run_table(runs: List[Run]) -> str:
    """Render runs as a fixed-width table, newest first."""
    header = f"{'ID':>5}  {'STATUS':<18} {'TRIGGER':<9} {'STARTED':<20} {'SECONDS':>8} {'SELLERS':>7} {'PRODUCTS':>8}  ERROR"
    lines = [header, "-" * len(header)]
    for run in runs:
        duration = elapsed_seconds(run.started_at, run.completed_at)
        lines.append(
            f"{run.id:>5}  {run.status.value:<18} {run.trigger_type.value:<9} "
            f"{format_timestamp(run.started_at):<20} "
            f"{'' if duration is None else f'{duration:.1f}':>8} "
            f"{run.sellers_processed:>7} {run.products_scraped:>8}  {run.error_message or ''}"
        )
    if not runs:
        lines.append("(no runs recorded)")
    return "\n".join(lines)


def stream_until_complete(stream: OutputStream) -> Optional[str]:
    """
    Copy live output to the terminal until the run's complete event.

    Returns:
        The final status string, or None if the stream closed first
    """
    for event in stream:
        if event.kind is OutputKind.COMPLETE:
            return event.text
        target = sys.stderr if event.kind is OutputKind.STDERR else sys.stdout
        target.write(event.text)
        target.flush()
    return None


def run_manual(service: PipelineControlService) -> int:
    """
    Execute one run in the foreground, streaming its output.

    The first Ctrl+C requests a cooperative abort; a second one exits
    immediately.

    Returns:
        0 if the run completed, 1 otherwise
    """
    logger.info("Executing manual run", extra={"event": "service.manual_run.starting"})

    with service.open_output_stream() as stream:
        try:
            result = service.start_run(TriggerType.MANUAL)
        except AlreadyRunningError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1

        abort_sent = False
        while True:
            try:
                stream_until_complete(stream)
                break
            except KeyboardInterrupt:
                if abort_sent or not service.stop_run():
                    raise
                abort_sent = True
                print("\nStopping after the current step (Ctrl+C again to exit)", file=sys.stderr)

        if stream.dropped:
            logger.warning(
                f"{stream.dropped} output events were not displayed",
                extra={"event": "service.manual_run.output_dropped", "dropped": stream.dropped},
            )

    service.wait_for_run()
    run = service.get_run(result.run_id)

    if run is None:
        logger.error(
            f"Run {result.run_id} not found after completion",
            extra={"event": "service.manual_run.missing", "run_id": result.run_id},
        )
        return 1

    logger.info(
        f"Manual run {run.id} finished: {run.status.value}, "
        f"{run.sellers_processed} sellers, {run.products_scraped} products",
        extra={
            "event": "service.manual_run.completed",
            "run_id": run.id,
            "status": run.status,
            "error_message": run.error_message,
            "duration_seconds": elapsed_seconds(run.started_at, run.completed_at),
            "sellers_processed": run.sellers_processed,
            "products_scraped": run.products_scraped,
        },
    )

    return 0 if run.status is RunStatus.COMPLETED else 1


def run_daemon(service: PipelineControlService) -> int:
    """Run the scheduler until SIGINT/SIGTERM."""
    shutdown_event = threading.Event()

    def signal_handler(signum, frame):
        logger.info(
            f"Received signal {signum}, shutting down",
            extra={"event": "service.signal_received", "signal": signum},
        )
        shutdown_event.set()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    service.start()

    next_run = service.scheduler.get_next_run_time()
    logger.info(
        "Scheduler started. Press Ctrl+C to stop",
        extra={
            "event": "service.daemon_mode.started",
            "next_run_time": next_run.isoformat() if next_run else None,
        },
    )

    try:
        shutdown_event.wait()
    except KeyboardInterrupt:
        logger.info(
            "Keyboard interrupt received, shutting down",
            extra={"event": "service.keyboard_interrupt"},
        )

    service.stop_run()
    service.shutdown(wait_for_run=True, timeout=SHUTDOWN_GRACE_SECONDS)
    return 0


def update_schedule(service: PipelineControlService, enabled: bool, cron_expr: Optional[str]) -> int:
    """Persist a scheduler change and print the resulting configuration."""
    if cron_expr is None:
        cron_expr = service.get_scheduler_config().cron_expr

    try:
        config = service.set_scheduler_config(enabled, cron_expr)
    except InvalidCronExpressionError as e:
        print(f"Error: {e}", file=sys.stderr)
        print("Scheduled runs have been disabled.", file=sys.stderr)
        return 1

    state = "enabled" if config.enabled else "disabled"
    print(f"Scheduled runs {state} ({config.cron_expr})")
    print("A running daemon applies the change on its next restart.")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="acquisition-pipeline",
        description="Acquisition Pipeline - runs the scrape, enrich and process stages on demand or on a schedule",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to configuration file (default: config.yaml or config/config.yaml)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Log level (overrides config and environment)",
    )

    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--manual-run",
        action="store_true",
        help="Run the pipeline once in the foreground and exit",
    )
    mode.add_argument(
        "--list-runs",
        type=int,
        metavar="N",
        default=None,
        help="Print the N most recent runs and exit",
    )
    mode.add_argument(
        "--enable-schedule",
        metavar="CRON",
        default=None,
        help='Enable scheduled runs with a crontab expression (e.g. "0 9,21 * * *") and exit',
    )
    mode.add_argument(
        "--disable-schedule",
        action="store_true",
        help="Disable scheduled runs and exit",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for the acquisition pipeline.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    start_time = time.time()
    args = build_parser().parse_args(argv)

    try:
        app_config, env_config = load_runtime_config(args.config, args.log_level)

        configure_logging(
            level=env_config.log_level,
            format_type=app_config.logging.format,
            environment=env_config.environment,
        )

        logger.info(
            "Acquisition pipeline starting",
            extra={
                "event": "service.starting",
                "config_path": str(args.config) if args.config else None,
                "log_level": env_config.log_level,
                "manual_run": args.manual_run,
            },
        )

        init_database(env_config.database_url)

        logger.info(
            "Configuration loaded",
            extra={
                "event": "config.loaded",
                "scrape_command": app_config.stages.scrape.describe(),
                "enrich_command": app_config.stages.enrich.describe(),
                "process_command": app_config.stages.process.describe(),
                "auth_marker_count": len(app_config.auth_markers),
                "log_format": app_config.logging.format,
            },
        )

        service = PipelineControlService(app_config)

        try:
            if args.list_runs is not None:
                print(format_run_table(service.list_runs(max(args.list_runs, 1))))
                return 0
            if args.enable_schedule is not None:
                return update_schedule(service, True, args.enable_schedule)
            if args.disable_schedule:
                return update_schedule(service, False, None)
            if args.manual_run:
                return run_manual(service)
            return run_daemon(service)
        finally:
            close_database()
            logger.info(
                "Acquisition pipeline stopped",
                extra={
                    "event": "service.stopping",
                    "uptime_seconds": round(time.time() - start_time, 2),
                },
            )

    except ConfigurationError as e:
        print(f"Configuration Error: {e}", file=sys.stderr)
        logger.error(
            f"Configuration error: {e}",
            extra={"event": "config.error", "error_type": "ConfigurationError"},
        )
        return 1
    except KeyboardInterrupt:
        print("\nShutdown requested by user", file=sys.stderr)
        return 130
    except Exception as e:
        print(f"Fatal error: {e}", file=sys.stderr)
        logger.critical(
            "Fatal error",
            extra={
                "event": "service.fatal",
                "error_type": type(e).__name__,
                "error": str(e),
            },
            exc_info=True,
        )
        return 1


if __name__ == "__main__":
    sys.exit(main())
