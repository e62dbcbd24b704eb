#!/usr/bin/env python3
"""Sample pipeline harness for end-to-end validation.

Runs the three sample stages under scripts/sample_stages through the real
orchestrator, streams their output, and prints a summary of the stored run.
No config file is needed.

Usage:
    # Successful run
    python scripts/run_sample_pipeline.py

    # Simulate an authentication challenge in the scraper
    python scripts/run_sample_pipeline.py --require-login

    # Simulate an enrichment failure
    python scripts/run_sample_pipeline.py --fail-stage enrich

    # Custom database path
    python scripts/run_sample_pipeline.py --database /tmp/sample.db
"""

import argparse
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv

from acquisition.config.loader import parse_app_config
from acquisition.domain.models import TriggerType
from acquisition.logging.config import configure_logging
from acquisition.persistence.database import close_database, init_database
from acquisition.pipeline.models import OutputKind
from acquisition.service import PipelineControlService
from acquisition.utils.timestamps import elapsed_seconds, format_timestamp

STAGES_DIR = Path(__file__).parent / "sample_stages"


def print_header(title: str):
    """Print a formatted section header."""
    width = 80
    print("\n" + "=" * width)
    print(f" {title}")
    print("=" * width + "\n")


def print_summary_table(run):
    """Print a formatted summary table of the stored run."""
    print_header("Pipeline Run Summary")

    duration = elapsed_seconds(run.started_at, run.completed_at)
    metrics = [
        ("Run ID", run.id),
        ("Status", run.status.value),
        ("Trigger", run.trigger_type.value),
        ("Started", format_timestamp(run.started_at)),
        ("Completed", format_timestamp(run.completed_at)),
        ("Duration (seconds)", "" if duration is None else f"{duration:.2f}"),
        ("Sellers Processed", run.sellers_processed),
        ("Products Scraped", run.products_scraped),
        ("Error", run.error_message or "-"),
    ]

    max_label_width = max(len(label) for label, _ in metrics)
    value_width = max(20, max(len(str(value)) for _, value in metrics))

    print("┌" + "─" * (max_label_width + 2) + "┬" + "─" * (value_width + 2) + "┐")
    print(f"│ {'Metric':<{max_label_width}} │ {'Value':<{value_width}} │")
    print("├" + "─" * (max_label_width + 2) + "┼" + "─" * (value_width + 2) + "┤")

    for label, value in metrics:
        print(f"│ {label:<{max_label_width}} │ {str(value):<{value_width}} │")

    print("└" + "─" * (max_label_width + 2) + "┴" + "─" * (value_width + 2) + "┘")


def build_stage_config(args) -> dict:
    """Stage configuration pointing at the sample scripts."""
    output_dir = str(args.work_dir / "sample_output")

    def stage(script: str, *extra: str) -> dict:
        stage_args = [str(STAGES_DIR / script), "--output-dir", output_dir, *extra]
        if args.fail_stage == script.split(".")[0]:
            stage_args += ["--exit-code", "2"]
        return {
            "command": sys.executable,
            "args": stage_args,
            "working_directory": str(args.work_dir),
        }

    scrape_extra = ["--sellers", str(args.sellers), "--delay", str(args.delay)]
    if args.require_login:
        scrape_extra.append("--require-login")

    return {
        "stages": {
            "scrape": stage("scrape.py", *scrape_extra),
            "enrich": stage("enrich.py"),
            "process": stage("process.py"),
        },
        "logging": {"level": args.log_level, "format": "key-value"},
    }


def main():
    """Main entry point for the sample pipeline harness."""
    parser = argparse.ArgumentParser(
        description="Run the sample stages through the pipeline",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--work-dir",
        type=Path,
        default=Path("data/sample_run"),
        help="Directory the stages run in (default: data/sample_run)",
    )
    parser.add_argument(
        "--database",
        type=Path,
        default=Path("data/sample_pipeline.db"),
        help="Path to SQLite database (default: data/sample_pipeline.db)",
    )
    parser.add_argument("--sellers", type=int, default=3, help="Sellers the scraper reports")
    parser.add_argument("--delay", type=float, default=0.2, help="Scraper delay per seller")
    parser.add_argument(
        "--fail-stage",
        choices=["scrape", "enrich", "process"],
        default=None,
        help="Make one stage exit with code 2",
    )
    parser.add_argument(
        "--require-login",
        action="store_true",
        help="Make the scraper print a QR code login prompt",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Log level (default: WARNING)",
    )

    args = parser.parse_args()
    load_dotenv()

    print_header("Acquisition Pipeline - Sample Run Harness")
    print(f"Working directory: {args.work_dir}")
    print(f"Database: {args.database}")

    try:
        args.work_dir = args.work_dir.absolute()
        args.work_dir.mkdir(parents=True, exist_ok=True)

        app_config = parse_app_config(build_stage_config(args))
        configure_logging(level=args.log_level, format_type="key-value", environment="validation")

        database_url = f"sqlite:///{args.database.absolute()}"
        init_database(database_url)

        service = PipelineControlService(app_config)

        with service.open_output_stream() as stream:
            result = service.start_run(TriggerType.MANUAL)
            for event in stream:
                if event.kind is OutputKind.COMPLETE:
                    break
                print(event.text, end="", flush=True)

        service.wait_for_run()
        run = service.get_run(result.run_id)
        print_summary_table(run)

        print_header("Output Locations")
        print(f"Database: {args.database.absolute()}")
        print(f"  sqlite3 {args.database.absolute()} 'SELECT id, status, error_message FROM pipeline_runs;'")
        print(f"Stage files: {args.work_dir / 'sample_output'}")

        close_database()
        return 0 if run.status.value == "COMPLETED" else 1

    except Exception as e:
        print(f"\n❌ Fatal error: {e}")
        import traceback
        traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
