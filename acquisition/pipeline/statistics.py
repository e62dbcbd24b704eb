"""Best-effort extraction of run counters from stage output."""

import re

from acquisition.logging import get_logger

from .models import RunStatistics

logger = get_logger(__name__, component="pipeline")

SELLERS_PATTERN = re.compile(r"(\d+) seller\(s\)")
PRODUCTS_PATTERN = re.compile(r"Saved (\d+) products")


def parse_run_statistics(output: str) -> RunStatistics:
    """
    Pull seller and product counts out of a run's combined output.

    The first match of each pattern wins. A missing or unreadable counter is
    reported as 0; this function never raises.

    Example:
        >>> parse_run_statistics("Found 7 seller(s)\\nSaved 42 products")
        RunStatistics(sellers_processed=7, products_scraped=42)
    """
    return RunStatistics(
        sellers_processed=_first_int(SELLERS_PATTERN, output),
        products_scraped=_first_int(PRODUCTS_PATTERN, output),
    )


def _first_int(pattern: re.Pattern, output: str) -> int:
    try:
        match = pattern.search(output or "")
        return int(match.group(1)) if match else 0
    except (TypeError, ValueError) as e:
        logger.warning(
            f"Could not parse counter {pattern.pattern!r}: {e}",
            extra={"event": "pipeline.statistics.unparseable"},
        )
        return 0
