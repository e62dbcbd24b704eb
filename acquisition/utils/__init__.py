"""Utility functions for time handling and cron expressions."""

from .cron import InvalidCronExpressionError, build_cron_trigger, is_valid_cron_expression
from .timestamps import (
    elapsed_seconds,
    ensure_utc,
    format_timestamp,
    from_storage,
    to_storage,
    utc_now,
)

__all__ = [
    # Timestamps
    "utc_now",
    "ensure_utc",
    "to_storage",
    "from_storage",
    "format_timestamp",
    "elapsed_seconds",
    # Cron
    "build_cron_trigger",
    "is_valid_cron_expression",
    "InvalidCronExpressionError",
]
