"""Cron scheduling of pipeline runs."""

from .service import SCHEDULED_JOB_ID, SchedulerService

__all__ = [
    "SchedulerService",
    "SCHEDULED_JOB_ID",
]
