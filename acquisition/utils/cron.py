"""Cron expression parsing shared by configuration and the scheduler."""

from typing import Optional

from apscheduler.triggers.cron import CronTrigger


class InvalidCronExpressionError(ValueError):
    """Raised when a cron expression cannot be turned into a trigger."""

    def __init__(self, cron_expr: str, reason: str):
        self.cron_expr = cron_expr
        self.reason = reason
        super().__init__(f"Invalid cron expression '{cron_expr}': {reason}")


def build_cron_trigger(cron_expr: str, timezone: Optional[str] = None) -> CronTrigger:
    """Build an APScheduler trigger from a five-field crontab expression.

    Args:
        cron_expr: Expression such as ``"0 9,21 * * *"``
        timezone: Timezone the expression is evaluated in (default: UTC)

    Raises:
        InvalidCronExpressionError: If the expression is malformed
    """
    if not isinstance(cron_expr, str) or not cron_expr.strip():
        raise InvalidCronExpressionError(str(cron_expr), "expression is empty")

    try:
        return CronTrigger.from_crontab(cron_expr.strip(), timezone=timezone or "UTC")
    except (ValueError, TypeError) as e:
        raise InvalidCronExpressionError(cron_expr, str(e)) from e


def is_valid_cron_expression(cron_expr: str) -> bool:
    """Check an expression without raising.

    Example:
        >>> is_valid_cron_expression("0 9,21 * * *")
        True
        >>> is_valid_cron_expression("every morning")
        False
    """
    try:
        build_cron_trigger(cron_expr)
    except InvalidCronExpressionError:
        return False
    return True
