"""Non-fatal configuration checks."""

import shutil
import warnings
from typing import List

from .models import AppConfig


def check_for_warnings(app_config: AppConfig) -> List[str]:
    """
    Inspect a validated configuration for likely mistakes.

    None of these stop the service: a working directory may be mounted
    later, and a program may appear on PATH after a deploy.

    Args:
        app_config: Configuration with stage paths already resolved

    Returns:
        List of warning messages
    """
    warning_messages = []

    for name in ("scrape", "enrich", "process"):
        stage = getattr(app_config.stages, name)

        if not stage.working_directory.is_dir():
            warning_messages.append(
                f"Working directory for stage '{name}' does not exist: {stage.working_directory}"
            )

        if shutil.which(stage.command) is None and not (
            stage.working_directory / stage.command
        ).exists():
            warning_messages.append(
                f"Command for stage '{name}' was not found on PATH: {stage.command}"
            )

    if not app_config.auth_markers:
        warning_messages.append(
            "auth_markers is empty; runs will never report AUTH_REQUIRED"
        )

    return warning_messages


def emit_warnings(warning_messages: List[str]) -> None:
    """Emit each message as a UserWarning."""
    for message in warning_messages:
        warnings.warn(message, UserWarning, stacklevel=2)
