"""Configuration schema models using Pydantic."""

from enum import Enum
from pathlib import Path
from typing import Dict, List
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, field_validator

from acquisition.domain.models import DEFAULT_CRON_EXPRESSION
from acquisition.utils.cron import InvalidCronExpressionError, build_cron_trigger

DEFAULT_AUTH_MARKERS = ["scan QR code", "QR code"]


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogFormat(str, Enum):
    """Log output formats."""

    JSON = "json"
    KEY_VALUE = "key-value"


class StageConfig(BaseModel):
    """One external command of the pipeline."""

    command: str = Field(..., min_length=1, description="Program to execute")
    args: List[str] = Field(default_factory=list, description="Arguments passed to the program")
    working_directory: Path = Field(
        Path("."), description="Directory the command runs in (relative to the config file)"
    )
    env: Dict[str, str] = Field(
        default_factory=dict, description="Extra environment variables for this stage"
    )

    @field_validator("command")
    @classmethod
    def strip_command(cls, v: str) -> str:
        """Strip whitespace from the command name."""
        stripped = v.strip()
        if not stripped:
            raise ValueError("command cannot be empty or whitespace-only")
        return stripped

    @field_validator("env", mode="before")
    @classmethod
    def stringify_env(cls, v):
        """YAML turns ``1``/``true`` into non-strings; the environment needs text."""
        if isinstance(v, dict):
            return {str(key): str(value) for key, value in v.items()}
        return v

    def resolved(self, base_dir: Path) -> "StageConfig":
        """Copy of this stage with a relative working directory anchored at base_dir."""
        if self.working_directory.is_absolute():
            return self
        return self.model_copy(
            update={"working_directory": (base_dir / self.working_directory).resolve()}
        )

    def describe(self) -> str:
        """Command line as a single string, for logs."""
        return " ".join([self.command, *self.args])


class StagesConfig(BaseModel):
    """The three stages, in execution order."""

    scrape: StageConfig = Field(..., description="Stage 1: scraper")
    enrich: StageConfig = Field(..., description="Stage 2: enrichment")
    process: StageConfig = Field(..., description="Stage 3: database sync")


class SchedulerSettings(BaseModel):
    """Runtime settings for scheduled runs."""

    default_cron: str = Field(
        DEFAULT_CRON_EXPRESSION,
        description="Expression stored when no scheduler configuration exists yet",
    )
    timezone: str = Field("UTC", description="Timezone cron expressions are evaluated in")
    misfire_grace_seconds: int = Field(
        300, ge=1, le=86400, description="How late a scheduled run may still start"
    )

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        """Reject unknown IANA timezone names."""
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {v}") from e
        return v

    @field_validator("default_cron")
    @classmethod
    def validate_default_cron(cls, v: str) -> str:
        """The default expression must be installable."""
        try:
            build_cron_trigger(v)
        except InvalidCronExpressionError as e:
            raise ValueError(str(e)) from e
        return " ".join(v.split())


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: LogLevel = Field(LogLevel.INFO, description="Log level")
    format: LogFormat = Field(
        LogFormat.KEY_VALUE, description="Log output format (json or key-value)"
    )

    model_config = {"use_enum_values": True}


class AppConfig(BaseModel):
    """Root configuration object for the acquisition pipeline."""

    stages: StagesConfig = Field(..., description="External commands for each stage")
    auth_markers: List[str] = Field(
        default_factory=lambda: list(DEFAULT_AUTH_MARKERS),
        description="Output substrings meaning the scraper needs an interactive login",
    )
    scheduler: SchedulerSettings = Field(
        default_factory=SchedulerSettings, description="Scheduler settings"
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description="Logging configuration"
    )

    @field_validator("auth_markers")
    @classmethod
    def normalize_markers(cls, v: List[str]) -> List[str]:
        """Strip markers and drop empty ones; matching is case-sensitive."""
        return [marker.strip() for marker in v if marker and marker.strip()]

    def resolve_paths(self, base_dir: Path) -> "AppConfig":
        """Anchor every relative stage working directory at base_dir."""
        self.stages = StagesConfig(
            scrape=self.stages.scrape.resolved(base_dir),
            enrich=self.stages.enrich.resolved(base_dir),
            process=self.stages.process.resolved(base_dir),
        )
        return self
