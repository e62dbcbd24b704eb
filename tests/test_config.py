"""Integration tests for configuration module."""

import sys
from pathlib import Path

import pytest
import yaml

from acquisition.config import (
    DEFAULT_AUTH_MARKERS,
    ConfigurationError,
    load_config,
    parse_app_config,
    validate_config_file,
)
from acquisition.config.environment import DEFAULT_DATABASE_URL, load_environment_config
from acquisition.config.validators import check_for_warnings
from acquisition.domain.models import DEFAULT_CRON_EXPRESSION


def stage(command=sys.executable, **extra):
    return {"command": command, **extra}


def minimal_config(**overrides):
    config = {
        "stages": {
            "scrape": stage(args=["scrape.py"]),
            "enrich": stage(args=["enrich.py"]),
            "process": stage(args=["process.py"]),
        }
    }
    config.update(overrides)
    return config


@pytest.fixture
def write_config(tmp_path):
    """Write a mapping (or raw text) to tmp_path/config.yaml and return the path."""

    def _write(content, name="config.yaml"):
        path = tmp_path / name
        path.write_text(content if isinstance(content, str) else yaml.safe_dump(content))
        return path

    return _write


@pytest.fixture
def clean_env(monkeypatch):
    """Remove environment variables that affect configuration."""
    for name in ("DATABASE_URL", "LOG_LEVEL", "ENVIRONMENT"):
        monkeypatch.delenv(name, raising=False)


class TestConfigurationLoading:
    """Test configuration loading from YAML files."""

    def test_load_minimal_config_with_defaults(self, write_config, clean_env):
        """Test loading a minimal configuration with defaults."""
        app_config, env_config = load_config(write_config(minimal_config()))

        assert app_config.stages.scrape.args == ["scrape.py"]
        assert app_config.auth_markers == DEFAULT_AUTH_MARKERS
        assert app_config.scheduler.default_cron == DEFAULT_CRON_EXPRESSION
        assert app_config.scheduler.timezone == "UTC"
        assert app_config.scheduler.misfire_grace_seconds == 300
        assert app_config.logging.level == "INFO"
        assert app_config.logging.format == "key-value"

        assert env_config.database_url == DEFAULT_DATABASE_URL
        assert env_config.log_level is None
        assert env_config.environment == "local"

    def test_load_full_config(self, write_config, clean_env, tmp_path):
        (tmp_path / "jobs").mkdir()
        config = minimal_config(
            auth_markers=["scan QR code", "  Login required  ", ""],
            scheduler={"default_cron": "0  6 * * *", "timezone": "Europe/Berlin", "misfire_grace_seconds": 60},
            logging={"level": "DEBUG", "format": "json"},
        )
        config["stages"]["enrich"] = stage(working_directory="jobs", env={"BATCH_SIZE": 50, "DRY_RUN": True})

        app_config, _ = load_config(write_config(config))

        assert app_config.auth_markers == ["scan QR code", "Login required"]
        assert app_config.scheduler.default_cron == "0 6 * * *"
        assert app_config.scheduler.timezone == "Europe/Berlin"
        assert app_config.logging.format == "json"
        assert app_config.stages.enrich.env == {"BATCH_SIZE": "50", "DRY_RUN": "True"}

    def test_working_directory_resolved_relative_to_config_file(self, write_config, clean_env, tmp_path):
        (tmp_path / "stages").mkdir()
        config = minimal_config()
        config["stages"]["scrape"] = stage(working_directory="stages")

        app_config, _ = load_config(write_config(config))

        assert app_config.stages.scrape.working_directory == (tmp_path / "stages").resolve()
        assert app_config.stages.enrich.working_directory == tmp_path.resolve()

    def test_absolute_working_directory_kept(self, write_config, clean_env, tmp_path):
        absolute = tmp_path / "elsewhere"
        absolute.mkdir()
        config = minimal_config()
        config["stages"]["process"] = stage(working_directory=str(absolute))

        app_config, _ = load_config(write_config(config))

        assert app_config.stages.process.working_directory == absolute

    def test_default_location_lookup(self, tmp_path, monkeypatch, clean_env):
        """Test ./config/config.yaml is found when no path is given."""
        (tmp_path / "config").mkdir()
        (tmp_path / "config" / "config.yaml").write_text(yaml.safe_dump(minimal_config()))
        monkeypatch.chdir(tmp_path)

        app_config, _ = load_config()

        assert app_config.stages.scrape.command == sys.executable

    def test_missing_config_file(self, tmp_path, monkeypatch, clean_env):
        monkeypatch.chdir(tmp_path)

        with pytest.raises(ConfigurationError, match="not found"):
            load_config()

        with pytest.raises(ConfigurationError, match="Specified configuration file not found"):
            load_config(tmp_path / "nope.yaml")


class TestConfigurationValidation:
    """Test validation failures and their messages."""

    def test_missing_stage(self, write_config):
        config = minimal_config()
        del config["stages"]["enrich"]

        with pytest.raises(ConfigurationError) as exc_info:
            load_config(write_config(config))

        assert "Missing required field: stages -> enrich" in exc_info.value.errors
        assert "Suggestions:" in str(exc_info.value)

    def test_blank_command_rejected(self):
        config = minimal_config()
        config["stages"]["scrape"] = {"command": "   "}

        with pytest.raises(ConfigurationError) as exc_info:
            parse_app_config(config)

        assert any("stages -> scrape -> command" in error for error in exc_info.value.errors)

    def test_args_must_be_list(self):
        config = minimal_config()
        config["stages"]["scrape"] = {"command": "scraper", "args": "--all"}

        with pytest.raises(ConfigurationError) as exc_info:
            parse_app_config(config)

        assert any("args" in error for error in exc_info.value.errors)

    def test_invalid_default_cron(self):
        with pytest.raises(ConfigurationError) as exc_info:
            parse_app_config(minimal_config(scheduler={"default_cron": "twice a day"}))

        assert any("Invalid cron expression" in error for error in exc_info.value.errors)

    def test_unknown_timezone(self):
        with pytest.raises(ConfigurationError) as exc_info:
            parse_app_config(minimal_config(scheduler={"timezone": "Mars/Olympus_Mons"}))

        assert any("Unknown timezone" in error for error in exc_info.value.errors)

    def test_misfire_grace_bounds(self):
        with pytest.raises(ConfigurationError):
            parse_app_config(minimal_config(scheduler={"misfire_grace_seconds": 0}))

    def test_invalid_log_format(self):
        with pytest.raises(ConfigurationError):
            parse_app_config(minimal_config(logging={"format": "xml"}))

    def test_invalid_yaml(self, write_config):
        with pytest.raises(ConfigurationError, match="Failed to parse YAML"):
            load_config(write_config("stages: [unclosed"))

    def test_empty_file(self, write_config):
        with pytest.raises(ConfigurationError, match="empty"):
            load_config(write_config(""))

    def test_non_mapping_file(self, write_config):
        with pytest.raises(ConfigurationError, match="mapping"):
            load_config(write_config("- just\n- a list\n"))

    def test_validate_config_file(self, write_config, capsys):
        assert validate_config_file(write_config(minimal_config())) is True
        assert "✓" in capsys.readouterr().out

        assert validate_config_file(write_config({"stages": {}}, name="bad.yaml")) is False
        assert "✗" in capsys.readouterr().out


class TestConfigurationWarnings:
    """Test non-fatal configuration checks."""

    def test_missing_working_directory_warns(self, write_config, clean_env):
        config = minimal_config()
        config["stages"]["scrape"] = stage(working_directory="does-not-exist")

        with pytest.warns(UserWarning, match="does not exist"):
            load_config(write_config(config))

    def test_unknown_command_warns(self):
        config = parse_app_config(minimal_config())
        config.stages.enrich.command = "no-such-enricher-binary"

        messages = check_for_warnings(config.resolve_paths(Path.cwd()))

        assert any("'enrich' was not found on PATH" in m for m in messages)

    def test_empty_markers_warn(self):
        config = parse_app_config(minimal_config(auth_markers=[]))

        messages = check_for_warnings(config.resolve_paths(Path.cwd()))

        assert any("auth_markers is empty" in m for m in messages)

    def test_clean_config_has_no_warnings(self, tmp_path):
        config = parse_app_config(minimal_config()).resolve_paths(tmp_path)

        assert check_for_warnings(config) == []


class TestEnvironmentConfig:
    """Test environment variable loading."""

    def test_defaults(self, clean_env):
        env_config = load_environment_config()

        assert env_config.database_url == DEFAULT_DATABASE_URL
        assert env_config.log_level is None
        assert env_config.environment == "local"

    def test_values_from_environment(self, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "sqlite:////var/lib/pipeline/runs.db")
        monkeypatch.setenv("LOG_LEVEL", "debug")
        monkeypatch.setenv("ENVIRONMENT", "production")

        env_config = load_environment_config()

        assert env_config.database_url == "sqlite:////var/lib/pipeline/runs.db"
        assert env_config.log_level == "DEBUG"
        assert env_config.environment == "production"

    def test_invalid_values(self, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "runs.db")
        monkeypatch.setenv("LOG_LEVEL", "LOUD")

        with pytest.raises(ConfigurationError) as exc_info:
            load_environment_config()

        assert len(exc_info.value.errors) == 2
