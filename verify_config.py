#!/usr/bin/env python3
"""Simple script to verify config.example.yaml structure without importing the package."""

import sys
from pathlib import Path

import yaml

STAGE_NAMES = ("scrape", "enrich", "process")


def verify_config_structure(config_file: Path = Path("config.example.yaml")) -> bool:
    """Verify a pipeline config file has the expected structure."""
    if not config_file.exists():
        print(f"✗ {config_file} not found")
        return False

    try:
        with open(config_file, "r") as f:
            config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        print(f"✗ Failed to parse {config_file}: {e}")
        return False

    if not isinstance(config, dict):
        print(f"✗ {config_file} must contain a mapping at the top level")
        return False

    errors = []

    stages = config.get("stages")
    if not isinstance(stages, dict):
        errors.append("Missing required key: stages")
    else:
        for name in STAGE_NAMES:
            stage = stages.get(name)
            if not isinstance(stage, dict):
                errors.append(f"Missing stage: stages.{name}")
                continue
            if not stage.get("command"):
                errors.append(f"stages.{name} missing key: command")
            if "args" in stage and not isinstance(stage["args"], list):
                errors.append(f"stages.{name}.args must be a list")
            if "env" in stage and not isinstance(stage["env"], dict):
                errors.append(f"stages.{name}.env must be a dictionary")

    optional_checks = {
        "auth_markers": list,
        "scheduler": dict,
        "logging": dict,
    }

    for key, expected_type in optional_checks.items():
        if key in config and not isinstance(config[key], expected_type):
            errors.append(f"'{key}' must be of type {expected_type.__name__}")

    if errors:
        print(f"✗ {config_file} validation failed:")
        for error in errors:
            print(f"  - {error}")
        return False

    print(f"✓ {config_file} structure is valid")
    for name in STAGE_NAMES:
        stage = stages[name]
        print(f"  - {name}: {' '.join([str(stage['command']), *map(str, stage.get('args', []))])}")
    print(f"  - {len(config.get('auth_markers', []))} auth markers")
    print(f"  - Default schedule: {config.get('scheduler', {}).get('default_cron', 'not set')}")
    return True


if __name__ == "__main__":
    path = Path(sys.argv[1]) if len(sys.argv) > 1 else Path("config.example.yaml")
    sys.exit(0 if verify_config_structure(path) else 1)
