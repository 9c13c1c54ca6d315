"""Runtime configuration for unitindex - centralized configuration management."""

import copy
import json
import os
from pathlib import Path
from typing import Any

from unitindex.utils.constants import STATE_DIR_NAME
from unitindex.utils.logging import logger

DEFAULTS = {
    "paths": {
        "output_dir": "tmp/unitindex",
        "runtime_manifest": "unitindex.json",
    },
    "limits": {
        "max_file_size": 2 * 1024 * 1024,
        "chunk_threshold": 1500,
        "max_chunk_tokens": 1500,
        "workers": 1,
        "concurrent_extraction": False,
    },
    "conventions": {
        "vendored_segments": [
            "vendor/bundle",
            "vendor/cache",
            "node_modules",
            ".bundle",
            "gems",
            "site-packages",
            "dist-packages",
            ".venv",
        ],
        "service_suffixes": ["Service"],
        "job_suffixes": ["Job", "Worker"],
        "mailer_suffixes": ["Mailer"],
        "async_methods": ["perform_later", "perform_async", "perform_in", "perform_at"],
        "read_methods": ["find", "find_by", "where", "pluck", "first", "last", "exists?"],
        "single_column_writers": ["update_column", "write_attribute", "update_attribute"],
        "multi_column_writers": ["update_columns", "assign_attributes", "update", "update!"],
        "source_extension": ".rb",
    },
}

SECTIONS = tuple(DEFAULTS)


class ConfigError(ValueError):
    """Raised when a config file or environment variable holds an invalid value."""


def load_runtime_config(root: str | Path = ".") -> dict[str, Any]:
    """
    Load runtime configuration from .unitindex/config.json and environment variables.

    Config priority (highest to lowest):
    1. Environment variables (UNITINDEX_<SECTION>_<KEY>)
    2. <root>/.unitindex/config.json
    3. Built-in defaults

    Unknown keys and values whose type differs from the default are ignored
    with a warning. An unreadable config file falls back to the defaults.

    Args:
        root: Root directory to look for the config file

    Returns:
        Configuration dictionary with merged values

    Raises:
        ConfigError: If an environment override cannot be converted to the
            type of its default.
    """
    cfg = copy.deepcopy(DEFAULTS)

    path = Path(root) / STATE_DIR_NAME / "config.json"
    try:
        if path.exists():
            with open(path, encoding="utf-8") as f:
                user = json.load(f)

            if isinstance(user, dict):
                _merge_user_config(cfg, user, path)
            else:
                logger.warning(f"Ignoring {path}: expected a JSON object")
    except (json.JSONDecodeError, OSError) as e:
        logger.warning(f"Could not load config file from {path}: {e}")
        logger.info("Continuing with default configuration")

    for section in cfg:
        for key in cfg[section]:
            env_var = f"UNITINDEX_{section.upper()}_{key.upper()}"
            if env_var in os.environ:
                cfg[section][key] = _coerce_env(env_var, os.environ[env_var], cfg[section][key])

    return cfg


def _merge_user_config(cfg: dict[str, Any], user: dict[str, Any], path: Path) -> None:
    for section, values in user.items():
        if section not in cfg or not isinstance(values, dict):
            logger.warning(f"Unknown config section '{section}' in {path}")
            continue
        for key, value in values.items():
            if key not in cfg[section]:
                logger.warning(f"Unknown config key '{section}.{key}' in {path}")
                continue
            default = cfg[section][key]
            if isinstance(value, type(default)) and not (
                isinstance(value, bool) and not isinstance(default, bool)
            ):
                cfg[section][key] = value
            else:
                logger.warning(
                    f"Ignoring '{section}.{key}' in {path}: expected "
                    f"{type(default).__name__}, got {type(value).__name__}"
                )


def _coerce_env(env_var: str, value: str, default: Any) -> Any:
    """Convert an environment string to the type of *default*."""
    try:
        if isinstance(default, bool):
            lowered = value.strip().lower()
            if lowered in ("1", "true", "yes", "on"):
                return True
            if lowered in ("0", "false", "no", "off", ""):
                return False
            raise ValueError("expected a boolean")
        if isinstance(default, int):
            return int(value)
        if isinstance(default, float):
            return float(value)
        if isinstance(default, list):
            return [v.strip() for v in value.split(",") if v.strip()]
        return value
    except ValueError as e:
        raise ConfigError(f"Invalid value for environment variable {env_var}: '{value}' - {e}") from e
