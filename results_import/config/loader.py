from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

from ..models.entities import ResultDefaults, resolve_timezone

"""Config loader for the results import tool.

Responsibilities:
- Load YAML config/import.yml
- Validate it against config_schema.json (unknown keys rejected)
- Check that ``timezone`` names a known IANA zone
- Apply defaults (batch_size=50, timezone=UTC, pass / published)

A missing config file is an error only when the path was given explicitly;
``load_config_or_default`` covers the "no config, use defaults" case.
"""

__all__ = [
    "ConfigError",
    "DatabaseConfig",
    "ImportConfig",
    "SCHEMA_PATH",
    "DEFAULT_CONFIG_PATH",
    "load_config",
    "load_config_or_default",
]

SCHEMA_PATH = Path(__file__).with_name("config_schema.json")
DEFAULT_CONFIG_PATH = Path("config/import.yml")

DEFAULT_BATCH_SIZE = 50
DEFAULT_REPORT_DIR = "./reports"


class ConfigError(Exception):
    pass


@dataclass(frozen=True)
class DatabaseConfig:
    host: str | None = None
    port: int | None = None
    user: str | None = None
    password: str | None = None
    database: str | None = None
    dsn: str | None = None


@dataclass(frozen=True)
class ImportConfig:
    batch_size: int = DEFAULT_BATCH_SIZE
    error_report_directory: str = DEFAULT_REPORT_DIR
    defaults: ResultDefaults = field(default_factory=ResultDefaults)
    timezone: str = "UTC"
    keep_na_strings: list[str] = field(default_factory=list)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)


def _validate_config_schema(data: Any) -> None:
    """Validate config data against the JSON schema.

    Raises:
        ConfigError: schema file missing / not JSON, or the data violates it
    """
    if not SCHEMA_PATH.exists():
        raise ConfigError(f"config schema not found: {SCHEMA_PATH}")
    try:
        schema = json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))
        jsonschema.validate(data, schema)
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid schema file: {e}") from e
    except ValidationError as e:
        raise ConfigError(f"config validation failed: {e.message}") from e


def load_config(path: Path) -> ImportConfig:
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e

    _validate_config_schema(data)

    timezone = data.get("timezone", "UTC")
    try:
        resolve_timezone(timezone)
    except ValueError as e:
        raise ConfigError(f"config validation failed: {e}") from e

    defaults_raw = data.get("defaults", {})
    db_raw = data.get("database", {})
    return ImportConfig(
        batch_size=data.get("batch_size", DEFAULT_BATCH_SIZE),
        error_report_directory=data.get("error_report_directory", DEFAULT_REPORT_DIR),
        defaults=ResultDefaults(
            status_text=defaults_raw.get("status_text", "pass"),
            result_status=defaults_raw.get("result_status", "published"),
        ),
        timezone=timezone,
        keep_na_strings=list(data.get("keep_na_strings", [])),
        database=DatabaseConfig(
            host=db_raw.get("host"),
            port=db_raw.get("port"),
            user=db_raw.get("user"),
            password=db_raw.get("password"),
            database=db_raw.get("database"),
            dsn=db_raw.get("dsn"),
        ),
    )


def load_config_or_default(path: Path | None) -> ImportConfig:
    """Load ``path`` if given; otherwise the default path if it exists, else built-in defaults."""
    if path is not None:
        return load_config(path)
    if DEFAULT_CONFIG_PATH.exists():
        return load_config(DEFAULT_CONFIG_PATH)
    return ImportConfig()
