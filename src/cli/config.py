"""YAML configuration loader with env var resolution and Pydantic validation.

Loads config from (priority order):
1. --config <path> CLI flag
2. ./ci-memory.yaml or ./ci-memory.yml (working directory)
3. ~/.ci-memory/config.yaml (user home)

With no file found, built-in defaults are used.

Environment variables override YAML: CIMEMORY_<SECTION>_<KEY>.
${VAR} references in YAML values resolve from environment at load time.
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

from src.db.connection import get_database_url

logger = logging.getLogger(__name__)

ENV_PREFIX = "CIMEMORY_"

_ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")


def resolve_env_vars(value: str) -> str:
    """Resolve ${VAR} references in a string from environment variables.

    Missing env vars resolve to empty string.
    """
    def _replace(match: re.Match) -> str:
        return os.environ.get(match.group(1), "")

    return _ENV_VAR_PATTERN.sub(_replace, value)


def _resolve_env_vars_recursive(data: Any) -> Any:
    if isinstance(data, str):
        return resolve_env_vars(data)
    elif isinstance(data, dict):
        return {k: _resolve_env_vars_recursive(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [_resolve_env_vars_recursive(item) for item in data]
    return data


class DatabaseConfig(BaseModel):
    """Where conversations are stored."""

    url: str | None = None
    echo: bool = False

    def resolved_url(self) -> str:
        """Configured URL, else DATABASE_URL / CIMEMORY_DB_PATH / default path."""
        return self.url or get_database_url()


class MemoryConfig(BaseModel):
    """Conversation store limits."""

    max_messages_per_conversation: int = Field(default=100, gt=0)
    max_content_length: int = Field(default=10_000_000, gt=0)
    history_window: int = Field(default=100, gt=0)


class RetentionConfig(BaseModel):
    """Scheduled pruning of old conversation messages."""

    enabled: bool = True
    interval_seconds: float = Field(default=3600.0, gt=0)
    initial_delay_seconds: float = Field(default=3600.0, ge=0)


class IngestionConfig(BaseModel):
    """Freshness window for inbound pipeline logs.

    ``max_age_seconds: null`` disables the freshness check.
    """

    max_age_seconds: float | None = Field(default=420.0, gt=0)
    allowed_future_gap_seconds: float = Field(default=30.0, ge=0)


class LoggingConfig(BaseModel):
    """Application log settings."""

    level: str = "info"
    file: str | None = None


class MemoryServiceConfig(BaseModel):
    """Top-level configuration for the ci-memory service."""

    database: DatabaseConfig = DatabaseConfig()
    memory: MemoryConfig = MemoryConfig()
    retention: RetentionConfig = RetentionConfig()
    ingestion: IngestionConfig = IngestionConfig()
    logging: LoggingConfig = LoggingConfig()


def _find_config_file() -> Path | None:
    """Search for config file in standard locations.

    Returns:
        Path to config file if found, None otherwise.
    """
    candidates = [
        Path.cwd() / "ci-memory.yaml",
        Path.cwd() / "ci-memory.yml",
        Path.home() / ".ci-memory" / "config.yaml",
    ]
    for candidate in candidates:
        if candidate.exists():
            return candidate
    return None


def _coerce_env_value(value: str) -> Any:
    try:
        return int(value)
    except ValueError:
        pass
    lowered = value.lower()
    if lowered in ("true", "false"):
        return lowered == "true"
    if lowered in ("none", "null"):
        return None
    return value


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Apply CIMEMORY_<SECTION>_<KEY> env var overrides to config data.

    Section names are matched by longest prefix, so
    ``CIMEMORY_RETENTION_INTERVAL_SECONDS`` maps to section ``retention``,
    field ``interval_seconds``.

    Args:
        data: Parsed YAML config dict.

    Returns:
        Config dict with env var overrides applied.
    """
    known_sections = sorted(
        MemoryServiceConfig.model_fields.keys(), key=len, reverse=True
    )
    for key, value in os.environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        suffix = key[len(ENV_PREFIX):].lower()  # e.g. "retention_enabled"
        matched_section = None
        matched_field = None
        for section in known_sections:
            section_prefix = section + "_"
            if suffix.startswith(section_prefix):
                matched_section = section
                matched_field = suffix[len(section_prefix):]
                break
        if matched_section is None or not matched_field:
            continue
        if data.get(matched_section) is None:
            data[matched_section] = {}
        if isinstance(data[matched_section], dict):
            data[matched_section][matched_field] = _coerce_env_value(value)
    return data


def load_config(config_path: str | None = None) -> MemoryServiceConfig:
    """Load ci-memory configuration from YAML file with env var resolution.

    Args:
        config_path: Explicit path to config file. If None, searches
            standard locations (cwd, then ~/.ci-memory/).

    Returns:
        Parsed and validated MemoryServiceConfig. Defaults (plus env
        overrides) when no config file exists.

    Raises:
        FileNotFoundError: If an explicit config_path does not exist.
        pydantic.ValidationError: If a value is out of range.
    """
    if config_path:
        path: Path | None = Path(config_path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
    else:
        path = _find_config_file()

    raw_data: dict[str, Any] = {}
    if path is not None:
        logger.info("Loading config from %s", path)
        with open(path) as f:
            raw_data = yaml.safe_load(f) or {}
    else:
        logger.debug("No config file found, using defaults")

    data = _resolve_env_vars_recursive(raw_data)
    data = _apply_env_overrides(data)
    return MemoryServiceConfig(**data)
