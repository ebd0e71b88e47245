"""
Configuration system for stageplan.

Implements 12-factor config principles:
- Environment variables as primary config source
- Optional config file (JSON or YAML)
- Validated, immutable settings

Usage:
    from stageplan.config import get_config, ParallelismConfig

    # Load from environment (default)
    config = get_config()

    # Explicit settings
    config = ParallelismConfig(default_parallelism=8, max_parallelism=16)

    # Derive a variant
    tuned = config.with_overrides(target_volume_per_instance=64 * 1024 * 1024)
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from stageplan.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_MAX_PARALLELISM = 128


class ParallelismConfig(BaseModel):
    """
    Global parallelism settings.

    ``default_parallelism`` may be left unset, in which case the environment
    parallelism handed to the pass (or 1) is used for unconstrained stages.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    default_parallelism: int | None = Field(
        default=None,
        ge=1,
        description="Parallelism for stages without constraints or statistics",
    )
    max_parallelism: int = Field(
        default=DEFAULT_MAX_PARALLELISM,
        ge=1,
        description="Upper bound for every resolved parallelism",
    )
    target_volume_per_instance: float | None = Field(
        default=None,
        gt=0,
        allow_inf_nan=False,
        description="Bytes one parallel instance should process (statistics sizing)",
    )
    target_rows_per_instance: float | None = Field(
        default=None,
        gt=0,
        allow_inf_nan=False,
        description="Rows one parallel instance should process (statistics sizing)",
    )

    @model_validator(mode="after")
    def _default_within_max(self) -> "ParallelismConfig":
        if (
            self.default_parallelism is not None
            and self.default_parallelism > self.max_parallelism
        ):
            logger.warning(
                "default_parallelism %d exceeds max_parallelism %d; "
                "derived values will be clamped",
                self.default_parallelism,
                self.max_parallelism,
            )
        return self

    def effective_default(self, environment_parallelism: int | None = None) -> int:
        """
        Default parallelism for an unconstrained stage.

        Lookup order:
        1. ``default_parallelism`` if configured
        2. The environment parallelism, if positive
        3. 1
        """
        if self.default_parallelism is not None:
            return self.default_parallelism
        if environment_parallelism is not None and environment_parallelism >= 1:
            return environment_parallelism
        return 1

    def with_overrides(self, **overrides: Any) -> "ParallelismConfig":
        """Return a validated copy with some fields replaced (None values are ignored)."""
        data = self.model_dump()
        data.update({k: v for k, v in overrides.items() if v is not None})
        try:
            return ParallelismConfig(**data)
        except ValidationError as e:
            raise ConfigurationError(
                f"Invalid configuration override: {e.errors()[0]['msg']}",
                config_key=_first_error_key(e),
            ) from e

    def config_hash(self) -> str:
        """Stable digest of the settings, for caching and reports."""
        config_json = json.dumps(self.model_dump(), sort_keys=True, default=str)
        return hashlib.sha256(config_json.encode()).hexdigest()[:16]


def _first_error_key(error: ValidationError) -> str | None:
    errors = error.errors()
    if errors and errors[0].get("loc"):
        return str(errors[0]["loc"][0])
    return None


def _parse_env_int(value: str | None, key: str) -> int | None:
    """Parse integer from environment variable, ignoring bad values."""
    if value is None or not value.strip():
        return None
    try:
        return int(value)
    except ValueError:
        logger.warning("Could not parse %s=%s as integer, ignoring", key, value)
        return None


def _parse_env_float(value: str | None, key: str) -> float | None:
    """Parse float from environment variable, ignoring bad values."""
    if value is None or not value.strip():
        return None
    try:
        return float(value)
    except ValueError:
        logger.warning("Could not parse %s=%s as number, ignoring", key, value)
        return None


_ENV_FIELDS: dict[str, tuple[str, Any]] = {
    "STAGEPLAN_DEFAULT_PARALLELISM": ("default_parallelism", _parse_env_int),
    "STAGEPLAN_MAX_PARALLELISM": ("max_parallelism", _parse_env_int),
    "STAGEPLAN_TARGET_VOLUME_PER_INSTANCE": ("target_volume_per_instance", _parse_env_float),
    "STAGEPLAN_TARGET_ROWS_PER_INSTANCE": ("target_rows_per_instance", _parse_env_float),
}


def load_config_from_env() -> ParallelismConfig:
    """
    Load configuration from environment variables.

    Examples:
    - STAGEPLAN_DEFAULT_PARALLELISM=8
    - STAGEPLAN_MAX_PARALLELISM=256
    - STAGEPLAN_TARGET_VOLUME_PER_INSTANCE=134217728
    - STAGEPLAN_TARGET_ROWS_PER_INSTANCE=1000000

    Values that fail validation are logged and dropped; the field keeps
    its default.
    """
    config_kwargs: dict[str, Any] = {}

    for env_key, (field_name, parse) in _ENV_FIELDS.items():
        value = parse(os.environ.get(env_key), env_key)
        if value is None:
            continue
        try:
            ParallelismConfig(**{field_name: value})
        except ValidationError:
            logger.warning("Ignoring invalid %s=%s", env_key, value)
            continue
        config_kwargs[field_name] = value

    try:
        return ParallelismConfig(**config_kwargs)
    except ValidationError as e:
        raise ConfigurationError(
            f"Inconsistent environment configuration: {e.errors()[0]['msg']}",
            config_key=_first_error_key(e),
        ) from e


def load_config_from_file(path: Path) -> ParallelismConfig:
    """
    Load configuration from a JSON or YAML file.

    Raises:
        ConfigurationError: If the file is missing, unreadable or invalid
    """
    if not path.exists():
        raise ConfigurationError(f"Config file not found: {path}")

    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(f"Cannot read config file {path}: {e}") from e

    try:
        if path.suffix in (".yaml", ".yml"):
            data = yaml.safe_load(content)
        else:
            data = json.loads(content)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Malformed config file {path}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Config file {path} must contain a mapping, got {type(data).__name__}"
        )

    try:
        return ParallelismConfig(**data)
    except ValidationError as e:
        raise ConfigurationError(
            f"Invalid config file {path}: {e.errors()[0]['msg']}",
            config_key=_first_error_key(e),
        ) from e


@lru_cache(maxsize=1)
def get_config() -> ParallelismConfig:
    """
    Get the global configuration instance.

    Loads from:
    1. STAGEPLAN_CONFIG_FILE environment variable (if set)
    2. Environment variables (default)

    Result is cached for the lifetime of the process.
    """
    config_file = os.environ.get("STAGEPLAN_CONFIG_FILE")

    if config_file:
        return load_config_from_file(Path(config_file))

    return load_config_from_env()


def reset_config() -> None:
    """Reset the cached configuration (mainly for testing)."""
    get_config.cache_clear()
