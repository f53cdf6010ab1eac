"""Configuration loading and management for frontmap.

Configuration sources are merged in priority order:
    1. Defaults (defined in IndexerConfig)
    2. Global config (~/.frontmap.toml)
    3. Project config (./frontmap.toml)
    4. Explicit config file
    5. FRONTMAP_* environment variables
    6. CLI overrides (passed as kwargs)

Example:
    >>> config = load_config(concurrency=2, verbose=True)
    >>> config.concurrency
    2
    >>> config.verbosity
    'verbose'
"""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal, Optional, get_type_hints

from .exceptions import ConfigurationError

Verbosity = Literal["quiet", "normal", "verbose"]
InsertMode = Literal["before", "after"]


@dataclass(frozen=True)
class IndexerConfig:
    """Configuration for discovery, extraction and enrichment.

    Attributes:
        Enrichment:
            concurrency: Maximum simultaneous labeler calls
            max_retries: Retries per entity after the first attempt
            retry_delay: Fixed delay between attempts (seconds)
            labeler_timeout: Deadline for a single labeler call (seconds)

        Discovery:
            scan_workers: Bounded worker count for file scanning
            content_cache_mb: File content cache ceiling; exceeding it clears the cache
            glob_max_depth: Depth limit for recursive workspace glob expansion
            di_modules: Import specifiers marking a file as dependency-injection based

        Parse cache:
            memory_budget_entries: Estimated entry budget for cached extraction results

        Annotations:
            annotation_insert_mode: Insert new annotations before or after the declaration
            overwrite_existing_annotation: Replace a located old annotation in place

        Persistent cache:
            cache_enabled: Keep extraction results on disk between runs
            cache_dir: Directory for cache storage
            cache_ttl_hours: Cache time-to-live in hours

        Commit history:
            git_max_commits: Maximum commits read for labeler context (0 = disabled)

        Output control:
            verbosity: Logging verbosity level
    """

    concurrency: int = 5
    max_retries: int = 3
    retry_delay: float = 1.0
    labeler_timeout: float = 120.0

    scan_workers: int = 8
    content_cache_mb: float = 100.0
    glob_max_depth: int = 3
    di_modules: list[str] = field(default_factory=list)

    memory_budget_entries: int = 5000

    annotation_insert_mode: InsertMode = "before"
    overwrite_existing_annotation: bool = True

    cache_enabled: bool = False
    cache_dir: str = ".frontmap-cache"
    cache_ttl_hours: int = 24

    git_max_commits: int = 500

    verbosity: Verbosity = "normal"

    def __post_init__(self) -> None:
        if self.concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        if self.max_retries < 0:
            raise ValueError("max_retries must be non-negative")
        if self.retry_delay < 0:
            raise ValueError("retry_delay must be non-negative")
        if self.labeler_timeout <= 0:
            raise ValueError("labeler_timeout must be positive")

        if self.scan_workers < 1:
            raise ValueError("scan_workers must be at least 1")
        if self.content_cache_mb <= 0:
            raise ValueError("content_cache_mb must be positive")
        if self.glob_max_depth < 1:
            raise ValueError("glob_max_depth must be at least 1")
        if self.memory_budget_entries < 1:
            raise ValueError("memory_budget_entries must be at least 1")

        if self.annotation_insert_mode not in ("before", "after"):
            raise ValueError("annotation_insert_mode must be 'before' or 'after'")
        if self.cache_ttl_hours < 0:
            raise ValueError("cache_ttl_hours must be non-negative")
        if self.git_max_commits < 0:
            raise ValueError("git_max_commits must be non-negative")
        if self.verbosity not in ("quiet", "normal", "verbose"):
            raise ValueError("verbosity must be one of: quiet, normal, verbose")

    @property
    def content_cache_bytes(self) -> int:
        """Get the content cache ceiling in bytes."""
        return int(self.content_cache_mb * 1024 * 1024)

    @property
    def cache_ttl_seconds(self) -> int:
        """Get cache TTL in seconds."""
        return self.cache_ttl_hours * 3600


def load_config(config_file: Optional[Path] = None, **overrides) -> IndexerConfig:
    """Load configuration with auto-discovery and merging.

    Args:
        config_file: Optional explicit config file path
        **overrides: Direct overrides (typically from CLI flags). ``None``
            values are ignored so unset CLI options keep file/env values.

    Returns:
        Validated IndexerConfig instance

    Raises:
        ConfigurationError: If a config file is invalid or missing
    """
    merged: dict = {}

    global_config = Path.home() / ".frontmap.toml"
    if global_config.exists():
        try:
            merged.update(_load_toml_file(global_config))
        except (OSError, tomllib.TOMLDecodeError) as e:
            raise ConfigurationError(f"Invalid global config '{global_config}': {e}")

    project_config = Path.cwd() / "frontmap.toml"
    if project_config.exists():
        try:
            merged.update(_load_toml_file(project_config))
        except (OSError, tomllib.TOMLDecodeError) as e:
            raise ConfigurationError(f"Invalid project config '{project_config}': {e}")

    if config_file is not None:
        if not config_file.exists():
            raise ConfigurationError(f"Config file not found: {config_file}")
        try:
            merged.update(_load_toml_file(config_file))
        except (OSError, tomllib.TOMLDecodeError) as e:
            raise ConfigurationError(f"Invalid config file '{config_file}': {e}")

    merged.update(_load_env_vars())

    if "verbose" in overrides:
        if overrides["verbose"]:
            overrides["verbosity"] = "verbose"
        del overrides["verbose"]
    if "quiet" in overrides:
        if overrides["quiet"]:
            overrides["verbosity"] = "quiet"
        del overrides["quiet"]

    merged.update({k: v for k, v in overrides.items() if v is not None})

    try:
        return IndexerConfig(**merged)
    except TypeError as e:
        # Unknown field in config
        raise ConfigurationError(f"Invalid configuration: {e}")
    except ValueError as e:
        raise ConfigurationError(f"Invalid configuration: {e}")


def _load_env_vars() -> dict[str, Any]:
    """Load configuration from FRONTMAP_* environment variables.

    Every scalar field of IndexerConfig maps to ``FRONTMAP_<FIELD>``, e.g.
    ``FRONTMAP_CONCURRENCY=2`` or ``FRONTMAP_CACHE_ENABLED=true``.
    ``FRONTMAP_DI_MODULES`` takes a comma-separated list.

    Returns:
        Dict of field_name -> parsed_value for any FRONTMAP_* vars found.
    """
    type_hints = get_type_hints(IndexerConfig)

    result: dict[str, Any] = {}

    for field_name in IndexerConfig.__dataclass_fields__:
        env_key = f"FRONTMAP_{field_name.upper()}"
        env_value = os.environ.get(env_key)

        if env_value is None:
            continue

        type_hint = type_hints.get(field_name)
        if type_hint is None:
            continue

        try:
            parsed = _parse_env_value(env_value, type_hint, field_name)
            if parsed is not None:
                result[field_name] = parsed
        except ValueError as e:
            raise ConfigurationError(f"Invalid {env_key}: {e}")

    return result


def _parse_env_value(value: str, type_hint: Any, field_name: str) -> Any:
    """Parse environment variable string to the correct type.

    Args:
        value: Raw string from environment
        type_hint: Type annotation from dataclass
        field_name: Field name for error messages

    Returns:
        Parsed value or None if can't parse

    Raises:
        ValueError: If value can't be parsed to expected type
    """
    origin = getattr(type_hint, "__origin__", None)

    # Handle Optional[X] which is Union[X, None]
    args = getattr(type_hint, "__args__", ())
    if type(None) in args:
        non_none_types = [t for t in args if t is not type(None)]
        if non_none_types:
            type_hint = non_none_types[0]
            origin = getattr(type_hint, "__origin__", None)

    if origin is list:
        return [part.strip() for part in value.split(",") if part.strip()]

    if type_hint is bool:
        lower = value.lower()
        if lower in ("true", "1", "yes", "on"):
            return True
        elif lower in ("false", "0", "no", "off"):
            return False
        else:
            raise ValueError(f"expected true/false, got '{value}'")

    if type_hint is int:
        return int(value)

    if type_hint is float:
        return float(value)

    if type_hint is str or origin is Literal:
        return value

    return None


def _load_toml_file(path: Path) -> dict:
    """Load TOML file and return parsed dict.

    A ``[frontmap]`` table is honoured when present, so the settings can
    also live inside a larger shared TOML file.
    """
    with open(path, "rb") as f:
        data = tomllib.load(f)
    section = data.get("frontmap")
    if isinstance(section, dict):
        return section
    return data


default_config = IndexerConfig()
