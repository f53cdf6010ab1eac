"""Shared CLI helpers."""

from pathlib import Path
from typing import Optional

from rich.console import Console

from ..cache import ExtractionStore, compute_config_hash
from ..config import IndexerConfig, load_config
from ..context import AnalysisContext

console = Console()


def resolve_config(
    config: Optional[Path] = None,
    concurrency: Optional[int] = None,
    retries: Optional[int] = None,
    retry_delay: Optional[float] = None,
    timeout: Optional[float] = None,
    verbose: bool = False,
    quiet: bool = False,
) -> IndexerConfig:
    """Build configuration from CLI options."""
    overrides = {
        "concurrency": concurrency,
        "max_retries": retries,
        "retry_delay": retry_delay,
        "labeler_timeout": timeout,
    }
    if verbose:
        overrides["verbose"] = True
    if quiet:
        overrides["quiet"] = True
    return load_config(config_file=config, **overrides)


def open_store(config: IndexerConfig) -> ExtractionStore:
    """Extraction store for ``config``; keyed so option changes miss old entries."""
    return ExtractionStore(
        cache_dir=config.cache_dir,
        ttl_hours=config.cache_ttl_hours,
        enabled=config.cache_enabled,
        config_hash=compute_config_hash({"di_modules": config.di_modules}),
    )


def build_context(root: Path, config: IndexerConfig) -> AnalysisContext:
    store = open_store(config) if config.cache_enabled else None
    return AnalysisContext(root, config, store=store)
