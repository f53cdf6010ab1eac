"""
Persistent extraction cache for frontmap.

Uses diskcache for SQLite-based storage of per-file extraction results
between runs. The in-process caches live on ``AnalysisContext``; this
layer only short-circuits re-extraction of files untouched since the last
run.
"""

import hashlib
import json
from pathlib import Path
from typing import Any, Optional

from diskcache import Cache

from .logging_config import get_logger

logger = get_logger(__name__)


class ExtractionStore:
    """
    SQLite-backed store of extraction results.

    Features:
    - Keys derived from file path, mtime, size, extractor kind and config hash
    - TTL-based expiration
    - Safe to share between processes
    """

    def __init__(
        self,
        cache_dir: str = ".frontmap-cache",
        ttl_hours: int = 24,
        enabled: bool = True,
        config_hash: str = "",
    ):
        """
        Initialize the store.

        Args:
            cache_dir: Directory for cache storage
            ttl_hours: Time-to-live in hours
            enabled: Whether caching is enabled
            config_hash: Hash of settings that change extraction output
        """
        self.enabled = enabled
        self.ttl_seconds = ttl_hours * 3600
        self.config_hash = config_hash

        if self.enabled:
            self.cache: Optional[Cache] = Cache(cache_dir)
            logger.debug(f"Extraction store initialized at {cache_dir} with TTL={ttl_hours}h")
        else:
            self.cache = None
            logger.debug("Extraction store disabled")

    def file_key(self, filepath: Path, extractor_kind: str) -> Optional[str]:
        """
        Cache key for one (extractor, file) pair, or None if the file is gone.

        The key is based on:
        - Extractor kind
        - File path
        - File modification time
        - File size
        - Configuration hash
        """
        try:
            stat = filepath.stat()
        except OSError:
            return None
        key_data = (
            f"{extractor_kind}:{filepath}:{stat.st_mtime_ns}:{stat.st_size}:{self.config_hash}"
        )
        return hashlib.sha256(key_data.encode()).hexdigest()

    def get(self, key: str) -> Optional[Any]:
        """Get value from the store, None if missing or expired."""
        if not self.enabled or self.cache is None:
            return None

        value = self.cache.get(key)
        if value is not None:
            logger.debug(f"Store hit: {key[:16]}...")
        return value

    def set(self, key: str, value: Any) -> None:
        """Set value in the store."""
        if not self.enabled or self.cache is None:
            return

        self.cache.set(key, value, expire=self.ttl_seconds)
        logger.debug(f"Store set: {key[:16]}...")

    def clear(self) -> None:
        """Clear all entries."""
        if not self.enabled or self.cache is None:
            return

        self.cache.clear()
        logger.info("Extraction store cleared")

    def stats(self) -> dict:
        """
        Get store statistics.

        Returns:
            Dictionary with store stats
        """
        if not self.enabled or self.cache is None:
            return {"enabled": False}

        return {
            "enabled": True,
            "size": len(self.cache),
            "directory": self.cache.directory,
            "volume": self.cache.volume(),
        }

    def close(self) -> None:
        """Close the store."""
        if self.cache is not None:
            self.cache.close()


def compute_config_hash(config: dict) -> str:
    """
    Compute hash of configuration for cache invalidation.

    Args:
        config: Configuration dictionary

    Returns:
        SHA256 hash of configuration
    """
    config_str = json.dumps(config, sort_keys=True, default=str)
    return hashlib.sha256(config_str.encode()).hexdigest()[:16]
