"""Shared analysis state for one indexing run.

``AnalysisContext`` owns every cache the extractors and the reference
resolver share:

- ``trees``: parsed syntax trees keyed by absolute path, reused while the
  file's mtime (or supplied content) is unchanged;
- ``extractions``: ``(extractor_kind, path) -> entities``, insertion
  ordered so the oldest half can be evicted when the memory budget is hit;
- ``exports``: export-name sets of resolved modules;
- ``contents``: file text keyed by path and mtime, with a size ceiling.

All mutation happens on the event loop thread, between await points.
``invalidate(path)`` must be called after a file is rewritten.
"""

from __future__ import annotations

import hashlib
import os
from collections import OrderedDict
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional

from .cache import ExtractionStore
from .config import IndexerConfig, default_config
from .exceptions import FileReadFailure
from .logging_config import get_logger
from .parsing.sfc import SfcBlock, SfcDescriptor
from .parsing.treesitter_parser import TreeSitterParser, language_for_path, language_for_script_lang

if TYPE_CHECKING:
    from .models import BaseEntity
    from .resolver.aliases import AliasTable
    from .workspace import WorkspaceInfo

logger = get_logger(__name__)


@dataclass
class CachedTree:
    tree: Any
    source: bytes
    mtime_ns: Optional[int]
    content_hash: str
    language: str

    @property
    def root(self) -> Any:
        return self.tree.root_node


class FileContentCache:
    """File text keyed by (path, mtime). Exceeding the ceiling clears everything."""

    def __init__(self, max_bytes: int):
        self.max_bytes = max_bytes
        self._entries: dict[Path, tuple[int, str]] = {}
        self._size = 0
        self.clears = 0

    def get(self, path: Path, mtime_ns: int) -> Optional[str]:
        entry = self._entries.get(path)
        if entry is not None and entry[0] == mtime_ns:
            return entry[1]
        return None

    def put(self, path: Path, mtime_ns: int, content: str) -> None:
        previous = self._entries.pop(path, None)
        if previous is not None:
            self._size -= len(previous[1])
        size = len(content)
        if self._size + size > self.max_bytes:
            logger.debug(
                f"Content cache exceeded {self.max_bytes} bytes, clearing {len(self._entries)} entries"
            )
            self.clear()
            self.clears += 1
        self._entries[path] = (mtime_ns, content)
        self._size += size

    def discard(self, path: Path) -> None:
        entry = self._entries.pop(path, None)
        if entry is not None:
            self._size -= len(entry[1])

    def clear(self) -> None:
        self._entries.clear()
        self._size = 0

    @property
    def size(self) -> int:
        return self._size

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, path: object) -> bool:
        return path in self._entries


class AnalysisContext:
    """Explicit owner of parse trees, extraction results and resolution caches."""

    def __init__(
        self,
        root: Path,
        config: Optional[IndexerConfig] = None,
        parser: Optional[TreeSitterParser] = None,
        store: Optional[ExtractionStore] = None,
    ):
        self.root = Path(root).resolve()
        self.config = config or default_config
        self.parser = parser or TreeSitterParser()
        self.store = store

        self.trees: dict[Path, CachedTree] = {}
        self.extractions: OrderedDict[tuple[str, Path], list[BaseEntity]] = OrderedDict()
        self.exports: dict[Path, frozenset[str]] = {}
        self.contents = FileContentCache(self.config.content_cache_bytes)

        self.workspace: Optional[WorkspaceInfo] = None
        self.aliases: Optional[AliasTable] = None

        self.parse_count = 0
        self.evictions = 0

    # ── Paths ─────────────────────────────────────────────────────

    def absolute(self, path: Path | str) -> Path:
        path = Path(path)
        if not path.is_absolute():
            path = self.root / path
        return path.resolve()

    def relative(self, path: Path | str) -> str:
        """Project-root relative POSIX path. Paths outside the root keep ``..``."""
        absolute = self.absolute(path)
        try:
            return absolute.relative_to(self.root).as_posix()
        except ValueError:
            return Path(os.path.relpath(absolute, self.root)).as_posix()

    # ── Contents ──────────────────────────────────────────────────

    def read_text(self, path: Path | str) -> str:
        """Read a file through the content cache.

        Raises:
            FileReadFailure: If the file vanished or cannot be decoded
        """
        absolute = self.absolute(path)
        try:
            mtime_ns = absolute.stat().st_mtime_ns
        except OSError as e:
            raise FileReadFailure(absolute, f"OS error: {e}")

        cached = self.contents.get(absolute, mtime_ns)
        if cached is not None:
            return cached

        try:
            content = absolute.read_text(encoding="utf-8")
        except UnicodeDecodeError as e:
            raise FileReadFailure(absolute, f"Encoding error: {e}")
        except OSError as e:
            raise FileReadFailure(absolute, f"OS error: {e}")

        self.contents.put(absolute, mtime_ns, content)
        return content

    # ── Parse trees ───────────────────────────────────────────────

    def parse(
        self,
        path: Path | str,
        content: Optional[str] = None,
        language: Optional[str] = None,
    ) -> CachedTree:
        """Return the cached tree for ``path`` or parse it.

        With ``content`` given, the cached tree is reused only if the content
        hash matches; otherwise the file's mtime decides.

        Raises:
            FileReadFailure: If the file must be read and cannot be
            ParseFailure: If the grammar cannot parse the source
        """
        absolute = self.absolute(path)
        language = language or language_for_path(absolute)
        cached = self.trees.get(absolute)

        if content is None:
            try:
                mtime_ns: Optional[int] = absolute.stat().st_mtime_ns
            except OSError as e:
                self.invalidate(absolute)
                raise FileReadFailure(absolute, f"OS error: {e}")
            if cached is not None and cached.mtime_ns == mtime_ns and cached.language == language:
                return cached
            content = self.read_text(absolute)
        else:
            digest = hashlib.md5(content.encode("utf-8")).hexdigest()
            if cached is not None and cached.content_hash == digest and cached.language == language:
                return cached
            try:
                mtime_ns = absolute.stat().st_mtime_ns
            except OSError:
                mtime_ns = None

        if cached is not None:
            # Stale tree: drop everything derived from it.
            self.invalidate(absolute)

        source = content.encode("utf-8")
        tree = self.parser.parse(source, language, absolute)
        self.parse_count += 1
        entry = CachedTree(
            tree=tree,
            source=source,
            mtime_ns=mtime_ns,
            content_hash=hashlib.md5(source).hexdigest(),
            language=language,
        )
        self.trees[absolute] = entry
        return entry

    def parse_sfc_scripts(
        self, path: Path | str, descriptor: SfcDescriptor
    ) -> list[tuple[SfcBlock, CachedTree]]:
        """Trees for every script block of a single-file component, file order.

        Only the primary script (setup, else plain) is cached under the
        file's path; a second block is parsed on the side so the two never
        evict each other.

        Raises:
            ParseFailure: If a block cannot be parsed
        """
        absolute = self.absolute(path)
        primary = descriptor.primary_script
        trees = []
        for block in descriptor.scripts:
            language = language_for_script_lang(block.lang)
            if block is primary:
                trees.append((block, self.parse(absolute, block.content, language=language)))
                continue
            source = block.content.encode("utf-8")
            tree = self.parser.parse(source, language, absolute)
            self.parse_count += 1
            trees.append(
                (
                    block,
                    CachedTree(
                        tree=tree,
                        source=source,
                        mtime_ns=None,
                        content_hash=hashlib.md5(source).hexdigest(),
                        language=language,
                    ),
                )
            )
        return trees

    # ── Extraction results ────────────────────────────────────────

    def get_extraction(self, kind: str, path: Path | str) -> Optional[list[BaseEntity]]:
        absolute = self.absolute(path)
        key = (kind, absolute)
        entities = self.extractions.get(key)
        if entities is not None:
            cached_tree = self.trees.get(absolute)
            if cached_tree is not None and not self._tree_is_fresh(absolute, cached_tree):
                self.invalidate(absolute)
                return None
            return entities

        if self.store is not None:
            store_key = self.store.file_key(absolute, kind)
            if store_key is not None:
                stored = self.store.get(store_key)
                if stored is not None:
                    self.extractions[key] = stored
                    return stored
        return None

    def put_extraction(self, kind: str, path: Path | str, entities: list[BaseEntity]) -> None:
        absolute = self.absolute(path)
        self.extractions[(kind, absolute)] = entities
        self.extractions.move_to_end((kind, absolute))
        if self.store is not None:
            store_key = self.store.file_key(absolute, kind)
            if store_key is not None:
                self.store.set(store_key, entities)
        self._enforce_budget()

    def _tree_is_fresh(self, path: Path, cached: CachedTree) -> bool:
        if cached.mtime_ns is None:
            return True
        try:
            return path.stat().st_mtime_ns == cached.mtime_ns
        except OSError:
            return False

    def estimated_entries(self) -> int:
        """Rough size of the extraction cache: one per key plus one per entity."""
        return sum(1 + len(entities) for entities in self.extractions.values())

    def _enforce_budget(self) -> None:
        budget = self.config.memory_budget_entries
        if self.estimated_entries() <= budget:
            return
        evict = len(self.extractions) // 2 or 1
        for _ in range(evict):
            self.extractions.popitem(last=False)
        self.evictions += 1
        logger.debug(f"Extraction cache over budget ({budget}), evicted {evict} oldest entries")

    # ── Invalidation ──────────────────────────────────────────────

    def invalidate(self, path: Path | str) -> None:
        """Drop ``path`` from every sub-cache."""
        absolute = self.absolute(path)
        self.trees.pop(absolute, None)
        self.exports.pop(absolute, None)
        self.contents.discard(absolute)
        for key in [key for key in self.extractions if key[1] == absolute]:
            del self.extractions[key]

    def clear_extractor(self, kind: str) -> None:
        """Drop every extraction result produced by one extractor kind."""
        for key in [key for key in self.extractions if key[0] == kind]:
            del self.extractions[key]

    def reset(self) -> None:
        """Clear every cache. Workspace and alias tables are rebuilt on demand."""
        self.trees.clear()
        self.extractions.clear()
        self.exports.clear()
        self.contents.clear()
        self.workspace = None
        self.aliases = None

    def stats(self) -> dict[str, int]:
        return {
            "trees": len(self.trees),
            "extractions": len(self.extractions),
            "exports": len(self.exports),
            "contents": len(self.contents),
            "parses": self.parse_count,
            "evictions": self.evictions,
        }
