"""Source file discovery across the workspace, with a content cache.

Scanning runs directory walks and file reads in worker threads, bounded by
``scan_workers``. Everything that touches the shared ``AnalysisContext``
happens back on the event loop thread.
"""

from __future__ import annotations

import asyncio
import os
import re
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Iterable, Optional

from .config import IndexerConfig, default_config
from .context import AnalysisContext
from .exceptions import FileReadFailure
from .extractors import ExtractorRegistry, ensure_unique_ids
from .logging_config import get_logger
from .models import BaseEntity
from .workspace import WorkspaceResolver, is_excluded_dir

logger = get_logger(__name__)

SOURCE_EXTENSIONS = (".ts", ".tsx", ".vue")
ROOT_SOURCE_DIRS = ("src", "lib", "app", "components", "pages", "views", "utils")


@dataclass
class DiscoveredFile:
    """One source file found by a scan, with its text already read."""

    path: Path
    relative_path: str
    content: str
    mtime: float
    is_workspace: bool
    is_ddd: bool


def is_source_file(path: Path) -> bool:
    name = path.name
    if name.endswith(".d.ts"):
        return False
    return path.suffix in SOURCE_EXTENSIONS


def di_import_pattern(modules: Iterable[str]) -> Optional[re.Pattern[str]]:
    """Regex matching an import or require of any of ``modules``."""
    names = [re.escape(m) for m in modules if m]
    if not names:
        return None
    alternation = "|".join(names)
    return re.compile(
        rf"""(from\s+['"]({alternation})['"]|require\s*\(\s*['"]({alternation})['"]\s*\))"""
    )


def _walk_sources(directory: Path) -> list[Path]:
    found = []
    for dirpath, dirnames, filenames in os.walk(directory):
        dirnames[:] = sorted(d for d in dirnames if not is_excluded_dir(d))
        for filename in filenames:
            path = Path(dirpath) / filename
            if is_source_file(path):
                found.append(path)
    return found


def _direct_sources(directory: Path) -> list[Path]:
    try:
        return [p for p in directory.iterdir() if p.is_file() and is_source_file(p)]
    except OSError:
        return []


def _stat_mtime(path: Path) -> int:
    try:
        return path.stat().st_mtime_ns
    except OSError as e:
        raise FileReadFailure(path, f"OS error: {e}")


def _read(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise FileReadFailure(path, f"Encoding error: {e}")
    except OSError as e:
        raise FileReadFailure(path, f"OS error: {e}")


class FileDiscovery:
    """Finds parseable files in the project and its workspace packages."""

    def __init__(
        self,
        root: Path | str,
        workspace: Optional[WorkspaceResolver] = None,
        config: Optional[IndexerConfig] = None,
        context: Optional[AnalysisContext] = None,
    ):
        self.root = Path(root).resolve()
        self.config = config or default_config
        self.workspace = workspace or WorkspaceResolver(self.root, self.config)
        self.context = context or AnalysisContext(self.root, self.config)
        self.registry = ExtractorRegistry(self.context)
        self._di_pattern = di_import_pattern(self.config.di_modules)
        self._semaphore: Optional[asyncio.Semaphore] = None

    def _limiter(self) -> asyncio.Semaphore:
        # Created lazily so it binds to the running loop.
        if self._semaphore is None:
            self._semaphore = asyncio.Semaphore(self.config.scan_workers)
        return self._semaphore

    # ── Scanning ──────────────────────────────────────────────────

    def scan_roots(self) -> list[tuple[Path, bool]]:
        """Directories to scan as ``(path, recursive)`` pairs."""
        info = self.workspace.resolve()
        self.context.workspace = info
        roots: list[tuple[Path, bool]] = [(self.root, False)]
        for name in ROOT_SOURCE_DIRS:
            candidate = self.root / name
            if candidate.is_dir():
                roots.append((candidate, True))
        for package_dir in info.package_paths:
            if package_dir != self.root:
                roots.append((package_dir, True))
        return roots

    async def _scan(self, directory: Path, recursive: bool) -> list[Path]:
        async with self._limiter():
            if recursive:
                return await asyncio.to_thread(_walk_sources, directory)
            return await asyncio.to_thread(_direct_sources, directory)

    async def discover(self) -> list[DiscoveredFile]:
        """
        Scan the project root, its conventional source directories and every
        workspace package.

        Returns:
            Discovered files sorted by absolute path, each path once.
        """
        roots = self.scan_roots()
        logger.debug(f"Scanning {len(roots)} roots with {self.config.scan_workers} workers")
        batches = await asyncio.gather(*(self._scan(path, recursive) for path, recursive in roots))

        unique: dict[Path, None] = {}
        for batch in batches:
            for path in batch:
                unique.setdefault(path.resolve(), None)

        files = await self._load(sorted(unique))
        logger.info(f"Discovered {len(files)} source files under {self.root}")
        return files

    async def discover_targets(self, paths: Iterable[Path | str]) -> list[DiscoveredFile]:
        """Targeted mode: load exactly the listed files, skipping non-source paths."""
        self.context.workspace = self.workspace.resolve()
        selected: dict[Path, None] = {}
        for path in paths:
            absolute = self.context.absolute(self.workspace.normalize_path(self.context.absolute(path)))
            if is_source_file(absolute):
                selected.setdefault(absolute, None)
        return await self._load(sorted(selected))

    async def _load(self, paths: list[Path]) -> list[DiscoveredFile]:
        results = await asyncio.gather(*(self._load_one(path) for path in paths))
        return [item for item in results if item is not None]

    async def _load_one(self, path: Path) -> Optional[DiscoveredFile]:
        try:
            async with self._limiter():
                mtime_ns = await asyncio.to_thread(_stat_mtime, path)
                content = self.context.contents.get(path, mtime_ns)
                if content is None:
                    content = await asyncio.to_thread(_read, path)
                    self.context.contents.put(path, mtime_ns, content)
        except FileReadFailure as e:
            logger.warning(f"Skipping {path}: {e.reason}")
            return None

        relative = self.context.relative(path)
        return DiscoveredFile(
            path=path,
            relative_path=relative,
            content=content,
            mtime=mtime_ns / 1e9,
            is_workspace=self.workspace.is_workspace_file(relative),
            is_ddd=self.is_ddd(content),
        )

    def is_ddd(self, content: str) -> bool:
        return bool(self._di_pattern and self._di_pattern.search(content))

    # ── Extraction ────────────────────────────────────────────────

    def extract_file(self, file: DiscoveredFile) -> list[BaseEntity]:
        entities = self.registry.extract_file(file.path, file.content)
        return [
            replace(
                entity,
                file=file.relative_path,
                is_workspace=file.is_workspace,
                is_ddd=file.is_ddd or entity.is_ddd,
            )
            for entity in entities
        ]

    async def extract_entities(self, files: list[DiscoveredFile]) -> list[BaseEntity]:
        """
        Run the extractors over discovered files and make IDs unique.

        Returns:
            Entities grouped by file in the order of ``files``, source order
            within each file.
        """
        entities: list[BaseEntity] = []
        for file in files:
            entities.extend(self.extract_file(file))
            # Yield between files so long extractions do not starve the loop.
            await asyncio.sleep(0)
        logger.info(f"Extracted {len(entities)} entities from {len(files)} files")
        return ensure_unique_ids(entities)

    async def run(self) -> list[BaseEntity]:
        """Full discovery plus extraction."""
        return await self.extract_entities(await self.discover())
