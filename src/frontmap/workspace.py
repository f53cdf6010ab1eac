"""Monorepo root detection and member package enumeration.

A workspace root is the nearest ancestor holding ``pnpm-workspace.yaml`` or
a ``package.json`` with a ``workspaces`` field. Member packages are found
by a chain of strategies, each falling through to the next:

1. the manifest's glob patterns, every candidate validated as a package;
2. ``workspace:`` and injected dependencies declared by the project, looked
   up through ``node_modules`` symlinks (pnpm store names mapped back);
3. a bounded-depth manifest search for names still missing.
"""

from __future__ import annotations

import json
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml

from .config import IndexerConfig, default_config
from .logging_config import get_logger

logger = get_logger(__name__)

PNPM_WORKSPACE_FILE = "pnpm-workspace.yaml"
PACKAGE_MANIFEST = "package.json"

DEFAULT_PATTERNS = ("packages/*", "packages/*/*", "apps/*", "libs/*", "modules/*")

EXCLUDED_DIRS = frozenset(
    {
        "node_modules",
        "dist",
        "build",
        "coverage",
        "tmp",
        "temp",
        "logs",
        "cache",
        "out",
        "target",
        "bin",
        "obj",
        ".git",
    }
)
EXCLUDED_PACKAGE_NAMES = ("eslint-config", "prettier-config", "tsconfig")
PACKAGE_SOURCE_DIRS = ("src", "lib", "app", "components", "pages", "views")
ENTRY_FILE_STEMS = ("index", "main", "app", "server")
ENTRY_FILE_EXTENSIONS = (".js", ".ts", ".jsx", ".tsx", ".vue")
SOURCE_FILE_EXTENSIONS = (".js", ".ts", ".jsx", ".tsx", ".vue", ".json")
WORKSPACE_SEGMENTS = ("packages", "apps", "libs", "modules")

_PNPM_STORE_DIR = re.compile(r"node_modules/\.pnpm/file\+packages\+([^/]+)/node_modules/")
_PNPM_STORE_FILE = re.compile(
    r"node_modules/\.pnpm/file\+packages\+([^/]+)/node_modules/(@[^/]+/[^/]+|[^/]+)/(.+)$"
)
_NODE_MODULES_FILE = re.compile(r"node_modules/(@[^/]+/[^/]+|[^/]+)/(.+)$")


def is_excluded_dir(name: str) -> bool:
    return name.startswith(".") or name in EXCLUDED_DIRS


def read_manifest(directory: Path) -> Optional[dict[str, Any]]:
    """Parsed ``package.json`` of a directory, or None if missing or invalid."""
    manifest = directory / PACKAGE_MANIFEST
    if not manifest.is_file():
        return None
    try:
        data = json.loads(manifest.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.debug(f"Unreadable manifest {manifest}: {e}")
        return None
    return data if isinstance(data, dict) else None


def find_workspace_root(start: Path | str) -> Optional[Path]:
    """Nearest ancestor (inclusive) that declares workspace members."""
    current = Path(start).resolve()
    while True:
        if (current / PNPM_WORKSPACE_FILE).is_file():
            return current
        manifest = read_manifest(current)
        if manifest is not None and manifest.get("workspaces"):
            return current
        if current.parent == current:
            return None
        current = current.parent


def has_source_files(directory: Path) -> bool:
    """True if the directory looks like it holds code, not just a manifest."""
    for name in PACKAGE_SOURCE_DIRS:
        if (directory / name).is_dir():
            return True
    for stem in ENTRY_FILE_STEMS:
        for ext in ENTRY_FILE_EXTENSIONS:
            if (directory / f"{stem}{ext}").is_file():
                return True
    try:
        entries = list(directory.iterdir())
    except OSError:
        return False
    return any(
        entry.is_file()
        and entry.name != PACKAGE_MANIFEST
        and entry.suffix.lower() in SOURCE_FILE_EXTENSIONS
        for entry in entries
    )


def package_name(directory: Path) -> Optional[str]:
    """Name of the package in ``directory`` if it is a valid workspace member.

    A member has a manifest with a string ``name`` that is not a shared
    config package, and contains source files.
    """
    if not directory.is_dir() or is_excluded_dir(directory.name):
        return None
    manifest = read_manifest(directory)
    if manifest is None:
        return None
    name = manifest.get("name")
    if not isinstance(name, str) or not name:
        logger.debug(f"Skipping {directory}: manifest has no name")
        return None
    if any(excluded in name for excluded in EXCLUDED_PACKAGE_NAMES):
        logger.debug(f"Skipping config package {name} at {directory}")
        return None
    if not has_source_files(directory):
        logger.debug(f"Skipping {name} at {directory}: no source files")
        return None
    return name


def find_all_directories(root: Path, max_depth: int, include_root: bool = True) -> list[Path]:
    """Directories under ``root`` down to ``max_depth`` levels, excluded names skipped."""
    found = [root] if include_root else []
    if max_depth <= 0:
        return found
    try:
        entries = sorted(root.iterdir())
    except OSError:
        return found
    for entry in entries:
        if is_excluded_dir(entry.name) or not entry.is_dir():
            continue
        found.extend(find_all_directories(entry, max_depth - 1, include_root=True))
    return found


def _expand_simple(base: Path, pattern: str) -> list[Path]:
    current = [base]
    for part in pattern.split("/"):
        if part in ("", "."):
            continue
        if part == "*":
            expanded = []
            for directory in current:
                try:
                    entries = sorted(directory.iterdir())
                except OSError:
                    continue
                expanded.extend(
                    entry for entry in entries if not is_excluded_dir(entry.name) and entry.is_dir()
                )
            current = expanded
        else:
            current = [directory / part for directory in current]
    return [directory for directory in current if directory.is_dir()]


def expand_pattern(base: Path, pattern: str, max_depth: int = 3) -> list[Path]:
    """
    Expand a workspace member pattern into existing directories.

    Supports literal paths, ``*`` per segment, ``**``, ``x/**``, ``**/x``
    and ``prefix**suffix``. Recursive descent stops at ``max_depth``.
    """
    pattern = pattern.replace("\\", "/").strip()
    if "**" not in pattern:
        return _expand_simple(base, pattern)

    if pattern in ("**", "**/*"):
        return find_all_directories(base, max_depth)
    if pattern.startswith("**/"):
        results = []
        for directory in find_all_directories(base, max_depth):
            results.extend(expand_pattern(directory, pattern[3:], max_depth))
        return results
    if pattern.endswith("/**/*") or pattern.endswith("/**"):
        prefix = pattern[: pattern.rindex("/**")]
        start = base / prefix
        return find_all_directories(start, max_depth) if start.is_dir() else []

    prefix, _, suffix = pattern.partition("**")
    prefix = prefix.rstrip("/")
    start = base / prefix if prefix else base
    if not start.is_dir():
        return []
    directories = find_all_directories(start, max_depth)
    suffix = suffix.lstrip("/")
    if not suffix or suffix == "*":
        return directories
    results = []
    for directory in directories:
        results.extend(expand_pattern(directory, suffix, max_depth))
    return results


def is_workspace_file(relative_path: str) -> bool:
    """True if a root-relative path escapes the project or sits under a member directory."""
    normalized = relative_path.replace("\\", "/")
    if normalized.startswith(".."):
        return True
    segments = normalized.split("/")
    return len(segments) > 1 and segments[0] in WORKSPACE_SEGMENTS


def declared_workspace_dependencies(manifest: dict[str, Any]) -> list[str]:
    """Dependency names using the ``workspace:`` protocol or marked as injected."""
    names: list[str] = []
    for section in ("dependencies", "devDependencies", "peerDependencies"):
        deps = manifest.get(section) or {}
        if not isinstance(deps, dict):
            continue
        for name, version in deps.items():
            if isinstance(version, str) and version.startswith("workspace:") and name not in names:
                names.append(name)
    meta = manifest.get("dependenciesMeta") or {}
    if isinstance(meta, dict):
        for name, options in meta.items():
            if isinstance(options, dict) and options.get("injected") is True and name not in names:
                names.append(name)
    return names


@dataclass
class WorkspaceInfo:
    """Member packages of a workspace: name to absolute directory."""

    root: Path
    packages: dict[str, Path] = field(default_factory=dict)
    single_package: bool = False

    @property
    def package_names(self) -> list[str]:
        return list(self.packages)

    @property
    def package_paths(self) -> list[Path]:
        return list(self.packages.values())

    @property
    def paths_to_names(self) -> dict[Path, str]:
        return {path: name for name, path in self.packages.items()}

    def package_for_path(self, path: Path) -> Optional[str]:
        """Name of the innermost member package containing ``path``."""
        best: Optional[tuple[int, str]] = None
        for name, directory in self.packages.items():
            if path == directory or directory in path.parents:
                depth = len(directory.parts)
                if best is None or depth > best[0]:
                    best = (depth, name)
        return best[1] if best else None


class WorkspaceResolver:
    """Locates the workspace root and enumerates its member packages."""

    def __init__(self, start_dir: Path | str, config: Optional[IndexerConfig] = None):
        self.start_dir = Path(start_dir).resolve()
        self.config = config or default_config
        self._info: Optional[WorkspaceInfo] = None
        self._dependents: Optional[dict[str, list[str]]] = None

    def resolve(self) -> WorkspaceInfo:
        """
        Resolve the workspace once and cache the result.

        Returns:
            WorkspaceInfo. Without any workspace manifest the start directory
            is a single-package workspace.
        """
        if self._info is not None:
            return self._info

        root = find_workspace_root(self.start_dir)
        if root is None:
            logger.debug(f"No workspace manifest above {self.start_dir}, using single package")
            self._info = self._single_package()
            return self._info

        logger.debug(f"Workspace root: {root}")
        packages: dict[str, Path] = {}
        for strategy in (self._from_patterns, self._from_declared_dependencies):
            try:
                for name, path in strategy(root, packages).items():
                    packages.setdefault(name, path)
            except OSError as e:
                logger.debug(f"Workspace strategy {strategy.__name__} failed: {e}")

        self._info = WorkspaceInfo(root=root, packages=packages)
        logger.info(f"Resolved {len(packages)} workspace packages under {root}")
        return self._info

    def _single_package(self) -> WorkspaceInfo:
        info = WorkspaceInfo(root=self.start_dir, single_package=True)
        manifest = read_manifest(self.start_dir)
        name = manifest.get("name") if manifest else None
        if isinstance(name, str) and name:
            info.packages[name] = self.start_dir
        return info

    # ── Strategies ────────────────────────────────────────────────

    def workspace_patterns(self, root: Path) -> list[str]:
        """Member patterns declared by the root manifests; negations ignored."""
        patterns: list[str] = []

        pnpm_file = root / PNPM_WORKSPACE_FILE
        if pnpm_file.is_file():
            try:
                data = yaml.safe_load(pnpm_file.read_text(encoding="utf-8")) or {}
            except (OSError, yaml.YAMLError) as e:
                logger.warning(f"Failed to parse {pnpm_file}: {e}")
                data = {}
            if isinstance(data, dict):
                patterns.extend(str(p) for p in data.get("packages") or [] if p)

        manifest = read_manifest(root) or {}
        workspaces = manifest.get("workspaces")
        if isinstance(workspaces, list):
            patterns.extend(str(p) for p in workspaces)
        elif isinstance(workspaces, dict):
            patterns.extend(str(p) for p in workspaces.get("packages") or [])

        patterns = [p for p in patterns if not p.startswith("!")]
        if not patterns:
            logger.debug(f"No member patterns declared, using defaults {DEFAULT_PATTERNS}")
            patterns = list(DEFAULT_PATTERNS)
        return patterns

    def _from_patterns(self, root: Path, known: dict[str, Path]) -> dict[str, Path]:
        found: dict[str, Path] = {}
        for pattern in self.workspace_patterns(root):
            candidates = expand_pattern(root, pattern, self.config.glob_max_depth)
            logger.debug(f"Pattern {pattern} expanded to {len(candidates)} directories")
            for candidate in candidates:
                name = package_name(candidate)
                if name and name not in found:
                    found[name] = candidate.resolve()
        return found

    def _from_declared_dependencies(self, root: Path, known: dict[str, Path]) -> dict[str, Path]:
        names: list[str] = []
        for directory in dict.fromkeys((self.start_dir, root)):
            manifest = read_manifest(directory)
            if manifest is not None:
                names.extend(n for n in declared_workspace_dependencies(manifest) if n not in names)

        found: dict[str, Path] = {}
        for name in names:
            if name in known:
                continue
            path = self._from_node_modules(root, name)
            if path is None:
                path = self._search_manifest(root, name, self.config.glob_max_depth)
            if path is None:
                logger.debug(f"Workspace dependency {name} not found")
                continue
            found[name] = path
        return found

    def _from_node_modules(self, root: Path, name: str) -> Optional[Path]:
        for base in dict.fromkeys((self.start_dir, root)):
            link = base / "node_modules" / name
            if not link.is_symlink():
                continue
            real = Path(os.path.realpath(link))
            if "node_modules" not in real.parts:
                return real
            mapped = self._from_pnpm_store(root, real.as_posix(), name)
            if mapped is not None:
                return mapped
        return None

    def _from_pnpm_store(self, root: Path, real_path: str, name: str) -> Optional[Path]:
        match = _PNPM_STORE_DIR.search(real_path)
        if not match:
            return None
        candidate = root.joinpath("packages", *match.group(1).split("+"))
        manifest = read_manifest(candidate)
        if manifest is not None and manifest.get("name") == name:
            return candidate
        return None

    def _search_manifest(self, directory: Path, name: str, depth: int) -> Optional[Path]:
        if depth <= 0:
            return None
        try:
            entries = sorted(directory.iterdir())
        except OSError:
            return None
        for entry in entries:
            if is_excluded_dir(entry.name) or not entry.is_dir():
                continue
            manifest = read_manifest(entry)
            if manifest is not None and manifest.get("name") == name:
                return entry.resolve()
            found = self._search_manifest(entry, name, depth - 1)
            if found is not None:
                return found
        return None

    # ── Queries ───────────────────────────────────────────────────

    def dependents_map(self) -> dict[str, list[str]]:
        """Member package name to the members that depend on it."""
        if self._dependents is not None:
            return self._dependents
        info = self.resolve()
        dependents: dict[str, list[str]] = {name: [] for name in info.packages}
        for member, directory in info.packages.items():
            manifest = read_manifest(directory) or {}
            for dependency in declared_workspace_dependencies(manifest):
                if dependency in dependents and member not in dependents[dependency]:
                    dependents[dependency].append(member)
        self._dependents = {name: sorted(members) for name, members in dependents.items()}
        return self._dependents

    def dependents(self, name: str) -> list[str]:
        return list(self.dependents_map().get(name, []))

    def is_workspace_file(self, relative_path: str) -> bool:
        return is_workspace_file(relative_path)

    def normalize_path(self, path: Path | str) -> Path:
        """Map a file under ``node_modules/<pkg>/`` to the member package directory."""
        path = Path(path)
        posix = path.as_posix()
        if "node_modules" not in path.parts:
            return path
        info = self.resolve()

        store = _PNPM_STORE_FILE.search(posix)
        if store:
            candidate = info.root.joinpath("packages", *store.group(1).split("+"))
            for directory in info.packages.values():
                if directory == candidate.resolve():
                    return directory / store.group(3)

        plain = _NODE_MODULES_FILE.search(posix)
        if plain and plain.group(1) in info.packages:
            return info.packages[plain.group(1)] / plain.group(2)
        return path
