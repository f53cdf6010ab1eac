"""Module specifier resolution and export-set analysis.

A specifier resolves only when it points inside the project: relative and
root-absolute paths, configured aliases, and workspace member packages.
Everything else is third party and never resolves.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Optional

from ..context import AnalysisContext
from ..exceptions import FileReadFailure, ModuleResolutionFailure, ParseFailure
from ..logging_config import get_logger
from ..parsing.nodes import (
    CallNode,
    CommentNode,
    DeclarationNode,
    ExportNode,
    ImportNode,
    MarkupElementNode,
    OtherNode,
    declared_names,
    top_level,
)
from ..parsing.sfc import split_sfc
from ..workspace import WorkspaceInfo, read_manifest
from .aliases import AliasTable

logger = get_logger(__name__)

RESOLVE_EXTENSIONS = (".ts", ".tsx", ".vue", ".js", ".jsx")
ENTRY_CANDIDATES = ("index.js", "index.jsx", "index.ts", "index.tsx")
SRC_ENTRY_CANDIDATES = ("src/index.ts", "src/index.tsx", "src/index.js", "src/index.jsx")

_COMMONJS_MARKERS = ("Object.defineProperty(exports,", "exports.")
_COMMONJS_NAMED = re.compile(
    r"""(?:exports\.(\w+)\s*=|Object\.defineProperty\s*\(\s*exports\s*,\s*["'](\w+)["'])"""
)
_COMMONJS_DEFAULT = re.compile(r"module\.exports\s*=")


class ModuleResolver:
    """Resolves import specifiers to files and computes what they export."""

    def __init__(
        self,
        context: AnalysisContext,
        workspace: Optional[WorkspaceInfo] = None,
        aliases: Optional[AliasTable] = None,
    ):
        self.context = context
        self.workspace = workspace or context.workspace or WorkspaceInfo(root=context.root)
        self.aliases = aliases if aliases is not None else (context.aliases or AliasTable())
        self._resolving: set[Path] = set()

    # ── Classification ────────────────────────────────────────────

    def workspace_package(self, specifier: str) -> Optional[str]:
        """Longest workspace package name that ``specifier`` names or reaches into."""
        matches = [
            name
            for name in self.workspace.packages
            if specifier == name or specifier.startswith(name + "/")
        ]
        return max(matches, key=len) if matches else None

    def is_third_party(self, specifier: str) -> bool:
        if specifier.startswith((".", "/")):
            return False
        if self.aliases.match(specifier) is not None:
            return False
        return self.workspace_package(specifier) is None

    # ── Path resolution ───────────────────────────────────────────

    def resolve_file(self, base: Path) -> Optional[Path]:
        """Try ``base`` with each source extension, as a directory, then as-is."""
        if not base.suffix or base.suffix not in RESOLVE_EXTENSIONS:
            for ext in RESOLVE_EXTENSIONS:
                candidate = base.with_name(base.name + ext)
                if candidate.is_file():
                    return candidate
        if base.is_dir():
            for ext in RESOLVE_EXTENSIONS:
                candidate = base / f"index{ext}"
                if candidate.is_file():
                    return candidate
            main = manifest_main(base)
            if main is not None:
                return main
        if base.exists():
            return base
        return None

    def resolve_module(self, specifier: str, from_file: Path | str) -> Path:
        """
        Resolve a specifier imported by ``from_file``.

        Args:
            specifier: Module specifier as written in the import
            from_file: Importing file (absolute or root-relative)

        Returns:
            Absolute path of a file, or of a package directory when a
            workspace package cannot be narrowed to a file

        Raises:
            ModuleResolutionFailure: If the specifier is third party or
                nothing on disk matches
        """
        origin = self.context.absolute(from_file)

        if specifier.startswith("."):
            resolved = self.resolve_file((origin.parent / specifier).resolve())
        elif specifier.startswith("/"):
            resolved = self.resolve_file(self.context.root / specifier.lstrip("/"))
        elif (target := self.aliases.match(specifier)) is not None:
            resolved = self.resolve_file(target)
        elif (package := self.workspace_package(specifier)) is not None:
            resolved = self._resolve_workspace(specifier, package)
        else:
            raise ModuleResolutionFailure(specifier, origin, "third-party module")

        if resolved is None:
            raise ModuleResolutionFailure(specifier, origin, "no matching file")
        return resolved

    def _resolve_workspace(self, specifier: str, package: str) -> Optional[Path]:
        package_dir = self.workspace.packages[package]
        rest = specifier[len(package):].lstrip("/")
        if rest:
            resolved = self.resolve_file(package_dir / rest)
            if resolved is not None:
                return resolved
        return package_dir if package_dir.exists() else None

    def resolve(self, specifier: str, from_file: Path | str) -> Optional[Path]:
        """Like ``resolve_module`` but returns None on failure."""
        try:
            return self.resolve_module(specifier, from_file)
        except ModuleResolutionFailure as e:
            logger.debug(f"Unresolved '{specifier}' from {e.from_file}: {e.reason}")
            return None

    def directory_entry(self, directory: Path) -> Optional[Path]:
        """Entry file of a package or source directory."""
        main = manifest_main(directory)
        if main is not None and main.is_file():
            return main
        for name in ENTRY_CANDIDATES + SRC_ENTRY_CANDIDATES:
            candidate = directory / name
            if candidate.is_file():
                return candidate
        return None

    # ── Exports ───────────────────────────────────────────────────

    def module_exports(self, path: Path | str) -> frozenset[str]:
        """
        Names a module exports, ``"default"`` included when it has one.

        Results are cached on the context. ``export * from`` chains are
        followed once per path, so cycles terminate.
        """
        absolute = self.context.absolute(path)
        cached = self.context.exports.get(absolute)
        if cached is not None:
            return cached
        if absolute in self._resolving:
            return frozenset()

        self._resolving.add(absolute)
        try:
            names = self._compute_exports(absolute)
        finally:
            self._resolving.discard(absolute)

        exports = frozenset(names)
        self.context.exports[absolute] = exports
        return exports

    def _compute_exports(self, path: Path) -> set[str]:
        if path.is_dir():
            entry = self.directory_entry(path)
            if entry is None:
                logger.debug(f"No entry file in {path}")
                return set()
            return set(self.module_exports(entry))

        try:
            content = self.context.read_text(path)
        except FileReadFailure as e:
            logger.debug(f"Cannot read exports of {path}: {e.reason}")
            return set()

        try:
            if path.suffix == ".vue":
                return self._sfc_exports(path, content)
            names = self._script_exports(path, self.context.parse(path, content).root)
        except ParseFailure as e:
            logger.debug(f"Cannot parse exports of {path}: {e.reason}")
            return set()

        if path.suffix == ".js" or any(marker in content for marker in _COMMONJS_MARKERS):
            names |= commonjs_exports(content)
        return names

    def _sfc_exports(self, path: Path, content: str) -> set[str]:
        names = {"default"}
        descriptor = split_sfc(content)
        for _block, cached in self.context.parse_sfc_scripts(path, descriptor):
            names |= self._script_exports(path, cached.root)
        return names

    def _script_exports(self, path: Path, root) -> set[str]:
        names: set[str] = set()
        for item in top_level(root):
            match item:
                case ExportNode(is_star=True, source=str(source), specifiers=()):
                    target = self.resolve(source, path)
                    if target is not None:
                        names |= {name for name in self.module_exports(target) if name != "default"}
                case ExportNode(is_star=True, specifiers=specifiers):
                    names.update(alias for _name, alias in specifiers)
                case ExportNode(declaration=None, is_default=True):
                    names.add("default")
                case ExportNode(declaration=None, specifiers=specifiers):
                    names.update(alias for _name, alias in specifiers)
                case ExportNode(declaration=declaration, is_default=is_default):
                    names |= declared_names(declaration)
                    if is_default:
                        names.add("default")
                case DeclarationNode() | ImportNode() | CallNode():
                    pass
                case MarkupElementNode() | CommentNode() | OtherNode():
                    pass
        return names


def commonjs_exports(content: str) -> set[str]:
    """Export names assigned through ``exports`` / ``module.exports``."""
    names = set()
    for match in _COMMONJS_NAMED.finditer(content):
        name = match.group(1) or match.group(2)
        if name and name != "__esModule":
            names.add(name)
    if _COMMONJS_DEFAULT.search(content):
        names.add("default")
    return names


def manifest_main(directory: Path) -> Optional[Path]:
    """Existing target of the ``main`` field of ``directory``'s manifest."""
    manifest = read_manifest(directory)
    main = manifest.get("main") if manifest else None
    if isinstance(main, str) and main:
        candidate = (directory / main).resolve()
        if candidate.exists():
            return candidate
    return None
