"""Import alias tables loaded from compiler and bundler configuration."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any, Optional

import json5

from ..logging_config import get_logger

logger = get_logger(__name__)

TSCONFIG = "tsconfig.json"
VUE_CONFIG = "vue.config.js"
VITE_CONFIGS = ("vite.config.js", "vite.config.ts", "vitest.config.js", "vitest.config.ts")
WEBPACK_CONFIG = "webpack.config.js"

_WILDCARD_SUFFIX = re.compile(r"/?\*$")
_VUE_ALIAS_BLOCK = re.compile(r"alias\s*:\s*\{([^}]+)\}")
_VUE_REQUIRE_ALIAS = re.compile(
    r"""['"]([^'"]+)['"]\s*:\s*require\(['"`]path['"`]\)\.resolve\(__dirname,\s*['"]([^'"]+)['"]\)"""
)
_SIMPLE_ALIAS = re.compile(r"""['"]([^'"]+)['"]\s*:\s*['"]([^'"]+)['"]""")
_RESOLVE_ALIAS_BLOCK = re.compile(r"resolve\s*:\s*\{[^}]*alias\s*:\s*\{([^}]+)\}")
_RESOLVE_ALIAS_ENTRY = re.compile(
    r"""['"]([^'"]+)['"]\s*:\s*(?:path\.resolve\(__dirname,\s*)?['"]([^'"]+)['"]\)?"""
)


def find_upward(start: Path, filename: str) -> Optional[Path]:
    current = start
    while True:
        candidate = current / filename
        if candidate.is_file():
            return candidate
        if current.parent == current:
            return None
        current = current.parent


def read_tsconfig(path: Path, seen: Optional[set[Path]] = None) -> dict[str, Any]:
    """Parse a tsconfig (JSON5) and merge its ``extends`` chain, child winning."""
    seen = seen if seen is not None else set()
    path = path.resolve()
    if path in seen:
        return {}
    seen.add(path)
    try:
        config = json5.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.warning(f"Failed to parse {path}: {e}")
        return {}
    if not isinstance(config, dict):
        return {}

    extends = config.get("extends")
    if not isinstance(extends, str):
        return config

    base_path = path.parent / extends
    if not base_path.is_file() and base_path.suffix != ".json":
        base_path = base_path.with_name(base_path.name + ".json")
    base = read_tsconfig(base_path, seen) if base_path.is_file() else {}

    base_options = base.get("compilerOptions") or {}
    options = config.get("compilerOptions") or {}
    merged_options = {**base_options, **options}
    merged_options["paths"] = {**(base_options.get("paths") or {}), **(options.get("paths") or {})}
    if "baseUrl" not in options and "baseUrl" in base_options:
        # A baseUrl inherited from a parent config is relative to the parent.
        merged_options["baseUrl"] = str((base_path.parent / base_options["baseUrl"]).resolve())
    return {**base, **config, "compilerOptions": merged_options}


class AliasTable:
    """Alias prefix to absolute directory, matched longest-first."""

    def __init__(self, aliases: Optional[dict[str, Path]] = None):
        self.aliases: dict[str, Path] = dict(aliases or {})

    def __len__(self) -> int:
        return len(self.aliases)

    def __contains__(self, alias: object) -> bool:
        return alias in self.aliases

    def add(self, alias: str, target: Path) -> None:
        if alias:
            self.aliases[alias] = target

    def match(self, specifier: str) -> Optional[Path]:
        """Target path for a specifier, or None if no alias applies.

        An alias matches the specifier exactly or as a ``alias/`` prefix.
        """
        for alias in sorted(self.aliases, key=len, reverse=True):
            target = self.aliases[alias]
            if specifier == alias:
                return target
            prefix = alias if alias.endswith("/") else alias + "/"
            if specifier.startswith(prefix):
                return target / specifier[len(prefix):]
        return None

    @classmethod
    def load(cls, root: Path | str) -> AliasTable:
        """Collect aliases from tsconfig, vue, vite/vitest and webpack configs.

        Later sources override earlier ones for the same alias.
        """
        root = Path(root).resolve()
        table = cls()
        for loader in (_load_tsconfig, _load_vue_config, _load_vite_config, _load_webpack_config):
            try:
                loader(root, table)
            except (OSError, UnicodeDecodeError) as e:
                logger.warning(f"Alias loader {loader.__name__} failed: {e}")
        logger.debug(f"Loaded {len(table)} path aliases for {root}")
        return table


def _load_tsconfig(root: Path, table: AliasTable) -> None:
    path = find_upward(root, TSCONFIG)
    if path is None:
        return
    config = read_tsconfig(path)
    options = config.get("compilerOptions") or {}
    paths = options.get("paths") or {}
    base_url = path.parent / (options.get("baseUrl") or ".")
    for alias, targets in paths.items():
        if not isinstance(targets, list) or not targets:
            continue
        clean_alias = _WILDCARD_SUFFIX.sub("", alias)
        clean_target = _WILDCARD_SUFFIX.sub("", str(targets[0]))
        table.add(clean_alias, (base_url / clean_target).resolve())


def _load_vue_config(root: Path, table: AliasTable) -> None:
    path = root / VUE_CONFIG
    if not path.is_file():
        return
    block = _VUE_ALIAS_BLOCK.search(path.read_text(encoding="utf-8"))
    if not block:
        return
    content = block.group(1)
    for alias, target in _VUE_REQUIRE_ALIAS.findall(content):
        table.add(alias, (root / target).resolve())
    if "require(" not in content:
        for alias, target in _SIMPLE_ALIAS.findall(content):
            table.add(alias, (root / target).resolve())


def _load_resolve_block(root: Path, path: Path, table: AliasTable) -> None:
    block = _RESOLVE_ALIAS_BLOCK.search(path.read_text(encoding="utf-8"))
    if not block:
        return
    for alias, target in _RESOLVE_ALIAS_ENTRY.findall(block.group(1)):
        table.add(alias, (root / target).resolve())


def _load_vite_config(root: Path, table: AliasTable) -> None:
    for name in VITE_CONFIGS:
        path = root / name
        if path.is_file():
            _load_resolve_block(root, path, table)
            return


def _load_webpack_config(root: Path, table: AliasTable) -> None:
    path = root / WEBPACK_CONFIG
    if path.is_file():
        _load_resolve_block(root, path, table)
