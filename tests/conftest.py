"""Shared fixtures: throwaway projects and workspaces built under tmp_path."""

import json
from pathlib import Path

import pytest

from frontmap.config import IndexerConfig
from frontmap.context import AnalysisContext


def write_tree(root: Path, files: dict) -> Path:
    """Create ``files`` (relative path -> text, or dict dumped as JSON) under ``root``."""
    for relative, content in files.items():
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, dict):
            content = json.dumps(content, indent=2)
        path.write_text(content, encoding="utf-8")
    return root


@pytest.fixture
def make_project(tmp_path):
    """Factory building a project from a file mapping; returns its resolved root."""

    def _make(files: dict, name: str = "project") -> Path:
        root = tmp_path / name
        root.mkdir(parents=True, exist_ok=True)
        write_tree(root, files)
        return root.resolve()

    return _make


@pytest.fixture
def config():
    """Fast settings for tests: no retry delay, no git history."""
    return IndexerConfig(retry_delay=0.0, git_max_commits=0)


@pytest.fixture
def context_for(config):
    def _context(root: Path) -> AnalysisContext:
        return AnalysisContext(root, config)

    return _context


MONOREPO_FILES = {
    "package.json": {"name": "mono", "private": True, "workspaces": ["packages/*"]},
    "packages/ui/package.json": {"name": "@mono/ui", "main": "src/index.ts"},
    "packages/ui/src/index.ts": "export { Button } from './Button';\nexport { formatLabel } from './format';\n",
    "packages/ui/src/Button.tsx": (
        "export function Button(props: { label: string; onPress: () => void }) {\n"
        "  return <button onClick={() => props.onPress()}>{props.label}</button>;\n"
        "}\n"
    ),
    "packages/ui/src/format.ts": (
        "export function formatLabel(text: string): string {\n"
        "  return text.trim();\n"
        "}\n"
    ),
    "packages/core/package.json": {
        "name": "@mono/core",
        "dependencies": {"@mono/ui": "workspace:*"},
    },
    "packages/core/src/store.ts": (
        "import { formatLabel } from '@mono/ui';\n"
        "\n"
        "/** Shared counter state */\n"
        "export const counterStore = { count: 0 };\n"
        "\n"
        "export function increment(label: string) {\n"
        "  counterStore.count += 1;\n"
        "  return formatLabel(label);\n"
        "}\n"
    ),
    "packages/docs/README.md": "# docs\n",
    "packages/docs/notes.ts": "export const NOTES = 'no manifest here';\n",
}


@pytest.fixture
def monorepo(make_project):
    """``packages/*`` workspace: two valid member packages and one without a manifest."""
    return make_project(MONOREPO_FILES, name="mono")
