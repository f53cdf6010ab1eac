"""Tests for source discovery, the content cache and targeted mode."""

import asyncio

from frontmap.config import IndexerConfig
from frontmap.context import AnalysisContext
from frontmap.discovery import FileDiscovery, di_import_pattern, is_source_file


class TestDiscover:
    def test_finds_member_sources_once(self, monorepo, config):
        files = asyncio.run(FileDiscovery(monorepo, config=config).discover())
        relatives = [f.relative_path for f in files]
        assert relatives == [
            "packages/core/src/store.ts",
            "packages/ui/src/Button.tsx",
            "packages/ui/src/format.ts",
            "packages/ui/src/index.ts",
        ]
        assert all(f.is_workspace for f in files)

    def test_skips_excluded_and_declaration_files(self, make_project, config):
        root = make_project(
            {
                "src/a.ts": "export const a = 1;\n",
                "src/types.d.ts": "export declare const t: number;\n",
                "src/node_modules/dep/index.ts": "export const dep = 1;\n",
                "src/notes.md": "# notes\n",
            }
        )
        files = asyncio.run(FileDiscovery(root, config=config).discover())
        assert [f.relative_path for f in files] == ["src/a.ts"]

    def test_contents_go_through_the_cache(self, monorepo, config):
        context = AnalysisContext(monorepo, config)
        discovery = FileDiscovery(monorepo, config=config, context=context)
        asyncio.run(discovery.discover())
        assert len(context.contents) == 4
        path = monorepo / "packages" / "ui" / "src" / "format.ts"
        assert path in context.contents

    def test_cache_ceiling_clears_everything(self, make_project):
        root = make_project({"src/a.ts": "x" * 4000, "src/b.ts": "y" * 4000})
        config = IndexerConfig(content_cache_mb=0.005, git_max_commits=0)
        context = AnalysisContext(root, config)
        asyncio.run(FileDiscovery(root, config=config, context=context).discover())
        assert context.contents.clears == 1
        assert len(context.contents) == 1

    def test_di_flag(self, make_project):
        root = make_project(
            {
                "src/a.ts": "import { inject } from 'my-di';\nexport const a = inject();\n",
                "src/b.ts": "export const b = 1;\n",
            }
        )
        config = IndexerConfig(di_modules=["my-di"], git_max_commits=0)
        entities = asyncio.run(FileDiscovery(root, config=config).run())
        flags = {e.raw_name: e.is_ddd for e in entities}
        assert flags == {"a": True, "b": False}


class TestTargetedMode:
    def test_loads_only_listed_source_files(self, monorepo, config):
        discovery = FileDiscovery(monorepo, config=config)
        files = asyncio.run(
            discovery.discover_targets(
                [
                    monorepo / "packages" / "ui" / "src" / "format.ts",
                    "packages/ui/package.json",
                    "packages/ui/src/missing.ts",
                ]
            )
        )
        assert [f.relative_path for f in files] == ["packages/ui/src/format.ts"]


class TestRun:
    def test_entities_across_packages(self, monorepo, config):
        entities = asyncio.run(FileDiscovery(monorepo, config=config).run())
        assert [e.id for e in entities] == [
            "Variable:counterStore",
            "Function:increment",
            "Component:Button",
            "Function:formatLabel",
        ]

    def test_deterministic(self, monorepo, config):
        """Two runs over unchanged files produce identical snapshots."""
        first = asyncio.run(FileDiscovery(monorepo, config=config).run())
        second = asyncio.run(FileDiscovery(monorepo, config=config).run())
        assert [e.to_dict() for e in first] == [e.to_dict() for e in second]


class TestHelpers:
    def test_is_source_file(self, tmp_path):
        assert is_source_file(tmp_path / "a.ts")
        assert is_source_file(tmp_path / "A.vue")
        assert not is_source_file(tmp_path / "a.d.ts")
        assert not is_source_file(tmp_path / "a.js")

    def test_di_import_pattern(self):
        pattern = di_import_pattern(["@app/di"])
        assert pattern.search("import { x } from '@app/di'")
        assert pattern.search("const c = require('@app/di')")
        assert not pattern.search("import { x } from '@app/dia'")
        assert di_import_pattern([]) is None
