"""Tests for module specifier resolution and export analysis."""

import pytest

from frontmap.exceptions import ModuleResolutionFailure
from frontmap.resolver.aliases import AliasTable, read_tsconfig
from frontmap.resolver.modules import ModuleResolver, commonjs_exports
from frontmap.workspace import WorkspaceResolver


def _resolver(root, context_for):
    return ModuleResolver(context_for(root), WorkspaceResolver(root).resolve(), AliasTable.load(root))


@pytest.fixture
def app(make_project):
    return make_project(
        {
            "tsconfig.json": (
                "{\n"
                "  // comments are allowed\n"
                '  "compilerOptions": {"baseUrl": ".", "paths": {"@/*": ["src/*"]}},\n'
                "}\n"
            ),
            "src/main.ts": "import { api } from '@/services/api';\n",
            "src/services/api.ts": "export const api = {};\nexport default function client() {}\n",
            "src/widgets/index.ts": "export * from './Chart';\nexport * as shapes from './shapes';\n",
            "src/widgets/Chart.tsx": "export const Chart = () => <svg />;\nexport default Chart;\n",
            "src/widgets/shapes.ts": "export const circle = 1;\n",
            "src/Panel.vue": (
                "<script setup lang=\"ts\">\nconst open = true;\n</script>\n"
                "<script lang=\"ts\">\nexport const panelKind = 'side';\n</script>\n"
            ),
            "lib/legacy.js": "exports.helper = function () {};\nmodule.exports.other = 1;\n",
        },
        name="app",
    )


class TestResolveModule:
    def test_relative_with_extension_probe(self, app, context_for):
        resolver = _resolver(app, context_for)
        assert resolver.resolve_module("./services/api", "src/main.ts") == app / "src" / "services" / "api.ts"

    def test_directory_index(self, app, context_for):
        resolver = _resolver(app, context_for)
        assert resolver.resolve_module("./widgets", "src/main.ts") == app / "src" / "widgets" / "index.ts"

    def test_root_absolute(self, app, context_for):
        resolver = _resolver(app, context_for)
        assert resolver.resolve_module("/lib/legacy", "src/main.ts") == app / "lib" / "legacy.js"

    def test_tsconfig_alias(self, app, context_for):
        resolver = _resolver(app, context_for)
        assert resolver.resolve_module("@/services/api", "src/main.ts") == app / "src" / "services" / "api.ts"
        assert not resolver.is_third_party("@/services/api")

    def test_third_party_raises(self, app, context_for):
        resolver = _resolver(app, context_for)
        assert resolver.is_third_party("vue")
        with pytest.raises(ModuleResolutionFailure) as exc_info:
            resolver.resolve_module("vue", "src/main.ts")
        assert exc_info.value.reason == "third-party module"

    def test_missing_relative_raises(self, app, context_for):
        resolver = _resolver(app, context_for)
        with pytest.raises(ModuleResolutionFailure):
            resolver.resolve_module("./nope", "src/main.ts")
        assert resolver.resolve("./nope", "src/main.ts") is None

    def test_workspace_package_resolves_to_directory(self, monorepo, context_for):
        resolver = _resolver(monorepo, context_for)
        resolved = resolver.resolve_module("@mono/ui", "packages/core/src/store.ts")
        assert resolved == monorepo / "packages" / "ui"
        assert resolver.workspace_package("@mono/ui/src/format") == "@mono/ui"

    def test_workspace_subpath(self, monorepo, context_for):
        resolver = _resolver(monorepo, context_for)
        resolved = resolver.resolve_module("@mono/ui/src/format", "packages/core/src/store.ts")
        assert resolved == monorepo / "packages" / "ui" / "src" / "format.ts"

    def test_directory_entry_prefers_manifest_main(self, monorepo, context_for):
        resolver = _resolver(monorepo, context_for)
        entry = resolver.directory_entry(monorepo / "packages" / "ui")
        assert entry == monorepo / "packages" / "ui" / "src" / "index.ts"


class TestModuleExports:
    def test_named_and_default(self, app, context_for):
        resolver = _resolver(app, context_for)
        assert resolver.module_exports("src/services/api.ts") == {"api", "default"}

    def test_star_reexport_excludes_default(self, app, context_for):
        resolver = _resolver(app, context_for)
        assert resolver.module_exports("src/widgets/index.ts") == {"Chart", "shapes"}

    def test_package_directory_uses_entry(self, monorepo, context_for):
        resolver = _resolver(monorepo, context_for)
        assert resolver.module_exports(monorepo / "packages" / "ui") == {"Button", "formatLabel"}

    def test_vue_has_default_plus_script_exports(self, app, context_for):
        resolver = _resolver(app, context_for)
        assert resolver.module_exports("src/Panel.vue") == {"default", "panelKind"}

    def test_commonjs(self, app, context_for):
        resolver = _resolver(app, context_for)
        assert resolver.module_exports("lib/legacy.js") == {"helper", "other"}

    def test_results_cached_on_context(self, app, context_for):
        resolver = _resolver(app, context_for)
        first = resolver.module_exports("src/services/api.ts")
        assert resolver.context.exports[app / "src" / "services" / "api.ts"] is first

    def test_cycles_terminate(self, make_project, context_for):
        root = make_project(
            {
                "a.ts": "export * from './b';\nexport const a = 1;\n",
                "b.ts": "export * from './a';\nexport const b = 2;\n",
            }
        )
        resolver = _resolver(root, context_for)
        assert resolver.module_exports("a.ts") == {"a", "b"}


class TestCommonjsExports:
    def test_define_property_and_es_module_marker(self):
        content = (
            'Object.defineProperty(exports, "__esModule", { value: true });\n'
            'Object.defineProperty(exports, "run", { get: function () {} });\n'
        )
        assert commonjs_exports(content) == {"run"}


class TestAliases:
    def test_match_longest_prefix(self, tmp_path):
        table = AliasTable({"@": tmp_path / "src", "@lib": tmp_path / "lib"})
        assert table.match("@lib/x") == tmp_path / "lib" / "x"
        assert table.match("@/x") == tmp_path / "src" / "x"
        assert table.match("lodash") is None

    def test_tsconfig_extends_merges_paths(self, make_project):
        root = make_project(
            {
                "base.json": {"compilerOptions": {"baseUrl": "base", "paths": {"~/*": ["x/*"]}}},
                "tsconfig.json": {"extends": "./base", "compilerOptions": {"paths": {"#/*": ["y/*"]}}},
            }
        )
        merged = read_tsconfig(root / "tsconfig.json")
        options = merged["compilerOptions"]
        assert set(options["paths"]) == {"~/*", "#/*"}
        assert options["baseUrl"] == str(root / "base")

    def test_vite_resolve_alias(self, make_project):
        root = make_project(
            {
                "vite.config.ts": (
                    "export default defineConfig({\n"
                    "  resolve: { alias: { '@': path.resolve(__dirname, 'src') } },\n"
                    "});\n"
                ),
            }
        )
        table = AliasTable.load(root)
        assert table.match("@/util") == root / "src" / "util"
