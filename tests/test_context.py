"""Tests for AnalysisContext caches and invalidation."""

import os

from frontmap.config import IndexerConfig
from frontmap.context import AnalysisContext, FileContentCache
from frontmap.models import BaseEntity, Location


def _entity(name: str, file: str = "src/a.ts") -> BaseEntity:
    return BaseEntity(
        id=f"Function:{name}",
        type="function",
        file=file,
        loc=Location(1, 1),
        raw_name=name,
    )


def _bump_mtime(path):
    stat = path.stat()
    os.utime(path, ns=(stat.st_atime_ns, stat.st_mtime_ns + 1_000_000_000))


class TestPaths:
    def test_relative_and_absolute(self, make_project, context_for):
        root = make_project({"src/a.ts": "export const a = 1;\n"})
        context = context_for(root)
        assert context.absolute("src/a.ts") == root / "src" / "a.ts"
        assert context.relative(root / "src" / "a.ts") == "src/a.ts"

    def test_outside_root_keeps_parent_segments(self, make_project, context_for):
        root = make_project({"a.ts": ""}, name="inner")
        context = context_for(root)
        assert context.relative(root.parent / "other.ts") == "../other.ts"


class TestParseCache:
    def test_tree_reused_until_mtime_changes(self, make_project, context_for):
        root = make_project({"src/a.ts": "export const a = 1;\n"})
        context = context_for(root)

        first = context.parse("src/a.ts")
        assert context.parse("src/a.ts") is first
        assert context.parse_count == 1

        path = root / "src" / "a.ts"
        path.write_text("export const a = 2;\n", encoding="utf-8")
        _bump_mtime(path)
        second = context.parse("src/a.ts")
        assert second is not first
        assert context.parse_count == 2

    def test_supplied_content_keyed_by_hash(self, make_project, context_for):
        root = make_project({"a.ts": ""})
        context = context_for(root)
        first = context.parse("a.ts", "const x = 1;\n")
        assert context.parse("a.ts", "const x = 1;\n") is first
        assert context.parse("a.ts", "const x = 2;\n") is not first

    def test_read_text_goes_through_content_cache(self, make_project, context_for):
        root = make_project({"a.ts": "let a;\n"})
        context = context_for(root)
        assert context.read_text("a.ts") == "let a;\n"
        assert root / "a.ts" in context.contents


class TestInvalidation:
    def test_invalidate_drops_every_sub_cache(self, make_project, context_for):
        root = make_project({"src/a.ts": "export const a = 1;\n"})
        context = context_for(root)
        context.parse("src/a.ts")
        context.put_extraction("typescript", "src/a.ts", [_entity("a")])
        context.exports[root / "src" / "a.ts"] = frozenset({"a"})

        context.invalidate("src/a.ts")

        assert context.stats()["trees"] == 0
        assert context.get_extraction("typescript", "src/a.ts") is None
        assert context.exports == {}
        assert len(context.contents) == 0

    def test_stale_extraction_is_discarded(self, make_project, context_for):
        """A cached extraction whose tree is older than the file is not served."""
        root = make_project({"src/a.ts": "export const a = 1;\n"})
        context = context_for(root)
        context.parse("src/a.ts")
        context.put_extraction("typescript", "src/a.ts", [_entity("a")])

        _bump_mtime(root / "src" / "a.ts")
        assert context.get_extraction("typescript", "src/a.ts") is None

    def test_clear_extractor_only_touches_one_kind(self, make_project, context_for):
        root = make_project({"a.ts": "", "b.vue": ""})
        context = context_for(root)
        context.put_extraction("typescript", "a.ts", [_entity("a", "a.ts")])
        context.put_extraction("vue", "b.vue", [_entity("b", "b.vue")])

        context.clear_extractor("typescript")

        assert context.get_extraction("typescript", "a.ts") is None
        assert context.get_extraction("vue", "b.vue") is not None

    def test_reset_clears_everything(self, make_project, context_for):
        root = make_project({"a.ts": "const a = 1;\n"})
        context = context_for(root)
        context.parse("a.ts")
        context.put_extraction("typescript", "a.ts", [_entity("a", "a.ts")])
        context.reset()
        stats = context.stats()
        assert stats["trees"] == 0
        assert stats["extractions"] == 0
        assert stats["contents"] == 0
        assert context.workspace is None


class TestMemoryBudget:
    def test_oldest_half_evicted_over_budget(self, make_project):
        root = make_project({})
        context = AnalysisContext(root, IndexerConfig(memory_budget_entries=8))

        for i in range(4):
            context.put_extraction("typescript", f"f{i}.ts", [_entity(f"n{i}", f"f{i}.ts")])
        # 4 keys * (1 + 1 entity) = 8, still within budget
        assert context.evictions == 0

        context.put_extraction("typescript", "f4.ts", [_entity("n4", "f4.ts")])
        assert context.evictions == 1
        assert context.get_extraction("typescript", "f0.ts") is None
        assert context.get_extraction("typescript", "f1.ts") is None
        assert context.get_extraction("typescript", "f4.ts") is not None
        assert context.estimated_entries() <= 8


class TestFileContentCache:
    def test_mtime_mismatch_misses(self, tmp_path):
        cache = FileContentCache(max_bytes=100)
        cache.put(tmp_path / "a", 1, "abc")
        assert cache.get(tmp_path / "a", 1) == "abc"
        assert cache.get(tmp_path / "a", 2) is None

    def test_ceiling_clears_whole_cache(self, tmp_path):
        cache = FileContentCache(max_bytes=10)
        cache.put(tmp_path / "a", 1, "12345")
        cache.put(tmp_path / "b", 1, "12345")
        assert cache.clears == 0
        cache.put(tmp_path / "c", 1, "x")
        assert cache.clears == 1
        assert len(cache) == 1
        assert cache.size == 1

    def test_replacing_entry_updates_size(self, tmp_path):
        cache = FileContentCache(max_bytes=100)
        cache.put(tmp_path / "a", 1, "12345")
        cache.put(tmp_path / "a", 2, "12")
        assert cache.size == 2
        cache.discard(tmp_path / "a")
        assert cache.size == 0
