"""Tests for reading and writing entity annotations."""

import asyncio

import pytest

from frontmap.annotations import (
    AnnotationWriter,
    extract_annotation,
    format_annotation_for_insertion,
    locate_comment,
    normalize_comment,
)
from frontmap.exceptions import AnnotationWriteFailure
from frontmap.models import BaseEntity, Location


def _entity(raw_name: str, file: str = "src/a.ts", start: int = 1, entity_type: str = "function") -> BaseEntity:
    return BaseEntity(
        id=f"{entity_type.capitalize()}:{raw_name}",
        type=entity_type,
        file=file,
        loc=Location(start, start),
        raw_name=raw_name,
    )


class TestFormatting:
    def test_plain_text_wrapped_as_doc_block(self):
        assert format_annotation_for_insertion("Loads users\nfrom the API") == (
            "/**\n * Loads users\n * from the API\n */"
        )

    def test_existing_comment_kept(self):
        assert format_annotation_for_insertion("  // already a comment ") == "// already a comment"

    def test_normalize_block_and_line_comments(self):
        assert normalize_comment("/**\n * First\n * Second\n */") == "First\nSecond"
        assert normalize_comment("// note") == "note"


class TestExtraction:
    def test_doc_comment_on_export(self, make_project, context_for):
        root = make_project({"src/a.ts": "/**\n * Adds numbers\n */\nexport function add() {}\n"})
        context = context_for(root)
        assert extract_annotation(context, _entity("add")) == "Adds numbers"
        assert extract_annotation(context, _entity("add"), original=True) == "/**\n * Adds numbers\n */"

    def test_line_comments_joined(self, make_project, context_for):
        root = make_project({"src/a.ts": "// first\n// second\nconst value = 1;\n"})
        assert extract_annotation(context_for(root), _entity("value")) == "first\nsecond"

    def test_sfc_setup_script_comment(self, make_project, context_for):
        root = make_project(
            {
                "src/Box.vue": (
                    "<template><div /></template>\n"
                    "<script setup lang=\"ts\">\n"
                    "/** A box */\n"
                    "const size = 1;\n"
                    "</script>\n"
                )
            }
        )
        entity = _entity("setup", "src/Box.vue", entity_type="component")
        assert extract_annotation(context_for(root), entity) == "A box"

    def test_sfc_template_comment(self, make_project, context_for):
        root = make_project({"src/Hint.vue": "<template>\n<!-- Tooltip hint -->\n<span />\n</template>\n"})
        entity = _entity("default", "src/Hint.vue", entity_type="component")
        assert extract_annotation(context_for(root), entity) == "Tooltip hint"

    def test_sfc_plain_script_export_has_its_own_comment(self, make_project, context_for):
        root = make_project(
            {
                "src/Widget.vue": (
                    "<script lang=\"ts\">\n"
                    "/** Widget sizing helper */\n"
                    "export function useWidget() {}\n"
                    "export default {};\n"
                    "</script>\n"
                )
            }
        )
        context = context_for(root)
        assert extract_annotation(context, _entity("useWidget", "src/Widget.vue")) == "Widget sizing helper"
        assert extract_annotation(context, _entity("default", "src/Widget.vue", entity_type="component")) == (
            "Widget sizing helper"
        )

    def test_no_annotation(self, make_project, context_for):
        root = make_project({"src/a.ts": "export const a = 1;\n"})
        assert extract_annotation(context_for(root), _entity("a")) == ""


class TestLocateComment:
    def test_block_comment_by_normalized_text(self):
        content = "const x = 1;\n/**\n * Old text\n */\nfunction f() {}\n"
        start, end = locate_comment(content, "Old text")
        assert content[start:end] == "/**\n * Old text\n */"

    def test_line_comment_run(self):
        content = "  // one\n  // two\nlet y;\n"
        start, end = locate_comment(content, "one\ntwo")
        assert content[start:end] == "// one\n  // two"

    def test_not_found(self):
        assert locate_comment("let z;\n", "missing") is None


class TestAnnotationWriter:
    def test_replaces_existing_comment(self, make_project, context_for):
        root = make_project({"src/a.ts": "/** Old */\nexport function add() {}\n"})
        writer = AnnotationWriter(root, context_for(root))
        changed = asyncio.run(writer.write(_entity("add"), "New text", old_annotation="Old"))
        assert changed
        assert (root / "src" / "a.ts").read_text() == "/**\n * New text\n */\nexport function add() {}\n"

    def test_inserts_before_declaration_on_own_line(self, make_project, context_for):
        root = make_project({"src/a.ts": "import x from 'x';\n\nexport const a = 1;\n"})
        writer = AnnotationWriter(root, context_for(root))
        asyncio.run(writer.write(_entity("a", entity_type="variable"), "The a value"))
        assert (root / "src" / "a.ts").read_text() == (
            "import x from 'x';\n\n/**\n * The a value\n */\nexport const a = 1;\n"
        )

    def test_overwrites_leading_comment_without_old_text(self, make_project, context_for):
        root = make_project({"src/a.ts": "// stale\nfunction run() {}\n"})
        writer = AnnotationWriter(root, context_for(root))
        asyncio.run(writer.write(_entity("run"), "Runs it"))
        assert (root / "src" / "a.ts").read_text() == "/**\n * Runs it\n */\nfunction run() {}\n"

    def test_unreadable_file_raises(self, make_project, context_for):
        root = make_project({"src/a.ts": "function run() {}\n"})
        writer = AnnotationWriter(root, context_for(root))
        with pytest.raises(AnnotationWriteFailure) as exc_info:
            asyncio.run(writer.write(_entity("run", "src/gone.ts"), "Runs"))
        assert exc_info.value.entity_id == "Function:run"

    def test_same_annotation_is_a_no_op(self, make_project, context_for):
        root = make_project({"src/a.ts": "/** Same */\nfunction run() {}\n"})
        writer = AnnotationWriter(root, context_for(root))
        assert asyncio.run(writer.write(_entity("run"), "Same", old_annotation="Same")) is False

    def test_write_invalidates_context(self, make_project, context_for):
        root = make_project({"src/a.ts": "function run() {}\n"})
        context = context_for(root)
        context.parse("src/a.ts")
        writer = AnnotationWriter(root, context)
        asyncio.run(writer.write(_entity("run"), "Runs"))
        assert context.stats()["trees"] == 0
        assert extract_annotation(context, _entity("run")) == "Runs"

    def test_sfc_insert_before_first_statement(self, make_project, context_for):
        root = make_project(
            {"src/Box.vue": "<template><div /></template>\n<script setup>\nconst size = 1;\n</script>\n"}
        )
        writer = AnnotationWriter(root, context_for(root))
        asyncio.run(writer.write(_entity("setup", "src/Box.vue", entity_type="component"), "A box"))
        assert (root / "src" / "Box.vue").read_text() == (
            "<template><div /></template>\n<script setup>\n/**\n * A box\n */\nconst size = 1;\n</script>\n"
        )

    def test_sfc_plain_script_export_annotated_at_its_declaration(self, make_project, context_for):
        root = make_project(
            {"src/Widget.vue": "<script>\nexport default {};\nexport const SIZE = 3;\n</script>\n"}
        )
        writer = AnnotationWriter(root, context_for(root))
        asyncio.run(writer.write(_entity("SIZE", "src/Widget.vue", entity_type="variable"), "Size in px"))
        assert (root / "src" / "Widget.vue").read_text() == (
            "<script>\nexport default {};\n/**\n * Size in px\n */\nexport const SIZE = 3;\n</script>\n"
        )

    def test_template_only_gets_html_comment_inside_template(self, make_project, context_for):
        root = make_project({"src/Hint.vue": "<template><span /></template>\n"})
        writer = AnnotationWriter(root, context_for(root))
        asyncio.run(writer.write(_entity("default", "src/Hint.vue", entity_type="component"), "Hint"))
        assert (root / "src" / "Hint.vue").read_text() == "<template><!-- Hint -->\n<span /></template>\n"

    def test_concurrent_writes_to_one_file(self, make_project, context_for):
        """Writes to the same file are serialized so neither is lost."""
        root = make_project({"src/a.ts": "function one() {}\n\nfunction two() {}\n"})
        writer = AnnotationWriter(root, context_for(root))

        async def both():
            await asyncio.gather(
                writer.write(_entity("one"), "First"),
                writer.write(_entity("two", start=3), "Second"),
            )

        asyncio.run(both())
        content = (root / "src" / "a.ts").read_text()
        assert "/**\n * First\n */\nfunction one()" in content
        assert "/**\n * Second\n */\nfunction two()" in content
