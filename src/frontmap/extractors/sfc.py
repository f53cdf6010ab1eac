"""Single-file component extractor (``.vue``).

A component with a ``<script setup>`` block is one entity named after the
file, ``rawName "setup"``. Otherwise the ``<script>`` block is walked like a
script module, so named exports such as composables and stores become
entities of their own. An ``export default`` also produces the component
(``rawName "default"``), and a top-level ``defineComponent(...)`` call does
so when there is no default export. The component is fingerprinted over the
whole file, since template and script together define it.
"""

from pathlib import Path

from ..context import AnalysisContext
from ..hashing import code_md5
from ..models import BaseEntity, Location, make_entity_id
from ..parsing.nodes import (
    CallNode,
    CommentNode,
    DeclarationNode,
    ExportNode,
    ImportNode,
    MarkupElementNode,
    OtherNode,
    end_line,
    node_kind,
    node_text,
    start_line,
    top_level,
)
from ..parsing.sfc import split_sfc
from ..parsing.treesitter_parser import language_for_script_lang
from .base import BaseExtractor
from .script import ScriptExtractor, TsxExtractor


class SfcExtractor(BaseExtractor):
    kind = "sfc"
    extensions = (".vue",)

    def __init__(self, context: AnalysisContext):
        super().__init__(context)
        self.script = ScriptExtractor(context)
        self.tsx = TsxExtractor(context)

    def _extract(self, path: Path, relative: str, content: str) -> list[BaseEntity]:
        descriptor = split_sfc(content)
        basename = Path(relative).stem
        component_id = make_entity_id("component", basename)
        fingerprint = code_md5(content)

        if descriptor.script_setup is not None:
            block = descriptor.script_setup
            return [
                BaseEntity(
                    id=component_id,
                    type="component",
                    file=relative,
                    loc=Location(block.start_line, block.end_line),
                    raw_name="setup",
                    code_md5=fingerprint,
                )
            ]

        block = descriptor.script
        if block is None:
            return []

        cached = self.context.parse(
            path, block.content, language=language_for_script_lang(block.lang)
        )
        offset = block.start_line - 1
        walker = self.tsx if block.lang in ("tsx", "jsx") else self.script
        module_entities = walker.entities_from_root(cached.root, relative, basename, line_offset=offset)
        default_export = None
        factory_call = None

        for item in top_level(cached.root):
            match item:
                case ExportNode(is_default=True):
                    default_export = default_export or item.node
                case OtherNode(node=node) if node.type == "expression_statement" and factory_call is None:
                    inner = node.named_children[0] if node.named_children else None
                    if inner is not None:
                        call = node_kind(inner)
                        if isinstance(call, CallNode) and "defineComponent" in node_text(call.callee):
                            factory_call = node
                case ExportNode() | DeclarationNode() | ImportNode() | CallNode():
                    pass
                case MarkupElementNode() | CommentNode() | OtherNode():
                    pass

        if default_export is not None:
            node, raw_name = default_export, "default"
        elif factory_call is not None:
            node, raw_name = factory_call, "defineComponent"
        else:
            return module_entities

        component = BaseEntity(
            id=component_id,
            type="component",
            file=relative,
            loc=Location(start_line(node) + offset, end_line(node) + offset),
            raw_name=raw_name,
            code_md5=fingerprint,
        )
        # the default export is the component itself
        named = [e for e in module_entities if e.id.split(":", 1)[1] != basename]
        return [component, *named]
