"""Parsing layer: tree-sitter grammars, tagged node kinds, SFC blocks."""

from .nodes import (
    CallNode,
    CommentNode,
    DeclarationNode,
    ExportNode,
    ImportNode,
    MarkupElementNode,
    OtherNode,
    SyntaxNode,
    node_kind,
    node_text,
    top_level,
    walk,
)
from .sfc import SfcBlock, SfcDescriptor, split_sfc
from .treesitter_parser import (
    TreeSitterParser,
    language_for_path,
    language_for_script_lang,
)

__all__ = [
    "CallNode",
    "CommentNode",
    "DeclarationNode",
    "ExportNode",
    "ImportNode",
    "MarkupElementNode",
    "OtherNode",
    "SyntaxNode",
    "node_kind",
    "node_text",
    "top_level",
    "walk",
    "SfcBlock",
    "SfcDescriptor",
    "split_sfc",
    "TreeSitterParser",
    "language_for_path",
    "language_for_script_lang",
]
