"""Tagged views over raw tree-sitter nodes.

``node_kind`` maps a raw node to exactly one variant of ``SyntaxNode``.
Consumers ``match`` on the variant instead of probing ``node.type``
strings, so adding a kind means adding a variant and a case.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any, Literal, Optional, Union

Node = Any  # tree_sitter.Node

DeclarationKind = Literal["function", "class", "variable", "interface", "type", "enum"]

_DECLARATION_TYPES: dict[str, DeclarationKind] = {
    "function_declaration": "function",
    "generator_function_declaration": "function",
    "class_declaration": "class",
    "abstract_class_declaration": "class",
    "lexical_declaration": "variable",
    "variable_declaration": "variable",
    "interface_declaration": "interface",
    "type_alias_declaration": "type",
    "enum_declaration": "enum",
}

FUNCTION_EXPRESSION_TYPES = frozenset(
    {"arrow_function", "function_expression", "function", "generator_function"}
)
CLASS_EXPRESSION_TYPES = frozenset({"class"})
LITERAL_TYPES = frozenset(
    {"string", "number", "template_string", "true", "false", "null", "undefined", "regex"}
)
MARKUP_TYPES = frozenset({"jsx_element", "jsx_self_closing_element"})


@dataclass(frozen=True)
class DeclarationNode:
    """A function, class, variable, interface, type alias or enum declaration."""

    node: Node
    kind: DeclarationKind
    name: Optional[str]


@dataclass(frozen=True)
class ExportNode:
    """An ``export`` statement in any of its shapes."""

    node: Node
    declaration: Optional[Node]
    value: Optional[Node]
    is_default: bool
    specifiers: tuple[tuple[str, str], ...]
    source: Optional[str]
    is_star: bool


@dataclass(frozen=True)
class ImportNode:
    """An ``import`` statement. ``named`` pairs are (imported, local)."""

    node: Node
    source: str
    default: Optional[str]
    namespace: Optional[str]
    named: tuple[tuple[str, str], ...]


@dataclass(frozen=True)
class CallNode:
    node: Node
    callee: Node
    arguments: tuple[Node, ...]


@dataclass(frozen=True)
class MarkupElementNode:
    node: Node
    tag: str


@dataclass(frozen=True)
class CommentNode:
    node: Node
    text: str


@dataclass(frozen=True)
class OtherNode:
    node: Node


SyntaxNode = Union[
    DeclarationNode,
    ExportNode,
    ImportNode,
    CallNode,
    MarkupElementNode,
    CommentNode,
    OtherNode,
]


def node_text(node: Optional[Node]) -> str:
    if node is None:
        return ""
    text = node.text
    return text.decode("utf-8", errors="replace") if text is not None else ""


def string_value(node: Optional[Node]) -> str:
    """Value of a string literal node, quotes removed."""
    text = node_text(node)
    if len(text) >= 2 and text[0] in "'\"`" and text[-1] == text[0]:
        return text[1:-1]
    return text


def start_line(node: Node) -> int:
    return node.start_point[0] + 1


def end_line(node: Node) -> int:
    return node.end_point[0] + 1


def walk(node: Node) -> Iterator[Node]:
    """Pre-order traversal of ``node`` and all its descendants."""
    stack = [node]
    while stack:
        current = stack.pop()
        yield current
        stack.extend(reversed(current.children))


def declaration_name(node: Node) -> Optional[str]:
    name = node.child_by_field_name("name")
    return node_text(name) if name is not None else None


def variable_declarators(node: Node) -> list[Node]:
    """``variable_declarator`` children of a lexical/variable declaration."""
    return [child for child in node.named_children if child.type == "variable_declarator"]


def declarator_name(declarator: Node) -> Optional[str]:
    name = declarator.child_by_field_name("name")
    if name is None or name.type != "identifier":
        # Destructuring patterns do not declare a single named entity.
        return None
    return node_text(name)


def _export_specifiers(clause: Node) -> tuple[tuple[str, str], ...]:
    pairs = []
    for spec in clause.named_children:
        if spec.type != "export_specifier":
            continue
        name = node_text(spec.child_by_field_name("name"))
        alias_node = spec.child_by_field_name("alias")
        pairs.append((name, node_text(alias_node) if alias_node is not None else name))
    return tuple(pairs)


def _as_export(node: Node) -> ExportNode:
    declaration = node.child_by_field_name("declaration")
    value = node.child_by_field_name("value")
    source_node = node.child_by_field_name("source")
    is_default = False
    is_star = False
    specifiers: tuple[tuple[str, str], ...] = ()
    for child in node.children:
        if child.type == "default":
            is_default = True
        elif child.type == "*":
            is_star = True
        elif child.type == "export_clause":
            specifiers = _export_specifiers(child)
        elif child.type == "namespace_export":
            alias = [c for c in child.named_children if c.type in ("identifier", "string")]
            if alias:
                specifiers = ((string_value(alias[-1]), string_value(alias[-1])),)
    if value is None and is_default and declaration is None:
        # ``export default <expr>`` without a field name on older grammars
        named = [c for c in node.named_children if c.type not in ("comment", "decorator")]
        value = named[-1] if named else None
    return ExportNode(
        node=node,
        declaration=declaration,
        value=value,
        is_default=is_default,
        specifiers=specifiers,
        source=string_value(source_node) if source_node is not None else None,
        is_star=is_star,
    )


def _as_import(node: Node) -> ImportNode:
    source = string_value(node.child_by_field_name("source"))
    default = None
    namespace = None
    named: list[tuple[str, str]] = []
    for child in node.named_children:
        if child.type != "import_clause":
            continue
        for part in child.named_children:
            if part.type == "identifier":
                default = node_text(part)
            elif part.type == "namespace_import":
                idents = [c for c in part.named_children if c.type == "identifier"]
                if idents:
                    namespace = node_text(idents[-1])
            elif part.type == "named_imports":
                for spec in part.named_children:
                    if spec.type != "import_specifier":
                        continue
                    imported = string_value(spec.child_by_field_name("name"))
                    alias = spec.child_by_field_name("alias")
                    named.append((imported, node_text(alias) if alias is not None else imported))
    return ImportNode(node=node, source=source, default=default, namespace=namespace, named=tuple(named))


def _markup_tag(node: Node) -> str:
    if node.type == "jsx_self_closing_element":
        return node_text(node.child_by_field_name("name"))
    opening = node.child_by_field_name("open_tag")
    if opening is None:
        opening = next((c for c in node.children if c.type == "jsx_opening_element"), None)
    return node_text(opening.child_by_field_name("name")) if opening is not None else ""


def node_kind(node: Node) -> SyntaxNode:
    """Classify a raw tree-sitter node into its tagged variant."""
    node_type = node.type
    if node_type in _DECLARATION_TYPES:
        kind = _DECLARATION_TYPES[node_type]
        name = None if kind == "variable" else declaration_name(node)
        return DeclarationNode(node=node, kind=kind, name=name)
    if node_type == "export_statement":
        return _as_export(node)
    if node_type == "import_statement":
        return _as_import(node)
    if node_type == "call_expression":
        callee = node.child_by_field_name("function")
        args_node = node.child_by_field_name("arguments")
        arguments = tuple(args_node.named_children) if args_node is not None else ()
        if callee is not None:
            return CallNode(node=node, callee=callee, arguments=arguments)
    if node_type in MARKUP_TYPES:
        return MarkupElementNode(node=node, tag=_markup_tag(node))
    if node_type == "comment":
        return CommentNode(node=node, text=node_text(node))
    return OtherNode(node=node)


def top_level(root: Node) -> list[SyntaxNode]:
    """Tagged top-level statements of a program, in source order."""
    return [node_kind(child) for child in root.children]


def leading_comments(node: Node) -> list[Node]:
    """Contiguous comment siblings immediately preceding ``node``.

    A blank line between two comments, or between the last comment and the
    node, ends the run.
    """
    comments: list[Node] = []
    current = node
    sibling = node.prev_sibling
    while sibling is not None and sibling.type == "comment":
        if current.start_point[0] - sibling.end_point[0] > 1:
            break
        comments.append(sibling)
        current = sibling
        sibling = sibling.prev_sibling
    comments.reverse()
    return comments


def trailing_comments(node: Node) -> list[Node]:
    """Comments on the same line right after ``node``."""
    comments: list[Node] = []
    sibling = node.next_sibling
    while sibling is not None and sibling.type == "comment":
        if sibling.start_point[0] != node.end_point[0]:
            break
        comments.append(sibling)
        sibling = sibling.next_sibling
    return comments


def char_offset(source: bytes, byte_offset: int) -> int:
    """Convert a tree-sitter byte offset into an index into the decoded text."""
    return len(source[:byte_offset].decode("utf-8", errors="replace"))


def declared_names(declaration: Node) -> set[str]:
    """Names bound by a declaration node (every declarator of a variable statement)."""
    match node_kind(declaration):
        case DeclarationNode(kind="variable", node=node):
            return {name for d in variable_declarators(node) if (name := declarator_name(d))}
        case DeclarationNode(name=str(name)):
            return {name}
        case _:
            name = declaration_name(declaration)
            return {name} if name else set()
