"""Script module extractors (``.ts`` and ``.tsx``).

Only exported top-level declarations become entities:

- ``export function|class|const ...`` (every declarator of a variable
  statement);
- ``export default <declaration>``: the ID is named after the file's base
  name, ``rawName`` keeps the declared name (or the base name if anonymous);
- ``export default <expression>``: kind inferred from the expression shape,
  ``rawName`` is ``"default"``;
- ``export { a as b }`` for local declarations.

Re-exports with a ``from`` clause describe another module and produce no
entity here.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from pathlib import Path
from typing import Optional

from ..classify import Subject, classify, is_constant
from ..hashing import code_md5
from ..models import BaseEntity, EntityType, Location, make_entity_id
from ..parsing.nodes import (
    CLASS_EXPRESSION_TYPES,
    FUNCTION_EXPRESSION_TYPES,
    LITERAL_TYPES,
    CallNode,
    CommentNode,
    DeclarationNode,
    ExportNode,
    ImportNode,
    MarkupElementNode,
    Node,
    OtherNode,
    declarator_name,
    end_line,
    node_kind,
    node_text,
    start_line,
    top_level,
    variable_declarators,
)
from ..parsing.treesitter_parser import language_for_path
from .base import BaseExtractor

_LITERAL_WRAPPERS = ("as_expression", "satisfies_expression", "parenthesized_expression")


@dataclass(frozen=True)
class LocalDeclaration:
    """A top-level declaration, exported or not, addressable by name."""

    name: str
    kind: str
    node: Node
    statement: Node
    initializer: Optional[Node] = None

    def subject(self, jsx: bool, name: Optional[str] = None) -> Subject:
        text = node_text(self.statement)
        if self.kind == "variable":
            return Subject(
                kind="variable",
                name=name or self.name,
                text=node_text(self.node),
                initializer=node_text(self.initializer),
                jsx=jsx,
            )
        return Subject(kind=self.kind, name=name or self.name, text=text, jsx=jsx)  # type: ignore[arg-type]


def collect_locals(statements: list) -> dict[str, LocalDeclaration]:
    """Index top-level function, class and variable declarations by name."""
    found: dict[str, LocalDeclaration] = {}
    for item in statements:
        match item:
            case DeclarationNode():
                _index_declaration(item, item.node, found)
            case ExportNode(declaration=declaration) if declaration is not None:
                inner = _as_declaration(declaration)
                if inner is not None:
                    _index_declaration(inner, item.node, found)
            case ImportNode() | CallNode() | MarkupElementNode() | CommentNode() | OtherNode():
                pass
            case ExportNode():
                pass
    return found


def _as_declaration(node: Node) -> Optional[DeclarationNode]:
    kind = node_kind(node)
    return kind if isinstance(kind, DeclarationNode) else None


def _index_declaration(decl: DeclarationNode, statement: Node, found: dict[str, LocalDeclaration]) -> None:
    if decl.kind in ("function", "class"):
        if decl.name:
            found.setdefault(decl.name, LocalDeclaration(decl.name, decl.kind, decl.node, statement))
    elif decl.kind == "variable":
        for declarator in variable_declarators(decl.node):
            name = declarator_name(declarator)
            if name:
                found.setdefault(
                    name,
                    LocalDeclaration(
                        name,
                        "variable",
                        declarator,
                        statement,
                        declarator.child_by_field_name("value"),
                    ),
                )


def _unwrap(node: Node) -> Node:
    while node.type in _LITERAL_WRAPPERS and node.named_children:
        node = node.named_children[0]
    return node


class ScriptExtractor(BaseExtractor):
    """Extractor for ``.ts`` modules."""

    kind = "script"
    extensions = (".ts", ".mts", ".cts")
    jsx = False

    def _extract(self, path: Path, relative: str, content: str) -> list[BaseEntity]:
        cached = self.context.parse(path, content, language_for_path(path))
        return self.entities_from_root(cached.root, relative, Path(relative).stem)

    def entities_from_root(
        self, root: Node, relative: str, basename: str, line_offset: int = 0
    ) -> list[BaseEntity]:
        """Walk a program node and build entities in source order."""
        statements = top_level(root)
        local = collect_locals(statements)
        entities: list[BaseEntity] = []

        for item in statements:
            match item:
                case ExportNode(source=None, declaration=declaration, is_default=is_default) if declaration is not None:
                    entities.extend(
                        self._from_declaration(item.node, declaration, is_default, relative, basename, line_offset)
                    )
                case ExportNode(source=None, value=value, is_default=True) if value is not None:
                    entity = self._from_default_value(item.node, value, local, entities, relative, basename, line_offset)
                    if entity is not None:
                        entities.append(entity)
                case ExportNode(source=None, specifiers=specifiers) if specifiers:
                    entities.extend(
                        self._from_local_exports(specifiers, local, relative, basename, line_offset)
                    )
                case ExportNode() | DeclarationNode() | ImportNode() | CallNode():
                    pass
                case MarkupElementNode() | CommentNode() | OtherNode():
                    pass

        return entities

    # ── Entity construction ───────────────────────────────────────

    def _entity(
        self,
        entity_type: EntityType,
        name: str,
        raw_name: str,
        node: Node,
        relative: str,
        line_offset: int,
        text: Optional[str] = None,
    ) -> BaseEntity:
        return BaseEntity(
            id=make_entity_id(entity_type, name),
            type=entity_type,
            file=relative,
            loc=Location(start_line(node) + line_offset, end_line(node) + line_offset),
            raw_name=raw_name,
            code_md5=code_md5(text if text is not None else node_text(node)),
        )

    def _from_declaration(
        self,
        statement: Node,
        declaration: Node,
        is_default: bool,
        relative: str,
        basename: str,
        line_offset: int,
    ) -> list[BaseEntity]:
        decl = _as_declaration(declaration)
        if decl is None:
            return []

        match decl.kind:
            case "function" | "class":
                declared = decl.name
                subject = Subject(
                    kind=decl.kind,  # type: ignore[arg-type]
                    name=declared or basename,
                    text=node_text(statement),
                    jsx=self.jsx,
                )
                entity_type = classify(subject)
                if is_default:
                    return [
                        self._entity(entity_type, basename, declared or basename, statement, relative, line_offset)
                    ]
                if not declared:
                    return []
                return [self._entity(entity_type, declared, declared, statement, relative, line_offset)]
            case "variable":
                entities = []
                for declarator in variable_declarators(decl.node):
                    name = declarator_name(declarator)
                    if not name:
                        continue
                    subject = Subject(
                        kind="variable",
                        name=name,
                        text=node_text(declarator),
                        initializer=node_text(declarator.child_by_field_name("value")),
                        jsx=self.jsx,
                    )
                    entity_type = classify(subject)
                    entities.append(
                        self._entity(
                            entity_type,
                            basename if is_default else name,
                            name,
                            statement,
                            relative,
                            line_offset,
                        )
                    )
                return entities
            case "interface" | "type" | "enum":
                return []
        return []

    def _from_default_value(
        self,
        statement: Node,
        value: Node,
        local: dict[str, LocalDeclaration],
        extracted: list[BaseEntity],
        relative: str,
        basename: str,
        line_offset: int,
    ) -> Optional[BaseEntity]:
        text = None
        target = _unwrap(value)
        if target.type == "identifier" and node_text(target) in local:
            declaration = local[node_text(target)]
            text = node_text(declaration.statement)
        entity_type = self.default_value_type(target, local, basename)
        return self._entity(entity_type, basename, "default", statement, relative, line_offset, text=text)

    def default_value_type(
        self, value: Node, local: dict[str, LocalDeclaration], basename: str
    ) -> EntityType:
        """Entity type of an ``export default <expression>``."""
        node_type = value.type
        if node_type in ("object", "array"):
            return "variable"
        if node_type in FUNCTION_EXPRESSION_TYPES:
            subject = Subject(
                kind="variable", name=basename, text=node_text(value), initializer=node_text(value)
            )
            if basename[:1].isupper() and not is_constant(subject):
                return "component"
            return "function"
        if node_type in CLASS_EXPRESSION_TYPES:
            return classify(Subject(kind="class", name=basename, text=node_text(value), jsx=self.jsx))
        if node_type == "identifier":
            declaration = local.get(node_text(value))
            if declaration is not None:
                return classify(declaration.subject(self.jsx))
            return "function"
        if node_type in LITERAL_TYPES:
            return "variable"
        return "function"

    def _from_local_exports(
        self,
        specifiers: tuple[tuple[str, str], ...],
        local: dict[str, LocalDeclaration],
        relative: str,
        basename: str,
        line_offset: int,
    ) -> list[BaseEntity]:
        entities = []
        for name, alias in specifiers:
            declaration = local.get(name)
            if declaration is None:
                continue
            entity_type = classify(declaration.subject(self.jsx))
            if alias == "default":
                id_name, raw_name = basename, "default"
            else:
                id_name, raw_name = alias, alias
            entities.append(
                self._entity(
                    entity_type,
                    id_name,
                    raw_name,
                    declaration.statement,
                    relative,
                    line_offset,
                )
            )
        return entities


class TsxExtractor(ScriptExtractor):
    """Extractor for ``.tsx`` modules. Markup context is on for classification.

    ``export default Foo`` where ``Foo`` was already extracted renames that
    entity to the file's base name with ``rawName "default"`` instead of
    adding a second entity.
    """

    kind = "tsx"
    extensions = (".tsx", ".jsx")
    jsx = True

    def _from_default_value(
        self,
        statement: Node,
        value: Node,
        local: dict[str, LocalDeclaration],
        extracted: list[BaseEntity],
        relative: str,
        basename: str,
        line_offset: int,
    ) -> Optional[BaseEntity]:
        target = _unwrap(value)
        if target.type == "identifier":
            exported_name = node_text(target)
            for index, existing in enumerate(extracted):
                if existing.raw_name == exported_name:
                    kind_prefix = existing.id.split(":", 1)[0]
                    extracted[index] = replace(
                        existing, id=f"{kind_prefix}:{basename}", raw_name="default"
                    )
                    return None
            declaration = local.get(exported_name)
            text = node_text(declaration.statement) if declaration is not None else None
            return self._entity("component", basename, "default", statement, relative, line_offset, text=text)
        return super()._from_default_value(
            statement, value, local, extracted, relative, basename, line_offset
        )

    def default_value_type(
        self, value: Node, local: dict[str, LocalDeclaration], basename: str
    ) -> EntityType:
        if value.type in FUNCTION_EXPRESSION_TYPES:
            subject = Subject(
                kind="variable",
                name=basename,
                text=node_text(value),
                initializer=node_text(value),
                jsx=True,
            )
            return "component" if classify(subject) == "component" or basename[:1].isupper() else "function"
        return super().default_value_type(value, local, basename)
