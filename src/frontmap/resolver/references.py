"""Cross-entity references: imports, calls, emitted events, template components.

Facts are computed per file and shared by every entity in it. Target IDs
come from ``EntityIndex``, which knows the extracted entities and falls
back to classifying the target file when a reference points at something
that was never indexed.
"""

from __future__ import annotations

import hashlib
import posixpath
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional

from ..annotations import extract_annotation
from ..config import IndexerConfig, default_config
from ..context import AnalysisContext
from ..exceptions import FileReadFailure, ParseFailure
from ..extractors import ExtractorRegistry
from ..logging_config import get_logger
from ..models import BaseEntity, StaticAnalysisResult, make_entity_id
from ..parsing.nodes import (
    CallNode,
    CommentNode,
    DeclarationNode,
    ExportNode,
    ImportNode,
    MarkupElementNode,
    Node,
    OtherNode,
    node_kind,
    node_text,
    string_value,
    top_level,
    walk,
)
from ..parsing.sfc import split_sfc
from ..workspace import WorkspaceResolver
from .aliases import AliasTable
from .modules import ModuleResolver, manifest_main

logger = get_logger(__name__)

TEMPLATE_TAG = re.compile(r"<([A-Z][a-zA-Z0-9]*|[a-z]+-[a-z-]+)(?:\s|>|/>)")
STANDARD_TAGS = frozenset(
    {"template", "div", "span", "p", "a", "img", "ul", "ol", "li", "button", "input", "form"}
)
DIRECTORY_ENTRY_FILES = ("index.ts", "index.tsx", "index.js", "index.jsx", "index.vue")
COMPONENT_NAME_HINTS = (
    "Component",
    "Button",
    "Card",
    "Modal",
    "Icon",
    "Form",
    "Input",
    "Dialog",
    "Panel",
    "Header",
    "Footer",
)

_CONSTANT_NAME = re.compile(r"^[A-Z_][A-Z0-9_]*$")
_PASCAL_NAME = re.compile(r"^[A-Z][a-zA-Z0-9]*$")
_PROPS_HANDLER = re.compile(r"""^props(?:\.on(\w+)|\[['"]on([A-Z]\w*)['"]\])$""")


def unique(items: Iterable[str]) -> list[str]:
    """Drop repeats, keeping first-seen order."""
    return list(dict.fromkeys(items))


# ── Entity index ──────────────────────────────────────────────────


class EntityIndex:
    """Maps (file, exported name) to entity IDs.

    Lookup order: the file's own entities, entities anywhere under each
    ancestor directory, a directory's entry file, then classification of
    the target file itself.
    """

    def __init__(
        self,
        entities: Iterable[BaseEntity],
        context: AnalysisContext,
        registry: Optional[ExtractorRegistry] = None,
    ):
        self.context = context
        self.registry = registry or ExtractorRegistry(context)
        self.by_file: dict[str, dict[str, BaseEntity]] = {}
        for entity in entities:
            self.by_file.setdefault(entity.file, {}).setdefault(entity.raw_name, entity)
        self._candidates: dict[str, list[BaseEntity]] = {}
        self._searches: dict[tuple[str, str, bool], Optional[str]] = {}

    def __len__(self) -> int:
        return sum(len(entities) for entities in self.by_file.values())

    def entity_id(self, path: Path | str, name: str, is_default: bool = False) -> str:
        """
        ID of the entity ``path`` exports as ``name``.

        Args:
            path: Resolved module file or package directory
            name: Imported name (the local binding for default imports)
            is_default: Whether this is the module's default export

        Returns:
            A ``Kind:Name`` ID; never empty
        """
        absolute = self.context.absolute(path)
        relative = self.context.relative(absolute)

        found = self._from_file(relative, name, is_default)
        if found is not None:
            return found

        found = self._search_parents(relative, name, is_default, include_self=absolute.is_dir())
        if found is not None:
            return found

        target = absolute
        if absolute.is_dir():
            entry = self.directory_entry(absolute)
            if entry is not None:
                target = entry
                found = self._from_file(self.context.relative(entry), name, is_default)
                if found is not None:
                    return found

        return self.generate_entity_id(target, name, is_default)

    def _from_file(self, relative: str, name: str, is_default: bool) -> Optional[str]:
        entities = self.by_file.get(relative)
        if not entities:
            return None
        if relative.endswith(".vue"):
            entity = None if is_default else entities.get(name)
            return (entity or next(iter(entities.values()))).id
        if not is_default:
            entity = entities.get(name)
            return entity.id if entity is not None else None

        basename = Path(relative).stem
        for key in ("default", basename):
            if key in entities:
                return entities[key].id
        for entity in entities.values():
            if entity.id.endswith(f":{basename}"):
                return entity.id
        return None

    def candidates(self, directory: str) -> list[BaseEntity]:
        """Every indexed entity in a file under ``directory`` (``""`` is the root)."""
        cached = self._candidates.get(directory)
        if cached is not None:
            return cached
        found = []
        for file, entities in self.by_file.items():
            if directory == "" or file == directory or file.startswith(directory + "/"):
                found.extend(entities.values())
        self._candidates[directory] = found
        return found

    def _search_parents(self, relative: str, name: str, is_default: bool, include_self: bool) -> Optional[str]:
        key = (relative, name, is_default)
        if key in self._searches:
            return self._searches[key]

        parts = relative.split("/")
        start = len(parts) if include_self else len(parts) - 1
        result = None
        for i in range(start, -1, -1):
            directory = "/".join(parts[:i])
            entity = find_matching_entity(self.candidates(directory), name, is_default)
            if entity is not None:
                logger.debug(f"Matched {name} under '{directory or '.'}' -> {entity.id}")
                result = entity.id
                break
        self._searches[key] = result
        return result

    def directory_entry(self, directory: Path) -> Optional[Path]:
        for name in DIRECTORY_ENTRY_FILES:
            candidate = directory / name
            if candidate.is_file():
                return candidate
        return manifest_main(directory)

    def generate_entity_id(self, path: Path, name: str, is_default: bool) -> str:
        """Classify an unindexed target by extracting its file, else by naming conventions."""
        basename = path.stem
        if path.is_file():
            extracted = self.registry.extract_file(path)
            if path.suffix == ".vue" and extracted:
                named = None if is_default else next((e for e in extracted if e.raw_name == name), None)
                return (named or extracted[0]).id
            for entity in extracted:
                if is_default and entity.raw_name in ("default", basename, name):
                    return entity.id
                if not is_default and entity.raw_name == name:
                    return entity.id
        return fallback_entity_id(path, basename if is_default else name)


def find_matching_entity(candidates: list[BaseEntity], name: str, is_default: bool) -> Optional[BaseEntity]:
    """Best candidate for ``name``: exact rawName first, then looser ID and file matches."""
    for entity in candidates:
        if entity.raw_name == name:
            return entity

    if not is_default:
        return next((e for e in candidates if f":{name}" in e.id), None)

    for predicate in (
        lambda e: e.raw_name == "default",
        lambda e: f":{name}" in e.id,
        lambda e: posixpath.splitext(posixpath.basename(e.file))[0] == name,
    ):
        entity = next((e for e in candidates if predicate(e)), None)
        if entity is not None:
            return entity

    for entity in candidates:
        stem = posixpath.splitext(posixpath.basename(entity.file))[0]
        if f":{stem}" in entity.id or entity.raw_name == stem:
            return entity
    return None


def fallback_entity_id(path: Path, name: str) -> str:
    """``Kind:Name`` guessed from file kind and naming conventions alone."""
    if path.suffix == ".vue":
        return make_entity_id("component", name)
    if _CONSTANT_NAME.match(name):
        return make_entity_id("variable", name)
    if _PASCAL_NAME.match(name):
        if path.suffix in (".tsx", ".jsx"):
            return make_entity_id("component", name)
        if any(hint in name for hint in COMPONENT_NAME_HINTS):
            return make_entity_id("component", name)
        return make_entity_id("class", name)
    return make_entity_id("function", name)


# ── Reference resolution ──────────────────────────────────────────


@dataclass(frozen=True)
class ImportBinding:
    """A local name bound by an import that resolved inside the project.

    A namespace import (``import * as ns``) has no entity of its own;
    ``members`` maps each name the module exports to its entity ID.
    """

    local: str
    entity_id: Optional[str]
    target: Path
    is_default: bool
    members: tuple[tuple[str, str], ...] = ()

    @property
    def is_namespace(self) -> bool:
        return self.entity_id is None

    def member_id(self, name: str) -> Optional[str]:
        return dict(self.members).get(name)


@dataclass
class FileReferences:
    imports: list[str] = field(default_factory=list)
    calls: list[str] = field(default_factory=list)
    emits: list[str] = field(default_factory=list)
    template_components: list[str] = field(default_factory=list)


class ReferenceResolver:
    """Produces a ``StaticAnalysisResult`` for each entity."""

    def __init__(self, context: AnalysisContext, modules: ModuleResolver, index: EntityIndex):
        self.context = context
        self.modules = modules
        self.index = index
        self._files: dict[Path, tuple[str, FileReferences]] = {}

    @classmethod
    def for_project(
        cls,
        root: Path | str,
        entities: Iterable[BaseEntity],
        context: Optional[AnalysisContext] = None,
        config: Optional[IndexerConfig] = None,
    ) -> ReferenceResolver:
        """Build the resolver with workspace packages and aliases loaded for ``root``."""
        config = config or default_config
        context = context or AnalysisContext(Path(root), config)
        if context.workspace is None:
            context.workspace = WorkspaceResolver(context.root, config).resolve()
        if context.aliases is None:
            context.aliases = AliasTable.load(context.root)
        modules = ModuleResolver(context, context.workspace, context.aliases)
        return cls(context, modules, EntityIndex(entities, context))

    def analyze(self, entity: BaseEntity) -> StaticAnalysisResult:
        """
        Reference facts and annotations for one entity.

        A missing, unreadable or unparseable file yields an empty result.
        """
        path = self.context.absolute(entity.file)
        if not path.is_file():
            logger.warning(f"Entity file not found: {entity.file}")
            return StaticAnalysisResult()

        try:
            references = self.file_references(path)
            annotation = extract_annotation(self.context, entity)
            original = extract_annotation(self.context, entity, original=True)
        except FileReadFailure as e:
            logger.warning(f"Cannot read {entity.file}: {e.reason}")
            return StaticAnalysisResult()
        except ParseFailure as e:
            logger.warning(f"Cannot parse {entity.file}: {e.reason}")
            return StaticAnalysisResult()

        return StaticAnalysisResult(
            imports=list(references.imports),
            calls=list(references.calls),
            emits=list(references.emits),
            template_components=list(references.template_components),
            annotation=annotation,
            original_annotation=original,
        )

    def file_references(self, path: Path) -> FileReferences:
        """
        References of every entity in ``path``, cached by content.

        Raises:
            FileReadFailure: If the file cannot be read
            ParseFailure: If the file cannot be parsed
        """
        content = self.context.read_text(path)
        digest = hashlib.md5(content.encode("utf-8")).hexdigest()
        cached = self._files.get(path)
        if cached is not None and cached[0] == digest:
            return cached[1]

        if path.suffix == ".vue":
            references = self._sfc_references(path, content)
        else:
            root = self.context.parse(path, content).root
            markup = path.suffix in (".tsx", ".jsx")
            references = self._script_references(path, [root], markup=markup)
            if markup:
                references.template_components = jsx_components(root)

        self._files[path] = (digest, references)
        return references

    def _sfc_references(self, path: Path, content: str) -> FileReferences:
        descriptor = split_sfc(content)
        roots = [cached.root for _block, cached in self.context.parse_sfc_scripts(path, descriptor)]
        references = self._script_references(path, roots, markup=False)
        if descriptor.template is not None:
            references.template_components = template_components(descriptor.template.content)
        return references

    def _script_references(self, path: Path, roots: list[Node], markup: bool) -> FileReferences:
        imports: list[str] = []
        bindings: dict[str, ImportBinding] = {}
        for root in roots:
            for binding in self.import_bindings(path, root):
                if binding.is_namespace:
                    imports.extend(entity_id for _name, entity_id in binding.members)
                else:
                    imports.append(binding.entity_id)
                bindings[binding.local] = binding

        calls: list[str] = []
        emits: list[str] = []
        for root in roots:
            for node in walk(root):
                match node_kind(node):
                    case CallNode(callee=callee, arguments=arguments):
                        target = call_target(callee, bindings)
                        if target is not None:
                            calls.append(target)
                        event = jsx_emit(callee) if markup else script_emit(callee, arguments)
                        if event:
                            emits.append(event)
                    case DeclarationNode() | ExportNode() | ImportNode() | MarkupElementNode():
                        pass
                    case CommentNode() | OtherNode():
                        pass

        return FileReferences(imports=unique(imports), calls=unique(calls), emits=unique(emits))

    def import_bindings(self, path: Path, root: Node) -> list[ImportBinding]:
        """Imports of ``root`` that resolve to project modules exporting the name."""
        bindings = []
        for item in top_level(root):
            match item:
                case ImportNode(source=source, default=default, namespace=namespace, named=named):
                    if not source or self.modules.is_third_party(source):
                        continue
                    target = self.modules.resolve(source, path)
                    if target is None:
                        continue
                    exports = self.modules.module_exports(target)
                    if default and exports:
                        entity_id = self.index.entity_id(target, default, is_default=True)
                        bindings.append(ImportBinding(default, entity_id, target, True))
                    if namespace and exports:
                        members = tuple(
                            (name, self.index.entity_id(target, name, is_default=name == "default"))
                            for name in sorted(exports)
                        )
                        bindings.append(ImportBinding(namespace, None, target, False, members))
                    for imported, local in named:
                        if imported in exports:
                            entity_id = self.index.entity_id(target, imported)
                            bindings.append(ImportBinding(local, entity_id, target, False))
                case DeclarationNode() | ExportNode() | CallNode() | MarkupElementNode():
                    pass
                case CommentNode() | OtherNode():
                    pass
        return bindings


def call_target(callee: Node, bindings: dict[str, ImportBinding]) -> Optional[str]:
    """
    Target of a call that goes through an imported binding.

    ``f()`` gives ``<id>`` and ``f.m()`` gives ``<id>.<m>``. On a namespace
    import, ``ns.m()`` and ``ns['m']()`` give the ID of the exported ``m``.
    """
    if callee.type == "identifier":
        binding = bindings.get(node_text(callee))
        if binding is None or binding.is_namespace:
            return None
        return binding.entity_id

    if callee.type == "member_expression":
        binding = bindings.get(node_text(callee.child_by_field_name("object")))
        prop = callee.child_by_field_name("property")
        member = node_text(prop) if prop is not None else None
    elif callee.type == "subscript_expression":
        binding = bindings.get(node_text(callee.child_by_field_name("object")))
        index = callee.child_by_field_name("index")
        member = string_value(index) if index is not None and index.type == "string" else None
    else:
        return None

    if binding is None or not member:
        return None
    if binding.is_namespace:
        return binding.member_id(member)
    return f"{binding.entity_id}.{member}"


def script_emit(callee: Node, arguments: tuple[Node, ...]) -> Optional[str]:
    """Event name of ``emit('x')`` / ``ctx.emit('x')``."""
    text = node_text(callee)
    if text != "emit" and not text.endswith(".emit"):
        return None
    if arguments and arguments[0].type == "string":
        return string_value(arguments[0])
    return None


def jsx_emit(callee: Node) -> Optional[str]:
    """Event name of ``props.onX()`` / ``props['onX']()``, lowercased."""
    match = _PROPS_HANDLER.match(node_text(callee))
    if not match:
        return None
    return (match.group(1) or match.group(2)).lower()


def template_components(template: str) -> list[str]:
    """Component-like tags in SFC markup, standard HTML tags ignored."""
    return unique(tag for tag in TEMPLATE_TAG.findall(template) if tag not in STANDARD_TAGS)


def jsx_components(root: Node) -> list[str]:
    """Capitalized JSX element names used anywhere in ``root``."""
    tags = []
    for node in walk(root):
        match node_kind(node):
            case MarkupElementNode(tag=tag) if tag[:1].isupper():
                tags.append(tag)
            case _:
                pass
    return unique(tags)
