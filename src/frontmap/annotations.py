"""Doc-comment extraction and write-back.

An entity's annotation is the comment that documents its owning statement.
It is read in two forms: normalized (markers stripped, lines trimmed) for
display and for locating the comment again, and original (verbatim source
text) for fingerprinting.

``AnnotationWriter`` puts a new annotation back into the source file. An
old annotation is replaced in place when it can be found; otherwise the new
one is inserted next to the owning declaration. Entity ``loc`` values are
never adjusted here; callers re-extract the rewritten file.
"""

from __future__ import annotations

import asyncio
import re
from pathlib import Path
from typing import Optional

from .context import AnalysisContext
from .exceptions import AnnotationWriteFailure, ParseFailure
from .logging_config import get_logger
from .models import BaseEntity
from .parsing.nodes import (
    CallNode,
    CommentNode,
    DeclarationNode,
    ExportNode,
    ImportNode,
    MarkupElementNode,
    Node,
    OtherNode,
    char_offset,
    declared_names,
    leading_comments,
    node_text,
    top_level,
    trailing_comments,
)
from .parsing.sfc import SfcBlock, SfcDescriptor, split_sfc
from .parsing.treesitter_parser import language_for_path, language_for_script_lang

logger = get_logger(__name__)

_BLOCK_MARKERS = re.compile(r"^/\*+|\*+/$")
_BLOCK_LINE_PREFIX = re.compile(r"^[ \t]*\*[ \t]?", re.MULTILINE)
_LINE_MARKER = re.compile(r"^//\s?")
_BLOCK_COMMENT = re.compile(r"/\*\*?([\s\S]*?)\*/")
_DOC_COMMENT = re.compile(r"/\*\*[\s\S]*?\*/")
_LINE_COMMENT = re.compile(r"//.*$", re.MULTILINE)
_DECLARATION_GAP = re.compile(r"^\s*(export\s+)?(const|let|var|function|class)?\s*$")
_TEMPLATE_COMMENT = re.compile(r"^\s*<!--[\s\S]*?-->")
_HTML_COMMENT_MARKERS = re.compile(r"<!--|-->")
SFC_COMPONENT_NAMES = ("setup", "default", "defineComponent")


# ── Formatting ────────────────────────────────────────────────────


def format_comment(text: str, original: bool = False) -> str:
    """One comment's text, markers stripped unless ``original``."""
    if original:
        return text
    if text.startswith("/*"):
        return _BLOCK_LINE_PREFIX.sub("", _BLOCK_MARKERS.sub("", text)).strip()
    if text.startswith("//"):
        return _LINE_MARKER.sub("", text).strip()
    return text


def normalize_comment(text: str) -> str:
    """Comment text with ``/* */``, per-line ``*`` and ``//`` markers removed."""
    return format_comment(text.strip())


def format_comments(comments: list[Node], original: bool = False) -> str:
    return "\n".join(format_comment(node_text(c), original) for c in comments).strip()


def format_annotation_for_insertion(annotation: str) -> str:
    """Wrap plain text as a doc block; text that already is a comment is kept."""
    text = annotation.strip()
    if text.startswith(("/*", "//")):
        return text
    return "/**\n * " + text.replace("\n", "\n * ") + "\n */"


# ── Owning statements ─────────────────────────────────────────────


def owning_statements(root: Node, raw_name: str) -> list[Node]:
    """
    Top-level statements that declare or export ``raw_name``.

    Declarations come first, then ``export { ... }`` clauses naming it.
    ``"default"`` stands for the default export statement.
    """
    owners: list[Node] = []
    clauses: list[Node] = []
    for item in top_level(root):
        match item:
            case ExportNode(declaration=None, is_default=True, value=value, node=node):
                if raw_name == "default" or node_text(value) == raw_name:
                    owners.append(node)
            case ExportNode(declaration=None, specifiers=specifiers, node=node):
                if any(raw_name in pair for pair in specifiers):
                    clauses.append(node)
            case ExportNode(declaration=declaration, is_default=is_default, node=node):
                if raw_name in declared_names(declaration) or (is_default and raw_name == "default"):
                    owners.append(node)
            case DeclarationNode(node=node):
                if raw_name in declared_names(node):
                    owners.append(node)
            case ImportNode() | CallNode() | MarkupElementNode() | CommentNode() | OtherNode():
                pass
    return owners + clauses


def _statement_at_line(root: Node, line: int) -> Optional[Node]:
    for child in root.children:
        if child.type == "comment":
            continue
        if child.start_point[0] + 1 <= line <= child.end_point[0] + 1:
            return child
    return None


def _first_statement(root: Node) -> Optional[Node]:
    return next((child for child in root.children if child.type != "comment"), None)


def _comments_before_first_statement(root: Node) -> list[Node]:
    first = _first_statement(root)
    if first is None:
        return []
    return [child for child in root.children if child.type == "comment" and child.end_byte <= first.start_byte]


# ── Extraction ────────────────────────────────────────────────────


def script_annotation(root: Node, source: str, raw_name: str, original: bool = False) -> str:
    """Annotation of ``raw_name`` in a parsed script, or ``""``."""
    for statement in owning_statements(root, raw_name):
        comments = leading_comments(statement) or trailing_comments(statement)
        if comments:
            return format_comments(comments, original)
    return _search_annotation(source, raw_name, original)


def _search_annotation(source: str, raw_name: str, original: bool) -> str:
    """Nearest comment directly preceding a declaration of ``raw_name`` in the raw text."""
    if not raw_name:
        return ""
    for match in re.finditer(rf"\b{re.escape(raw_name)}\b", source):
        before = source[: match.start()]
        comments = [m for pattern in (_DOC_COMMENT, _LINE_COMMENT) for m in pattern.finditer(before)]
        if not comments:
            continue
        nearest = max(comments, key=lambda m: m.end())
        if _DECLARATION_GAP.match(source[nearest.end() : match.start()]):
            return format_comment(nearest.group(0), original)
    return ""


def sfc_annotation(
    context: AnalysisContext, path: Path, descriptor: SfcDescriptor, original: bool = False
) -> str:
    """Leading comments of the setup script, then the plain script, then the template."""
    trees = {block.is_setup: cached for block, cached in context.parse_sfc_scripts(path, descriptor)}
    for is_setup in (True, False):
        cached = trees.get(is_setup)
        if cached is None:
            continue
        comments = _comments_before_first_statement(cached.root)
        if comments:
            return format_comments(comments, original)

    if descriptor.template is not None:
        match = _TEMPLATE_COMMENT.match(descriptor.template.content)
        if match:
            if original:
                return match.group(0).strip()
            return _HTML_COMMENT_MARKERS.sub("", match.group(0)).strip()
    return ""


def module_script(descriptor: SfcDescriptor, entity: BaseEntity) -> Optional[SfcBlock]:
    """The plain ``<script>`` block when ``entity`` is one of its exports rather than the component."""
    if entity.raw_name in SFC_COMPONENT_NAMES or descriptor.script_setup is not None:
        return None
    return descriptor.script


def extract_annotation(context: AnalysisContext, entity: BaseEntity, original: bool = False) -> str:
    """
    Read an entity's current annotation from its file.

    Args:
        context: Shared analysis context (file text and trees are cached)
        entity: Entity whose documenting comment is wanted
        original: Return the comment exactly as written instead of normalized

    Returns:
        Annotation text, ``""`` when the entity has none

    Raises:
        FileReadFailure: If the file cannot be read
        ParseFailure: If the file cannot be parsed
    """
    path = context.absolute(entity.file)
    content = context.read_text(path)
    if path.suffix == ".vue":
        descriptor = split_sfc(content)
        block = module_script(descriptor, entity)
        if block is not None:
            cached = context.parse(path, block.content, language=language_for_script_lang(block.lang))
            return script_annotation(cached.root, block.content, entity.raw_name, original)
        return sfc_annotation(context, path, descriptor, original)
    cached = context.parse(path, content)
    return script_annotation(cached.root, content, entity.raw_name, original)


# ── Writing ───────────────────────────────────────────────────────


def locate_comment(content: str, annotation: str) -> Optional[tuple[int, int]]:
    """
    Find the span of the comment whose normalized text equals ``annotation``.

    Block comments are tried first, then runs of contiguous ``//`` lines.
    An annotation given with its markers is matched verbatim.
    """
    wanted = annotation.strip()
    if not wanted:
        return None
    if wanted.startswith(("/*", "//")):
        index = content.find(wanted)
        if index >= 0:
            return index, index + len(wanted)
        wanted = normalize_comment(wanted)

    for match in _BLOCK_COMMENT.finditer(content):
        if _BLOCK_LINE_PREFIX.sub("", match.group(1)).strip() == wanted:
            return match.start(), match.end()
        if normalize_comment(match.group(0)) == wanted:
            return match.start(), match.end()

    lines = content.split("\n")
    offsets = []
    position = 0
    for line in lines:
        offsets.append(position)
        position += len(line) + 1

    i = 0
    while i < len(lines):
        if not lines[i].strip().startswith("//"):
            i += 1
            continue
        first = i
        texts = []
        while i < len(lines) and lines[i].strip().startswith("//"):
            texts.append(_LINE_MARKER.sub("", lines[i].strip()).strip())
            i += 1
        if "\n".join(texts) == wanted:
            indent = len(lines[first]) - len(lines[first].lstrip())
            return offsets[first] + indent, offsets[i - 1] + len(lines[i - 1])
    return None


def _line_start(content: str, index: int) -> int:
    return content.rfind("\n", 0, index) + 1


def _indentation(content: str, index: int) -> str:
    start = _line_start(content, index)
    line = content[start:index]
    return line if not line.strip() else ""


def insert_around(content: str, start: int, end: int, comment: str, insert_mode: str) -> str:
    """Insert ``comment`` on its own line before ``start`` or after ``end``."""
    indent = _indentation(content, start)
    if insert_mode == "after":
        return content[:end] + "\n" + indent + comment + content[end:]
    line_start = _line_start(content, start)
    if content[line_start:start].strip():
        return content[:start] + comment + "\n" + indent + content[start:]
    return content[:line_start] + indent + comment + "\n" + content[line_start:]


class AnnotationWriter:
    """Writes annotations back into source files, one writer per file at a time."""

    def __init__(self, root: Path | str, context: Optional[AnalysisContext] = None):
        self.root = Path(root).resolve()
        self.context = context or AnalysisContext(self.root)
        self._locks: dict[Path, asyncio.Lock] = {}

    def _lock(self, path: Path) -> asyncio.Lock:
        lock = self._locks.get(path)
        if lock is None:
            lock = self._locks[path] = asyncio.Lock()
        return lock

    async def write(
        self,
        entity: BaseEntity,
        annotation: str,
        old_annotation: Optional[str] = None,
        insert_mode: str = "before",
        overwrite_existing: bool = True,
    ) -> bool:
        """
        Write ``annotation`` for ``entity`` into its source file.

        Args:
            entity: Entity being documented
            annotation: New annotation, plain text or a full comment
            old_annotation: Current annotation (normalized) to replace
            insert_mode: Place a new comment ``"before"`` or ``"after"`` the declaration
            overwrite_existing: Replace the declaration's leading comments
                instead of stacking a second comment above them

        Returns:
            True if the file content changed

        Raises:
            AnnotationWriteFailure: If the file cannot be read, parsed or written
        """
        if not annotation:
            logger.warning(f"No annotation to write for {entity.id}")
            return False
        if old_annotation and old_annotation == annotation:
            logger.debug(f"Annotation unchanged for {entity.id}")
            return False

        path = self.context.absolute(entity.file)
        async with self._lock(path):
            try:
                content = await asyncio.to_thread(path.read_text, encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                raise AnnotationWriteFailure(entity.id, path, f"read failed: {e}") from e

            try:
                updated = self.render(path, content, entity, annotation, old_annotation, insert_mode, overwrite_existing)
            except ParseFailure as e:
                raise AnnotationWriteFailure(entity.id, path, e.reason) from e

            if updated == content:
                return False

            try:
                await asyncio.to_thread(path.write_text, updated, encoding="utf-8")
            except (OSError, UnicodeEncodeError) as e:
                raise AnnotationWriteFailure(entity.id, path, f"write failed: {e}") from e

            self.context.invalidate(path)
            logger.info(f"Annotation written for {entity.id} in {entity.file}")
            return True

    def render(
        self,
        path: Path,
        content: str,
        entity: BaseEntity,
        annotation: str,
        old_annotation: Optional[str] = None,
        insert_mode: str = "before",
        overwrite_existing: bool = True,
    ) -> str:
        """New file content with the annotation applied. Pure apart from parsing."""
        comment = format_annotation_for_insertion(annotation)

        if old_annotation:
            span = locate_comment(content, old_annotation)
            if span is not None:
                start, end = span
                return content[:start] + comment + content[end:]

        if path.suffix == ".vue":
            return self._render_sfc(path, content, entity, annotation, comment, insert_mode, overwrite_existing)
        return self._render_script(path, content, entity, comment, insert_mode, overwrite_existing)

    def _render_script(
        self,
        path: Path,
        content: str,
        entity: BaseEntity,
        comment: str,
        insert_mode: str,
        overwrite_existing: bool,
    ) -> str:
        source = content.encode("utf-8")
        root = self.context.parser.parse(source, language_for_path(path), path).root_node

        owners = owning_statements(root, entity.raw_name)
        node = owners[0] if owners else _statement_at_line(root, entity.loc.start)
        if node is None:
            logger.warning(f"No declaration found for {entity.id}, annotating file start")
            return fallback_insert(content, comment, insert_mode)
        return place_at_statement(content, source, 0, node, comment, insert_mode, overwrite_existing)

    def _render_sfc(
        self,
        path: Path,
        content: str,
        entity: BaseEntity,
        annotation: str,
        comment: str,
        insert_mode: str,
        overwrite_existing: bool,
    ) -> str:
        descriptor = split_sfc(content)
        block = descriptor.primary_script
        if block is not None:
            source = block.content.encode("utf-8")
            root = self.context.parser.parse(source, language_for_script_lang(block.lang), path).root_node
            if module_script(descriptor, entity) is not None:
                owners = owning_statements(root, entity.raw_name)
                if owners:
                    return place_at_statement(
                        content, source, block.start, owners[0], comment, insert_mode, overwrite_existing
                    )
            first = _first_statement(root)
            if first is None:
                return insert_around(content, block.start, block.start, comment, "before")
            start = block.start + char_offset(source, first.start_byte)
            end = block.start + char_offset(source, first.end_byte)
            return insert_around(content, start, end, comment, insert_mode)

        template = descriptor.template
        if template is not None:
            html_comment = f"<!-- {annotation.strip()} -->"
            if insert_mode == "after":
                return content[: template.end] + "\n" + html_comment + content[template.end :]
            return content[: template.start] + html_comment + "\n" + content[template.start :]
        return fallback_insert(content, comment, insert_mode)


def place_at_statement(
    content: str,
    source: bytes,
    base: int,
    node: Node,
    comment: str,
    insert_mode: str,
    overwrite_existing: bool,
) -> str:
    """Put ``comment`` at ``node``, which was parsed from ``source`` found at ``content[base:]``."""
    start = base + char_offset(source, node.start_byte)
    end = base + char_offset(source, node.end_byte)
    existing = leading_comments(node)
    if insert_mode == "before" and overwrite_existing and existing:
        first = base + char_offset(source, existing[0].start_byte)
        last = base + char_offset(source, existing[-1].end_byte)
        return content[:first] + comment + content[last:]
    return insert_around(content, start, end, comment, insert_mode)


def fallback_insert(content: str, comment: str, insert_mode: str) -> str:
    """Comment at the top of the file, or at the end in ``after`` mode."""
    if insert_mode == "after":
        separator = "" if content.endswith("\n") or not content else "\n"
        return content + separator + comment + "\n"
    return comment + "\n" + content
