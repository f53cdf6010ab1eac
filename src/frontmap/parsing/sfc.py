"""Block splitter for single-file UI components (``.vue``).

Only the top-level structure is recovered: the ``<template>`` block (with
nested ``<template>`` tags balanced), the ``<script>`` and
``<script setup>`` blocks and any ``<style>`` blocks. Each block keeps its
content, attributes and location so extracted nodes can be mapped back to
file lines.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Optional

_OPEN_TAG = re.compile(r"<(template|script|style)(\s[^>]*)?>", re.IGNORECASE)
_ATTR = re.compile(r"([\w:@.#-]+)(?:\s*=\s*(?:\"([^\"]*)\"|'([^']*)'|([^\s>]+)))?")
_HTML_COMMENT = re.compile(r"<!--[\s\S]*?-->")
_TEMPLATE_TAG = re.compile(r"<(/?)template(\s[^>]*)?(/?)>", re.IGNORECASE)


@dataclass(frozen=True)
class SfcBlock:
    """One top-level block. Offsets index the full file text."""

    tag: str
    content: str
    attrs: dict[str, str]
    start: int
    end: int
    start_line: int
    end_line: int
    tag_start: int
    tag_end: int

    @property
    def lang(self) -> Optional[str]:
        return self.attrs.get("lang")

    @property
    def is_setup(self) -> bool:
        return "setup" in self.attrs


@dataclass
class SfcDescriptor:
    template: Optional[SfcBlock] = None
    script: Optional[SfcBlock] = None
    script_setup: Optional[SfcBlock] = None
    styles: list[SfcBlock] = field(default_factory=list)

    @property
    def scripts(self) -> list[SfcBlock]:
        """Script blocks in file order."""
        blocks = [b for b in (self.script, self.script_setup) if b is not None]
        return sorted(blocks, key=lambda b: b.start)

    @property
    def primary_script(self) -> Optional[SfcBlock]:
        """The block whose tree is cached for the file: setup wins over plain script."""
        return self.script_setup if self.script_setup is not None else self.script


def _parse_attrs(raw: Optional[str]) -> dict[str, str]:
    attrs: dict[str, str] = {}
    if not raw:
        return attrs
    for match in _ATTR.finditer(raw.strip().rstrip("/")):
        name = match.group(1)
        value = next((g for g in match.groups()[1:] if g is not None), "")
        attrs[name.lower()] = value
    return attrs


def _line_at(text: str, offset: int) -> int:
    return text.count("\n", 0, offset) + 1


def _find_template_close(text: str, content_start: int) -> Optional[tuple[int, int]]:
    """Return (content_end, tag_end) of the template closing tag matching depth 1."""
    depth = 1
    pos = content_start
    while True:
        comment = _HTML_COMMENT.search(text, pos)
        match = _TEMPLATE_TAG.search(text, pos)
        if match is None:
            return None
        if comment is not None and comment.start() < match.start():
            pos = comment.end()
            continue
        closing, _attrs, self_closing = match.group(1), match.group(2), match.group(3)
        if closing:
            depth -= 1
            if depth == 0:
                return match.start(), match.end()
        elif not self_closing:
            depth += 1
        pos = match.end()


def split_sfc(text: str) -> SfcDescriptor:
    """Split an SFC into its top-level blocks."""
    descriptor = SfcDescriptor()
    pos = 0
    while True:
        comment = _HTML_COMMENT.search(text, pos)
        match = _OPEN_TAG.search(text, pos)
        if match is None:
            break
        if comment is not None and comment.start() < match.start():
            pos = comment.end()
            continue

        tag = match.group(1).lower()
        attrs = _parse_attrs(match.group(2))
        content_start = match.end()

        if tag == "template":
            close = _find_template_close(text, content_start)
        else:
            closing = re.compile(rf"</{tag}\s*>", re.IGNORECASE).search(text, content_start)
            close = (closing.start(), closing.end()) if closing else None
        if close is None:
            break
        content_end, tag_end = close

        block = SfcBlock(
            tag=tag,
            content=text[content_start:content_end],
            attrs=attrs,
            start=content_start,
            end=content_end,
            start_line=_line_at(text, content_start),
            end_line=_line_at(text, content_end),
            tag_start=match.start(),
            tag_end=tag_end,
        )
        if tag == "template" and descriptor.template is None:
            descriptor.template = block
        elif tag == "script":
            if block.is_setup and descriptor.script_setup is None:
                descriptor.script_setup = block
            elif not block.is_setup and descriptor.script is None:
                descriptor.script = block
        elif tag == "style":
            descriptor.styles.append(block)
        pos = tag_end

    return descriptor
