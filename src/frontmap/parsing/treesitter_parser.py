"""Tree-sitter parser wrapper.

One parser per grammar, built lazily. ``.ts`` sources use the
``typescript`` grammar and ``.tsx`` sources the ``tsx`` grammar; script
blocks of single-file components pick the grammar from their ``lang``
attribute.

Usage:
    parser = TreeSitterParser()
    tree = parser.parse(code_bytes, "tsx")
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import tree_sitter
import tree_sitter_typescript

from ..exceptions import ParseFailure

_GRAMMARS = {
    "typescript": tree_sitter_typescript.language_typescript,
    "tsx": tree_sitter_typescript.language_tsx,
}

_EXTENSION_LANGUAGES = {
    ".ts": "typescript",
    ".mts": "typescript",
    ".cts": "typescript",
    ".tsx": "tsx",
    ".js": "tsx",
    ".jsx": "tsx",
    ".mjs": "tsx",
    ".cjs": "tsx",
}


def get_supported_languages() -> list[str]:
    """Get list of grammar names this parser can build."""
    return list(_GRAMMARS)


def language_for_path(path: Path | str) -> str:
    """Pick the grammar for a file by extension. Unknown extensions use tsx."""
    return _EXTENSION_LANGUAGES.get(Path(path).suffix.lower(), "tsx")


def language_for_script_lang(lang: str | None) -> str:
    """Pick the grammar for an SFC ``<script lang="...">`` block."""
    if lang in ("tsx", "jsx"):
        return "tsx"
    if lang in (None, "", "js", "javascript"):
        # Plain JS parses cleanly with the tsx grammar, which also accepts JSX.
        return "tsx"
    return "typescript"


class TreeSitterParser:
    """Wrapper around tree-sitter for the TypeScript family of grammars."""

    def __init__(self) -> None:
        self._parsers: dict[str, Any] = {}
        self._languages: dict[str, Any] = {}

    def _parser_for(self, language: str) -> Any:
        parser = self._parsers.get(language)
        if parser is not None:
            return parser

        grammar = _GRAMMARS.get(language)
        if grammar is None:
            return None

        # tree-sitter >= 0.23 returns PyCapsule; wrap in Language()
        lang_obj = tree_sitter.Language(grammar())
        parser = tree_sitter.Parser(lang_obj)
        self._parsers[language] = parser
        self._languages[language] = lang_obj
        return parser

    def parse(self, code: bytes, language: str, path: Path | str = "<memory>") -> tree_sitter.Tree:
        """Parse code and return syntax tree.

        Syntax errors do not fail the parse; tree-sitter recovers and marks
        the damaged region with ERROR nodes.

        Raises:
            ParseFailure: If the language is unknown or the parser crashes
        """
        parser = self._parser_for(language)
        if parser is None:
            raise ParseFailure(Path(path), language, "no grammar for language")

        try:
            return parser.parse(code)
        except (ValueError, TypeError, RuntimeError) as e:
            raise ParseFailure(Path(path), language, str(e))

    def is_language_supported(self, language: str) -> bool:
        """Check if a language is supported."""
        return language in _GRAMMARS
