"""Content fingerprints used for change detection.

``code_md5`` ignores comments and whitespace, so re-indenting a declaration
or editing its doc comment never looks like a code change. ``annotation_md5``
keeps comment markers and only collapses whitespace.
"""

import hashlib
import re

_LINE_COMMENT = re.compile(r"//.*$", re.MULTILINE)
_BLOCK_COMMENT = re.compile(r"/\*[\s\S]*?\*/")
_WHITESPACE = re.compile(r"\s+")


def normalize_code(content: str) -> str:
    """Strip line comments, block comments and all whitespace."""
    if not content:
        return ""
    content = _LINE_COMMENT.sub("", content)
    content = _BLOCK_COMMENT.sub("", content)
    return _WHITESPACE.sub("", content)


def normalize_annotation(content: str) -> str:
    """Collapse whitespace runs to single spaces and trim."""
    if not content:
        return ""
    return _WHITESPACE.sub(" ", content).strip()


def md5_hex(content: str) -> str:
    return hashlib.md5(content.encode("utf-8")).hexdigest()


def code_md5(content: str) -> str:
    """Fingerprint of a declaration's source text. Empty input gives ``""``."""
    if not content:
        return ""
    return md5_hex(normalize_code(content))


def annotation_md5(content: str) -> str:
    """Fingerprint of an annotation's original text. Empty input gives ``""``."""
    if not content:
        return ""
    return md5_hex(normalize_annotation(content))
