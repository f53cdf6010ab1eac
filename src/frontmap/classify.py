"""Component classification rule tables.

Each declaration kind has an ordered table of ``Rule`` entries. The
classifier walks the table and the first rule whose predicate matches
decides the verdict; when none matches the declaration is not a component.
Rules are plain data so they can be listed, tested and extended one at a
time.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Literal

from .models import EntityType

DeclarationKind = Literal["function", "class", "variable"]
Verdict = Literal["component", "not-component"]

# Verb-prefixed names describe actions, never UI components.
VERB_PREFIX = re.compile(
    r"^(get|set|create|build|make|do|run|execute|process|handle|manage|validate|parse|format"
    r"|transform|convert|generate|load|save|fetch|send|post|put|delete|update|find|search"
    r"|filter|sort|map|reduce|forEach|some|every|has|is|can|should|will|add|remove|insert"
    r"|append|prepend|clear|reset|init|start|stop|pause|resume|toggle|enable|disable"
    r"|activate|deactivate|register|unregister|subscribe|unsubscribe|emit|on|off|once|use"
    r"|apply|call|bind|extend|mixin|clone|copy|merge|assign|compare|equals|toString|valueOf"
    r"|render(?!Component)|collect|calculate|normalize|resolve|analyze|extract|combine"
    r"|compile|decode|encode|log|debug|warn|error|test|mock|stub|spy|watch|listen|notify"
    r"|trigger|dispatch|schedule|queue|retry|timeout|delay|throttle|debounce|cache|store"
    r"|retrieve|destroy|release|close|open|connect|disconnect|authenticate|authorize|login"
    r"|logout|signup|signout|check|verify|confirm|cancel|reject|approve|deny|block|unblock"
    r"|lock|unlock)",
    re.IGNORECASE,
)

HELPER_SUFFIXES = (
    "Prompt", "Util", "Utils", "Helper", "Helpers", "Handler", "Handlers", "Service",
    "Services", "Manager", "Managers", "Config", "Configuration", "Factory", "Builder",
    "Adapter", "Strategy", "Provider", "Repository", "Store", "Cache", "Logger", "Router",
    "Middleware", "Plugin", "Tool", "Tools",
)
HELPER_SUFFIX = re.compile(rf"({'|'.join(HELPER_SUFFIXES)})$", re.IGNORECASE)

BUSINESS_CLASS_SUFFIXES = (
    "Handler", "Service", "Manager", "Controller", "Provider", "Repository", "Store", "Model",
    "Entity", "DTO", "DAO", "Util", "Utils", "Helper", "Config", "Configuration", "Builder",
    "Factory", "Strategy", "Adapter", "Interceptor", "Middleware", "Analyzer", "Processor",
    "Generator", "Validator", "Transformer", "Converter", "Extractor", "Loader", "Monitor",
    "Client",
)
BUSINESS_CLASS_NAME = re.compile(rf"(({'|'.join(BUSINESS_CLASS_SUFFIXES)})$|Base[A-Z])")

DOMAIN_BASE_CLASS = re.compile(
    r"extends\s+\w*(Domain|Service|Base|Manager|Handler|Controller|Provider|Repository|Store"
    r"|Model|Entity|Util|Helper|Config|Builder|Factory|Strategy|Adapter|Interceptor|Middleware"
    r"|Analyzer|Processor|Generator|Validator|Transformer|Converter|Extractor|Loader|Monitor"
    r"|Client)(?!\w)",
    re.IGNORECASE,
)
UI_BASE_CLASS = re.compile(
    r"extends\s+\w*(Component|Widget|Element|View|Page|Dialog|Modal|Panel|Card|Button|Input"
    r"|Form|Table|List|Grid|Menu|Tab|Tooltip|Popup|Overlay)(?!\w)",
    re.IGNORECASE,
)
REACT_COMPONENT_BASE = re.compile(r"extends\s+(React\.)?Component(?!\w)", re.IGNORECASE)
RENDER_METHOD = re.compile(r"render\s*\(\s*\)\s*\{")
UI_METHOD = re.compile(
    r"\b(render|paint|draw|show|hide|toggle|focus|blur|click|hover|resize|scroll)\s*\(",
    re.IGNORECASE,
)

COMPONENT_DECORATOR = re.compile(r"@component\b", re.IGNORECASE)
COMPONENT_KEYWORDS = ("组件", "UI组件", "界面组件")
COMPONENT_KEYWORD = re.compile(rf"\b({'|'.join(COMPONENT_KEYWORDS)})\b")

MARKUP_RETURN = re.compile(r"return\s*<")
MARKUP_ARROW = re.compile(r"=>\s*<|=>\s*\([\s\S]*<")

CAPITALIZED = re.compile(r"^[A-Z]")
PASCAL_CASE = re.compile(r"^[A-Z][a-zA-Z0-9]*$")
CONSTANT_NAME = re.compile(r"^[A-Z_][A-Z0-9_]*$")
CONSTANT_VALUE = re.compile(r"^(['\"`].*['\"`]|[\d.]+|true|false|null|undefined)$")
OBJECT_LITERAL = re.compile(r"^\s*\{[\s\S]*\}\s*$")
ARRAY_LITERAL = re.compile(r"^\s*\[[\s\S]*\]\s*$")
FUNCTION_VALUE = re.compile(r"=>|function\s*\(")


@dataclass(frozen=True)
class Subject:
    """What the classifier knows about one declaration."""

    kind: DeclarationKind
    name: str
    text: str
    initializer: str = ""
    jsx: bool = False


@dataclass(frozen=True)
class Rule:
    name: str
    verdict: Verdict
    matches: Callable[[Subject], bool]


def _has_marker(s: Subject) -> bool:
    return bool(COMPONENT_DECORATOR.search(s.text) or COMPONENT_KEYWORD.search(s.text))


def is_constant(s: Subject) -> bool:
    init = s.initializer.strip()
    return bool(
        CONSTANT_NAME.match(s.name)
        or CONSTANT_VALUE.match(init)
        or OBJECT_LITERAL.match(init)
        or ARRAY_LITERAL.match(init)
    )


def is_function_value(s: Subject) -> bool:
    return bool(FUNCTION_VALUE.search(s.initializer))


NAME_RULES: tuple[Rule, ...] = (
    Rule("verb-prefixed name", "not-component", lambda s: bool(VERB_PREFIX.match(s.name))),
    Rule("helper suffix", "not-component", lambda s: bool(HELPER_SUFFIX.search(s.name))),
)

FUNCTION_RULES: tuple[Rule, ...] = NAME_RULES + (
    Rule(
        "returns markup",
        "component",
        lambda s: bool(MARKUP_RETURN.search(s.text)) and (s.jsx or bool(CAPITALIZED.match(s.name))),
    ),
    Rule(
        "capitalized with component marker",
        "component",
        lambda s: bool(CAPITALIZED.match(s.name)) and (s.jsx or _has_marker(s)),
    ),
)

CLASS_RULES: tuple[Rule, ...] = (
    Rule(
        "react component shape",
        "component",
        lambda s: s.jsx and bool(REACT_COMPONENT_BASE.search(s.text) or RENDER_METHOD.search(s.text)),
    ),
    Rule("business class name", "not-component", lambda s: bool(BUSINESS_CLASS_NAME.search(s.name))),
    Rule("extends domain class", "not-component", lambda s: bool(DOMAIN_BASE_CLASS.search(s.text))),
    Rule("extends ui class", "component", lambda s: bool(UI_BASE_CLASS.search(s.text))),
    Rule("component decorator", "component", lambda s: bool(COMPONENT_DECORATOR.search(s.text))),
    Rule(
        "ui methods in markup context",
        "component",
        lambda s: s.jsx and bool(UI_METHOD.search(s.text)) and bool(CAPITALIZED.match(s.name)),
    ),
)

VARIABLE_RULES: tuple[Rule, ...] = (
    Rule("constant", "not-component", is_constant),
) + NAME_RULES + (
    Rule(
        "arrow returns markup",
        "component",
        lambda s: bool(MARKUP_ARROW.search(s.initializer) or MARKUP_RETURN.search(s.initializer))
        and (s.jsx or bool(PASCAL_CASE.match(s.name))),
    ),
    Rule(
        "pascal case with component marker",
        "component",
        lambda s: bool(PASCAL_CASE.match(s.name)) and (s.jsx or _has_marker(s)),
    ),
)

RULE_TABLES: dict[DeclarationKind, tuple[Rule, ...]] = {
    "function": FUNCTION_RULES,
    "class": CLASS_RULES,
    "variable": VARIABLE_RULES,
}


def first_match(subject: Subject) -> Rule | None:
    """The first rule in the subject's table that matches, if any."""
    for rule in RULE_TABLES[subject.kind]:
        if rule.matches(subject):
            return rule
    return None


def is_component(subject: Subject) -> bool:
    rule = first_match(subject)
    return rule is not None and rule.verdict == "component"


def classify(subject: Subject) -> EntityType:
    """Entity type for a declaration.

    Classes are ``component`` or ``class``; functions ``component`` or
    ``function``. Variables are ``component`` first, then ``variable`` for
    constants, ``function`` for function values, else ``variable``.
    """
    if is_component(subject):
        return "component"
    if subject.kind == "class":
        return "class"
    if subject.kind == "function":
        return "function"
    if is_constant(subject):
        return "variable"
    if is_function_value(subject):
        return "function"
    return "variable"
