"""Tests for the component classification rule tables."""

import pytest

from frontmap.classify import RULE_TABLES, Subject, classify, first_match, is_component


class TestFunctionRules:
    def test_markup_return_in_tsx(self):
        subject = Subject("function", "Foo", "function Foo() { return <div/> }", jsx=True)
        assert classify(subject) == "component"
        assert first_match(subject).name == "returns markup"

    def test_verb_prefix_wins_over_markup(self):
        subject = Subject("function", "renderRow", "function renderRow() { return <tr/> }", jsx=True)
        assert first_match(subject).name == "verb-prefixed name"
        assert classify(subject) == "function"

    def test_helper_suffix(self):
        subject = Subject("function", "DateUtils", "function DateUtils() {}", jsx=True)
        assert classify(subject) == "function"

    def test_lowercase_in_plain_script(self):
        assert classify(Subject("function", "total", "function total() { return 1 }")) == "function"


class TestClassRules:
    def test_react_component(self):
        text = "class Panel extends React.Component { render() { return null } }"
        assert classify(Subject("class", "Panel", text, jsx=True)) == "component"

    def test_business_name(self):
        assert classify(Subject("class", "UserService", "class UserService {}")) == "class"

    def test_component_decorator(self):
        text = "@Component({})\nclass Widget {}"
        assert classify(Subject("class", "Widget", text)) == "component"


class TestVariableRules:
    def test_constant_is_variable(self):
        subject = Subject("variable", "bar", "bar = 1", initializer="1")
        assert classify(subject) == "variable"

    def test_arrow_returning_markup(self):
        subject = Subject("variable", "Card", "Card = () => <div/>", initializer="() => <div/>", jsx=True)
        assert classify(subject) == "component"

    def test_function_value(self):
        subject = Subject("variable", "total", "total = (a) => a + 1", initializer="(a) => a + 1")
        assert classify(subject) == "function"

    @pytest.mark.parametrize("initializer", ["{ a: 1 }", "[1, 2]", "'text'", "true"])
    def test_literals_are_never_components(self, initializer):
        subject = Subject("variable", "Config", f"Config = {initializer}", initializer=initializer, jsx=True)
        assert not is_component(subject)


class TestRuleTables:
    def test_every_kind_has_a_table(self):
        assert set(RULE_TABLES) == {"function", "class", "variable"}

    def test_rules_are_named_data(self):
        for table in RULE_TABLES.values():
            for rule in table:
                assert rule.name
                assert rule.verdict in ("component", "not-component")
