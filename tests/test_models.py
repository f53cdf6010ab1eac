"""Tests for entity models and their snapshot form."""

from frontmap.models import (
    BaseEntity,
    EnrichedEntity,
    Location,
    make_entity_id,
)


def _entity(**overrides):
    fields = dict(
        id="Function:load",
        type="function",
        file="src/load.ts",
        loc=Location(3, 9),
        raw_name="load",
        code_md5="abc",
    )
    fields.update(overrides)
    return BaseEntity(**fields)


class TestEntityIds:
    def test_make_entity_id(self):
        assert make_entity_id("component", "Foo") == "Component:Foo"
        assert make_entity_id("variable", "bar") == "Variable:bar"

    def test_name_property(self):
        assert _entity().name == "load"
        assert _entity(id="Function:load_0123456789ab").name == "load_0123456789ab"


class TestBaseEntitySerialization:
    def test_wire_field_names(self):
        data = _entity(is_ddd=True).to_dict()
        assert data == {
            "id": "Function:load",
            "type": "function",
            "file": "src/load.ts",
            "loc": {"start": 3, "end": 9},
            "rawName": "load",
            "isDDD": True,
            "isWorkspace": False,
            "codeMd5": "abc",
        }

    def test_from_dict_accepts_single_line_loc(self):
        entity = BaseEntity.from_dict(
            {"id": "Class:A", "type": "class", "file": "a.ts", "loc": 4, "rawName": "A"}
        )
        assert entity.loc == Location(4, 4)
        assert entity.code_md5 == ""
        assert entity.is_workspace is False


class TestEnrichedEntity:
    def test_every_field_is_written(self):
        """Missing labels serialize as empty strings and lists."""
        data = EnrichedEntity.from_base(_entity()).to_dict()
        for key in ("IMPORTS", "CALLS", "EMITS", "TEMPLATE_COMPONENTS", "tags"):
            assert data[key] == []
        for key in ("summary", "projectDesc", "publishTag", "ANNOTATION", "annotationMd5"):
            assert data[key] == ""

    def test_publish_tag_is_always_a_string(self):
        entity = EnrichedEntity.from_base(_entity(), publish_tag=None)
        assert entity.to_dict()["publishTag"] == ""

    def test_from_dict_restores_labels(self):
        original = EnrichedEntity.from_base(
            _entity(),
            imports=["Function:other"],
            summary="Loads things",
            tags=["io"],
            annotation="/** Loads things */",
            annotation_md5="m",
        )
        restored = EnrichedEntity.from_dict(original.to_dict())
        assert restored == original

    def test_copy_does_not_share_lists(self):
        entity = EnrichedEntity.from_base(_entity(), tags=["a"])
        copy = entity.copy(summary="changed")
        copy.tags.append("b")
        assert entity.tags == ["a"]
        assert copy.summary == "changed"
