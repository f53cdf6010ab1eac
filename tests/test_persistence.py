"""Tests for base and enriched snapshot files."""

import json

import pytest

from frontmap.exceptions import PersistenceFailure
from frontmap.models import BaseEntity, EnrichedEntity, Location
from frontmap.persistence import (
    load_enriched_map,
    load_entities,
    save_base_entities,
    save_entities,
    validate_entities,
)


def _base(name="load"):
    return BaseEntity(
        id=f"Function:{name}",
        type="function",
        file="src/load.ts",
        loc=Location(1, 4),
        raw_name=name,
        code_md5="c0de",
    )


class TestLoadEntities:
    def test_relative_path_resolved_against_root(self, tmp_path):
        (tmp_path / "entities.json").write_text(json.dumps([_base().to_dict()]))
        assert load_entities("entities.json", tmp_path)[0]["id"] == "Function:load"

    def test_missing_file(self, tmp_path):
        with pytest.raises(PersistenceFailure):
            load_entities(tmp_path / "missing.json")

    def test_not_an_array(self, tmp_path):
        (tmp_path / "entities.json").write_text('{"id": "x"}')
        with pytest.raises(PersistenceFailure, match="not a JSON array"):
            load_entities(tmp_path / "entities.json")

    def test_invalid_json(self, tmp_path):
        (tmp_path / "entities.json").write_text("[{")
        with pytest.raises(PersistenceFailure):
            load_entities(tmp_path / "entities.json")


class TestValidateEntities:
    def test_drops_incomplete_and_unknown(self):
        records = [
            _base().to_dict(),
            {"id": "Function:x", "type": "function", "file": "a.ts", "loc": 1},
            {"id": "Widget:y", "type": "widget", "file": "a.ts", "loc": 1, "rawName": "y"},
            "not a record",
        ]
        valid = validate_entities(records)
        assert [e.id for e in valid] == ["Function:load"]


class TestEnrichedMap:
    def test_missing_file_is_empty(self, tmp_path):
        assert load_enriched_map(tmp_path / "enriched.json") == {}

    def test_malformed_file_is_empty(self, tmp_path):
        (tmp_path / "enriched.json").write_text("not json")
        assert load_enriched_map(tmp_path / "enriched.json") == {}

    def test_keyed_by_id(self, tmp_path):
        entity = EnrichedEntity.from_base(_base(), summary="Loads", tags=["io"])
        save_entities([entity], "enriched.json", tmp_path)
        loaded = load_enriched_map("enriched.json", tmp_path)
        assert loaded["Function:load"].summary == "Loads"
        assert loaded["Function:load"].tags == ["io"]


class TestSave:
    def test_order_and_format(self, tmp_path):
        entities = [EnrichedEntity.from_base(_base(name)) for name in ("b", "a", "c")]
        path = save_entities(entities, tmp_path / "out" / "enriched.json")
        text = path.read_text(encoding="utf-8")
        assert text.startswith('[\n  {\n    "id": "Function:b"')
        assert [r["id"] for r in json.loads(text)] == ["Function:b", "Function:a", "Function:c"]

    def test_non_ascii_kept(self, tmp_path):
        entity = EnrichedEntity.from_base(_base(), summary="Lädt Benutzer")
        path = save_entities([entity], tmp_path / "enriched.json")
        assert "Lädt Benutzer" in path.read_text(encoding="utf-8")

    def test_base_snapshot_fields(self, tmp_path):
        path = save_base_entities([_base()], tmp_path / "entities.json")
        [record] = json.loads(path.read_text())
        assert set(record) == {"id", "type", "file", "loc", "rawName", "isDDD", "isWorkspace", "codeMd5"}

    def test_unwritable_target(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("")
        with pytest.raises(PersistenceFailure):
            save_entities([], blocker / "enriched.json")
