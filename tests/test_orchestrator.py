"""Tests for the enrichment pipeline: diffing, retries, limits and write-back."""

import asyncio
import json
from dataclasses import replace
from pathlib import Path

import pytest

from frontmap.config import IndexerConfig
from frontmap.discovery import FileDiscovery
from frontmap.exceptions import (
    AnnotationWriteFailure,
    ConfigurationError,
    LabelerFailure,
    PersistenceFailure,
)
from frontmap.labeler import StaticLabeler
from frontmap.orchestrator import (
    FAILED_TAG,
    ConcurrencyLimiter,
    EnrichmentOrchestrator,
    EntityOutcome,
    LimiterCancelled,
)
from frontmap.persistence import save_base_entities

SOURCE = (
    "export function alpha() {\n"
    "  return 1;\n"
    "}\n"
    "\n"
    "export function beta() {\n"
    "  return 2;\n"
    "}\n"
)


def _extract(root, config):
    entities = asyncio.run(FileDiscovery(root, config=config).run())
    save_base_entities(entities, "entities.json", root)
    return entities


def _read(root, name="enriched.json"):
    return json.loads((root / name).read_text(encoding="utf-8"))


def _by_id(records):
    return {record["id"]: record for record in records}


def _enrich(root, labeler, config, **kwargs):
    write_annotation = kwargs.pop("write_annotation", False)
    orchestrator = EnrichmentOrchestrator(root, labeler, config=config, **kwargs)
    report = asyncio.run(orchestrator.run("entities.json", "enriched.json", write_annotation=write_annotation))
    return orchestrator, report


class FlakyLabeler(StaticLabeler):
    """Hangs on the first call, then answers normally."""

    async def generate_labels(self, entity, analysis, project_context, skip_annotation, commit_history):
        if self.calls == 0:
            self.calls += 1
            await asyncio.sleep(10)
        return await super().generate_labels(entity, analysis, project_context, skip_annotation, commit_history)


class BrokenLabeler(StaticLabeler):
    async def generate_labels(self, entity, analysis, project_context, skip_annotation, commit_history):
        self.calls += 1
        raise RuntimeError("service unavailable")


class AnnotatingLabeler(StaticLabeler):
    """Proposes an annotation for ``alpha`` only."""

    async def generate_labels(self, entity, analysis, project_context, skip_annotation, commit_history):
        label = await super().generate_labels(entity, analysis, project_context, skip_annotation, commit_history)
        annotation = "Alpha helper" if entity.raw_name == "alpha" and not skip_annotation else None
        return replace(label, annotation=annotation)


class UnencodableAnnotationLabeler(StaticLabeler):
    """Proposes an annotation for ``alpha`` that cannot be encoded as UTF-8."""

    async def generate_labels(self, entity, analysis, project_context, skip_annotation, commit_history):
        label = await super().generate_labels(entity, analysis, project_context, skip_annotation, commit_history)
        return replace(label, annotation="bad \ud800 text" if entity.raw_name == "alpha" else None)


class FailingWriter:
    def __init__(self):
        self.calls = 0

    async def write(self, entity, annotation, *args, **kwargs):
        self.calls += 1
        raise AnnotationWriteFailure(entity.id, Path(entity.file), "disk full")


class FakeHistory:
    def __init__(self, records):
        self.records = records

    def for_entities(self, entities):
        return {entity.id: list(self.records.get(entity.id, [])) for entity in entities}


@pytest.fixture
def project(make_project, config):
    root = make_project({"src/a.ts": SOURCE, "README.md": "# Demo app\n\nA small demo.\n"})
    _extract(root, config)
    return root


class TestTransitions:
    def test_first_run_labels_everything(self, project, config):
        labeler = StaticLabeler()
        _, report = _enrich(project, labeler, config)

        assert report.count(EntityOutcome.RELABELED) == 2
        assert labeler.calls == 2
        records = _read(project)
        assert [r["id"] for r in records] == ["Function:alpha", "Function:beta"]
        assert records[0]["projectDesc"] == "Demo app"
        assert records[0]["summary"] == "Function alpha in src/a.ts"

    def test_unchanged_code_skips_labeler(self, project, config):
        _enrich(project, StaticLabeler(), config)
        labeler = StaticLabeler()
        _, report = _enrich(project, labeler, config)

        assert labeler.calls == 0
        assert report.labeler_calls == 0
        assert report.count(EntityOutcome.UNCHANGED) == 2

    def test_annotation_only_change_keeps_labels(self, project, config):
        _enrich(project, StaticLabeler(), config)
        before = _by_id(_read(project))

        path = project / "src" / "a.ts"
        path.write_text("/** Alpha doc */\n" + SOURCE, encoding="utf-8")
        _extract(project, config)

        labeler = StaticLabeler()
        _, report = _enrich(project, labeler, config)

        assert labeler.calls == 0
        assert report.outcomes["Function:alpha"] is EntityOutcome.ANNOTATION_UPDATED
        assert report.outcomes["Function:beta"] is EntityOutcome.UNCHANGED
        alpha = _by_id(_read(project))["Function:alpha"]
        assert alpha["ANNOTATION"] == "/** Alpha doc */"
        assert alpha["summary"] == before["Function:alpha"]["summary"]
        assert alpha["tags"] == before["Function:alpha"]["tags"]
        assert alpha["projectDesc"] == before["Function:alpha"]["projectDesc"]
        assert alpha["loc"]["start"] == 2

    def test_code_change_relabels_only_that_entity(self, project, config):
        _enrich(project, StaticLabeler(), config)

        path = project / "src" / "a.ts"
        path.write_text(SOURCE.replace("return 2;", "return 3;"), encoding="utf-8")
        _extract(project, config)

        labeler = StaticLabeler()
        _, report = _enrich(project, labeler, config)

        assert labeler.calls == 1
        assert report.outcomes["Function:beta"] is EntityOutcome.RELABELED
        assert report.outcomes["Function:alpha"] is EntityOutcome.UNCHANGED


class TestConcurrency:
    def test_limiter_bounds_in_flight_labels(self, make_project):
        functions = "".join(f"export function f{i}() {{\n  return {i};\n}}\n\n" for i in range(10))
        config = IndexerConfig(retry_delay=0.0, git_max_commits=0, concurrency=2)
        root = make_project({"src/many.ts": functions})
        _extract(root, config)

        orchestrator, report = _enrich(root, StaticLabeler(delay=0.02), config)

        assert report.count(EntityOutcome.RELABELED) == 10
        assert 1 <= orchestrator.limiter.max_active <= 2
        assert [r["id"] for r in _read(root)] == [f"Function:f{i}" for i in range(10)]

    def test_cancel_refuses_new_holders(self):
        limiter = ConcurrencyLimiter(1)

        async def scenario():
            limiter.cancel()
            async with limiter:
                pass

        with pytest.raises(LimiterCancelled):
            asyncio.run(scenario())

    def test_cancel_wakes_waiters(self):
        limiter = ConcurrencyLimiter(1)
        outcomes = []

        async def holder():
            async with limiter:
                await asyncio.sleep(0.01)
                limiter.cancel()
                await asyncio.sleep(0.01)
                outcomes.append("done")

        async def waiter():
            try:
                async with limiter:
                    outcomes.append("admitted")
            except LimiterCancelled:
                outcomes.append("cancelled")

        async def scenario():
            await asyncio.gather(holder(), waiter(), waiter())

        asyncio.run(scenario())
        assert sorted(outcomes) == ["cancelled", "cancelled", "done"]
        assert limiter.active == 0

    def test_cancelled_run_keeps_finished_and_prior_records(self, make_project):
        functions = "".join(f"export function f{i}() {{\n  return {i};\n}}\n\n" for i in range(4))
        config = IndexerConfig(retry_delay=0.0, git_max_commits=0, concurrency=1)
        root = make_project({"src/many.ts": functions})
        _extract(root, config)

        class CancellingLabeler(StaticLabeler):
            orchestrator = None

            async def generate_labels(self, entity, *args):
                self.orchestrator.cancel()
                return await super().generate_labels(entity, *args)

        labeler = CancellingLabeler()
        orchestrator = EnrichmentOrchestrator(root, labeler, config=config)
        labeler.orchestrator = orchestrator
        report = asyncio.run(orchestrator.run("entities.json", "enriched.json"))

        assert labeler.calls == 1
        assert report.count(EntityOutcome.RELABELED) == 1
        assert report.count(EntityOutcome.CANCELLED) == 3
        # cancelled entities without a prior record are left out
        assert [r["id"] for r in _read(root)] == ["Function:f0"]


class TestRetries:
    def test_timeout_is_retried(self, project):
        config = IndexerConfig(retry_delay=0.0, git_max_commits=0, labeler_timeout=0.05, max_retries=1, concurrency=1)
        labeler = FlakyLabeler()
        _, report = _enrich(project, labeler, config)

        assert report.count(EntityOutcome.RELABELED) == 2
        assert report.labeler_calls == 3
        assert report.failures == {}

    def test_exhausted_retries_write_fallback(self, project):
        config = IndexerConfig(retry_delay=0.0, git_max_commits=0, max_retries=2)
        labeler = BrokenLabeler()
        _, report = _enrich(project, labeler, config)

        assert labeler.calls == 6
        assert report.count(EntityOutcome.FAILED) == 2
        assert report.failures["Function:alpha"] == "service unavailable"
        alpha = _by_id(_read(project))["Function:alpha"]
        assert alpha["tags"] == [FAILED_TAG]
        assert alpha["summary"].startswith("Enrichment failed")
        assert "enrichment failed" in alpha["ANNOTATION"]

    def test_labeler_exceptions_are_wrapped(self, project, config):
        orchestrator = EnrichmentOrchestrator(project, BrokenLabeler(), config=config)
        entity = orchestrator.load("entities.json")[0]

        async def call():
            return await orchestrator.call_labeler(entity, None, "", True, [])

        with pytest.raises(LabelerFailure) as exc_info:
            asyncio.run(call())
        assert exc_info.value.reason == "service unavailable"


    def test_unexpected_errors_fail_only_that_entity(self, project, config):
        config = replace(config, max_retries=1)
        labeler = UnencodableAnnotationLabeler()
        _, report = _enrich(project, labeler, config, write_annotation=True)

        assert labeler.calls == 3
        assert report.count(EntityOutcome.FAILED) == 1
        assert report.count(EntityOutcome.RELABELED) == 1
        assert report.failures["Function:alpha"].startswith("UnicodeEncodeError")
        records = _by_id(_read(project))
        assert records["Function:alpha"]["tags"] == [FAILED_TAG]
        assert records["Function:beta"]["summary"] == "Function beta in src/a.ts"

    def test_write_failures_are_retried_then_fall_back(self, project, config):
        config = replace(config, max_retries=2)
        orchestrator = EnrichmentOrchestrator(project, AnnotatingLabeler(), config=config)
        writer = FailingWriter()
        orchestrator.writer = writer
        report = asyncio.run(orchestrator.run("entities.json", "enriched.json", write_annotation=True))

        assert writer.calls == 3
        assert report.failures["Function:alpha"] == "disk full"
        records = _by_id(_read(project))
        assert records["Function:alpha"]["tags"] == [FAILED_TAG]
        assert records["Function:beta"]["tags"] != [FAILED_TAG]
        assert (project / "src" / "a.ts").read_text() == SOURCE

class TestAnnotationWriteBack:
    def test_written_annotation_refreshes_locations(self, project, config):
        before = _by_id(json.loads((project / "entities.json").read_text()))
        _, report = _enrich(project, AnnotatingLabeler(), config, write_annotation=True)

        content = (project / "src" / "a.ts").read_text()
        assert content.startswith("/**\n * Alpha helper\n */\nexport function alpha()")
        assert report.changed_files == ["src/a.ts"]

        base = _by_id(json.loads((project / "entities.json").read_text()))
        shift = base["Function:beta"]["loc"]["start"] - before["Function:beta"]["loc"]["start"]
        assert shift == 3

        enriched = _by_id(_read(project))
        assert enriched["Function:alpha"]["ANNOTATION"] == "/**\n * Alpha helper\n */"
        assert enriched["Function:beta"]["loc"] == base["Function:beta"]["loc"]

    def test_rerun_after_write_is_unchanged(self, project, config):
        _enrich(project, AnnotatingLabeler(), config, write_annotation=True)
        labeler = AnnotatingLabeler()
        _, report = _enrich(project, labeler, config, write_annotation=True)

        assert labeler.calls == 0
        assert report.count(EntityOutcome.UNCHANGED) == 2
        assert report.changed_files == []

    def test_no_write_without_flag(self, project, config):
        _enrich(project, AnnotatingLabeler(), config)
        assert (project / "src" / "a.ts").read_text() == SOURCE


class TestInputsAndContext:
    def test_publish_tag_from_newest_commit(self, project, config):
        history = FakeHistory({"Function:alpha": [{"hash": "abc", "subject": "feat: alpha"}]})
        _enrich(project, StaticLabeler(), config, history=history)
        records = _by_id(_read(project))
        assert records["Function:alpha"]["publishTag"] == "feat: alpha"
        assert records["Function:beta"]["publishTag"] == ""

    def test_invalid_records_dropped(self, project, config):
        records = json.loads((project / "entities.json").read_text())
        records.append({"id": "Thing:x", "type": "thing", "file": "x.ts", "loc": 1, "rawName": "x"})
        records.append({"id": "Function:y"})
        (project / "entities.json").write_text(json.dumps(records))

        _, report = _enrich(project, StaticLabeler(), config)
        assert report.total == 2

    def test_no_valid_entities(self, project, config):
        (project / "entities.json").write_text("[]")
        orchestrator = EnrichmentOrchestrator(project, StaticLabeler(), config=config)
        with pytest.raises(ConfigurationError):
            orchestrator.load("entities.json")

    def test_missing_input(self, project, config):
        orchestrator = EnrichmentOrchestrator(project, StaticLabeler(), config=config)
        with pytest.raises(PersistenceFailure):
            orchestrator.load("missing.json")


class TestStaticUpdate:
    def test_keeps_labels_without_calling_labeler(self, project, config):
        _enrich(project, StaticLabeler(), config)
        before = _by_id(_read(project))

        labeler = StaticLabeler()
        orchestrator = EnrichmentOrchestrator(project, labeler, config=config)
        report = asyncio.run(orchestrator.run_static_update("entities.json", "enriched.json"))

        assert labeler.calls == 0
        assert report.count(EntityOutcome.REFRESHED) == 2
        after = _by_id(_read(project))
        assert after["Function:alpha"]["summary"] == before["Function:alpha"]["summary"]

    def test_missing_file_keeps_prior_record(self, project, config):
        _enrich(project, StaticLabeler(), config)
        (project / "src" / "a.ts").unlink()

        orchestrator = EnrichmentOrchestrator(project, StaticLabeler(), config=config)
        asyncio.run(orchestrator.run_static_update("entities.json", "enriched.json"))
        assert _by_id(_read(project))["Function:beta"]["summary"] == "Function beta in src/a.ts"

    def test_without_prior_labels_are_empty(self, project, config):
        orchestrator = EnrichmentOrchestrator(project, StaticLabeler(), config=config)
        asyncio.run(orchestrator.run_static_update("entities.json", "enriched.json"))
        alpha = _by_id(_read(project))["Function:alpha"]
        assert alpha["summary"] == ""
        assert alpha["tags"] == []
