"""Incremental enrichment of an extracted entity snapshot.

One run walks the pipeline load -> analyze -> diff -> label -> write back ->
re-extract -> persist. Each entity is compared against the prior enriched
snapshot and lands in exactly one ``EntityOutcome``:

- ``RELABELED``: no prior record, or the code fingerprint changed, so the
  labeler is called (with retries and a per-call deadline);
- ``ANNOTATION_UPDATED``: only the annotation fingerprint changed, so the
  prior labels are kept and the annotation is refreshed;
- ``UNCHANGED``: nothing relevant changed, the prior record is reused;
- ``FAILED``: every labeler attempt failed, a fallback record is written;
- ``CANCELLED``: the limiter was cancelled before the entity was admitted;
- ``REFRESHED``: static facts recomputed by ``run_static_update`` only.

Annotation rewrites publish ``FileChanged`` events. Once every entity is
done, ``ReExtractionStage`` drains them and refreshes locations.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Optional

from .annotations import AnnotationWriter, format_annotation_for_insertion
from .config import IndexerConfig, default_config
from .context import AnalysisContext
from .discovery import FileDiscovery
from .events import ChangeLog, FileChanged
from .exceptions import (
    ConfigurationError,
    EnrichmentFailure,
    FrontmapError,
    LabelerFailure,
    LabelerTimeout,
)
from .hashing import annotation_md5
from .history import GitHistorySource
from .labeler import Labeler
from .logging_config import get_logger
from .models import BaseEntity, EnrichedEntity, LabelResult, StaticAnalysisResult
from .persistence import (
    load_enriched_map,
    load_entities,
    save_base_entities,
    save_entities,
    validate_entities,
)
from .resolver import ReferenceResolver

logger = get_logger(__name__)

FAILED_TAG = "enrichment-failed"
FAILED_ANNOTATION = "/**\n * @description enrichment failed\n */"
README_NAMES = ("README.md", "readme.md", "README", "README.txt")


class EntityOutcome(Enum):
    RELABELED = "relabeled"
    ANNOTATION_UPDATED = "annotation_updated"
    UNCHANGED = "unchanged"
    FAILED = "failed"
    CANCELLED = "cancelled"
    REFRESHED = "refreshed"


@dataclass
class EnrichmentReport:
    """What a run did, per entity."""

    outcomes: dict[str, EntityOutcome] = field(default_factory=dict)
    failures: dict[str, str] = field(default_factory=dict)
    changed_files: list[str] = field(default_factory=list)
    labeler_calls: int = 0

    def record(self, entity_id: str, outcome: EntityOutcome) -> None:
        self.outcomes[entity_id] = outcome

    def count(self, outcome: EntityOutcome) -> int:
        return sum(1 for value in self.outcomes.values() if value is outcome)

    @property
    def counts(self) -> dict[str, int]:
        return {outcome.value: self.count(outcome) for outcome in EntityOutcome}

    @property
    def total(self) -> int:
        return len(self.outcomes)


class LimiterCancelled(FrontmapError):
    """Raised to a task whose limiter slot was withdrawn by ``cancel()``."""

    def __init__(self) -> None:
        super().__init__("Concurrency limiter cancelled")


class ConcurrencyLimiter:
    """
    Async context manager admitting at most ``concurrency`` holders at once.

    ``cancel()`` is cooperative: holders finish their current step and can
    poll ``cancelled``; tasks still waiting for a slot are woken and raise
    ``LimiterCancelled``; later entrants are refused immediately.
    """

    def __init__(self, concurrency: int):
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.concurrency = concurrency
        self.active = 0
        self.max_active = 0
        self._semaphore: Optional[asyncio.Semaphore] = None
        self._cancelled: Optional[asyncio.Event] = None
        self._waiting: set[asyncio.Task] = set()

    def _state(self) -> tuple[asyncio.Semaphore, asyncio.Event]:
        # Created lazily so both bind to the running loop.
        if self._semaphore is None:
            self._semaphore = asyncio.Semaphore(self.concurrency)
        if self._cancelled is None:
            self._cancelled = asyncio.Event()
        return self._semaphore, self._cancelled

    @property
    def cancelled(self) -> bool:
        return self._cancelled is not None and self._cancelled.is_set()

    def cancel(self) -> None:
        """Stop admitting holders and wake every pending waiter."""
        _, event = self._state()
        event.set()
        for task in list(self._waiting):
            task.cancel()

    async def __aenter__(self) -> ConcurrencyLimiter:
        semaphore, event = self._state()
        if event.is_set():
            raise LimiterCancelled()

        task = asyncio.current_task()
        if task is not None:
            self._waiting.add(task)
        try:
            await semaphore.acquire()
        except asyncio.CancelledError:
            if event.is_set() and task is not None:
                task.uncancel()
                raise LimiterCancelled()
            raise
        finally:
            if task is not None:
                self._waiting.discard(task)

        if event.is_set():
            semaphore.release()
            raise LimiterCancelled()

        self.active += 1
        self.max_active = max(self.max_active, self.active)
        return self

    async def __aexit__(self, *exc_info) -> None:
        self.active -= 1
        semaphore, _ = self._state()
        semaphore.release()


def failed_entity(entity: BaseEntity, message: str) -> EnrichedEntity:
    """Placeholder record for an entity whose labeling never succeeded."""
    return EnrichedEntity.from_base(
        entity,
        summary=f"Enrichment failed: {message}",
        tags=[FAILED_TAG],
        annotation=FAILED_ANNOTATION,
        annotation_md5=annotation_md5(FAILED_ANNOTATION),
    )


def read_project_context(root: Path) -> str:
    """Project description for the labeler: the root README, if any."""
    for name in README_NAMES:
        candidate = root / name
        if candidate.is_file():
            try:
                return candidate.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                logger.warning(f"Cannot read {candidate}: {e}")
                return ""
    logger.debug(f"No README under {root}, project context is empty")
    return ""


class ReExtractionStage:
    """Re-extracts files rewritten during enrichment and refreshes locations."""

    def __init__(self, discovery: FileDiscovery, changes: ChangeLog):
        self.discovery = discovery
        self.changes = changes

    async def run(
        self,
        entities: list[BaseEntity],
        results: list[EnrichedEntity],
    ) -> tuple[list[BaseEntity], list[EnrichedEntity], list[str]]:
        """
        Drain pending ``FileChanged`` events and apply fresh locations.

        Entities are matched by ID within the same file, then by file and
        raw name. ``code_md5`` is refreshed with ``loc`` so the next run does
        not mistake the inserted comment for a code change.

        Returns:
            Updated base entities, updated results and the changed files
        """
        events = self.changes.drain()
        if not events:
            return entities, results, []

        context = self.discovery.context
        for event in events:
            context.invalidate(event.path)

        files = await self.discovery.discover_targets(event.path for event in events)
        fresh = await self.discovery.extract_entities(files)
        changed = [file.relative_path for file in files]
        logger.info(f"Re-extracted {len(fresh)} entities from {len(changed)} rewritten files")

        by_id = {(entity.file, entity.id): entity for entity in fresh}
        by_name: dict[tuple[str, str], BaseEntity] = {}
        for entity in fresh:
            by_name.setdefault((entity.file, entity.raw_name), entity)

        def match(entity: BaseEntity) -> Optional[BaseEntity]:
            return by_id.get((entity.file, entity.id)) or by_name.get((entity.file, entity.raw_name))

        updated_entities = []
        for entity in entities:
            current = match(entity)
            if current is not None:
                entity = replace(entity, loc=current.loc, code_md5=current.code_md5 or entity.code_md5)
            updated_entities.append(entity)

        updated_results = []
        for result in results:
            current = match(result)
            if current is not None:
                result = result.copy(loc=current.loc, code_md5=current.code_md5 or result.code_md5)
            updated_results.append(result)

        return updated_entities, updated_results, changed


class EnrichmentOrchestrator:
    """Drives enrichment of a base entity snapshot into an enriched one."""

    def __init__(
        self,
        root: Path | str,
        labeler: Labeler,
        config: Optional[IndexerConfig] = None,
        history: Optional[GitHistorySource] = None,
        project_context: Optional[str] = None,
        context: Optional[AnalysisContext] = None,
    ):
        self.root = Path(root).resolve()
        self.labeler = labeler
        self.config = config or default_config
        self.history = history or GitHistorySource(self.root, self.config.git_max_commits)
        self.project_context = project_context
        self.context = context or AnalysisContext(self.root, self.config)
        self.writer = AnnotationWriter(self.root, self.context)
        self.discovery = FileDiscovery(self.root, config=self.config, context=self.context)
        self.changes = ChangeLog()
        self.limiter = ConcurrencyLimiter(self.config.concurrency)

    def cancel(self) -> None:
        """Stop admitting entities; pending ones keep their prior record, if any."""
        logger.warning("Enrichment cancelled, finishing in-flight entities")
        self.limiter.cancel()

    # ── Loading ───────────────────────────────────────────────────

    def load(self, input_path: Path | str) -> list[BaseEntity]:
        """
        Load and validate the base snapshot.

        Raises:
            PersistenceFailure: If the snapshot cannot be read
            ConfigurationError: If no entity in it is valid
        """
        entities = validate_entities(load_entities(input_path, self.root))
        if not entities:
            raise ConfigurationError(f"No valid entities in {input_path}")
        return entities

    def _project_context(self) -> str:
        if self.project_context is None:
            self.project_context = read_project_context(self.root)
        return self.project_context

    async def _commit_histories(self, entities: list[BaseEntity]) -> dict[str, list[dict]]:
        histories = await asyncio.to_thread(self.history.for_entities, entities)
        with_commits = sum(1 for records in histories.values() if records)
        logger.info(f"Commit history found for {with_commits}/{len(entities)} entities")
        return histories

    # ── Full enrichment ───────────────────────────────────────────

    async def run(
        self,
        input_path: Path | str,
        output_path: Path | str,
        write_annotation: bool = False,
    ) -> EnrichmentReport:
        """
        Enrich ``input_path`` into ``output_path``.

        Args:
            input_path: Base snapshot; rewritten when annotation writes move code
            output_path: Enriched snapshot; also the prior state for diffing
            write_annotation: Write labeler annotations back into source files

        Returns:
            EnrichmentReport for the run

        Raises:
            PersistenceFailure: If a snapshot cannot be read or written
            ConfigurationError: If the base snapshot has no valid entity
        """
        entities = self.load(input_path)
        prior = load_enriched_map(output_path, self.root)
        project_context = self._project_context()
        histories = await self._commit_histories(entities)
        resolver = ReferenceResolver.for_project(self.root, entities, self.context, self.config)

        report = EnrichmentReport()
        logger.info(
            f"Enriching {len(entities)} entities with concurrency {self.config.concurrency}"
            + ("" if write_annotation else " (annotations not written)")
        )

        tasks = [
            self._guarded(
                entity,
                resolver,
                prior.get(entity.id),
                project_context,
                histories.get(entity.id, []),
                write_annotation,
                report,
            )
            for entity in entities
        ]
        gathered = await asyncio.gather(*tasks)
        results = [result for result in gathered if result is not None]

        stage = ReExtractionStage(self.discovery, self.changes)
        entities, results, changed = await stage.run(entities, results)
        if changed:
            report.changed_files = changed
            save_base_entities(entities, input_path, self.root)

        save_entities(results, output_path, self.root)

        logger.info(f"Enrichment finished: {report.counts}")
        return report

    async def _guarded(
        self,
        entity: BaseEntity,
        resolver: ReferenceResolver,
        prior: Optional[EnrichedEntity],
        project_context: str,
        commit_history: list[dict],
        write_annotation: bool,
        report: EnrichmentReport,
    ) -> Optional[EnrichedEntity]:
        try:
            async with self.limiter:
                return await self.enrich_with_retry(
                    entity, resolver, prior, project_context, commit_history, write_annotation, report
                )
        except LimiterCancelled:
            report.record(entity.id, EntityOutcome.CANCELLED)
            if prior is None:
                logger.warning(f"{entity.id} cancelled with no prior record, omitted from output")
            return prior

    async def enrich_with_retry(
        self,
        entity: BaseEntity,
        resolver: ReferenceResolver,
        prior: Optional[EnrichedEntity],
        project_context: str,
        commit_history: list[dict],
        write_annotation: bool,
        report: EnrichmentReport,
    ) -> EnrichedEntity:
        """
        One entity with up to ``max_retries`` retries, then the fallback record.

        Any exception raised while enriching the entity counts as a failed
        attempt for that entity alone; cancellation still propagates.
        """
        attempts = self.config.max_retries + 1
        for attempt in range(1, attempts + 1):
            try:
                return await self.enrich_entity(
                    entity, resolver, prior, project_context, commit_history, write_annotation, report
                )
            except EnrichmentFailure as e:
                failure = e
            except Exception as e:
                logger.debug(f"Unexpected error enriching {entity.id}", exc_info=True)
                failure = EnrichmentFailure(entity.id, f"{type(e).__name__}: {e}")

            if attempt < attempts and not self.limiter.cancelled:
                logger.warning(
                    f"{failure.message} ({failure.reason}), retrying ({attempt}/{self.config.max_retries})"
                )
                await asyncio.sleep(self.config.retry_delay)
                continue
            logger.error(f"{failure.message} after {attempt} attempts: {failure.reason}")
            report.record(entity.id, EntityOutcome.FAILED)
            report.failures[entity.id] = failure.reason
            return failed_entity(entity, failure.reason)
        raise AssertionError("unreachable")

    async def enrich_entity(
        self,
        entity: BaseEntity,
        resolver: ReferenceResolver,
        prior: Optional[EnrichedEntity],
        project_context: str,
        commit_history: list[dict],
        write_annotation: bool,
        report: EnrichmentReport,
    ) -> EnrichedEntity:
        analysis = resolver.analyze(entity)

        if prior is None or prior.code_md5 != entity.code_md5:
            report.labeler_calls += 1
            label = await self.call_labeler(entity, analysis, project_context, not write_annotation, commit_history)
            result = await self._apply_label(entity, analysis, label, write_annotation)
            report.record(entity.id, EntityOutcome.RELABELED)
            return result

        current_md5 = annotation_md5(analysis.original_annotation)
        if prior.annotation_md5 != current_md5:
            logger.debug(f"Annotation changed for {entity.id}, keeping labels")
            report.record(entity.id, EntityOutcome.ANNOTATION_UPDATED)
            return _refresh_base(prior, entity).copy(
                annotation=analysis.original_annotation,
                annotation_md5=current_md5,
            )

        report.record(entity.id, EntityOutcome.UNCHANGED)
        return _refresh_base(prior, entity)

    async def call_labeler(
        self,
        entity: BaseEntity,
        analysis: StaticAnalysisResult,
        project_context: str,
        skip_annotation: bool,
        commit_history: list[dict],
    ) -> LabelResult:
        """
        One labeler call under ``labeler_timeout``.

        Raises:
            LabelerTimeout: If the deadline passes
            LabelerFailure: If the labeler raises anything else
        """
        timeout = self.config.labeler_timeout
        try:
            return await asyncio.wait_for(
                self.labeler.generate_labels(entity, analysis, project_context, skip_annotation, commit_history),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            raise LabelerTimeout(entity.id, timeout)
        except LabelerFailure:
            raise
        except Exception as e:
            raise LabelerFailure(entity.id, str(e) or type(e).__name__) from e

    async def _apply_label(
        self,
        entity: BaseEntity,
        analysis: StaticAnalysisResult,
        label: LabelResult,
        write_annotation: bool,
    ) -> EnrichedEntity:
        annotation = analysis.original_annotation
        if write_annotation and label.annotation:
            annotation = format_annotation_for_insertion(label.annotation)

        rewrite = annotation_md5(annotation) != annotation_md5(analysis.original_annotation)
        if write_annotation and label.annotation and rewrite:
            changed = await self.writer.write(
                entity,
                label.annotation,
                analysis.annotation or None,
                insert_mode=self.config.annotation_insert_mode,
                overwrite_existing=self.config.overwrite_existing_annotation,
            )
            if changed:
                self.changes.publish(FileChanged(self.context.absolute(entity.file), entity.id))

        return EnrichedEntity.from_base(
            entity,
            imports=list(analysis.imports),
            calls=list(analysis.calls),
            emits=list(analysis.emits),
            template_components=list(analysis.template_components),
            summary=label.summary or "",
            tags=list(label.tags or []),
            project_desc=label.project_desc or "",
            publish_tag=label.publish_tag or "",
            annotation=annotation,
            annotation_md5=annotation_md5(annotation),
        )

    # ── Static refresh ────────────────────────────────────────────

    async def run_static_update(self, input_path: Path | str, output_path: Path | str) -> EnrichmentReport:
        """
        Refresh references and annotations without calling the labeler.

        Prior labels (summary, tags, project description, publish tag) are
        kept; entities with no prior record get empty labels. An entity
        whose file has gone keeps its prior references.
        """
        entities = self.load(input_path)
        prior = load_enriched_map(output_path, self.root)
        resolver = ReferenceResolver.for_project(self.root, entities, self.context, self.config)
        report = EnrichmentReport()

        results = []
        for entity in entities:
            results.append(self.static_entity(entity, resolver, prior.get(entity.id), report))
            await asyncio.sleep(0)

        save_entities(results, output_path, self.root)
        logger.info(f"Static update finished for {len(results)} entities")
        return report

    def static_entity(
        self,
        entity: BaseEntity,
        resolver: ReferenceResolver,
        prior: Optional[EnrichedEntity],
        report: EnrichmentReport,
    ) -> EnrichedEntity:
        if prior is not None and not self.context.absolute(entity.file).is_file():
            report.record(entity.id, EntityOutcome.REFRESHED)
            return _refresh_base(prior, entity)

        analysis = resolver.analyze(entity)
        labels = {}
        if prior is not None:
            labels = {
                "summary": prior.summary,
                "tags": list(prior.tags),
                "project_desc": prior.project_desc,
                "publish_tag": prior.publish_tag,
            }
        report.record(entity.id, EntityOutcome.REFRESHED)
        return EnrichedEntity.from_base(
            entity,
            imports=list(analysis.imports),
            calls=list(analysis.calls),
            emits=list(analysis.emits),
            template_components=list(analysis.template_components),
            annotation=analysis.original_annotation,
            annotation_md5=annotation_md5(analysis.original_annotation),
            **labels,
        )


def _refresh_base(prior: EnrichedEntity, entity: BaseEntity) -> EnrichedEntity:
    """Prior record with the current base fields (location, flags, fingerprint)."""
    return prior.copy(
        type=entity.type,
        file=entity.file,
        loc=entity.loc,
        raw_name=entity.raw_name,
        is_ddd=entity.is_ddd,
        is_workspace=entity.is_workspace,
        code_md5=entity.code_md5,
    )

