"""Labeler boundary: the external service that names and describes entities.

Only the contract lives here. ``StaticLabeler`` is a deterministic offline
implementation built from the static facts alone; it backs the CLI when no
labeling service is configured.
"""

from __future__ import annotations

import asyncio
from typing import Optional, Protocol, runtime_checkable

from .models import BaseEntity, LabelResult, StaticAnalysisResult

MAX_PUBLISH_TAG_LENGTH = 180


@runtime_checkable
class Labeler(Protocol):
    async def generate_labels(
        self,
        entity: BaseEntity,
        analysis: StaticAnalysisResult,
        project_context: str,
        skip_annotation: bool,
        commit_history: list[dict],
    ) -> LabelResult:
        """
        Produce labels for one entity.

        Args:
            entity: Entity being labeled
            analysis: Its static facts and current annotation
            project_context: Project description text (may be empty)
            skip_annotation: Do not propose a new annotation
            commit_history: Commit records touching the entity's file, newest first

        Raises:
            LabelerFailure: If labeling fails; the caller may retry
        """
        ...


class StaticLabeler:
    """Labels derived from the entity itself, with no external calls."""

    def __init__(self, delay: float = 0.0):
        self.delay = delay
        self.calls = 0

    async def generate_labels(
        self,
        entity: BaseEntity,
        analysis: StaticAnalysisResult,
        project_context: str,
        skip_annotation: bool,
        commit_history: list[dict],
    ) -> LabelResult:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)

        summary = first_line(analysis.annotation) or describe(entity)
        annotation: Optional[str] = None
        if not skip_annotation:
            annotation = analysis.original_annotation or f"@description {summary}"

        return LabelResult(
            summary=summary,
            tags=static_tags(entity, analysis),
            project_desc=first_line(project_context),
            annotation=annotation,
            publish_tag=publish_tag(commit_history),
        )


def first_line(text: str) -> str:
    for line in (text or "").splitlines():
        line = line.strip().lstrip("#").strip()
        if line:
            return line
    return ""


def describe(entity: BaseEntity) -> str:
    return f"{entity.type.capitalize()} {entity.name} in {entity.file}"


def static_tags(entity: BaseEntity, analysis: StaticAnalysisResult) -> list[str]:
    tags = [entity.type]
    if entity.is_workspace:
        tags.append("workspace")
    if entity.is_ddd:
        tags.append("ddd")
    if analysis.imports:
        tags.append("has-imports")
    if analysis.calls:
        tags.append("has-calls")
    if analysis.emits:
        tags.append("emits-events")
    if analysis.template_components:
        tags.append("composes-components")
    return tags


def publish_tag(commit_history: list[dict]) -> str:
    """Subject of the newest commit, truncated."""
    if not commit_history:
        return ""
    subject = str(commit_history[0].get("subject") or "")
    return subject[:MAX_PUBLISH_TAG_LENGTH]
