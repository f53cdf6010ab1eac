"""Enrichment exceptions: per-entity failures and snapshot persistence."""

from pathlib import Path

from .base import FrontmapError


class EnrichmentFailure(FrontmapError):
    """Raised when enriching one entity fails.

    Always retryable at the orchestrator level; once retries run out the
    entity gets a fallback record instead of aborting the run.
    """

    def __init__(self, entity_id: str, reason: str, message: str = ""):
        super().__init__(
            message or f"Enrichment failed for {entity_id}",
            details={"entity": entity_id, "reason": reason},
        )
        self.entity_id = entity_id
        self.reason = reason


class LabelerFailure(EnrichmentFailure):
    """Raised when the external labeler call fails for one entity."""

    def __init__(self, entity_id: str, reason: str):
        super().__init__(entity_id, reason, f"Labeler failed for {entity_id}")


class LabelerTimeout(LabelerFailure):
    """Raised when a labeler call exceeds its deadline."""

    def __init__(self, entity_id: str, seconds: float):
        super().__init__(entity_id, f"timed out after {seconds:g}s")
        self.seconds = seconds


class AnnotationWriteFailure(EnrichmentFailure):
    """Raised when an annotation cannot be written into its source file."""

    def __init__(self, entity_id: str, path: Path, reason: str):
        super().__init__(entity_id, reason, f"Cannot write annotation for {entity_id} to {path}")
        self.path = path


class PersistenceFailure(FrontmapError):
    """Raised when a snapshot cannot be read or written. Fatal for a run."""

    def __init__(self, path: Path, reason: str):
        super().__init__(
            f"Cannot persist snapshot: {path}",
            details={"path": str(path), "reason": reason},
        )
        self.path = path
        self.reason = reason
