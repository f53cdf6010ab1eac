"""
frontmap - entity index and incremental enrichment for front-end monorepos

Discovers TypeScript, TSX and Vue sources across workspace packages,
extracts exported entities with deterministic IDs, resolves the imports,
calls and events between them, and keeps a labeled snapshot up to date
without re-labeling code that did not change.
"""

__version__ = "0.1.0"

from .discovery import FileDiscovery
from .models import BaseEntity, EnrichedEntity, LabelResult, Location, StaticAnalysisResult
from .orchestrator import EnrichmentOrchestrator, EnrichmentReport, EntityOutcome
from .workspace import WorkspaceInfo, WorkspaceResolver

__all__ = [
    "FileDiscovery",
    "WorkspaceResolver",
    "WorkspaceInfo",
    "EnrichmentOrchestrator",
    "EnrichmentReport",
    "EntityOutcome",
    "BaseEntity",
    "EnrichedEntity",
    "LabelResult",
    "Location",
    "StaticAnalysisResult",
]
