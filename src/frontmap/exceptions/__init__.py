"""Exception hierarchy for frontmap."""

from .analysis import (
    AnalysisError,
    FileReadFailure,
    ModuleResolutionFailure,
    ParseFailure,
)
from .base import FrontmapError
from .config import (
    ConfigurationError,
    InvalidConfigError,
    InvalidPathError,
)
from .enrichment import (
    AnnotationWriteFailure,
    EnrichmentFailure,
    LabelerFailure,
    LabelerTimeout,
    PersistenceFailure,
)

__all__ = [
    "FrontmapError",
    "AnalysisError",
    "FileReadFailure",
    "ParseFailure",
    "ModuleResolutionFailure",
    "EnrichmentFailure",
    "LabelerFailure",
    "LabelerTimeout",
    "AnnotationWriteFailure",
    "PersistenceFailure",
    "ConfigurationError",
    "InvalidPathError",
    "InvalidConfigError",
]
