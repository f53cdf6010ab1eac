"""Per-file-kind entity extractors."""

from pathlib import Path
from typing import Optional

from ..context import AnalysisContext
from ..models import BaseEntity
from .base import BaseExtractor, dedupe_entities
from .ids import ensure_unique_ids
from .script import ScriptExtractor, TsxExtractor
from .sfc import SfcExtractor

EXTRACTOR_CLASSES: tuple[type[BaseExtractor], ...] = (ScriptExtractor, TsxExtractor, SfcExtractor)


class ExtractorRegistry:
    """Dispatches a file to the extractor that handles its extension."""

    def __init__(self, context: AnalysisContext):
        self.context = context
        self.extractors = [cls(context) for cls in EXTRACTOR_CLASSES]

    def for_path(self, path: Path | str) -> Optional[BaseExtractor]:
        path = Path(path)
        if path.name.endswith(".d.ts"):
            return None
        for extractor in self.extractors:
            if extractor.handles(path):
                return extractor
        return None

    def extract_file(self, path: Path | str, content: Optional[str] = None) -> list[BaseEntity]:
        extractor = self.for_path(path)
        if extractor is None:
            return []
        return extractor.extract(Path(path), content)


__all__ = [
    "BaseExtractor",
    "ExtractorRegistry",
    "ScriptExtractor",
    "SfcExtractor",
    "TsxExtractor",
    "dedupe_entities",
    "ensure_unique_ids",
]
