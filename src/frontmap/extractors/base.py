"""Base extractor class: caching and failure containment shared by all file kinds."""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from ..context import AnalysisContext
from ..exceptions import FileReadFailure, ParseFailure
from ..logging_config import get_logger
from ..models import BaseEntity

logger = get_logger(__name__)


class BaseExtractor(ABC):
    """Abstract base class for per-file-kind entity extractors.

    Results are cached on the shared ``AnalysisContext`` under
    ``(kind, path)``; ``context.invalidate(path)`` forces re-extraction.
    """

    kind: str = "base"
    extensions: tuple[str, ...] = ()

    def __init__(self, context: AnalysisContext):
        self.context = context
        logger.debug(f"Initialized {self.__class__.__name__}")

    def handles(self, path: Path) -> bool:
        return path.suffix.lower() in self.extensions

    def extract(self, path: Path, content: Optional[str] = None) -> list[BaseEntity]:
        """
        Extract entities from one file.

        Args:
            path: File to extract (absolute or root-relative)
            content: Already-read file text; read through the context if None

        Returns:
            Entities in source order. Empty if the file cannot be read or parsed.
        """
        absolute = self.context.absolute(path)

        if content is None:
            cached = self.context.get_extraction(self.kind, absolute)
            if cached is not None:
                return list(cached)

        try:
            if content is None:
                content = self.context.read_text(absolute)
            entities = self._extract(absolute, self.context.relative(absolute), content)
        except FileReadFailure as e:
            logger.warning(f"Read error for {absolute}: {e.reason}")
            return []
        except ParseFailure as e:
            logger.warning(f"Parse error for {absolute}: {e.reason}")
            return []

        entities = dedupe_entities(entities)
        self.context.put_extraction(self.kind, absolute, entities)
        return list(entities)

    @abstractmethod
    def _extract(self, path: Path, relative: str, content: str) -> list[BaseEntity]:
        """
        Produce entities for a file.

        Args:
            path: Absolute file path
            relative: Project-root relative POSIX path
            content: File text

        Raises:
            ParseFailure: If the source cannot be parsed
        """
        pass


def dedupe_entities(entities: list[BaseEntity]) -> list[BaseEntity]:
    """Drop repeated (id, file, rawName) triples, keeping source order."""
    seen: set[tuple[str, str, str]] = set()
    unique = []
    for entity in entities:
        key = (entity.id, entity.file, entity.raw_name)
        if key in seen:
            continue
        seen.add(key)
        unique.append(entity)
    return unique
