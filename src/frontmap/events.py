"""Change events published when enrichment rewrites a source file.

Writers publish ``FileChanged`` as they go; the re-extraction stage drains
the log once every entity has finished, so each rewritten file is
re-extracted exactly once no matter how many annotations landed in it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path


@dataclass(frozen=True)
class FileChanged:
    """A source file's content was rewritten on disk."""

    path: Path
    entity_id: str = ""
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


class ChangeLog:
    """Ordered record of ``FileChanged`` events, deduplicated by path on drain."""

    def __init__(self) -> None:
        self._events: list[FileChanged] = []

    def publish(self, event: FileChanged) -> None:
        self._events.append(event)

    def __len__(self) -> int:
        return len(self._events)

    def __bool__(self) -> bool:
        return bool(self._events)

    @property
    def paths(self) -> list[Path]:
        """Changed paths in first-publish order, each once."""
        return list(dict.fromkeys(event.path for event in self._events))

    def drain(self) -> list[FileChanged]:
        """Remove and return the events, keeping the first event per path."""
        first: dict[Path, FileChanged] = {}
        for event in self._events:
            first.setdefault(event.path, event)
        self._events.clear()
        return list(first.values())
