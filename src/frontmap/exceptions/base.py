"""Root of the frontmap exception hierarchy."""

from typing import Dict, Optional


class FrontmapError(Exception):
    """Base class for errors the CLI reports instead of a traceback.

    ``details`` carries the file, entity or setting involved so a one-line
    message can still point at the culprit, e.g.
    ``Labeler failed for Function:load (entity=Function:load, reason=timed out after 120s)``.
    """

    def __init__(self, message: str, details: Optional[Dict[str, str]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if not self.details:
            return self.message
        context = ", ".join(f"{key}={value}" for key, value in self.details.items())
        return f"{self.message} ({context})"
