"""Analysis-related exceptions: file reads, parsing, module resolution."""

from pathlib import Path

from .base import FrontmapError


class AnalysisError(FrontmapError):
    """Base class for analysis-related errors."""
    pass


class FileReadFailure(AnalysisError):
    """Raised when a source file vanished or cannot be read."""

    def __init__(self, filepath: Path, reason: str):
        super().__init__(
            f"Cannot read file: {filepath}",
            details={"filepath": str(filepath), "reason": reason},
        )
        self.filepath = filepath
        self.reason = reason


class ParseFailure(AnalysisError):
    """Raised when file content cannot be parsed."""

    def __init__(self, filepath: Path, language: str, reason: str):
        super().__init__(
            f"Failed to parse {language} file: {filepath}",
            details={"filepath": str(filepath), "language": language, "reason": reason},
        )
        self.filepath = filepath
        self.language = language
        self.reason = reason


class ModuleResolutionFailure(AnalysisError):
    """Raised when an import or call target cannot be resolved."""

    def __init__(self, specifier: str, from_file: Path, reason: str):
        super().__init__(
            f"Cannot resolve module '{specifier}'",
            details={"from": str(from_file), "reason": reason},
        )
        self.specifier = specifier
        self.from_file = from_file
        self.reason = reason
