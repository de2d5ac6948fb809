"""Exception types raised by sourcehunter."""

from typing import Optional


class SourceHunterError(Exception):
    """Base class for all sourcehunter errors."""


class ConfigError(SourceHunterError):
    """Raised when a .sourcehunter.yml file is malformed."""


class ExtractionError(SourceHunterError):
    """Raised when a directory or archive cannot be read into a file set."""


class NoCodeFilesError(SourceHunterError):
    """Raised when a file set contains nothing the analyzers can handle."""

    def __init__(self, total_files: int):
        self.total_files = total_files
        super().__init__(
            f"No analyzable source files found ({total_files} file(s) inspected)"
        )


class AnalysisTimeout(SourceHunterError):
    """Raised inside an analysis phase once its deadline has passed."""

    def __init__(self, phase: str, filename: Optional[str] = None):
        self.phase = phase
        self.filename = filename
        where = f" for {filename}" if filename else ""
        super().__init__(f"{phase} exceeded its time budget{where}")


class DependencyLookupError(SourceHunterError):
    """Raised by a dependency lookup that could not produce results."""
