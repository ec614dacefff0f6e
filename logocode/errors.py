"""Error types shared across analysis, diff, and apply layers."""

from __future__ import annotations


class LogoCodeError(Exception):
    """Base class for every error raised by this package."""


class WorkspaceUnavailableError(LogoCodeError):
    """No workspace root could be resolved; analysis cannot start."""


class ParseError(LogoCodeError):
    """A single file's syntax tree could not be walked."""

    def __init__(self, file_path: str, message: str):
        super().__init__(f"{file_path}: {message}")
        self.file_path = file_path


class ReadError(LogoCodeError):
    """A single file could not be read."""

    def __init__(self, file_path: str, message: str):
        super().__init__(f"Could not read {file_path}: {message}")
        self.file_path = file_path


class DiffComputationError(LogoCodeError):
    """Unexpected failure while generating a diff session."""


class ApplyAtomicFailure(LogoCodeError):
    """The multi-file commit failed; no file was changed."""


class StaleSessionError(LogoCodeError):
    """A diff session was mutated after being replaced or cleared."""
