from __future__ import annotations

from pathlib import Path


class StatsError(Exception):
    """Base class for failures while producing statistics."""


class StatusFileReadError(StatsError):
    """A status file is missing or cannot be read."""

    def __init__(self, path: str | Path, message: str):
        super().__init__(f"{message}: {path}")
        self.path = str(path)


class ParseError(StatsError):
    """A status file does not match the expected layout."""

    def __init__(self, message: str, *, line: int | None = None, path: str | Path | None = None):
        super().__init__(message)
        self.message = message
        self.line = line
        self.path = str(path) if path is not None else None

    def with_path(self, path: str | Path) -> ParseError:
        return ParseError(self.message, line=self.line, path=path)
