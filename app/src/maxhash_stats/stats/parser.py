"""Decoders for ckpool ``pool.status`` and per-user status files."""

from __future__ import annotations

from pydantic import BaseModel, ValidationError

from .errors import ParseError
from .models import PoolStats, PoolStatusLine1, PoolStatusLine2, PoolStatusLine3, UserStats

POOL_STATUS_LINES = 3

_LINE_MODELS: tuple[type[BaseModel], ...] = (PoolStatusLine1, PoolStatusLine2, PoolStatusLine3)


def _as_text(raw: bytes | str) -> str:
    if isinstance(raw, bytes):
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ParseError(f"status file is not valid UTF-8: {exc}") from exc
    return raw


def parse_pool_status(raw: bytes | str) -> PoolStats:
    """Parse the three-line pool status file into one ``PoolStats``.

    Raises:
        ParseError: fewer than three lines, or any of the first three lines
            is not a JSON object matching its schema. ``ParseError.line`` is
            the 1-based number of the offending line.
    """
    lines = _as_text(raw).split("\n")
    if len(lines) < POOL_STATUS_LINES:
        raise ParseError(f"invalid pool.status file format: expected {POOL_STATUS_LINES} lines, got {len(lines)}")

    decoded = []
    for number, (line, model) in enumerate(zip(lines, _LINE_MODELS), start=1):
        try:
            decoded.append(model.model_validate_json(line))
        except ValidationError as exc:
            raise ParseError(f"failed to decode pool.status line {number}: {_summarize(exc)}", line=number) from exc

    line1, line2, line3 = decoded
    return PoolStats.merge(line1, line2, line3)


def parse_user_status(raw: bytes | str) -> UserStats:
    try:
        return UserStats.model_validate_json(_as_text(raw))
    except ValidationError as exc:
        raise ParseError(f"failed to decode user status: {_summarize(exc)}") from exc


def _summarize(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error.get("loc", ()))
        message = error.get("msg", "invalid value")
        parts.append(f"{location}: {message}" if location else message)
    return "; ".join(parts) if parts else "invalid document"
