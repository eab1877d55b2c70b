from __future__ import annotations

from pathlib import Path
from typing import Protocol

from .errors import ParseError, StatusFileReadError
from .models import PoolStats, UserStats
from .parser import parse_pool_status, parse_user_status

POOL_STATUS_PATH = ("pool", "pool.status")
USERS_DIR = "users"


class StatsService(Protocol):
    """Source of current pool and per-user statistics."""

    def pool_stats(self) -> PoolStats: ...

    def user_stats(self, username: str) -> UserStats: ...


class FilesystemStatsService:
    """Reads statistics from a ckpool log directory.

    ``username`` is used verbatim as a file name; callers validate it first.
    """

    def __init__(self, log_dir: str | Path):
        self.log_dir = Path(log_dir)

    def pool_status_path(self) -> Path:
        return self.log_dir.joinpath(*POOL_STATUS_PATH)

    def user_status_path(self, username: str) -> Path:
        return self.log_dir / USERS_DIR / username

    def pool_stats(self) -> PoolStats:
        path = self.pool_status_path()
        raw = self._read(path, "read pool.status file")
        try:
            return parse_pool_status(raw)
        except ParseError as exc:
            raise exc.with_path(path) from exc

    def user_stats(self, username: str) -> UserStats:
        path = self.user_status_path(username)
        raw = self._read(path, "read user stats file")
        try:
            return parse_user_status(raw)
        except ParseError as exc:
            raise exc.with_path(path) from exc

    @staticmethod
    def _read(path: Path, action: str) -> bytes:
        try:
            return path.read_bytes()
        except OSError as exc:
            raise StatusFileReadError(path, f"{action} failed ({exc.strerror or exc})") from exc
