"""
Statistics snapshots read from ckpool status files.

The pool status file is three JSON objects on three lines, each with its own
key casing. The ``PoolStatusLine*`` models decode one line each; ``PoolStats``
is the merged record served over HTTP.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class _Snapshot(BaseModel):
    # Extra keys are ignored so newer ckpool releases keep decoding.
    model_config = ConfigDict(frozen=True, strict=True, extra="ignore", populate_by_name=True)


class PoolStatusLine1(_Snapshot):
    """Connection counters (first line)."""

    runtime: int = 0
    lastupdate: int = 0
    users: int = Field(0, alias="Users")
    workers: int = Field(0, alias="Workers")
    idle: int = Field(0, alias="Idle")
    disconnected: int = Field(0, alias="Disconnected")


class PoolStatusLine2(_Snapshot):
    """Hashrate windows (second line)."""

    hashrate1m: str = ""
    hashrate5m: str = ""
    hashrate15m: str = ""
    hashrate1hr: str = ""
    hashrate6hr: str = ""
    hashrate1d: str = ""
    hashrate7d: str = ""


class PoolStatusLine3(_Snapshot):
    """Share and difficulty counters (third line)."""

    diff: float = 0.0
    accepted: int = 0
    rejected: int = 0
    bestshare: int = 0
    sps1m: float = Field(0.0, alias="SPS1m")
    sps5m: float = Field(0.0, alias="SPS5m")
    sps15m: float = Field(0.0, alias="SPS15m")
    sps1h: float = Field(0.0, alias="SPS1h")


class PoolStats(_Snapshot):
    runtime: int = 0
    lastupdate: int = 0
    users: int = 0
    workers: int = 0
    idle: int = 0
    disconnected: int = 0
    hashrate1m: str = ""
    hashrate5m: str = ""
    hashrate15m: str = ""
    hashrate1hr: str = ""
    hashrate6hr: str = ""
    hashrate1d: str = ""
    hashrate7d: str = ""
    diff: float = 0.0
    accepted: int = 0
    rejected: int = 0
    bestshare: int = 0
    sps1m: float = 0.0
    sps5m: float = 0.0
    sps15m: float = 0.0
    sps1h: float = 0.0

    @classmethod
    def merge(cls, line1: PoolStatusLine1, line2: PoolStatusLine2, line3: PoolStatusLine3) -> PoolStats:
        """Combine the three decoded lines without touching any value."""
        return cls(**line1.model_dump(), **line2.model_dump(), **line3.model_dump())


class Worker(_Snapshot):
    workername: str = ""
    hashrate1m: str = ""
    hashrate5m: str = ""
    hashrate1hr: str = ""
    hashrate1d: str = ""
    hashrate7d: str = ""
    lastshare: int = 0
    shares: int = 0
    bestshare: float = 0.0
    bestever: int = 0


class UserStats(_Snapshot):
    hashrate1m: str = ""
    hashrate5m: str = ""
    hashrate1hr: str = ""
    hashrate1d: str = ""
    hashrate7d: str = ""
    lastshare: int = 0
    workers: int = 0
    shares: int = 0
    bestshare: float = 0.0
    bestever: int = 0
    authorised: int = 0
    # Kept in file order: ckpool lists workers as they registered.
    worker: list[Worker] = Field(default_factory=list)
