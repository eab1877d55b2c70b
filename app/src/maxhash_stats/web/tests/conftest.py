from __future__ import annotations

import threading

import pytest

from maxhash_stats.stats import PoolStats, StatusFileReadError, UserStats, Worker
from maxhash_stats.web.routing import Response

VALID_ADDRESS = "bc1qw508d6qejxtdg4y5r3zarvary0c5xw7kv8f3t4"


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeStatsService:
    """In-memory stand-in for the filesystem provider that counts calls."""

    def __init__(self):
        self.pool = PoolStats(users=5, workers=12, hashrate1m="10G", diff=1024.5)
        self.users: dict[str, UserStats] = {
            VALID_ADDRESS: UserStats(
                hashrate1m="1T",
                workers=1,
                worker=[Worker(workername=f"{VALID_ADDRESS}.rig1", hashrate1m="1T")],
            )
        }
        self.pool_error: Exception | None = None
        self.pool_calls = 0
        self.user_calls: list[str] = []
        self._lock = threading.Lock()

    def pool_stats(self) -> PoolStats:
        with self._lock:
            self.pool_calls += 1
        if self.pool_error is not None:
            raise self.pool_error
        return self.pool

    def user_stats(self, username: str) -> UserStats:
        with self._lock:
            self.user_calls.append(username)
        try:
            return self.users[username]
        except KeyError:
            raise StatusFileReadError(f"/var/log/ckpool/users/{username}", "read user stats file failed") from None


class RecordingProxy:
    """Proxy double that answers every forwarded request with a fixed response."""

    def __init__(self, response):
        self.response = response
        self.requests = []
        self.closed = False

    def forward(self, request):
        self.requests.append(request)
        return self.response

    def close(self):
        self.closed = True


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def stats_service() -> FakeStatsService:
    return FakeStatsService()


@pytest.fixture
def address() -> str:
    return VALID_ADDRESS


@pytest.fixture
def recording_proxy() -> RecordingProxy:
    return RecordingProxy(Response.json({"upstream": True}))
