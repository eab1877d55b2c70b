from .address import is_valid_address
from .errors import ParseError, StatsError, StatusFileReadError
from .models import PoolStats, UserStats, Worker
from .parser import parse_pool_status, parse_user_status
from .provider import FilesystemStatsService, StatsService

__all__ = [
    "FilesystemStatsService",
    "ParseError",
    "PoolStats",
    "StatsError",
    "StatsService",
    "StatusFileReadError",
    "UserStats",
    "Worker",
    "is_valid_address",
    "parse_pool_status",
    "parse_user_status",
]
