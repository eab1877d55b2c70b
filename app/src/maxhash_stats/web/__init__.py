from .api import StatsHTTPAPI
from .middleware import ResponseCache, TokenBucket
from .proxy import ReverseProxy
from .server import StatsHTTPServer, create_server, run_server

__all__ = [
    "ResponseCache",
    "ReverseProxy",
    "StatsHTTPAPI",
    "StatsHTTPServer",
    "TokenBucket",
    "create_server",
    "run_server",
]
