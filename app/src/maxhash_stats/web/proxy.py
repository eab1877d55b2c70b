"""
Single-host reverse proxy used when this node serves statistics from a remote node.

Requests are forwarded as received; only the destination host changes.
Nothing is retried: an unreachable or slow upstream becomes a 502 or 504 for
the client.
"""

from __future__ import annotations

from collections.abc import Mapping
from http import HTTPStatus
from urllib.parse import quote

import httpx
import structlog

from .routing import HTTPError, Request, Response

logger = structlog.get_logger(__name__)

HOP_BY_HOP_HEADERS = frozenset(
    {
        "connection",
        "keep-alive",
        "proxy-authenticate",
        "proxy-authorization",
        "proxy-connection",
        "te",
        "trailer",
        "transfer-encoding",
        "upgrade",
    }
)

DEFAULT_MAX_CONNECTIONS = 100
DEFAULT_MAX_KEEPALIVE_CONNECTIONS = 100
DEFAULT_KEEPALIVE_EXPIRY = 60.0
DEFAULT_CONNECT_TIMEOUT = 5.0
DEFAULT_TIMEOUT = 10.0

# Characters left as-is when re-encoding a request target; existing escapes survive.
TARGET_SAFE_CHARS = "/?&=%:@!$'()*+,;~-._"


def parse_target_url(target_url: str) -> httpx.URL:
    if not target_url:
        raise ValueError("http.proxy.target_host_url is not set")
    try:
        url = httpx.URL(target_url)
    except httpx.InvalidURL as exc:
        raise ValueError(f"failed to parse target host URL {target_url!r}: {exc}") from exc
    if url.scheme not in ("http", "https") or not url.host:
        raise ValueError(f"failed to parse target host URL {target_url!r}: expected http(s)://host[:port]")
    return url


class ReverseProxy:
    def __init__(
        self,
        target_url: str,
        *,
        max_connections: int = DEFAULT_MAX_CONNECTIONS,
        max_keepalive_connections: int = DEFAULT_MAX_KEEPALIVE_CONNECTIONS,
        keepalive_expiry: float = DEFAULT_KEEPALIVE_EXPIRY,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.target = parse_target_url(target_url)
        self._client = httpx.Client(
            limits=httpx.Limits(
                max_connections=max_connections,
                max_keepalive_connections=max_keepalive_connections,
                keepalive_expiry=keepalive_expiry,
            ),
            timeout=httpx.Timeout(timeout, connect=connect_timeout),
            follow_redirects=False,
        )

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, tb):
        self.close()

    def close(self) -> None:
        self._client.close()

    def upstream_url(self, target: str) -> httpx.URL:
        """Join the upstream base path with the incoming request target (path and query)."""
        base_path = self.target.raw_path.split(b"?", 1)[0].rstrip(b"/")
        # http.server hands over the request line decoded as latin-1; raw bytes go out percent-encoded.
        path = target.lstrip("/")
        try:
            encoded = quote(path, safe=TARGET_SAFE_CHARS, encoding="latin-1")
        except UnicodeEncodeError:
            encoded = quote(path, safe=TARGET_SAFE_CHARS, encoding="utf-8")
        return self.target.copy_with(raw_path=base_path + b"/" + encoded.encode("ascii"))

    def forward(self, request: Request) -> Response:
        upstream = self.upstream_url(request.target)
        outgoing = httpx.Request(
            request.method,
            upstream,
            headers=self._outgoing_headers(request.headers, request.client_address),
            content=request.body or None,
        )
        try:
            upstream_response = self._client.send(outgoing, stream=True)
            try:
                body = b"".join(upstream_response.iter_raw())
            finally:
                upstream_response.close()
        except httpx.TimeoutException as exc:
            logger.error("Upstream request timed out", upstream=self.target.host, path=request.target, error=str(exc))
            raise HTTPError(HTTPStatus.GATEWAY_TIMEOUT, "upstream timed out") from exc
        except httpx.TransportError as exc:
            logger.error("Upstream request failed", upstream=self.target.host, path=request.target, error=str(exc))
            raise HTTPError(HTTPStatus.BAD_GATEWAY, "upstream unavailable") from exc

        headers = tuple(
            (name, value)
            for name, value in upstream_response.headers.multi_items()
            if name.lower() not in HOP_BY_HOP_HEADERS and name.lower() != "content-length"
        )
        return Response(status=upstream_response.status_code, body=body, headers=headers)

    @staticmethod
    def _outgoing_headers(headers: Mapping[str, str], client_address: str | None) -> list[tuple[str, str]]:
        outgoing = [
            (name, value)
            for name, value in headers.items()
            if name.lower() not in HOP_BY_HOP_HEADERS and name.lower() not in ("host", "content-length")
        ]
        if client_address:
            prior = [value for name, value in outgoing if name.lower() == "x-forwarded-for"]
            outgoing = [(name, value) for name, value in outgoing if name.lower() != "x-forwarded-for"]
            outgoing.append(("X-Forwarded-For", ", ".join([*prior, client_address])))
        return outgoing
