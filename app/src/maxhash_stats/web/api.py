from __future__ import annotations

import mimetypes
from collections.abc import Mapping
from http import HTTPStatus
from importlib import resources
from typing import TYPE_CHECKING, cast
from urllib.parse import parse_qs, unquote, urlsplit

import structlog
from pydantic import BaseModel, field_validator

from ..stats import ParseError, StatsService, StatusFileReadError, is_valid_address
from .middleware import ResponseCache, TokenBucket
from .proxy import ReverseProxy
from .routing import HTML_CONTENT_TYPE, HTTPError, HTTPRouter, Request, Response, Route

if TYPE_CHECKING:
    from ..config import DashboardConfig

logger = structlog.get_logger(__name__)

ASSETS_DIR = "assets"
STATIC_DIR = "static"


class UserPath(BaseModel):
    username: str

    @field_validator("username")
    @classmethod
    def _validate_username(cls, value: str) -> str:
        if not value or not is_valid_address(value):
            raise ValueError("invalid user path or Bitcoin address")
        return value


class StaticPath(BaseModel):
    path: str


class StatsHTTPAPI:
    """HTTP surface of the dashboard.

    Every request runs the same fixed chain: route match and path validation,
    rate limit, cache lookup, then either forwarding or local serving.
    Only statistics routes are cached, and only local successes are stored.
    """

    def __init__(
        self,
        stats_service: StatsService,
        *,
        limiter: TokenBucket | None = None,
        cache: ResponseCache | None = None,
        proxy: ReverseProxy | None = None,
    ):
        self.stats_service = stats_service
        self.limiter = limiter
        self.cache = cache
        self.proxy = proxy
        self._assets = resources.files(__package__) / ASSETS_DIR
        self._index_page = (self._assets / "index.html").read_bytes()
        self._user_page = (self._assets / "user.html").read_bytes()
        self._router = HTTPRouter(
            [
                Route("GET", ("v1", "pool"), self._pool_stats, stats=True),
                Route("GET", ("v1", "users", "<username>"), self._user_stats, params_model=UserPath, stats=True),
                Route("GET", (STATIC_DIR, "<*path>"), self._static_asset, params_model=StaticPath),
                Route("GET", ("users", "<username>"), self._user_page_handler),
                Route("GET", tuple(), self._index_page_handler),
            ]
        )

    @classmethod
    def from_config(cls, config: DashboardConfig, stats_service: StatsService) -> StatsHTTPAPI:
        limiter = None
        if config.http.rate_limiter.enabled:
            limiter = TokenBucket(config.http.rate_limiter.rps, config.http.rate_limiter.burst)
            logger.debug("Rate limiter enabled", rps=limiter.rate, burst=limiter.burst)

        cache = None
        if config.http.cache.enabled:
            cache = ResponseCache(config.http.cache.ttl)
            logger.debug("Response cache enabled", ttl=cache.ttl)

        proxy = None
        if config.http.proxy.enabled:
            proxy_config = config.http.proxy
            proxy = ReverseProxy(
                proxy_config.target_host_url,
                max_connections=proxy_config.max_connections,
                max_keepalive_connections=proxy_config.max_keepalive_connections,
                keepalive_expiry=proxy_config.keepalive_expiry,
                connect_timeout=proxy_config.connect_timeout,
                timeout=proxy_config.timeout,
            )
            logger.debug("Reverse proxy enabled", target_host_url=proxy_config.target_host_url)

        return cls(stats_service, limiter=limiter, cache=cache, proxy=proxy)

    def close(self) -> None:
        if self.proxy is not None:
            self.proxy.close()

    # -- Public interface -------------------------------------------------

    def handle(
        self,
        method: str,
        target: str,
        *,
        headers: Mapping[str, str] | None = None,
        body: bytes = b"",
        client_address: str | None = None,
    ) -> Response:
        parsed = urlsplit(target)
        segments = [unquote(part) for part in parsed.path.split("/") if part]
        try:
            resolved = self._router.resolve(method, segments)
            route = resolved.route

            if self.limiter is not None and not self.limiter.allow():
                raise HTTPError(HTTPStatus.TOO_MANY_REQUESTS, "rate limit exceeded, slow down")

            if route.stats and self.cache is not None:
                cached = self.cache.get(target)
                if cached is not None:
                    return cached

            request = Request(
                method=method,
                target=target,
                params=resolved.params,
                query=parse_qs(parsed.query),
                headers=headers or {},
                body=body,
                client_address=client_address,
            )
            if route.stats and self.proxy is not None:
                return self.proxy.forward(request)

            response = route.handler(request)
        except HTTPError as exc:
            return exc.to_response()

        if route.stats and self.cache is not None and response.status == HTTPStatus.OK:
            self.cache.set(target, response)
        return response

    # -- Statistics -------------------------------------------------------

    def _pool_stats(self, request: Request) -> Response:
        try:
            stats = self.stats_service.pool_stats()
        except StatusFileReadError as exc:
            logger.error("Error reading pool stats", path=exc.path, error=str(exc))
            raise HTTPError(HTTPStatus.INTERNAL_SERVER_ERROR, "failed to get pool stats") from exc
        except ParseError as exc:
            logger.error("Error parsing pool stats", path=exc.path, line=exc.line, error=exc.message)
            raise HTTPError(HTTPStatus.INTERNAL_SERVER_ERROR, "failed to get pool stats") from exc
        return Response.json(stats)

    def _user_stats(self, request: Request) -> Response:
        username = cast(UserPath, request.params).username
        try:
            stats = self.stats_service.user_stats(username)
        except StatusFileReadError as exc:
            logger.error("Error reading user stats", username=username, path=exc.path, error=str(exc))
            raise HTTPError(HTTPStatus.INTERNAL_SERVER_ERROR, "failed to get user stats") from exc
        except ParseError as exc:
            logger.error("Error parsing user stats", username=username, path=exc.path, error=exc.message)
            raise HTTPError(HTTPStatus.INTERNAL_SERVER_ERROR, "failed to get user stats") from exc
        return Response.json(stats)

    # -- Pages and assets -------------------------------------------------

    def _index_page_handler(self, request: Request) -> Response:
        return Response(HTTPStatus.OK, self._index_page, (("Content-Type", HTML_CONTENT_TYPE),))

    def _user_page_handler(self, request: Request) -> Response:
        return Response(HTTPStatus.OK, self._user_page, (("Content-Type", HTML_CONTENT_TYPE),))

    def _static_asset(self, request: Request) -> Response:
        parts = cast(StaticPath, request.params).path.split("/")
        if any(not part or part.startswith(".") for part in parts):
            raise HTTPError(HTTPStatus.NOT_FOUND, "not found")

        asset = self._assets / STATIC_DIR
        for part in parts:
            asset = asset / part
        if not asset.is_file():
            raise HTTPError(HTTPStatus.NOT_FOUND, "not found")

        content_type, _ = mimetypes.guess_type(parts[-1])
        return Response(
            HTTPStatus.OK,
            asset.read_bytes(),
            (("Content-Type", content_type or "application/octet-stream"),),
        )
