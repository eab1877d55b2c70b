from __future__ import annotations

import json
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from http import HTTPStatus
from typing import Any

from pydantic import BaseModel, ValidationError

JSON_CONTENT_TYPE = "application/json"
HTML_CONTENT_TYPE = "text/html; charset=utf-8"


@dataclass(frozen=True)
class Response:
    status: int
    body: bytes = b""
    headers: tuple[tuple[str, str], ...] = ()

    @classmethod
    def json(cls, payload: Any, *, status: HTTPStatus = HTTPStatus.OK) -> Response:
        if isinstance(payload, BaseModel):
            body = payload.model_dump_json().encode("utf-8")
        else:
            body = json.dumps(payload).encode("utf-8")
        return cls(status=status, body=body, headers=(("Content-Type", JSON_CONTENT_TYPE),))

    def header(self, name: str) -> str | None:
        name = name.lower()
        for key, value in self.headers:
            if key.lower() == name:
                return value
        return None


class HTTPError(Exception):
    """Error raised when a handler or middleware stage wants to short-circuit the response."""

    def __init__(self, status: HTTPStatus, message: str):
        super().__init__(message)
        self.status = status
        self.payload = {"error": message}

    def to_response(self) -> Response:
        return Response.json(self.payload, status=self.status)


@dataclass(frozen=True)
class Route:
    """A method plus path pattern.

    Pattern tokens are literal segments, ``<name>`` for one segment, or a
    trailing ``<*name>`` that captures the remaining segments joined by ``/``.
    """

    method: str
    pattern: tuple[str, ...]
    handler: Callable[[Request], Any]
    params_model: type[BaseModel] | None = None
    # Statistics routes are cached and, when forwarding is on, proxied.
    stats: bool = False

    def match(self, segments: Iterable[str]) -> dict[str, str] | None:
        parts = list(segments)
        if self.pattern and self.pattern[-1].startswith("<*"):
            fixed = self.pattern[:-1]
            if len(parts) <= len(fixed):
                return None
        elif len(parts) != len(self.pattern):
            return None

        params: dict[str, str] = {}
        for index, token in enumerate(self.pattern):
            if token.startswith("<*") and token.endswith(">"):
                params[token[2:-1]] = "/".join(parts[index:])
                break
            value = parts[index]
            if token.startswith("<") and token.endswith(">"):
                params[token[1:-1]] = value
            elif token != value:
                return None
        return params


@dataclass
class Request:
    method: str
    target: str
    params: Any
    query: Mapping[str, list[str]] = field(default_factory=dict)
    headers: Mapping[str, str] = field(default_factory=dict)
    body: bytes = b""
    client_address: str | None = None


@dataclass(frozen=True)
class ResolvedRoute:
    route: Route
    params: Any


class HTTPRouter:
    def __init__(self, routes: Iterable[Route]):
        self._routes = list(routes)

    def resolve(self, method: str, segments: list[str]) -> ResolvedRoute:
        """Find the route for ``segments`` and validate its path parameters.

        Raises:
            HTTPError: 404 when nothing matches, 400 when path parameters
                fail validation.
        """
        for route in self._routes:
            if route.method != method:
                continue
            params_raw = route.match(segments)
            if params_raw is None:
                continue

            try:
                params = route.params_model(**params_raw) if route.params_model else params_raw
            except ValidationError as exc:
                raise HTTPError(HTTPStatus.BAD_REQUEST, format_validation_error(exc)) from exc
            return ResolvedRoute(route=route, params=params)

        raise HTTPError(HTTPStatus.NOT_FOUND, "not found")


def format_validation_error(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        message = error.get("msg", "invalid value")
        # pydantic prefixes messages raised from validators with "Value error, ".
        message = message.removeprefix("Value error, ")
        parts.append(message)
    return "; ".join(parts) if parts else "invalid request"
