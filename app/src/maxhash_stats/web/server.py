from __future__ import annotations

import socket
import threading
from collections.abc import Callable
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any

import structlog

from .. import __version__
from .api import StatsHTTPAPI
from .routing import HTTPError, Response

logger = structlog.get_logger(__name__)

# Socket timeout for reading requests and writing responses.
REQUEST_TIMEOUT = 10.0
MAX_REQUEST_BODY = 1 << 20


class StatsHTTPRequestHandler(BaseHTTPRequestHandler):
    api: StatsHTTPAPI

    server_version = f"maxhash-stats/{__version__}"
    timeout = REQUEST_TIMEOUT

    def _send(self, response: Response) -> None:
        self.send_response(response.status)
        for name, value in response.headers:
            self.send_header(name, value)
        self.send_header("Content-Length", str(len(response.body)))
        self.end_headers()
        self.wfile.write(response.body)

    def _read_body(self) -> bytes:
        length_header = self.headers.get("Content-Length")
        if not length_header:
            return b""
        try:
            length = int(length_header)
        except ValueError as exc:
            raise HTTPError(HTTPStatus.BAD_REQUEST, "invalid Content-Length") from exc
        if length < 0 or length > MAX_REQUEST_BODY:
            raise HTTPError(HTTPStatus.BAD_REQUEST, "invalid Content-Length")
        return self.rfile.read(length) if length else b""

    def _dispatch(self) -> None:
        try:
            response = self.api.handle(
                self.command,
                self.path,
                headers=self.headers,
                body=self._read_body(),
                client_address=self.client_address[0] if self.client_address else None,
            )
        except HTTPError as exc:
            response = exc.to_response()
        except Exception:
            logger.exception("Unhandled error while serving request", method=self.command, path=self.path)
            response = HTTPError(HTTPStatus.INTERNAL_SERVER_ERROR, "internal server error").to_response()

        try:
            self._send(response)
        except (BrokenPipeError, ConnectionResetError, TimeoutError):
            logger.debug("Client went away before the response was written", path=self.path)

    def log_message(self, format: str, *args: Any) -> None:  # noqa: A002
        logger.debug("HTTP request", client=self.address_string(), line=format % args)

    def do_GET(self) -> None:  # noqa: N802
        self._dispatch()

    def do_POST(self) -> None:  # noqa: N802
        self._dispatch()

    def do_PUT(self) -> None:  # noqa: N802
        self._dispatch()

    def do_DELETE(self) -> None:  # noqa: N802
        self._dispatch()


def _build_handler(api: StatsHTTPAPI) -> Callable[[Any, Any, Any], StatsHTTPRequestHandler]:
    class _Handler(StatsHTTPRequestHandler):
        pass

    _Handler.api = api
    return _Handler


def parse_listen_addr(addr: str) -> tuple[str, int]:
    """Split ``host:port`` (``[v6]:port`` and ``:port`` included) into its parts."""
    host, sep, port = addr.rpartition(":")
    if not sep:
        raise ValueError(f"invalid listen address {addr!r}: expected host:port")
    try:
        port_number = int(port)
    except ValueError as exc:
        raise ValueError(f"invalid listen address {addr!r}: bad port") from exc
    if not 0 <= port_number <= 65535:
        raise ValueError(f"invalid listen address {addr!r}: port out of range")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    return host, port_number


class StatsHTTPServer(ThreadingHTTPServer):
    """Thread-per-request server that can wait for in-flight requests on shutdown."""

    daemon_threads = True

    def __init__(self, address: tuple[str, int], api: StatsHTTPAPI):
        if ":" in address[0]:
            self.address_family = socket.AF_INET6
        self.api = api
        self._in_flight = 0
        self._idle = threading.Condition()
        super().__init__(address, _build_handler(api))

    @property
    def port(self) -> int:
        return self.server_address[1]

    def process_request(self, request, client_address):
        with self._idle:
            self._in_flight += 1
        try:
            super().process_request(request, client_address)
        except BaseException:
            self._request_done()
            raise

    def process_request_thread(self, request, client_address):
        try:
            super().process_request_thread(request, client_address)
        finally:
            self._request_done()

    def _request_done(self) -> None:
        with self._idle:
            self._in_flight -= 1
            self._idle.notify_all()

    def graceful_shutdown(self, grace: float) -> bool:
        """Stop accepting connections and wait up to ``grace`` seconds for in-flight requests.

        Must not be called from the thread running ``serve_forever``.
        Returns False when requests were still running at the deadline.
        """
        self.shutdown()
        with self._idle:
            drained = self._idle.wait_for(lambda: self._in_flight == 0, timeout=grace)
        if not drained:
            logger.warning("Shutdown grace period elapsed with requests in flight", in_flight=self._in_flight)
        self.server_close()
        self.api.close()
        return drained


def create_server(api: StatsHTTPAPI, addr: str) -> StatsHTTPServer:
    return StatsHTTPServer(parse_listen_addr(addr), api)


def run_server(server: StatsHTTPServer, stop_event: threading.Event, *, shutdown_grace: float) -> bool:
    """Serve until ``stop_event`` is set, then shut down gracefully."""
    thread = threading.Thread(target=server.serve_forever, name="http-server", daemon=True)
    thread.start()
    logger.info("HTTP server listening", host=server.server_address[0], port=server.port)

    stop_event.wait()

    logger.info("Shutting down HTTP server", grace=shutdown_grace)
    drained = server.graceful_shutdown(shutdown_grace)
    thread.join(timeout=2.0)
    logger.info("HTTP server shutdown")
    return drained
