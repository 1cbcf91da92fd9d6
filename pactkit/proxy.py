"""A reverse proxy, built from WSGI middleware, that sits in front of a provider."""

from __future__ import annotations

import http.client
import logging
import socketserver
import ssl
import threading
from dataclasses import dataclass, field
from http import HTTPStatus
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Union
from urllib.parse import SplitResult, quote, urlsplit
from wsgiref.simple_server import WSGIRequestHandler, WSGIServer, make_server

from pactkit.log import TRACE
from pactkit.ports import get_free_port

logger = logging.getLogger("pactkit")

WSGIApp = Callable[..., Iterable[bytes]]
Middleware = Callable[[WSGIApp], WSGIApp]

USER_AGENT = "pactkit"

_HOP_BY_HOP = frozenset(
    {
        "connection",
        "keep-alive",
        "proxy-authenticate",
        "proxy-authorization",
        "proxy-connection",
        "te",
        "trailer",
        "trailers",
        "transfer-encoding",
        "upgrade",
    }
)

_PATH_SAFE = "/:@!$&'()*+,;=~"


@dataclass
class Options:
    """Configuration of the reverse proxy."""

    target_scheme: str = "http"
    target_address: str = ""
    target_path: str = ""
    proxy_port: int = 0
    middleware: List[Middleware] = field(default_factory=list)
    internal_request_path_prefix: str = ""
    ssl_context: Optional[ssl.SSLContext] = None


def _status_line(code: int) -> str:
    status = HTTPStatus(code)
    return f"{status.value} {status.phrase}"


def _request_uri(environ: Dict[str, Any]) -> str:
    path = environ.get("SCRIPT_NAME", "") + environ.get("PATH_INFO", "")
    query = environ.get("QUERY_STRING", "")
    return f"{path}?{query}" if query else path


def logging_middleware(app: WSGIApp) -> WSGIApp:
    """Log every request that reaches the proxy."""

    def logged(environ, start_response):
        logger.debug(
            "http reverse proxy received connection from %s on path %s",
            environ.get("REMOTE_ADDR", ""),
            _request_uri(environ),
        )
        return app(environ, start_response)

    return logged


def chain_handlers(*args: Middleware) -> Middleware:
    """Compose middleware into one; the first given is the outermost."""

    def chain(final: WSGIApp) -> WSGIApp:
        app = final
        for middleware in reversed(args):
            app = middleware(app)
        return app

    return chain


def single_joining_slash(a: str, b: str) -> str:
    """Join two path pieces with exactly one slash between them."""
    a_slash = a.endswith("/")
    b_slash = b.startswith("/")
    if a_slash and b_slash:
        return a + b[1:]
    if not a_slash and not b_slash:
        return f"{a}/{b}"
    return a + b


class ReverseProxy:
    """A WSGI application that forwards requests to a target server.

    Requests whose path starts with the ignored prefix go to the local
    internal server instead of the target.
    """

    def __init__(
        self,
        target: SplitResult,
        ignore_prefix: str = "",
        ssl_context: Optional[ssl.SSLContext] = None,
        timeout: float = 30.0,
    ) -> None:
        self.target = target
        self.ignore_prefix = ignore_prefix
        self.ssl_context = ssl_context
        self.timeout = timeout

    def _direct(self, environ: Dict[str, Any]) -> Tuple[str, str, str, bool]:
        path_info = environ.get("SCRIPT_NAME", "") + environ.get("PATH_INFO", "")
        path = quote(path_info.encode("latin-1"), safe=_PATH_SAFE)
        query = environ.get("QUERY_STRING", "")

        if not path_info.startswith(self.ignore_prefix):
            logger.debug("setting proxy to target")
            path = single_joining_slash(quote(self.target.path, safe=_PATH_SAFE), path)
            target_query = self.target.query
            if not target_query or not query:
                query = target_query + query
            else:
                query = f"{target_query}&{query}"
            return self.target.scheme, self.target.netloc, _with_query(path, query), True

        logger.debug("setting proxy to internal server")
        return "http", "localhost", _with_query(path, query), False

    def _outgoing_headers(self, environ: Dict[str, Any], host: str, is_target: bool) -> Dict[str, str]:
        headers: Dict[str, str] = {}
        for key, value in environ.items():
            if key.startswith("HTTP_"):
                name = key[5:].replace("_", "-").title()
            elif key in ("CONTENT_TYPE", "CONTENT_LENGTH"):
                name = key.replace("_", "-").title()
            else:
                continue
            if name.lower() in _HOP_BY_HOP or name.lower() == "host" or not value:
                continue
            headers[name] = value
        headers["Host"] = host
        if is_target and "User-Agent" not in headers:
            headers["User-Agent"] = USER_AGENT
        remote = environ.get("REMOTE_ADDR")
        if remote:
            prior = headers.get("X-Forwarded-For")
            headers["X-Forwarded-For"] = f"{prior}, {remote}" if prior else remote
        return headers

    def _connection(self, scheme: str, host: str) -> http.client.HTTPConnection:
        if scheme == "https":
            return http.client.HTTPSConnection(host, timeout=self.timeout, context=self.ssl_context)
        return http.client.HTTPConnection(host, timeout=self.timeout)

    def __call__(self, environ, start_response):
        scheme, host, path, is_target = self._direct(environ)
        headers = self._outgoing_headers(environ, host, is_target)
        body = _read_body(environ)
        method = environ.get("REQUEST_METHOD", "GET")
        logger.debug("outgoing request to %s://%s%s", scheme, host, path)
        logger.log(TRACE, "proxy outgoing request %s %s %s", method, path, headers)

        connection = self._connection(scheme, host)
        try:
            connection.request(method, path, body=body or None, headers=headers)
            response = connection.getresponse()
            payload = response.read()
            status = f"{response.status} {response.reason}"
            response_headers = [
                (name, value)
                for name, value in response.getheaders()
                if name.lower() not in _HOP_BY_HOP
            ]
        except (OSError, http.client.HTTPException) as err:
            logger.error("%s", err)
            start_response(_status_line(502), [])
            return [b""]
        finally:
            connection.close()

        logger.log(TRACE, "proxied server response %s %s", status, response_headers)
        start_response(status, response_headers)
        return [payload]


def _with_query(path: str, query: str) -> str:
    return f"{path}?{query}" if query else path


def _read_body(environ: Dict[str, Any]) -> bytes:
    try:
        length = int(environ.get("CONTENT_LENGTH") or 0)
    except ValueError:
        length = 0
    if length <= 0:
        return b""
    return environ["wsgi.input"].read(length)


def create_proxy(target: Union[str, SplitResult], ignore_prefix: str) -> ReverseProxy:
    """Build a reverse proxy to ``target`` that leaves ``ignore_prefix`` paths local."""
    if isinstance(target, str):
        target = urlsplit(target)
    return ReverseProxy(target, ignore_prefix)


class _QuietHandler(WSGIRequestHandler):
    def log_message(self, format: str, *args: Any) -> None:  # noqa: A002
        logger.debug(format, *args)


class _ThreadingWSGIServer(socketserver.ThreadingMixIn, WSGIServer):
    daemon_threads = True


def http_reverse_proxy(options: Options) -> int:
    """Start the proxy in a background thread and return the port it listens on."""
    logger.debug("starting new proxy with opts %s", options)
    target = SplitResult(options.target_scheme, options.target_address, options.target_path, "", "")
    proxy = create_proxy(target, options.internal_request_path_prefix)
    proxy.ssl_context = options.ssl_context

    port = options.proxy_port or get_free_port()
    wrapper = chain_handlers(*options.middleware, logging_middleware)

    logger.debug("starting reverse proxy on port %d", port)
    server = make_server(
        "", port, wrapper(proxy), server_class=_ThreadingWSGIServer, handler_class=_QuietHandler
    )
    thread = threading.Thread(target=server.serve_forever, name=f"pact-proxy-{port}", daemon=True)
    thread.start()
    return port