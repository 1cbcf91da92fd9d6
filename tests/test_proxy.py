import io
import threading
import urllib.request
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from wsgiref.headers import Headers
from wsgiref.util import setup_testing_defaults

import pytest

from pactkit.ports import get_free_port
from pactkit.proxy import (
    Options,
    chain_handlers,
    create_proxy,
    http_reverse_proxy,
    logging_middleware,
    single_joining_slash,
)


def dummy_handler(header):
    def app(environ, start_response):
        start_response("200 OK", [(header, "true")])
        return [b""]

    return app


def dummy_middleware(header):
    def middleware(app):
        def wrapped(environ, start_response):
            def add_header(status, headers, exc_info=None):
                return start_response(status, list(headers) + [(header, "true")], exc_info)

            return app(environ, add_header)

        return wrapped

    return middleware


def call(app, path="/", method="GET", query="", body=b""):
    environ = {}
    setup_testing_defaults(environ)
    environ.update(
        {
            "REQUEST_METHOD": method,
            "SCRIPT_NAME": "",
            "PATH_INFO": path,
            "QUERY_STRING": query,
            "CONTENT_LENGTH": str(len(body)),
            "wsgi.input": io.BytesIO(body),
        }
    )
    captured = {}

    def start_response(status, headers, exc_info=None):
        captured["status"] = status
        captured["headers"] = list(headers)

    out = b"".join(app(environ, start_response))
    return captured["status"], Headers(captured["headers"]), out


class _Upstream(BaseHTTPRequestHandler):
    def do_GET(self):
        self.server.seen.append((self.path, dict(self.headers)))
        body = b"upstream"
        self.send_response(200)
        self.send_header("Content-Length", str(len(body)))
        self.send_header("X-Upstream", "yes")
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, *args):
        pass


@pytest.fixture
def upstream():
    server = ThreadingHTTPServer(("127.0.0.1", 0), _Upstream)
    server.seen = []
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield server
    server.shutdown()
    server.server_close()


def test_logging_middleware():
    _, headers, _ = call(logging_middleware(dummy_handler("X-Dummy-Handler")), "/x")
    assert headers["X-Dummy-Handler"] == "true"


def test_chain_handlers():
    names = ["1", "2", "3", "X-Dummy-Handler"]
    chain = chain_handlers(*(dummy_middleware(name) for name in names))
    _, headers, _ = call(chain(dummy_handler("X-Dummy-Handler")), "/health-check")
    for name in names:
        assert headers[name] == "true"


def test_chain_handlers_runs_first_middleware_outermost():
    order = []

    def recorder(name):
        def middleware(app):
            def wrapped(environ, start_response):
                order.append(name)
                return app(environ, start_response)

            return wrapped

        return middleware

    chain = chain_handlers(recorder("a"), recorder("b"), recorder("c"))
    status, headers, _ = call(chain(dummy_handler("X")))
    assert status == "200 OK"
    assert headers["X"] == "true"
    assert order == ["a", "b", "c"]


@pytest.mark.parametrize(
    "a, b, expected",
    [
        ("/base/", "/items", "/base/items"),
        ("/base", "items", "/base/items"),
        ("/base/", "items", "/base/items"),
        ("/base", "/items", "/base/items"),
    ],
)
def test_single_joining_slash(a, b, expected):
    assert single_joining_slash(a, b) == expected


def test_http_reverse_proxy_returns_port():
    port = http_reverse_proxy(
        Options(
            middleware=[dummy_middleware("1")],
            target_scheme="http",
            target_address="127.0.0.1:1234",
        )
    )
    assert port > 0


def test_reverse_proxy_forwards_to_target(upstream):
    port = upstream.server_address[1]
    proxy = create_proxy(f"http://127.0.0.1:{port}/base?a=1", "/__setup")
    status, headers, body = call(proxy, "/items", query="b=2")

    assert status == "200 OK"
    assert body == b"upstream"
    assert headers["X-Upstream"] == "yes"
    path, sent = upstream.seen[0]
    assert path == "/base/items?a=1&b=2"
    assert sent["Host"] == f"127.0.0.1:{port}"
    assert sent["User-Agent"] == "pactkit"


def test_reverse_proxy_keeps_given_user_agent(upstream):
    port = upstream.server_address[1]
    proxy = create_proxy(f"http://127.0.0.1:{port}", "/__setup")
    environ_agent = "custom-agent"

    def with_agent(environ, start_response):
        environ["HTTP_USER_AGENT"] = environ_agent
        return proxy(environ, start_response)

    status, _, body = call(with_agent, "/x")
    assert status == "200 OK"
    assert body == b"upstream"
    assert upstream.seen[0][1]["User-Agent"] == environ_agent


def test_reverse_proxy_unreachable_target_is_bad_gateway():
    proxy = create_proxy(f"http://127.0.0.1:{get_free_port()}", "/__setup")
    status, _, body = call(proxy, "/anything")
    assert status.startswith("502")
    assert body == b""


def test_http_reverse_proxy_end_to_end(upstream):
    upstream_port = upstream.server_address[1]
    port = http_reverse_proxy(
        Options(
            middleware=[dummy_middleware("1")],
            target_scheme="http",
            target_address=f"127.0.0.1:{upstream_port}",
            internal_request_path_prefix="/__setup",
        )
    )
    with urllib.request.urlopen(f"http://127.0.0.1:{port}/hello", timeout=5) as response:
        assert response.read() == b"upstream"
        assert response.headers["1"] == "true"
    assert upstream.seen[0][0] == "/hello"