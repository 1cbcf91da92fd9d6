import io
import json
import socket
import time
from wsgiref.headers import Headers
from wsgiref.util import setup_testing_defaults

import pytest

from pactkit.models import ProviderState
from pactkit.ports import get_free_port
from pactkit.provider import (
    ConsumerVersionSelector,
    Selector,
    StateHandlerAction,
    UntypedConsumerVersionSelector,
    before_each_middleware,
    get_state_from_request,
    state_handler_middleware,
    wait_for_port,
)


def downstream(environ, start_response):
    start_response("200 OK", [("X-Next", "called")])
    return [b"next"]


def make_environ(path, body=b""):
    environ = {}
    setup_testing_defaults(environ)
    environ.update(
        {
            "REQUEST_METHOD": "POST",
            "PATH_INFO": path,
            "CONTENT_LENGTH": str(len(body)),
            "wsgi.input": io.BytesIO(body),
        }
    )
    return environ


def call(app, path, body=b""):
    captured = {}

    def start_response(status, headers, exc_info=None):
        captured["status"] = status
        captured["headers"] = list(headers)

    out = b"".join(app(make_environ(path, body), start_response))
    return captured["status"], Headers(captured["headers"]), out


def state_body(action, state, **params):
    return json.dumps({"action": action, "state": state, **params}).encode()


def test_selector_omits_empty_fields():
    selector = ConsumerVersionSelector(consumer="foo", tag="test")
    assert selector.to_dict() == {"tag": "test", "consumer": "foo"}
    assert ConsumerVersionSelector().to_dict() == {}


def test_selector_uses_broker_key_names():
    selector = ConsumerVersionSelector(main_branch=True, deployed_or_released=True)
    assert selector.to_dict() == {"mainBranch": True, "deployedOrReleased": True}


def test_untyped_selector_round_trip():
    selector = UntypedConsumerVersionSelector({"branch": "main", "latest": True})
    assert isinstance(selector, Selector)
    assert selector.to_dict() == {"branch": "main", "latest": True}


def test_get_state_from_request_keeps_body_readable():
    body = state_body("teardown", "User foo exists", id="foo")
    environ = make_environ("/__setup", body)
    state = get_state_from_request(environ)

    assert state == StateHandlerAction("teardown", "User foo exists", {"id": "foo"})
    assert environ["wsgi.input"].read() == body


def test_get_state_from_request_rejects_invalid_json():
    with pytest.raises(ValueError):
        get_state_from_request(make_environ("/__setup", b"not json"))


def test_before_each_runs_on_setup_only():
    calls = []
    app = before_each_middleware(lambda: calls.append(1))(downstream)

    call(app, "/__setup", state_body("setup", "s"))
    call(app, "/__setup", state_body("teardown", "s"))
    call(app, "/other")
    assert calls == [1]


def test_before_each_failure_is_server_error_and_continues():
    reached = []

    def hook():
        raise RuntimeError("boom")

    def next_app(environ, start_response):
        reached.append(True)
        return downstream(environ, start_response)

    status, _, _ = call(before_each_middleware(hook)(next_app), "/__setup", state_body("setup", "s"))
    assert status.startswith("500")
    assert reached == [True]


def test_state_handler_receives_state_and_returns_values():
    received = []

    def handler(setup, state):
        received.append((setup, state))
        return {"id": 7}

    app = state_handler_middleware({"User foo exists": handler}, None)(downstream)
    status, headers, body = call(app, "/__setup", state_body("setup", "User foo exists", id="foo"))

    assert status == "200 OK"
    assert headers["Content-Type"] == "application/json"
    assert json.loads(body) == {"id": 7}
    assert received == [(True, ProviderState("User foo exists", {"id": "foo"}))]


def test_state_handler_without_result_is_empty_ok():
    app = state_handler_middleware({"s": lambda setup, state: None}, None)(downstream)
    status, _, body = call(app, "/__setup", state_body("setup", "s"))
    assert status == "200 OK"
    assert body == b""


def test_missing_state_handler_is_ok():
    app = state_handler_middleware({}, None)(downstream)
    status, _, body = call(app, "/__setup", state_body("setup", "unknown"))
    assert status == "200 OK"
    assert body == b""


def test_failing_state_handler_is_server_error():
    def handler(setup, state):
        raise RuntimeError("boom")

    app = state_handler_middleware({"s": handler}, None)(downstream)
    status, _, _ = call(app, "/__setup", state_body("setup", "s"))
    assert status.startswith("500")


def test_after_each_runs_on_teardown():
    after = []
    app = state_handler_middleware({"s": lambda setup, state: None}, lambda: after.append(1))(downstream)
    call(app, "/__setup", state_body("setup", "s"))
    call(app, "/__setup", state_body("teardown", "s"))
    assert after == [1]


def test_after_each_failure_is_server_error():
    def after():
        raise RuntimeError("boom")

    app = state_handler_middleware({"s": lambda setup, state: None}, after)(downstream)
    status, _, _ = call(app, "/__setup", state_body("teardown", "s"))
    assert status.startswith("500")


def test_bad_state_payload_is_server_error():
    app = state_handler_middleware({}, None)(downstream)
    status, _, _ = call(app, "/__setup", b"[1, 2]")
    assert status.startswith("500")


def test_state_handler_passes_other_paths_through():
    app = state_handler_middleware({}, None)(downstream)
    _, headers, body = call(app, "/orders")
    assert body == b"next"
    assert headers["X-Next"] == "called"


def test_wait_for_port_returns_when_listening():
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as listener:
        listener.bind(("127.0.0.1", 0))
        listener.listen(5)
        listener.settimeout(1.0)
        port = listener.getsockname()[1]
        started = time.monotonic()
        wait_for_port(port, "tcp", "127.0.0.1", 2.0, "proxy did not start")
        elapsed = time.monotonic() - started
        assert elapsed < 2.0
        conn, _ = listener.accept()
        with conn:
            assert conn.getsockname() == ("127.0.0.1", port)


def test_wait_for_port_times_out():
    port = get_free_port()
    with pytest.raises(TimeoutError, match="proxy did not start"):
        wait_for_port(port, "tcp", "127.0.0.1", 0.2, "proxy did not start")


def test_wait_for_port_rejects_unknown_network():
    with pytest.raises(ValueError):
        wait_for_port(1, "carrier-pigeon", "127.0.0.1", 0.1, "msg")