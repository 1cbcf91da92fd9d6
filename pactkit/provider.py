"""Provider verification helpers: selectors, transports and state middleware."""

from __future__ import annotations

import io
import json
import logging
import socket
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from http import HTTPStatus
from typing import Any, Callable, Dict, Optional

from pactkit.log import TRACE
from pactkit.models import ProviderState, StateHandlers
from pactkit.proxy import Middleware, WSGIApp

logger = logging.getLogger("pactkit")

MESSAGE_PATH = "/__messages"
PROVIDER_STATES_SETUP_PATH = "/__setup"

# A hook run around each interaction; raises on failure.
Hook = Callable[[], None]


def _status_line(code: int) -> str:
    status = HTTPStatus(code)
    return f"{status.value} {status.phrase}"


class Selector(ABC):
    """Something that selects consumer versions to verify."""

    @abstractmethod
    def to_dict(self) -> Dict[str, Any]:
        """The JSON form sent to the broker."""


_SELECTOR_KEYS = {
    "tag": "tag",
    "fallback_tag": "fallbackTag",
    "latest": "latest",
    "consumer": "consumer",
    "deployed_or_released": "deployedOrReleased",
    "deployed": "deployed",
    "released": "released",
    "environment": "environment",
    "main_branch": "mainBranch",
    "matching_branch": "matchingBranch",
    "branch": "branch",
}


@dataclass
class ConsumerVersionSelector(Selector):
    """Selects which consumer versions to verify against."""

    tag: str = ""
    fallback_tag: str = ""
    latest: bool = False
    consumer: str = ""
    deployed_or_released: bool = False
    deployed: bool = False
    released: bool = False
    environment: str = ""
    main_branch: bool = False
    matching_branch: bool = False
    branch: str = ""

    def to_dict(self) -> Dict[str, Any]:
        """The JSON form; empty and false fields are omitted."""
        return {
            key: getattr(self, attribute)
            for attribute, key in _SELECTOR_KEYS.items()
            if getattr(self, attribute)
        }


class UntypedConsumerVersionSelector(dict, Selector):
    """A selector given as arbitrary key/value pairs."""

    def to_dict(self) -> Dict[str, Any]:
        return dict(self)


@dataclass
class Transport:
    """A way to connect to a given provider."""

    scheme: str = ""
    protocol: str = ""
    port: int = 0
    path: str = ""


@dataclass
class StateHandlerAction:
    """A state change request sent by the verifier."""

    action: str = ""
    state: str = ""
    params: Dict[str, Any] = field(default_factory=dict)


def _read_body(environ: Dict[str, Any]) -> bytes:
    try:
        length = int(environ.get("CONTENT_LENGTH") or 0)
    except ValueError:
        length = 0
    if length <= 0:
        return b""
    return environ["wsgi.input"].read(length)


def get_state_from_request(environ: Dict[str, Any]) -> StateHandlerAction:
    """Parse a state change request, leaving the body readable for later handlers.

    Keys other than "action" and "state" become the parameters.
    Raises ValueError if the body is not a valid state change payload.
    """
    raw = _read_body(environ)
    environ["wsgi.input"] = io.BytesIO(raw)
    environ["CONTENT_LENGTH"] = str(len(raw))
    logger.log(TRACE, "state change request received raw input %r", raw)

    payload = json.loads(raw)
    if not isinstance(payload, dict):
        raise ValueError("state change payload must be a JSON object")
    action = payload.get("action") or ""
    state = payload.get("state") or ""
    if not isinstance(action, str) or not isinstance(state, str):
        raise ValueError("'action' and 'state' must be strings")
    params = {key: value for key, value in payload.items() if key not in ("action", "state")}
    return StateHandlerAction(action=action, state=state, params=params)


def before_each_middleware(before_each: Hook) -> Middleware:
    """Run ``before_each`` on setup state requests, before any other handler."""

    def middleware(app: WSGIApp) -> WSGIApp:
        def handle(environ, start_response):
            if environ.get("PATH_INFO") == PROVIDER_STATES_SETUP_PATH:
                try:
                    state: Optional[StateHandlerAction] = get_state_from_request(environ)
                except ValueError as err:
                    logger.error("unable to decode incoming state change payload: %s", err)
                    state = None

                if state is not None and state.action == "setup":
                    logger.debug("executing before hook")
                    try:
                        before_each()
                    except Exception as err:  # reported to the verifier as a 500
                        logger.error("error executing before hook: %s", err)

                        def failed(status, headers, exc_info=None):
                            return start_response(_status_line(500), [], exc_info)

                        return app(environ, failed)
            return app(environ, start_response)

        return handle

    return middleware


def state_handler_middleware(state_handlers: StateHandlers, after_each: Optional[Hook]) -> Middleware:
    """Answer state change requests by running the matching state handler."""

    def middleware(app: WSGIApp) -> WSGIApp:
        def handle(environ, start_response):
            if environ.get("PATH_INFO") != PROVIDER_STATES_SETUP_PATH:
                logger.log(TRACE, "skipping state handler for request %s", environ.get("PATH_INFO"))
                return app(environ, start_response)

            logger.info("executing state handler middleware")
            try:
                action = get_state_from_request(environ)
            except ValueError as err:
                logger.error("unable to decode incoming state change payload: %s", err)
                start_response(_status_line(500), [])
                return [b""]

            handler = state_handlers.get(action.state)
            if handler is None:
                logger.warning("no state handler found for state: %s", action.state)
                start_response(_status_line(200), [])
                return [b""]

            try:
                result = handler(
                    action.action == "setup",
                    ProviderState(name=action.state, parameters=action.params),
                )
            except Exception as err:  # reported to the verifier as a 500
                logger.error("state handler for '%s' errored: %s", action.state, err)
                start_response(_status_line(500), [])
                return [b""]

            if action.action == "teardown" and after_each is not None:
                try:
                    after_each()
                except Exception as err:  # reported to the verifier as a 500
                    logger.error("after each hook for test errored: %s", err)
                    start_response(_status_line(500), [])
                    return [b""]

            if result is not None:
                try:
                    body = json.dumps(result).encode("utf-8")
                except (TypeError, ValueError) as err:
                    logger.error("state handler for '%s' errored: %s", action.state, err)
                    start_response(_status_line(500), [])
                    return [b""]
                logger.log(TRACE, "returning values from provider state %s", body)
                start_response(_status_line(200), [("Content-Type", "application/json")])
                return [body]

            start_response(_status_line(200), [])
            return [b""]

        return handle

    return middleware


_FAMILIES = {"tcp": socket.AF_UNSPEC, "tcp4": socket.AF_INET, "tcp6": socket.AF_INET6}


def wait_for_port(port: int, network: str, address: str, timeout: float, message: str) -> None:
    """Wait up to ``timeout`` seconds for ``address:port`` to accept connections.

    Raises TimeoutError if it does not.
    """
    if network not in _FAMILIES:
        raise ValueError(f"unsupported network {network!r}")
    logger.debug("waiting for port %d to become available", port)
    deadline = time.monotonic() + timeout
    while True:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            break
        time.sleep(min(0.05, remaining))
        if time.monotonic() >= deadline:
            break
        try:
            infos = socket.getaddrinfo(address, port, _FAMILIES[network], socket.SOCK_STREAM)
            for family, kind, proto, _, sockaddr in infos:
                with socket.socket(family, kind, proto) as sock:
                    sock.settimeout(max(deadline - time.monotonic(), 0.05))
                    try:
                        sock.connect(sockaddr)
                    except OSError:
                        continue
                    return
        except OSError:
            continue
    error = f"expected server to start < {timeout:g}s. {message}"
    logger.error(error)
    raise TimeoutError(error)