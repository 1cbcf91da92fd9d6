"""Message handlers and the middleware that serves them during verification."""

from __future__ import annotations

import base64
import json
import logging
from http import HTTPStatus
from typing import Any, Callable, Dict, List, Tuple
from wsgiref.headers import Headers

from pactkit.log import TRACE
from pactkit.models import ProviderState
from pactkit.proxy import Middleware, WSGIApp

logger = logging.getLogger("pactkit")

Body = Any
Metadata = Dict[str, Any]

# Produces the message for a description, given the provider states; raises on failure.
Handler = Callable[[List[ProviderState]], Tuple[Body, Metadata]]
Producer = Handler
Handlers = Dict[str, Handler]

PACT_MESSAGE_METADATA_HEADER = "PACT_MESSAGE_METADATA"
PACT_MESSAGE_METADATA_HEADER2 = "Pact-Message-Metadata"
MESSAGE_PATH = "/__messages"
DEFAULT_CONTENT_TYPE = "application/json; charset=utf-8"

_CONTENT_TYPE_KEYS = ("contentType", "content-type", "Content-Type")


def _status_line(code: int) -> str:
    status = HTTPStatus(code)
    return f"{status.value} {status.phrase}"


def _read_body(environ: Dict[str, Any]) -> bytes:
    try:
        length = int(environ.get("CONTENT_LENGTH") or 0)
    except ValueError:
        length = 0
    if length <= 0:
        return b""
    return environ["wsgi.input"].read(length)


def append_metadata_to_response_headers(metadata: Metadata, headers: Headers) -> None:
    """Add the base64 JSON metadata headers and the message content type."""
    if not metadata:
        return
    logger.debug("adding message metadata header %s", metadata)
    try:
        encoded_json = json.dumps(metadata).encode("utf-8")
    except (TypeError, ValueError) as err:
        logger.warning("invalid metadata %s. Unable to marshal to JSON: %s", metadata, err)
        encoded_json = b""
    encoded = base64.b64encode(encoded_json).decode("ascii")
    logger.log(TRACE, "encoded metadata to base64: %s", encoded)

    headers.add_header(PACT_MESSAGE_METADATA_HEADER, encoded)
    headers.add_header(PACT_MESSAGE_METADATA_HEADER2, encoded)

    for key in _CONTENT_TYPE_KEYS:
        if metadata.get(key) is not None:
            headers["Content-Type"] = str(metadata[key])
            return
    logger.warning(
        "no content type (key 'contentType') found in message metadata. Defaulting to %s",
        DEFAULT_CONTENT_TYPE,
    )
    headers["Content-Type"] = DEFAULT_CONTENT_TYPE


def _parse_request(raw: bytes) -> Tuple[str, List[ProviderState]]:
    payload = json.loads(raw)
    if payload is None:
        return "", []
    if not isinstance(payload, dict):
        raise ValueError("message verification request must be a JSON object")
    description = payload.get("description") or ""
    if not isinstance(description, str):
        raise ValueError("'description' must be a string")
    states = payload.get("providerStates") or []
    if not isinstance(states, list):
        raise ValueError("'providerStates' must be a list")
    return description, [ProviderState.from_dict(state) for state in states]


def create_message_handler(message_handlers: Handlers) -> Middleware:
    """Middleware answering message verification requests on MESSAGE_PATH."""

    def middleware(app: WSGIApp) -> WSGIApp:
        def handle(environ, start_response):
            if environ.get("PATH_INFO") != MESSAGE_PATH:
                logger.log(TRACE, "skipping message handler for request %s", environ.get("PATH_INFO"))
                return app(environ, start_response)

            raw = _read_body(environ)
            logger.log(TRACE, "message verification handler received request: %r", raw)
            try:
                description, states = _parse_request(raw)
            except (ValueError, TypeError) as err:
                logger.error("unable to parse message verification request: %s", err)
                start_response(_status_line(400), [])
                return [b""]

            handler = message_handlers.get(description)
            if handler is None:
                logger.error("message handler not found for message description: %s", description)
                start_response(_status_line(404), [])
                return [b""]

            try:
                body, metadata = handler(states)
            except Exception as err:  # handler failures become a 503 for the verifier
                logger.error("error executing message handler: %s", err)
                start_response(_status_line(503), [])
                return [b""]

            headers = Headers([])
            append_metadata_to_response_headers(metadata or {}, headers)

            if isinstance(body, (bytes, bytearray)):
                logger.debug("message body is bytes")
                payload = bytes(body)
            else:
                logger.debug("message body is not bytes, serialising as JSON")
                try:
                    payload = json.dumps(body).encode("utf-8")
                except (TypeError, ValueError) as err:
                    logger.error("error marshalling object: %s", err)
                    start_response(_status_line(503), [])
                    return [b""]

            start_response(_status_line(200), headers.items())
            return [payload]

        return handle

    return middleware