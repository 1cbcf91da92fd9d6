"""Finding free TCP ports on the local machine."""

from __future__ import annotations

import re
import socket

_NUMBER = re.compile(r"[+-]?[0-9]+")


class PortError(Exception):
    """Raised when a port spec is invalid or no usable port is found."""


def get_free_port() -> int:
    """Ask the operating system for a free port on 127.0.0.1."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        sock.listen(1)
        return sock.getsockname()[1]


def _parse_port(text: str) -> int:
    if not _NUMBER.fullmatch(text):
        raise PortError(f'invalid port number "{text}"')
    return int(text)


def check_port(port: int) -> None:
    """Raise PortError unless ``port`` can be listened on at localhost."""
    if not 0 <= port <= 65535:
        raise PortError(f"invalid port {port}")
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            sock.bind(("localhost", port))
            sock.listen(1)
    except OSError as err:
        raise PortError(f"port {port} is unusable: {err}") from err


def _first_usable(ports) -> int:
    for port in ports:
        try:
            check_port(port)
        except PortError:
            continue
        return port
    raise PortError("all passed ports are unusable")


def find_port_in_range(spec: str) -> int:
    """Return the first usable port from "8081", "8081,8085" or "8081-8085".

    Lists and ranges cannot be combined.
    """
    spec = spec.strip()
    if "-" not in spec:
        ports = [_parse_port(part) for part in spec.split(",")]
        return _first_usable(ports)

    bounds = spec.split("-")
    if len(bounds) != 2:
        raise PortError("invalid range passed")
    lower = _parse_port(bounds[0])
    upper = _parse_port(bounds[1])
    if upper < lower:
        raise PortError("invalid range passed")
    return _first_usable(range(lower, upper + 1))