import socket

import pytest

from pactkit.ports import PortError, check_port, find_port_in_range, get_free_port


def test_get_free_port():
    port = get_free_port()
    assert 0 < port <= 65535


@pytest.mark.parametrize(
    "spec, port",
    [
        ("6667", 6667),
        ("6667,6668,6669", 6667),
        ("6668-6669", 6668),
    ],
)
def test_find_port_in_range(spec, port):
    assert find_port_in_range(spec) == port


@pytest.mark.parametrize(
    "spec, bad",
    [
        ("abc", "abc"),
        ("abc-123", "abc"),
        ("123-abc", "abc"),
    ],
)
def test_find_port_in_range_invalid_numbers(spec, bad):
    with pytest.raises(PortError) as info:
        find_port_in_range(spec)
    assert f'"{bad}"' in str(info.value)


@pytest.mark.parametrize("spec", ["8888-7777", "6668-6669,7000-7001"])
def test_find_port_in_range_invalid_range(spec):
    with pytest.raises(PortError, match="^invalid range passed$"):
        find_port_in_range(spec)


@pytest.fixture
def occupied_6667():
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("localhost", 6667))
    sock.listen(1)
    yield
    sock.close()


@pytest.mark.parametrize("spec", ["6667", "6667-6667"])
def test_find_port_in_range_with_used_ports(occupied_6667, spec):
    with pytest.raises(PortError, match="^all passed ports are unusable$"):
        find_port_in_range(spec)


def test_check_port_negative():
    with pytest.raises(PortError):
        check_port(-100)


def test_check_port_in_use(occupied_6667):
    with pytest.raises(PortError):
        check_port(6667)


def test_check_port_free_port_passes():
    port = get_free_port()
    assert check_port(port) is None
    assert find_port_in_range(str(port)) == port