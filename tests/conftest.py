"""Pytest configuration and reusable fixtures for openport tests."""
from __future__ import annotations

import socket
import sys
import types
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, Mock, patch

import pytest

# ---------------------------------------------------------------------------
# Test path setup – make sure `src/` is importable when tests are invoked from
# the project root without an editable install.
# ---------------------------------------------------------------------------
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = PROJECT_ROOT / "src"

if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from openport.lock_table import PortManager  # noqa: E402

FAKE_EPHEMERAL_PORT = 12345
FAKE_HOSTS = [None, "0.0.0.0", "192.168.1.1"]


# ---------------------------------------------------------------------------
# Generic fixtures
# ---------------------------------------------------------------------------

@pytest.fixture()
def manager():
    """Isolated lock table, cleared (and its sweep stopped) afterwards."""
    table = PortManager()
    try:
        yield table
    finally:
        table.clear()


def _fake_resolve(host, port):
    return (socket.AF_INET, socket.SOCK_STREAM, socket.IPPROTO_TCP, "", (host, port))


class FakeSockets:
    """Records every socket the probe opens.

    ``bind_errors`` maps ``(host, port)`` (or just ``port``) to an errno that
    ``bind`` should fail with.  ``ephemeral_ports`` is consumed in order when
    port 0 is bound.
    """

    def __init__(self):
        self.created = []
        self.bind_errors = {}
        self.ephemeral_ports = []

    @property
    def bound(self):
        return [call.args[0] for sock in self.created for call in sock.bind.call_args_list]

    def factory(self, *args):
        sock = MagicMock(name="socket")
        address = {}

        def bind(addr):
            host, port = addr[0], addr[1]
            code = self.bind_errors.get((host, port), self.bind_errors.get(port))
            if code is not None:
                raise OSError(code, f"fake bind failure {code}")
            address["value"] = addr

        def getsockname():
            host, port = address["value"][:2]
            if port == 0:
                port = (
                    self.ephemeral_ports.pop(0)
                    if self.ephemeral_ports
                    else FAKE_EPHEMERAL_PORT
                )
            return (host, port)

        sock.bind.side_effect = bind
        sock.getsockname.side_effect = getsockname
        self.created.append(sock)
        return sock


@pytest.fixture()
def fake_sockets():
    """Replace the socket layer seen by :mod:`openport.probe`.

    Only the probe module gets the fake, so the event loop keeps working with
    real sockets.
    """
    sockets = FakeSockets()
    socket_module = types.ModuleType("socket")
    socket_module.__dict__.update(vars(socket))
    socket_module.socket = Mock(side_effect=sockets.factory)
    socket_module.has_dualstack_ipv6 = lambda: False

    with patch("openport.probe.socket", socket_module), patch(
        "openport.probe._resolve", new=AsyncMock(side_effect=_fake_resolve)
    ), patch("openport.port_allocator.list_hosts", return_value=list(FAKE_HOSTS)):
        yield sockets
