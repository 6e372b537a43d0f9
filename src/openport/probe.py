"""Bind probes for a single host and for every local interface.

A probe resolves the bind address on the event loop, then opens, binds,
listens on and closes a TCP socket in one synchronous step.  Sockets
therefore never outlive a suspension point: whichever way a probe ends
(bound port, bind error or timeout) no socket is left open.
"""

from __future__ import annotations

import asyncio
import errno
import logging
import os
import socket
from typing import Iterable, List, Optional, Tuple

from .exceptions import PortBindError, PortCheckTimeoutError, PortUnavailableError
from .hosts import WILDCARD_IPV4

logger = logging.getLogger("openport.probe")

__all__ = [
    "DEFAULT_TIMEOUT",
    "HOST_SPECIFIC_ERRNOS",
    "check_port_availability",
    "verify_port",
]

# Milliseconds
DEFAULT_TIMEOUT = 1000

# Errors that only mean "this address cannot take the port"
HOST_SPECIFIC_ERRNOS = (errno.EADDRNOTAVAIL, errno.EINVAL)

_AddrInfo = Tuple[int, int, int, str, tuple]


def _default_host() -> str:
    return "::" if socket.has_dualstack_ipv6() else WILDCARD_IPV4


async def _resolve(host: str, port: int) -> _AddrInfo:
    loop = asyncio.get_running_loop()
    infos = await loop.getaddrinfo(
        host, port, type=socket.SOCK_STREAM, flags=socket.AI_PASSIVE
    )
    return infos[0]


def _bind_and_release(info: _AddrInfo, dual_stack: bool) -> int:
    family, sock_type, proto, _, address = info
    sock = socket.socket(family, sock_type, proto)
    try:
        if os.name != "nt":
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        if dual_stack:
            sock.setsockopt(socket.IPPROTO_IPV6, socket.IPV6_V6ONLY, 0)
        sock.setblocking(False)
        sock.bind(address)
        sock.listen()
        return sock.getsockname()[1]
    finally:
        sock.close()


async def _probe(port: int, host: Optional[str]) -> int:
    try:
        info = await _resolve(_default_host() if host is None else host, port)
        return _bind_and_release(
            info, dual_stack=host is None and info[0] == socket.AF_INET6
        )
    except OSError as error:
        raise PortBindError.from_os_error(error, host, port) from error


async def check_port_availability(
    port: int, host: Optional[str] = None, timeout: int = DEFAULT_TIMEOUT
) -> int:
    """Bind *port* on *host* and return the port the OS actually assigned.

    *timeout* is in milliseconds.  Raises :class:`PortCheckTimeoutError`
    when the probe does not settle in time and :class:`PortBindError` when
    the bind is refused.
    """
    timeout = timeout or DEFAULT_TIMEOUT
    try:
        return await asyncio.wait_for(_probe(port, host), timeout / 1000)
    except asyncio.TimeoutError:
        logger.debug(f"⏳ Probe of {host or '*'}:{port} timed out after {timeout}ms")
        raise PortCheckTimeoutError(timeout) from None


async def verify_port(
    port: int,
    hosts: Iterable[Optional[str]],
    host: Optional[str] = None,
    timeout: int = DEFAULT_TIMEOUT,
) -> int:
    """Check that *port* can be bound on the local interfaces.

    An explicit *host* or an ephemeral request (``port == 0``) is probed
    once.  Otherwise every entry of *hosts* is probed concurrently; hosts
    that fail with ``EADDRNOTAVAIL`` or ``EINVAL`` are ignored and any other
    error is raised straight away.
    """
    if host or port == 0:
        return await check_port_availability(port, host=host, timeout=timeout)

    hosts = list(hosts)
    bound: List[int] = []

    async def probe_host(candidate: Optional[str]) -> None:
        try:
            result = await check_port_availability(
                port, host=candidate, timeout=timeout
            )
        except PortBindError as error:
            if error.errno in HOST_SPECIFIC_ERRNOS:
                return
            raise
        # Appended as probes settle, so bound[0] is the first to succeed
        bound.append(result)

    await asyncio.gather(*(probe_host(candidate) for candidate in hosts))

    if not bound:
        raise PortUnavailableError(port, hosts)
    return bound[0]
