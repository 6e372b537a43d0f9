"""Open TCP port selection.

:class:`PortAllocator` walks the caller's preferred ports in order, skips
excluded and reserved ones, verifies the rest by binding them on every local
interface and reserves the first port that passes in the shared
:class:`~openport.lock_table.PortManager`.  When no preference is given the
OS picks an ephemeral port.
"""

from __future__ import annotations

import asyncio
import errno
import logging
from typing import Iterable, List, Optional, Set, Union

from .exceptions import LockedPortError, NoAvailablePortError, PortBindError
from .hosts import list_hosts
from .lock_table import PortManager, port_manager
from .probe import DEFAULT_TIMEOUT, verify_port

logger = logging.getLogger("openport.port_allocator")

__all__ = [
    "PortAllocator",
    "get_open_port",
    "get_open_port_sync",
    "get_port_range",
    "clear_locked_ports",
    "release_port",
]

PortPreference = Union[int, Iterable[int], None]

# Re-probes of port 0 when the OS keeps returning reserved or excluded ports
MAX_EPHEMERAL_RETRIES = 100


def _candidate_ports(port: PortPreference) -> List[int]:
    if port is None:
        return [0]
    if isinstance(port, int):
        return [port]
    return list(dict.fromkeys(port))


def _is_integer(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


class PortAllocator:
    """Find and reserve open TCP ports.

    Parameters
    ----------
    manager:
        Lock table holding reservations.  Defaults to the process-wide
        :data:`openport.port_manager`.
    timeout:
        Per-probe timeout in milliseconds.  Defaults to *1000*.
    host:
        Bind only on this address instead of every local interface.
    """

    def __init__(
        self,
        manager: Optional[PortManager] = None,
        timeout: int = DEFAULT_TIMEOUT,
        host: Optional[str] = None,
    ):
        self.manager = port_manager if manager is None else manager
        self.timeout = timeout
        self.host = host

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _verify_unlocked(
        self,
        candidate: int,
        excluded: Set[int],
        hosts: List[Optional[str]],
        timeout: int,
        host: Optional[str],
    ) -> int:
        """Verify *candidate*, re-rolling ephemeral ports that are reserved or excluded."""
        available = await verify_port(candidate, hosts, host=host, timeout=timeout)
        retries = 0
        while self.manager.is_locked(available) or available in excluded:
            if candidate != 0 or retries >= MAX_EPHEMERAL_RETRIES:
                raise LockedPortError(candidate or available)
            retries += 1
            available = await verify_port(0, hosts, host=host, timeout=timeout)
        return available

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def get_open_port(
        self,
        port: PortPreference = None,
        exclude: Optional[Iterable[int]] = None,
        timeout: Optional[int] = None,
        host: Optional[str] = None,
    ) -> int:
        """Return a verified open port and reserve it.

        *port* is a single preferred port, an iterable of preferred ports
        tried in order, or ``None`` for any free port.  *exclude* must be an
        iterable of ports (or ``None``); its ports are never returned, not
        even when the OS assigns one for an ephemeral request.  A
        non-iterable *exclude* raises :class:`TypeError`.

        Raises :class:`LockedPortError` when the requested ports are
        reserved, :class:`PortBindError` for ``EADDRINUSE`` and other
        unrecoverable bind errors, :class:`PortCheckTimeoutError` when a
        probe times out and :class:`NoAvailablePortError` when every
        candidate was rejected.
        """
        manager = self.manager
        timeout = self.timeout if timeout is None else timeout
        host = self.host if host is None else host
        excluded = set(exclude) if exclude is not None else set()

        manager.start_cleanup()
        hosts = list_hosts()
        candidates = _candidate_ports(port)
        logger.debug(f"🔍 Looking for an open port among {candidates}")

        for candidate in candidates:
            try:
                if candidate in excluded or manager.is_locked(candidate):
                    if candidate != 0 and manager.is_locked(candidate):
                        raise LockedPortError(candidate)
                    continue
                available = await self._verify_unlocked(
                    candidate, excluded, hosts, timeout, host
                )
            except LockedPortError:
                continue
            except PortBindError as error:
                if error.errno == errno.EACCES:
                    continue
                raise

            manager.reserve(available)
            logger.info(f"🔌 Port {available} allocated")
            return available

        locked = next((c for c in candidates if manager.is_locked(c)), None)
        if locked is not None:
            raise LockedPortError(locked)
        raise NoAvailablePortError()

    def get_port_range(self, from_port: int, to_port: int) -> List[int]:
        """Return ``[from_port, ..., to_port]`` after validating both bounds."""
        if not _is_integer(from_port) or not _is_integer(to_port):
            raise TypeError("`from` and `to` must be integer numbers")

        min_port, max_port = self.manager.min_port, self.manager.max_port
        if from_port < min_port or from_port > max_port:
            raise ValueError(f"`from` must be between {min_port} and {max_port}")
        if to_port < min_port or to_port > max_port:
            raise ValueError(f"`to` must be between {min_port} and {max_port}")
        if from_port > to_port:
            raise ValueError("`to` must be greater than or equal to `from`")

        return list(range(from_port, to_port + 1))

    def release_port(self, port: int) -> None:
        """Release *port* so that it can be handed out again."""
        self.manager.release(port)

    def clear_locked_ports(self) -> None:
        """Forget every reservation and stop the expiry sweep."""
        self.manager.clear()


async def get_open_port(
    port: PortPreference = None,
    exclude: Optional[Iterable[int]] = None,
    timeout: int = DEFAULT_TIMEOUT,
    host: Optional[str] = None,
    manager: Optional[PortManager] = None,
) -> int:
    """Find and reserve an open port; see :meth:`PortAllocator.get_open_port`."""
    allocator = PortAllocator(manager, timeout=timeout, host=host)
    return await allocator.get_open_port(port=port, exclude=exclude)


def get_open_port_sync(**options) -> int:
    """Blocking variant of :func:`get_open_port` for code without a loop."""
    return asyncio.run(get_open_port(**options))


def get_port_range(
    from_port: int, to_port: int, manager: Optional[PortManager] = None
) -> List[int]:
    return PortAllocator(manager).get_port_range(from_port, to_port)


def release_port(port: int, manager: Optional[PortManager] = None) -> None:
    PortAllocator(manager).release_port(port)


def clear_locked_ports(manager: Optional[PortManager] = None) -> None:
    PortAllocator(manager).clear_locked_ports()
