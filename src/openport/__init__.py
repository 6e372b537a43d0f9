"""openport - find and reserve an open TCP port"""
from __future__ import annotations

__version__ = "1.0.4"

from .exceptions import (  # noqa: E402
    LockedPortError,
    NoAvailablePortError,
    OpenPortError,
    PortBindError,
    PortCheckTimeoutError,
    PortUnavailableError,
)
from .lock_table import PortManager, port_manager  # noqa: E402
from .log_config import setup_logging  # noqa: E402
from .port_allocator import (  # noqa: E402
    PortAllocator,
    clear_locked_ports,
    get_open_port,
    get_open_port_sync,
    get_port_range,
    release_port,
)

__all__: list[str] = [
    "PortAllocator",
    "PortManager",
    "port_manager",
    "get_open_port",
    "get_open_port_sync",
    "get_port_range",
    "release_port",
    "clear_locked_ports",
    "setup_logging",
    "OpenPortError",
    "LockedPortError",
    "NoAvailablePortError",
    "PortBindError",
    "PortCheckTimeoutError",
    "PortUnavailableError",
]
