"""
openport exceptions.

Every failure the port selector can surface is an ``OpenPortError`` subclass
carrying a human readable ``message`` plus a ``details`` mapping, so callers
can branch on the exception type instead of inspecting message text.
"""

from __future__ import annotations

import errno as errno_codes
import socket
from typing import Any, Dict, Iterable, Optional


class OpenPortError(Exception):
    """Base exception for all openport errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class LockedPortError(OpenPortError):
    """Raised when a requested port is currently reserved by this process."""

    code = "EPORTLOCKED"

    def __init__(self, port: int):
        super().__init__(f"Port {port} is locked", {"port": port})
        self.port = port


class PortCheckTimeoutError(OpenPortError):
    """Raised when a single bind probe does not settle in time."""

    def __init__(self, timeout: int):
        super().__init__(
            f"Port check timed out after {timeout}ms", {"timeout": timeout}
        )
        self.timeout = timeout


class PortBindError(OpenPortError):
    """Raised when the operating system refuses to bind a (host, port) pair.

    ``errno`` is the raw error number and ``code`` its symbolic name
    (``"EADDRINUSE"``, ``"EADDRNOTAVAIL"``, ``"EACCES"``, ``"EINVAL"``...).
    """

    def __init__(
        self,
        message: str,
        errno: Optional[int] = None,
        host: Optional[str] = None,
        port: Optional[int] = None,
    ):
        self.errno = errno
        self.code = _errno_name(errno)
        self.host = host
        self.port = port
        super().__init__(
            message, {"code": self.code, "host": host, "port": port}
        )

    @classmethod
    def from_os_error(
        cls, error: OSError, host: Optional[str], port: int
    ) -> "PortBindError":
        if isinstance(error, socket.gaierror):
            # Resolver failures use EAI_* numbers which clash with errno values
            bind_error = cls(f"{error.strerror or error}", None, host, port)
            bind_error.code = "ENOTFOUND"
            bind_error.details["code"] = "ENOTFOUND"
            return bind_error
        reason = error.strerror or str(error)
        return cls(
            f"{_errno_name(error.errno)}: {reason} ({host or '*'}:{port})",
            error.errno,
            host,
            port,
        )


class PortUnavailableError(OpenPortError):
    """Raised when no network interface accepted the bind."""

    def __init__(self, port: int, hosts: Iterable[Optional[str]]):
        hosts = list(hosts)
        rendered = ", ".join("" if host is None else host for host in hosts)
        super().__init__(
            f"Port {port} is not available on any of the network interfaces: "
            f"{rendered}",
            {"port": port, "hosts": hosts},
        )
        self.port = port
        self.hosts = hosts


class NoAvailablePortError(OpenPortError):
    """Raised when every candidate port failed for a recoverable reason."""

    def __init__(self, message: str = "No available ports found", details=None):
        super().__init__(message, details)


def _errno_name(number: Optional[int]) -> Optional[str]:
    if number is None:
        return None
    return errno_codes.errorcode.get(number, str(number))


def format_error_message(error: Exception) -> str:
    """Format error messages consistently."""
    if isinstance(error, OpenPortError):
        message = f"openport error: {error.message}"
        if error.details:
            details = ", ".join(f"{k}={v}" for k, v in error.details.items())
            message += f" ({details})"
        return message
    return f"{type(error).__name__}: {error}"
