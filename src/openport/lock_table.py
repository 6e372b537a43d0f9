"""Process-wide port reservation table.

Ports handed out by :func:`openport.get_open_port` are remembered here for
``cleanup_interval`` milliseconds so that a second caller in the same process
does not receive the same port before the first one had a chance to bind it.
Stale entries are dropped by a background daemon thread.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Dict, Optional

logger = logging.getLogger("openport.lock_table")

__all__ = [
    "PortManager",
    "port_manager",
    "monotonic_ms",
]

DEFAULT_CLEANUP_INTERVAL = 15_000
DEFAULT_MIN_PORT = 1024
DEFAULT_MAX_PORT = 65_535


def monotonic_ms() -> float:
    return time.monotonic() * 1000


class _SweepThread(threading.Thread):
    """Recurring sweep of expired reservations."""

    def __init__(self, manager: "PortManager", interval: int):
        super().__init__(name="openport-lock-sweep", daemon=True)
        self._manager = manager
        self.interval = interval
        self._stopped = threading.Event()

    def run(self) -> None:
        while not self._stopped.wait(self.interval / 1000):
            self._manager.sweep()

    def cancel(self) -> None:
        self._stopped.set()

    @property
    def cancelled(self) -> bool:
        return self._stopped.is_set()


class PortManager:
    """In-memory lock table with time based expiry.

    Parameters
    ----------
    cleanup_interval:
        Age in milliseconds after which a reservation is dropped.  Also the
        period of the background sweep.  Defaults to *15000*.
    min_port / max_port:
        Bounds used by :func:`openport.get_port_range`.  They are not applied
        to ports requested from the selector.

    All three are plain attributes and may be reassigned at any time; they
    are not validated.
    """

    def __init__(
        self,
        cleanup_interval: int = DEFAULT_CLEANUP_INTERVAL,
        min_port: int = DEFAULT_MIN_PORT,
        max_port: int = DEFAULT_MAX_PORT,
    ):
        self.locked: Dict[int, float] = {}
        self.cleanup_interval = cleanup_interval
        self.min_port = min_port
        self.max_port = max_port
        self.cleanup_timer: Optional[_SweepThread] = None
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Reservations
    # ------------------------------------------------------------------

    def reserve(self, port: int, now: Optional[float] = None) -> None:
        """Record *port* as reserved at *now*, overwriting older entries."""
        with self._lock:
            self.locked[port] = monotonic_ms() if now is None else now
            self.start_cleanup()
        logger.debug(f"🔒 Port {port} reserved")

    def is_locked(self, port: int) -> bool:
        with self._lock:
            return port in self.locked

    def release(self, port: int) -> None:
        """Forget the reservation for *port*; unknown ports are ignored."""
        with self._lock:
            self.locked.pop(port, None)

    def sweep(self, now: Optional[float] = None) -> None:
        """Drop every reservation older than ``cleanup_interval``."""
        if now is None:
            now = monotonic_ms()
        with self._lock:
            expired = [
                port
                for port, timestamp in self.locked.items()
                if now - timestamp >= self.cleanup_interval
            ]
            for port in expired:
                del self.locked[port]
        if expired:
            logger.debug(f"🧹 Released expired ports: {expired}")

    # ------------------------------------------------------------------
    # Sweep lifecycle
    # ------------------------------------------------------------------

    def start_cleanup(self) -> None:
        """Arm the recurring sweep unless it is already running."""
        with self._lock:
            if self.cleanup_timer is not None:
                return
            self.cleanup_timer = _SweepThread(self, self.cleanup_interval)
            self.cleanup_timer.start()
        logger.debug(
            f"⏱️ Lock sweep armed every {self.cleanup_interval}ms"
        )

    def clear(self) -> None:
        """Remove every reservation and stop the sweep."""
        with self._lock:
            self.locked.clear()
            timer, self.cleanup_timer = self.cleanup_timer, None
        if timer is not None:
            timer.cancel()
            logger.debug("🛑 Lock sweep stopped")


port_manager = PortManager()
