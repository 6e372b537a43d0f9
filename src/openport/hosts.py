"""Local address discovery used to probe a port on every interface."""

from __future__ import annotations

import ipaddress
import logging
import socket
from typing import List, Optional

import psutil

logger = logging.getLogger("openport.hosts")

__all__ = ["list_hosts", "WILDCARD_IPV4"]

WILDCARD_IPV4 = "0.0.0.0"


def _is_internal(address: str) -> bool:
    try:
        return ipaddress.ip_address(address.split("%", 1)[0]).is_loopback
    except ValueError:
        return False


def list_hosts() -> List[Optional[str]]:
    """Return the OS default host (``None``), ``0.0.0.0`` and every external address.

    Order is preserved and duplicates are dropped.
    """
    hosts: List[Optional[str]] = [None, WILDCARD_IPV4]
    for addrs in psutil.net_if_addrs().values():
        for addr in addrs:
            if addr.family not in (socket.AF_INET, socket.AF_INET6):
                continue
            if _is_internal(addr.address) or addr.address in hosts:
                continue
            hosts.append(addr.address)
    logger.debug(f"🌐 Local hosts: {hosts}")
    return hosts
