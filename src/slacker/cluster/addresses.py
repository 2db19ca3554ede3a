"""Advertised address detection.

When no node override is configured, a server advertises the address of
the local interface it uses to reach the coordination store. The probe
only completes a TCP handshake and closes the socket again.
"""

from __future__ import annotations

import logging
import socket

from slacker.cluster.errors import ConnectivityError

logger = logging.getLogger(__name__)

DEFAULT_ZK_PORT = 2181
PROBE_TIMEOUT = 5.0


def first_address(coordination_address: str) -> str:
    """First ``host:port`` of a comma-separated failover list."""
    return coordination_address.split(",")[0].strip()


def split_host_port(address: str) -> tuple[str, int]:
    """Split ``host:port`` into its parts.

    A chroot suffix (``host:port/chroot``) is dropped, brackets around an
    IPv6 host (``[::1]:2181``) are removed and a missing port falls back
    to the ZooKeeper default.
    """
    hostport = address.split("/", 1)[0]
    if hostport.startswith("["):
        host, _, rest = hostport[1:].partition("]")
        port = rest.removeprefix(":")
        if not port:
            return host, DEFAULT_ZK_PORT
    else:
        host, sep, port = hostport.rpartition(":")
        if not sep:
            return hostport, DEFAULT_ZK_PORT
    try:
        return host, int(port)
    except ValueError as e:
        raise ConnectivityError(address, f"invalid port {port!r}") from e


def detect_local_address(coordination_address: str, timeout: float = PROBE_TIMEOUT) -> str:
    """Local address used to reach the first coordination server.

    Args:
        coordination_address: Comma-separated ``host:port`` list; only the
            first entry is probed.
        timeout: Connect timeout in seconds

    Raises:
        ConnectivityError: If the address cannot be reached
    """
    address = first_address(coordination_address)
    host, port = split_host_port(address)
    try:
        with socket.create_connection((host, port), timeout=timeout) as sock:
            local_ip = sock.getsockname()[0]
    except OSError as e:
        raise ConnectivityError(address, str(e)) from e

    logger.debug(f"Detected local address {local_ip} via {address}")
    return str(local_ip)
