"""Exception hierarchy for cluster coordination.

Connectivity problems are fatal at startup and surface to the caller.
Node conflicts are expected when several servers publish the same
cluster layout concurrently and are swallowed wherever the operation
is idempotent. Election errors are logged by the election thread and
never retried by this layer.
"""

from __future__ import annotations


class ClusterError(Exception):
    """Base class for cluster coordination failures."""


class ConnectivityError(ClusterError, ConnectionError):
    """Coordination store or address probe unreachable."""

    def __init__(self, address: str, reason: str) -> None:
        self.address = address
        self.reason = reason
        super().__init__(f"Cannot reach {address}: {reason}")


class NodeConflictError(ClusterError):
    """A create or delete raced another publisher on the same path."""

    def __init__(self, path: str, message: str) -> None:
        self.path = path
        super().__init__(f"{message}: {path}")


class NodeAlreadyExistsError(NodeConflictError):
    """Create failed because the node is already present."""

    def __init__(self, path: str) -> None:
        super().__init__(path, "Node already exists")


class NodeMissingError(NodeConflictError):
    """Delete or write failed because the node is absent."""

    def __init__(self, path: str) -> None:
        super().__init__(path, "Node does not exist")


class ElectionError(ClusterError):
    """The leader election primitive failed."""

    def __init__(self, mutex_path: str, reason: str) -> None:
        self.mutex_path = mutex_path
        super().__init__(f"Leader election on {mutex_path} failed: {reason}")
