"""Coordination store interface.

Defines the narrow set of primitives the cluster layer consumes from a
hierarchical, session-aware store. Every operation takes the connection
explicitly; nothing is bound to the calling thread.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

from slacker.cluster.models import EphemeralNode

# Receives the session state name ("CONNECTED", "SUSPENDED", "LOST")
ErrorHandler = Callable[[str], None]


class Election(ABC):
    """Leader election bound to one mutex path."""

    mutex_path: str

    @abstractmethod
    def run(self, func: Callable[..., Any], *args: Any) -> None:
        """Block until elected, then call ``func(*args)`` while holding leadership.

        Leadership is released when ``func`` returns. Returns without
        calling ``func`` if the election is cancelled first.

        Raises:
            ElectionError: If the election primitive itself fails
        """
        ...

    @abstractmethod
    def cancel(self) -> None:
        """Withdraw a pending bid; a running ``run`` call returns."""
        ...


class CoordinationConnection(ABC):
    """Session with the coordination store."""

    # Configured session timeout in seconds
    session_timeout: float

    @abstractmethod
    def register_error_handler(self, handler: ErrorHandler) -> None:
        """Call ``handler`` with the new state on every session state change."""
        ...

    @abstractmethod
    def close(self) -> None:
        """End the session; its ephemeral nodes are removed by the store."""
        ...

    @abstractmethod
    def exists(self, path: str) -> bool:
        """Check whether a node exists."""
        ...

    @abstractmethod
    def create_node(self, path: str, persistent: bool = True, data: bytes | None = None) -> str:
        """Create a node and any missing parents.

        Returns:
            The realized path

        Raises:
            NodeAlreadyExistsError: If the node is already present
        """
        ...

    @abstractmethod
    def delete_node(self, path: str) -> None:
        """Delete a node.

        Raises:
            NodeMissingError: If the node doesn't exist
        """
        ...

    def create_ephemeral_node(self, path: str, data: bytes | None = None) -> EphemeralNode:
        """Create a session-bound node and return its handle."""
        realized = self.create_node(path, persistent=False, data=data)
        return EphemeralNode(path=realized, data=data)

    @abstractmethod
    def delete_ephemeral_node(self, node: EphemeralNode) -> None:
        """Delete a session-bound node; a node already gone is not an error."""
        ...

    @abstractmethod
    def set_data(self, path: str, data: bytes) -> None:
        """Replace the data of an existing node.

        Raises:
            NodeMissingError: If the node doesn't exist
        """
        ...

    @abstractmethod
    def get_data(self, path: str) -> bytes | None:
        """Data of a node, or None if the node doesn't exist."""
        ...

    @abstractmethod
    def election(self, mutex_path: str, identifier: str | None = None) -> Election:
        """Create a leader election on ``mutex_path`` for this session."""
        ...
