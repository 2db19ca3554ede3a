"""ZooKeeper backend for the coordination interface, built on kazoo."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any

from kazoo.client import KazooClient
from kazoo.exceptions import (
    CancelledError,
    ConnectionLoss,
    KazooException,
    NodeExistsError,
    NoNodeError,
    SessionExpiredError,
)
from kazoo.recipe.election import Election as KazooElection

from slacker.cluster.coordination import CoordinationConnection, Election, ErrorHandler
from slacker.cluster.errors import (
    ConnectivityError,
    ElectionError,
    NodeAlreadyExistsError,
    NodeMissingError,
)
from slacker.cluster.models import EphemeralNode

logger = logging.getLogger(__name__)

DEFAULT_SESSION_TIMEOUT = 5.0  # seconds
DEFAULT_CONNECT_TIMEOUT = 15.0


class ZooKeeperElection(Election):
    """kazoo ``Election`` recipe with cancellation mapped to a normal return."""

    def __init__(self, client: KazooClient, mutex_path: str, identifier: str | None = None):
        self.mutex_path = mutex_path
        self._election = KazooElection(client, mutex_path, identifier=identifier)

    def run(self, func: Callable[..., Any], *args: Any) -> None:
        try:
            self._election.run(func, *args)
        except CancelledError:
            logger.debug(f"Election on {self.mutex_path} cancelled")
        except KazooException as e:
            raise ElectionError(self.mutex_path, repr(e)) from e

    def cancel(self) -> None:
        self._election.cancel()


class ZooKeeperConnection(CoordinationConnection):
    """kazoo client session.

    Connection loss and session expiry raised by kazoo surface as
    ``ConnectivityError``; node existence conflicts as the matching
    ``NodeConflictError``.

    Args:
        client: Started kazoo client
        session_timeout: Session timeout in seconds the client was created with
        hosts: Comma-separated ``host:port`` list the client connects to
    """

    def __init__(
        self,
        client: KazooClient,
        session_timeout: float = DEFAULT_SESSION_TIMEOUT,
        hosts: str = "",
    ):
        self._client = client
        self.session_timeout = session_timeout
        self.hosts = hosts

    @classmethod
    def connect(
        cls,
        addresses: str,
        session_timeout: float = DEFAULT_SESSION_TIMEOUT,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
    ) -> ZooKeeperConnection:
        """Open a session with the ZooKeeper ensemble.

        Args:
            addresses: Comma-separated ``host:port`` list
            session_timeout: Session timeout in seconds
            connect_timeout: Seconds to wait for the first connection

        Raises:
            ConnectivityError: If no server could be reached in time
        """
        client = KazooClient(hosts=addresses, timeout=session_timeout)
        try:
            client.start(timeout=connect_timeout)
        except client.handler.timeout_exception as e:
            client.close()
            raise ConnectivityError(addresses, str(e) or "connection timed out") from e

        logger.info(f"Connected to ZooKeeper at {addresses}")
        return cls(client, session_timeout, hosts=addresses)

    @property
    def client(self) -> KazooClient:
        """Underlying kazoo client."""
        return self._client

    @property
    def connected(self) -> bool:
        """Whether the session is currently connected."""
        return bool(self._client.connected)

    @contextmanager
    def _session(self, path: str) -> Iterator[None]:
        # ConnectionClosedError is a SessionExpiredError
        try:
            yield
        except (ConnectionLoss, SessionExpiredError) as e:
            raise ConnectivityError(self.hosts, f"{type(e).__name__} on {path}") from e

    def register_error_handler(self, handler: ErrorHandler) -> None:
        def listener(state: str) -> None:
            # Runs on the kazoo event thread; must not raise or block
            try:
                handler(str(state))
            except Exception:
                logger.exception(f"Session state handler failed for state {state}")

        self._client.add_listener(listener)

    def close(self) -> None:
        self._client.stop()
        self._client.close()
        logger.info("Closed ZooKeeper session")

    def exists(self, path: str) -> bool:
        with self._session(path):
            return self._client.exists(path) is not None

    def create_node(self, path: str, persistent: bool = True, data: bytes | None = None) -> str:
        with self._session(path):
            try:
                realized = self._client.create(
                    path,
                    data or b"",
                    ephemeral=not persistent,
                    makepath=True,
                )
            except NodeExistsError as e:
                raise NodeAlreadyExistsError(path) from e
        return str(realized)

    def delete_node(self, path: str) -> None:
        with self._session(path):
            try:
                self._client.delete(path)
            except NoNodeError as e:
                raise NodeMissingError(path) from e

    def delete_ephemeral_node(self, node: EphemeralNode) -> None:
        with self._session(node.path):
            try:
                self._client.delete(node.path)
            except NoNodeError:
                logger.debug(f"Ephemeral node already gone: {node.path}")

    def set_data(self, path: str, data: bytes) -> None:
        with self._session(path):
            try:
                self._client.set(path, data)
            except NoNodeError as e:
                raise NodeMissingError(path) from e

    def get_data(self, path: str) -> bytes | None:
        with self._session(path):
            try:
                data, _stat = self._client.get(path)
            except NoNodeError:
                return None
        return data

    def election(self, mutex_path: str, identifier: str | None = None) -> ZooKeeperElection:
        return ZooKeeperElection(self._client, mutex_path, identifier)
