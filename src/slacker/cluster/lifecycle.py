"""Cluster-aware start and stop of a request server.

Shutdown order is what makes a stop graceful for clients:

1. Withdraw every election and ephemeral node
2. Close the coordination session (watchers that missed a delete get
   the session expiry instead)
3. Wait one session timeout so every client observes the removal
4. Only then stop the request server

Namespaces can be withdrawn and re-published while the request server
keeps running; in-flight requests for a withdrawn namespace still get
answered, only discovery of it stops.

Example:
    lifecycle = ClusterLifecycle(request_server)
    handle = lifecycle.start(
        ["slacker.example.api"],
        2104,
        cluster=ClusterDescriptor(name="example-cluster", coordination_address="127.0.0.1:2181"),
        server_data={"label": "example"},
    )

    lifecycle.unpublish_namespace(handle, "slacker.example.api")
    lifecycle.publish_namespace(handle, "slacker.example.api")

    lifecycle.stop(handle)
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Mapping
from typing import Any

from slacker.cluster import server_data as server_data_store
from slacker.cluster.coordination import CoordinationConnection
from slacker.cluster.election import LeaderElectionHandle, LeaderElectionManager
from slacker.cluster.errors import ClusterError
from slacker.cluster.models import ClusterDescriptor, ClusterHandle, EphemeralNode, PublicationRecord
from slacker.cluster.paths import ClusterPaths
from slacker.cluster.publisher import ClusterPublisher
from slacker.cluster.zookeeper import ZooKeeperConnection
from slacker.config import Settings
from slacker.config import settings as default_settings
from slacker.observability.logging import LogContext

logger = logging.getLogger(__name__)

# (addresses, session_timeout, connect_timeout) -> connection
ConnectionFactory = Callable[[str, float, float], CoordinationConnection]


class RequestServer(ABC):
    """The RPC server whose namespaces are published."""

    @abstractmethod
    def start(self, namespaces: list[str], port: int, **options: Any) -> Any:
        """Start serving ``namespaces`` on ``port`` and return a server handle."""
        ...

    @abstractmethod
    def stop(self, server: Any) -> None:
        """Stop a server started by ``start``."""
        ...

    @abstractmethod
    def introspect(self, namespace: str) -> Mapping[str, Any]:
        """Function name to metadata for every function of ``namespace``."""
        ...


def _log_session_state(cluster_name: str, state: str) -> None:
    """Default coordination session handler."""
    if state == "LOST":
        logger.warning(
            f"ZooKeeper session for cluster {cluster_name} expired; "
            "ephemeral registrations are gone and will not be restored"
        )
    elif state == "SUSPENDED":
        logger.warning(f"ZooKeeper connection for cluster {cluster_name} suspended")
    else:
        logger.info(f"ZooKeeper connection for cluster {cluster_name} is {state}")


class ClusterLifecycle:
    """Starts, stops, publishes and withdraws a clustered request server.

    Args:
        request_server: RPC server to run
        settings: Timeouts; defaults to the environment settings
        publisher: Cluster publisher (created from settings if None)
        connect: Coordination connection factory
        sleep: Used to wait out the session timeout on stop
    """

    def __init__(
        self,
        request_server: RequestServer,
        settings: Settings | None = None,
        publisher: ClusterPublisher | None = None,
        connect: ConnectionFactory | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.request_server = request_server
        self.settings = settings or default_settings
        self.publisher = publisher or ClusterPublisher(
            elections=LeaderElectionManager(stop_timeout=self.settings.election_stop_timeout),
            probe_timeout=self.settings.address_probe_timeout,
        )
        self._connect = connect or ZooKeeperConnection.connect
        self._sleep = sleep

    @property
    def elections(self) -> LeaderElectionManager:
        return self.publisher.elections

    @property
    def session_timeout(self) -> float:
        """Configured session timeout in seconds."""
        return self.settings.zk_session_timeout / 1000

    def start(
        self,
        namespaces: str | Iterable[str],
        port: int,
        cluster: ClusterDescriptor | None = None,
        server_data: Any = None,
        **options: Any,
    ) -> ClusterHandle:
        """Start the request server and publish it to ``cluster``.

        Args:
            namespaces: Namespace name or names to expose
            port: Port to serve on
            cluster: Cluster to join; None starts a standalone server
            server_data: Serializable blob published on the server node
            **options: Passed through to the request server

        Raises:
            ConnectivityError: If the coordination store can't be reached
        """
        ns_names = [namespaces] if isinstance(namespaces, str) else list(dict.fromkeys(namespaces))
        server = self.request_server.start(ns_names, port, **options)
        handle = ClusterHandle(server=server, namespaces=ns_names, port=port, descriptor=cluster)

        if cluster is None:
            logger.info(f"Started standalone server on port {port}")
            return handle

        functions: dict[str, Any] = {}
        for ns in ns_names:
            functions.update(self.request_server.introspect(ns))

        try:
            handle.connection = self._connect(
                cluster.coordination_address,
                self.session_timeout,
                self.settings.zk_connect_timeout,
            )
            handle.connection.register_error_handler(
                lambda state: _log_session_state(cluster.name, state)
            )
            handle.publication = self.publisher.publish(
                handle.connection,
                cluster,
                port,
                ns_names,
                functions,
                server_data,
            )
        except Exception:
            logger.error(f"Failed to join cluster {cluster.name}; stopping server on port {port}")
            self._abort_start(handle)
            raise

        logger.info(f"Started server {handle.server_id} in cluster {cluster.name}")
        return handle

    def _abort_start(self, handle: ClusterHandle) -> None:
        if handle.publication is not None:
            self.unpublish_all(handle)
        if handle.connection is not None:
            handle.connection.close()
        self.request_server.stop(handle.server)
        handle.stopped = True

    def unpublish_namespace(self, handle: ClusterHandle, ns: str) -> None:
        """Withdraw one namespace from discovery and leader election.

        The server node and other namespaces are untouched.
        """
        record, connection, paths = self._published(handle)
        with LogContext(cluster=paths.cluster_name, server_id=record.server_id, namespace=ns):
            matched = self._namespace_slots(record, paths, ns)
            for i in matched:
                self.elections.stop(record.leader_elections[i])
            for i in matched:
                self._withdraw(connection, record.ephemeral_nodes[i])
            logger.info(f"Unpublished namespace {ns}")

    def unpublish_all(self, handle: ClusterHandle) -> None:
        """Withdraw every namespace and the server node itself."""
        self._unpublish_record(*self._published(handle))

    def _unpublish_record(
        self,
        record: PublicationRecord,
        connection: CoordinationConnection,
        paths: ClusterPaths,
    ) -> None:
        with LogContext(cluster=paths.cluster_name, server_id=record.server_id):
            for election in record.leader_elections:
                self.elections.stop(election)
            for node in record.ephemeral_nodes:
                self._withdraw(connection, node)
            logger.info(f"Unpublished {record.server_id}")

    def publish_namespace(self, handle: ClusterHandle, ns: str) -> None:
        """Re-register a withdrawn namespace and rejoin its election."""
        record, connection, paths = self._published(handle)
        with LogContext(cluster=paths.cluster_name, server_id=record.server_id, namespace=ns):
            for i in self._namespace_slots(record, paths, ns):
                self._republish_slot(record, connection, paths, i, ns)
            logger.info(f"Published namespace {ns}")

    def publish_all(self, handle: ClusterHandle) -> None:
        """Re-register every withdrawn namespace and the server node."""
        record, connection, paths = self._published(handle)
        with LogContext(cluster=paths.cluster_name, server_id=record.server_id):
            for i, ns in enumerate(record.namespaces):
                self._republish_slot(record, connection, paths, i, ns)
            server_node = record.server_node
            if server_node.deleted:
                record.ephemeral_nodes[-1] = self.publisher.register_presence(
                    connection, server_node.path, server_node.data
                )
            logger.info(f"Published {record.server_id}")

    def stop(self, handle: ClusterHandle) -> None:
        """Gracefully leave the cluster, then stop the request server.

        Order: unpublish everything, close the session, wait one session
        timeout, stop the request server.
        """
        if handle.stopped:
            logger.warning(f"Server on port {handle.port} already stopped")
            return
        handle.stopped = True

        connection = handle.connection
        if connection is not None:
            if handle.publication is not None:
                try:
                    self._unpublish_record(*self._publication(handle))
                except ClusterError:
                    # Closing the session removes the ephemeral nodes anyway
                    logger.exception(f"Failed to unpublish {handle.server_id}")
            connection.close()
            logger.info(f"Waiting {connection.session_timeout}s for clients to observe removal")
            self._sleep(connection.session_timeout)

        self.request_server.stop(handle.server)
        logger.info(f"Stopped server on port {handle.port}")

    def get_server_data(self, handle: ClusterHandle) -> Any | None:
        """Server data currently published for this server."""
        record, connection, _paths = self._published(handle)
        return server_data_store.get_server_data(connection, record)

    def set_server_data(self, handle: ClusterHandle, data: Any) -> None:
        """Replace the server data published for this server."""
        record, connection, _paths = self._published(handle)
        server_data_store.set_server_data(connection, record, data)

    def _published(
        self, handle: ClusterHandle
    ) -> tuple[PublicationRecord, CoordinationConnection, ClusterPaths]:
        if handle.stopped:
            raise ClusterError(f"Server on port {handle.port} is stopped")
        return self._publication(handle)

    @staticmethod
    def _publication(
        handle: ClusterHandle,
    ) -> tuple[PublicationRecord, CoordinationConnection, ClusterPaths]:
        if handle.publication is None or handle.connection is None or handle.descriptor is None:
            raise ClusterError(f"Server on port {handle.port} is not published to a cluster")
        descriptor = handle.descriptor
        paths = ClusterPaths(descriptor.name, descriptor.root_path)
        return handle.publication, handle.connection, paths

    @staticmethod
    def _namespace_slots(record: PublicationRecord, paths: ClusterPaths, ns: str) -> list[int]:
        """Indices of the node/election pairs registered for ``ns``."""
        slots = [
            i
            for i, node in enumerate(record.ephemeral_nodes[: len(record.leader_elections)])
            if paths.namespace_of(node.path) == ns
        ]
        if not slots:
            logger.warning(f"Namespace {ns} is not exposed by {record.server_id}")
        return slots

    def _republish_slot(
        self,
        record: PublicationRecord,
        connection: CoordinationConnection,
        paths: ClusterPaths,
        i: int,
        ns: str,
    ) -> None:
        node = record.ephemeral_nodes[i]
        if node.deleted:
            record.ephemeral_nodes[i] = self.publisher.register_presence(connection, node.path, node.data)
        election: LeaderElectionHandle = record.leader_elections[i]
        if election.released:
            record.leader_elections[i] = self.publisher.start_election(
                connection, paths, ns, record.server_id
            )

    @staticmethod
    def _withdraw(connection: CoordinationConnection, node: EphemeralNode) -> None:
        if node.deleted:
            return
        connection.delete_ephemeral_node(node)
        node.deleted = True
