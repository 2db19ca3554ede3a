"""Cluster registration of a server instance.

Publishing lays out the cluster's persistent containers, registers the
server's ephemeral presence nodes and starts one leader election per
namespace:

1. Persistent ``servers``, ``namespaces/{ns}`` and ``functions/{name}``
   nodes (check-then-create; losing a create race is fine)
2. Ephemeral ``namespaces/{ns}/{server_id}`` per namespace, then
   ``servers/{server_id}`` carrying the server data
3. Persistent ``namespaces/{ns}/_leader/mutex`` and an election on it
   per namespace

Function metadata nodes are only written by the first publisher of a
function name; later publishes never overwrite them. A publish that fails
partway withdraws the nodes and elections it already registered before
re-raising.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from slacker.cluster.addresses import PROBE_TIMEOUT, detect_local_address, first_address
from slacker.cluster.coordination import CoordinationConnection
from slacker.cluster.election import LeaderElectionHandle, LeaderElectionManager
from slacker.cluster.errors import ClusterError, NodeAlreadyExistsError, NodeMissingError
from slacker.cluster.models import (
    ClusterDescriptor,
    EphemeralNode,
    FunctionDescriptor,
    PublicationRecord,
)
from slacker.cluster.paths import ClusterPaths
from slacker.core.canonicalize import canonical_bytes
from slacker.observability.logging import LogContext

logger = logging.getLogger(__name__)


def create_node(connection: CoordinationConnection, path: str, data: bytes | None = None) -> bool:
    """Create a persistent node unless it already exists.

    Returns:
        True if this call created the node
    """
    if connection.exists(path):
        return False
    try:
        connection.create_node(path, persistent=True, data=data)
    except NodeAlreadyExistsError:
        logger.debug(f"Lost create race for {path}")
        return False
    return True


class ClusterPublisher:
    """Registers a server instance in a cluster."""

    def __init__(
        self,
        elections: LeaderElectionManager | None = None,
        probe_timeout: float = PROBE_TIMEOUT,
    ) -> None:
        self.elections = elections or LeaderElectionManager()
        self.probe_timeout = probe_timeout

    def server_identity(self, descriptor: ClusterDescriptor, port: int) -> str:
        """``host:port`` this server advertises.

        Raises:
            ConnectivityError: If auto-detection can't reach the store
        """
        if descriptor.node_override:
            return descriptor.node_override
        host = detect_local_address(
            first_address(descriptor.coordination_address),
            timeout=self.probe_timeout,
        )
        return f"{host}:{port}"

    def publish(
        self,
        connection: CoordinationConnection,
        descriptor: ClusterDescriptor,
        port: int,
        namespaces: Iterable[str],
        functions: Mapping[str, Any],
        server_data: Any = None,
    ) -> PublicationRecord:
        """Publish this server into the cluster.

        Args:
            connection: Coordination session shared by all nodes and elections
            descriptor: Cluster to join
            port: Port the request server listens on
            namespaces: Exposed namespace names
            functions: Function name to metadata, from request server introspection
            server_data: Serializable blob stored on the server presence node

        Returns:
            Record of the ephemeral nodes and elections created
        """
        ns_names = list(dict.fromkeys(namespaces))
        server_id = self.server_identity(descriptor, port)
        paths = ClusterPaths(descriptor.name, descriptor.root_path)

        with LogContext(cluster=descriptor.name, server_id=server_id):
            logger.info(f"Publishing {server_id} to cluster {descriptor.name}: {ns_names}")

            # Persistent containers
            create_node(connection, paths.servers())
            for ns in ns_names:
                create_node(connection, paths.namespace(ns))
            for name, metadata in functions.items():
                descriptor_bytes = FunctionDescriptor.coerce(name, metadata).to_bytes()
                create_node(connection, paths.function(name), data=descriptor_bytes)

            # Ephemeral presence, namespaces first then the server itself,
            # then one election per namespace aligned with ephemeral_nodes
            server_node_path = paths.server(server_id)
            data = canonical_bytes(server_data) if server_data is not None else None
            ephemeral_nodes: list[EphemeralNode] = []
            leader_elections: list[LeaderElectionHandle] = []
            try:
                for ns in ns_names:
                    ephemeral_nodes.append(
                        self.register_presence(connection, paths.namespace_server(ns, server_id))
                    )
                ephemeral_nodes.append(self.register_presence(connection, server_node_path, data))
                for ns in ns_names:
                    leader_elections.append(self.start_election(connection, paths, ns, server_id))
            except Exception:
                logger.error(f"Publishing {server_id} failed; withdrawing partial registration")
                self.withdraw(connection, ephemeral_nodes, leader_elections)
                raise

        return PublicationRecord(
            server_id=server_id,
            server_node_path=server_node_path,
            namespaces=ns_names,
            ephemeral_nodes=ephemeral_nodes,
            leader_elections=leader_elections,
        )

    def withdraw(
        self,
        connection: CoordinationConnection,
        ephemeral_nodes: list[EphemeralNode],
        leader_elections: list[LeaderElectionHandle],
    ) -> None:
        """Stop ``leader_elections`` and delete ``ephemeral_nodes``.

        Used to undo a publish that failed halfway; a node that can't be
        deleted is left to expire with the session.
        """
        for election in leader_elections:
            self.elections.stop(election)
        for node in ephemeral_nodes:
            try:
                connection.delete_ephemeral_node(node)
            except ClusterError as e:
                logger.warning(f"Could not withdraw {node.path}: {e}")
                continue
            node.deleted = True

    def register_presence(
        self,
        connection: CoordinationConnection,
        path: str,
        data: bytes | None = None,
    ) -> EphemeralNode:
        """(Re)create an ephemeral presence node.

        A node left at ``path`` by an earlier session with the same
        identity is removed first.
        """
        try:
            connection.delete_node(path)
            logger.info(f"Removed stale registration at {path}")
        except NodeMissingError:
            pass
        node = connection.create_ephemeral_node(path, data)
        logger.debug(f"Registered ephemeral node {node.path}")
        return node

    def start_election(
        self,
        connection: CoordinationConnection,
        paths: ClusterPaths,
        ns: str,
        server_id: str,
    ) -> LeaderElectionHandle:
        """Start the leader election of one namespace."""
        mutex_path = paths.leader_mutex(ns)
        leader_path = paths.leader(ns)
        create_node(connection, mutex_path)

        def on_become_leader(conn: CoordinationConnection) -> None:
            conn.set_data(leader_path, server_id.encode("utf-8"))

        return self.elections.start(connection, mutex_path, on_become_leader, identifier=server_id)
