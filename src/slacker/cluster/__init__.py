"""Cluster coordination for slacker servers.

Registers server instances in ZooKeeper, advertises per-namespace
availability through ephemeral nodes and runs one leader election per
exposed namespace.

Example:
    from slacker.cluster import ClusterDescriptor, ClusterLifecycle

    lifecycle = ClusterLifecycle(request_server)
    handle = lifecycle.start(
        ["slacker.example.api"],
        2104,
        cluster=ClusterDescriptor(name="example-cluster", coordination_address="127.0.0.1:2181"),
    )
    ...
    lifecycle.stop(handle)
"""

from slacker.cluster.addresses import detect_local_address, first_address
from slacker.cluster.coordination import CoordinationConnection, Election
from slacker.cluster.election import LeaderElectionHandle, LeaderElectionManager
from slacker.cluster.errors import (
    ClusterError,
    ConnectivityError,
    ElectionError,
    NodeAlreadyExistsError,
    NodeConflictError,
    NodeMissingError,
)
from slacker.cluster.lifecycle import ClusterLifecycle, RequestServer
from slacker.cluster.models import (
    ClusterDescriptor,
    ClusterHandle,
    EphemeralNode,
    FunctionDescriptor,
    PublicationRecord,
)
from slacker.cluster.paths import ClusterPaths, ParsedPath, path_for, zk_path
from slacker.cluster.publisher import ClusterPublisher
from slacker.cluster.server_data import get_server_data, set_server_data
from slacker.cluster.zookeeper import ZooKeeperConnection

__all__ = [
    "ClusterDescriptor",
    "ClusterError",
    "ClusterHandle",
    "ClusterLifecycle",
    "ClusterPaths",
    "ClusterPublisher",
    "ConnectivityError",
    "CoordinationConnection",
    "Election",
    "ElectionError",
    "EphemeralNode",
    "FunctionDescriptor",
    "LeaderElectionHandle",
    "LeaderElectionManager",
    "NodeAlreadyExistsError",
    "NodeConflictError",
    "NodeMissingError",
    "ParsedPath",
    "PublicationRecord",
    "RequestServer",
    "ZooKeeperConnection",
    "detect_local_address",
    "first_address",
    "get_server_data",
    "path_for",
    "set_server_data",
    "zk_path",
]
