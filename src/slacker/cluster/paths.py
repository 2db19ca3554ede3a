"""Node path schema for cluster coordination.

Path format (``{root}`` defaults to ``/slacker/cluster/``):

- ``{root}{cluster}/servers/{server_id}``
- ``{root}{cluster}/namespaces/{ns}/{server_id}``
- ``{root}{cluster}/namespaces/{ns}/_leader``
- ``{root}{cluster}/namespaces/{ns}/_leader/mutex``
- ``{root}{cluster}/functions/{function_name}``

Where:
- server_id: ``{advertised_host}:{port}`` of one server instance
- ns: an exposed namespace name
- _leader: data node holding the server_id of the current leader
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

DEFAULT_ROOT = "/slacker/cluster/"

SERVERS = "servers"
NAMESPACES = "namespaces"
FUNCTIONS = "functions"
LEADER = "_leader"
MUTEX = "mutex"

PathKind = Literal["servers", "namespaces", "functions"]
ParsedKind = Literal["cluster", "servers", "server", "namespace", "presence", "leader", "mutex", "function"]


def zk_path(*segments: str) -> str:
    """Join segments into one absolute path.

    Leading and trailing slashes of each segment are dropped so roots
    given with or without a trailing slash produce the same path.
    """
    parts = [s.strip("/") for s in segments]
    return "/" + "/".join(p for p in parts if p)


def path_for(root: str, cluster_name: str, kind: PathKind, *args: str) -> str:
    """Path of an entity of ``kind`` inside a cluster."""
    return zk_path(root, cluster_name, kind, *args)


@dataclass(frozen=True)
class ParsedPath:
    """Explicit segments of a cluster path."""

    kind: ParsedKind
    namespace: str | None = None
    server_id: str | None = None
    function_name: str | None = None


class ClusterPaths:
    """Path generator bound to one cluster root."""

    def __init__(self, cluster_name: str, root: str = DEFAULT_ROOT) -> None:
        self.cluster_name = cluster_name
        self.root = root
        self._base = zk_path(root, cluster_name)

    @property
    def base(self) -> str:
        """Path of the cluster node itself."""
        return self._base

    def servers(self) -> str:
        """Container of server presence nodes."""
        return path_for(self.root, self.cluster_name, SERVERS)

    def server(self, server_id: str) -> str:
        """Presence node of one server."""
        return path_for(self.root, self.cluster_name, SERVERS, server_id)

    def namespace(self, ns: str) -> str:
        """Container of one namespace."""
        return path_for(self.root, self.cluster_name, NAMESPACES, ns)

    def namespace_server(self, ns: str, server_id: str) -> str:
        """Presence node of a server within a namespace."""
        return path_for(self.root, self.cluster_name, NAMESPACES, ns, server_id)

    def leader(self, ns: str) -> str:
        """Data node holding the current leader of a namespace."""
        return path_for(self.root, self.cluster_name, NAMESPACES, ns, LEADER)

    def leader_mutex(self, ns: str) -> str:
        """Election mutex of a namespace."""
        return path_for(self.root, self.cluster_name, NAMESPACES, ns, LEADER, MUTEX)

    def function(self, function_name: str) -> str:
        """Metadata node of a published function."""
        return path_for(self.root, self.cluster_name, FUNCTIONS, function_name)

    def parse(self, path: str) -> ParsedPath | None:
        """Parse a path of this cluster into its segments.

        Returns None if the path is outside the cluster or doesn't
        match the schema.
        """
        normalized = zk_path(path)
        if normalized == self._base:
            return ParsedPath(kind="cluster")
        prefix = self._base + "/"
        if not normalized.startswith(prefix):
            return None

        parts = normalized[len(prefix):].split("/")
        head, rest = parts[0], parts[1:]

        if head == SERVERS:
            if not rest:
                return ParsedPath(kind="servers")
            return ParsedPath(kind="server", server_id="/".join(rest))

        if head == FUNCTIONS and rest:
            return ParsedPath(kind="function", function_name="/".join(rest))

        if head == NAMESPACES and rest:
            if rest[-2:] == [LEADER, MUTEX] and len(rest) > 2:
                return ParsedPath(kind="mutex", namespace="/".join(rest[:-2]))
            if len(rest) == 1:
                return ParsedPath(kind="namespace", namespace=rest[0])
            if rest[-1] == LEADER:
                return ParsedPath(kind="leader", namespace="/".join(rest[:-1]))
            return ParsedPath(
                kind="presence",
                namespace="/".join(rest[:-1]),
                server_id=rest[-1],
            )

        return None

    def namespace_of(self, path: str) -> str | None:
        """Namespace segment of a path, or None for non-namespace paths."""
        parsed = self.parse(path)
        return parsed.namespace if parsed else None
