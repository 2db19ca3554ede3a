"""Data model of a published cluster member.

A ``ClusterHandle`` is returned from ``ClusterLifecycle.start`` and owns
everything created for one server run: the request server handle, the
coordination connection and the ``PublicationRecord`` listing the
ephemeral nodes and elections to tear down on stop.
"""

from __future__ import annotations

import inspect
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import orjson

from slacker.cluster.paths import DEFAULT_ROOT

if TYPE_CHECKING:
    from slacker.cluster.coordination import CoordinationConnection
    from slacker.cluster.election import LeaderElectionHandle
    from slacker.config import Settings


@dataclass(frozen=True)
class ClusterDescriptor:
    """Which cluster a server joins and how to reach its store."""

    name: str
    coordination_address: str  # comma-separated host:port list
    root_path: str = DEFAULT_ROOT
    node_override: str | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> ClusterDescriptor | None:
        """Build a descriptor from settings; None when no cluster is configured."""
        if not settings.cluster_name:
            return None
        return cls(
            name=settings.cluster_name,
            coordination_address=settings.zk_address,
            root_path=settings.zk_root,
            node_override=settings.node,
        )


@dataclass(frozen=True)
class FunctionDescriptor:
    """Metadata published once per function name, cluster-wide."""

    name: str
    doc: str | None = None
    parameter_lists: list[list[str]] = field(default_factory=list)

    def to_bytes(self) -> bytes:
        """Serialize to JSON bytes."""
        return orjson.dumps(
            {
                "name": self.name,
                "doc": self.doc,
                "parameter_lists": self.parameter_lists,
            }
        )

    @classmethod
    def from_bytes(cls, data: bytes) -> FunctionDescriptor:
        """Deserialize from JSON bytes."""
        parsed = orjson.loads(data)
        return cls(
            name=parsed["name"],
            doc=parsed.get("doc"),
            parameter_lists=parsed.get("parameter_lists") or [],
        )

    @classmethod
    def from_callable(cls, name: str, func: Any) -> FunctionDescriptor:
        """Describe a Python callable by its docstring and signature."""
        try:
            signature = inspect.signature(func)
        except (TypeError, ValueError):
            parameter_lists: list[list[str]] = []
        else:
            parameter_lists = [[str(p) for p in signature.parameters.values()]]
        return cls(name=name, doc=inspect.getdoc(func), parameter_lists=parameter_lists)

    @classmethod
    def coerce(cls, name: str, metadata: Any) -> FunctionDescriptor:
        """Normalize introspection output for one function.

        Accepts a descriptor, a mapping with ``name``/``doc`` and
        ``parameter_lists`` (or ``arglists``) keys, or the callable itself.
        """
        if isinstance(metadata, FunctionDescriptor):
            return metadata
        if isinstance(metadata, Mapping):
            parameter_lists = metadata.get("parameter_lists", metadata.get("arglists")) or []
            return cls(
                name=metadata.get("name") or name,
                doc=metadata.get("doc"),
                parameter_lists=[list(p) for p in parameter_lists],
            )
        if callable(metadata):
            return cls.from_callable(name, metadata)
        raise TypeError(f"Unsupported metadata for function {name!r}: {type(metadata).__name__}")


@dataclass
class EphemeralNode:
    """Handle of a session-bound presence node."""

    path: str
    data: bytes | None = None
    deleted: bool = False


@dataclass
class PublicationRecord:
    """Everything ``ClusterPublisher.publish`` registered for one server.

    ``ephemeral_nodes[i]`` and ``leader_elections[i]`` belong to
    ``namespaces[i]``. The last ephemeral node is the server presence
    node and has no election.
    """

    server_id: str
    server_node_path: str
    namespaces: list[str]
    ephemeral_nodes: list[EphemeralNode]
    leader_elections: list[LeaderElectionHandle]

    @property
    def server_node(self) -> EphemeralNode:
        """Presence node under ``servers/``."""
        return self.ephemeral_nodes[-1]


@dataclass
class ClusterHandle:
    """Aggregate returned to the caller of ``ClusterLifecycle.start``."""

    server: Any
    namespaces: list[str]
    port: int
    connection: CoordinationConnection | None = None
    descriptor: ClusterDescriptor | None = None
    publication: PublicationRecord | None = None
    stopped: bool = False

    @property
    def server_id(self) -> str | None:
        """Advertised ``host:port`` of this server, if published."""
        return self.publication.server_id if self.publication else None
