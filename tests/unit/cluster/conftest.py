"""In-memory coordination store and request server doubles."""

from __future__ import annotations

import threading
from collections.abc import Callable, Mapping
from typing import Any

import pytest

from slacker.cluster.coordination import CoordinationConnection, Election, ErrorHandler
from slacker.cluster.errors import NodeAlreadyExistsError, NodeMissingError
from slacker.cluster.lifecycle import ClusterLifecycle, RequestServer
from slacker.cluster.models import ClusterDescriptor, EphemeralNode
from slacker.config import Settings

SERVER_ID = "10.0.0.5:11000"


class InMemoryStore:
    """Node tree shared by every connection of a test."""

    def __init__(self) -> None:
        self.nodes: dict[str, bytes] = {}
        self.owners: dict[str, InMemoryConnection] = {}
        self._mutexes: dict[str, threading.Lock] = {}
        self._lock = threading.Lock()

    def mutex(self, path: str) -> threading.Lock:
        with self._lock:
            return self._mutexes.setdefault(path, threading.Lock())

    def is_ephemeral(self, path: str) -> bool:
        return path in self.owners


class InMemoryElection(Election):
    """Election backed by one process-wide lock per mutex path."""

    def __init__(self, store: InMemoryStore, mutex_path: str, identifier: str | None):
        self.mutex_path = mutex_path
        self.identifier = identifier
        self._store = store
        self._cancelled = threading.Event()

    def run(self, func: Callable[..., Any], *args: Any) -> None:
        mutex = self._store.mutex(self.mutex_path)
        while not self._cancelled.is_set():
            if mutex.acquire(timeout=0.01):
                try:
                    func(*args)
                finally:
                    mutex.release()
                return

    def cancel(self) -> None:
        self._cancelled.set()


class InMemoryConnection(CoordinationConnection):
    """Session on an ``InMemoryStore`` recording every call."""

    def __init__(
        self,
        store: InMemoryStore,
        session_timeout: float = 0.5,
        events: list[str] | None = None,
    ) -> None:
        self.store = store
        self.session_timeout = session_timeout
        self.events = events if events is not None else []
        self.handlers: list[ErrorHandler] = []
        self.closed = False

    def emit(self, state: str) -> None:
        for handler in self.handlers:
            handler(state)

    def register_error_handler(self, handler: ErrorHandler) -> None:
        self.handlers.append(handler)

    def close(self) -> None:
        self.events.append("close")
        for path, owner in list(self.store.owners.items()):
            if owner is self:
                self.store.nodes.pop(path, None)
                del self.store.owners[path]
        self.closed = True

    def exists(self, path: str) -> bool:
        return path in self.store.nodes

    def create_node(self, path: str, persistent: bool = True, data: bytes | None = None) -> str:
        self.events.append(f"create {path}")
        if path in self.store.nodes:
            raise NodeAlreadyExistsError(path)
        parts = path.strip("/").split("/")
        for i in range(1, len(parts)):
            self.store.nodes.setdefault("/" + "/".join(parts[:i]), b"")
        self.store.nodes[path] = data or b""
        if not persistent:
            self.store.owners[path] = self
        return path

    def delete_node(self, path: str) -> None:
        self.events.append(f"delete {path}")
        if path not in self.store.nodes:
            raise NodeMissingError(path)
        del self.store.nodes[path]
        self.store.owners.pop(path, None)

    def delete_ephemeral_node(self, node: EphemeralNode) -> None:
        self.events.append(f"delete-ephemeral {node.path}")
        self.store.nodes.pop(node.path, None)
        self.store.owners.pop(node.path, None)

    def set_data(self, path: str, data: bytes) -> None:
        if path not in self.store.nodes:
            raise NodeMissingError(path)
        self.store.nodes[path] = data

    def get_data(self, path: str) -> bytes | None:
        return self.store.nodes.get(path)

    def election(self, mutex_path: str, identifier: str | None = None) -> InMemoryElection:
        self.events.append(f"election {mutex_path}")
        return InMemoryElection(self.store, mutex_path, identifier)


class FakeRequestServer(RequestServer):
    """Request server exposing fixed functions per namespace."""

    def __init__(self, functions: Mapping[str, Mapping[str, Any]], events: list[str]) -> None:
        self.functions = functions
        self.events = events
        self.started: list[tuple[list[str], int, dict[str, Any]]] = []

    def start(self, namespaces: list[str], port: int, **options: Any) -> str:
        self.events.append("server-start")
        self.started.append((namespaces, port, options))
        return f"server:{port}"

    def stop(self, server: Any) -> None:
        self.events.append("server-stop")

    def introspect(self, namespace: str) -> Mapping[str, Any]:
        return self.functions.get(namespace, {})


def _echo(*args: Any) -> Any:
    """Echo the arguments back."""
    return args


def _timestamp() -> int:
    """Current server time in milliseconds."""
    return 0


@pytest.fixture
def events() -> list[str]:
    """Shared call log of the connection, request server and sleep."""
    return []


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def make_connection(store: InMemoryStore) -> Callable[..., InMemoryConnection]:
    """Factory for additional sessions on the shared store."""

    def factory(**kwargs: Any) -> InMemoryConnection:
        return InMemoryConnection(store, **kwargs)

    return factory


@pytest.fixture
def connection(store: InMemoryStore, events: list[str]) -> InMemoryConnection:
    return InMemoryConnection(store, session_timeout=0.5, events=events)


@pytest.fixture
def descriptor() -> ClusterDescriptor:
    return ClusterDescriptor(
        name="example-cluster",
        coordination_address="127.0.0.1:2181",
        node_override=SERVER_ID,
    )


@pytest.fixture
def request_server(events: list[str]) -> FakeRequestServer:
    return FakeRequestServer(
        {
            "api": {"api/echo": _echo, "api/timestamp": _timestamp},
            "api2": {"api2/echo2": {"name": "echo2", "doc": None, "arglists": [["&", "args"]]}},
        },
        events,
    )


@pytest.fixture
def cluster_settings() -> Settings:
    return Settings(zk_session_timeout=500, election_stop_timeout=2.0)


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def lifecycle(
    request_server: FakeRequestServer,
    connection: InMemoryConnection,
    cluster_settings: Settings,
    events: list[str],
    sleeps: list[float],
) -> ClusterLifecycle:
    """Lifecycle wired to the in-memory store with a recording sleep."""

    def connect(addresses: str, session_timeout: float, connect_timeout: float) -> InMemoryConnection:
        events.append(f"connect {addresses}")
        connection.session_timeout = session_timeout
        return connection

    def sleep(seconds: float) -> None:
        events.append(f"sleep {seconds}")
        sleeps.append(seconds)

    return ClusterLifecycle(request_server, settings=cluster_settings, connect=connect, sleep=sleep)
