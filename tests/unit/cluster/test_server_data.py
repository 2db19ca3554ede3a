"""Tests for server data on the presence node."""

import pytest

from slacker.cluster.errors import NodeMissingError
from slacker.cluster.models import EphemeralNode, PublicationRecord
from slacker.cluster.server_data import get_server_data, set_server_data

SERVER_PATH = "/slacker/cluster/example-cluster/servers/10.0.0.5:11000"


@pytest.fixture
def record(connection) -> PublicationRecord:
    node = connection.create_ephemeral_node(SERVER_PATH, b'{"label":"example"}')
    return PublicationRecord(
        server_id="10.0.0.5:11000",
        server_node_path=SERVER_PATH,
        namespaces=[],
        ephemeral_nodes=[node],
        leader_elections=[],
    )


class TestServerData:
    """Test reading and writing server data."""

    def test_get(self, connection, record: PublicationRecord) -> None:
        """Stored data is decoded."""
        assert get_server_data(connection, record) == {"label": "example"}

    def test_set(self, connection, record: PublicationRecord) -> None:
        """New data replaces the node data and is kept on the handle."""
        set_server_data(connection, record, {"label": "new", "weight": 2})
        assert get_server_data(connection, record) == {"label": "new", "weight": 2}
        assert record.server_node.data == connection.get_data(SERVER_PATH)

    def test_get_missing_node(self, connection) -> None:
        """A missing node reads as None."""
        record = PublicationRecord(
            server_id="h:1",
            server_node_path="/nowhere",
            namespaces=[],
            ephemeral_nodes=[EphemeralNode(path="/nowhere")],
            leader_elections=[],
        )
        assert get_server_data(connection, record) is None

    def test_set_missing_node(self, connection) -> None:
        """Writing to an unpublished server fails."""
        record = PublicationRecord(
            server_id="h:1",
            server_node_path="/nowhere",
            namespaces=[],
            ephemeral_nodes=[EphemeralNode(path="/nowhere")],
            leader_elections=[],
        )
        with pytest.raises(NodeMissingError):
            set_server_data(connection, record, {"x": 1})
