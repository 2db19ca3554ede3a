"""Server data stored on a server's presence node.

Clients watching ``servers/{server_id}`` see updates as node data
changes; notification is the coordination store's job.
"""

from __future__ import annotations

import logging
from typing import Any

from slacker.cluster.coordination import CoordinationConnection
from slacker.cluster.models import PublicationRecord
from slacker.core.canonicalize import canonical_bytes, from_bytes

logger = logging.getLogger(__name__)


def set_server_data(connection: CoordinationConnection, record: PublicationRecord, data: Any) -> None:
    """Replace the server data of a published server.

    The new value is also kept on the record so a later re-publish
    registers it instead of the value given at startup.

    Raises:
        NodeMissingError: If the server node is not currently published
    """
    payload = canonical_bytes(data)
    connection.set_data(record.server_node_path, payload)
    record.server_node.data = payload
    logger.debug(f"Updated server data at {record.server_node_path}")


def get_server_data(connection: CoordinationConnection, record: PublicationRecord) -> Any | None:
    """Current server data, or None if the node is missing or empty."""
    return from_bytes(connection.get_data(record.server_node_path))
