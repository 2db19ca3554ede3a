"""Tests for advertised address detection."""

import socket
from collections.abc import Iterator

import pytest

from slacker.cluster.addresses import (
    DEFAULT_ZK_PORT,
    detect_local_address,
    first_address,
    split_host_port,
)
from slacker.cluster.errors import ConnectivityError


class TestAddressParsing:
    """Test coordination address parsing."""

    def test_first_address(self) -> None:
        """Only the first failover address is used."""
        assert first_address("zk1:2181,zk2:2181,zk3:2181") == "zk1:2181"

    def test_first_address_single(self) -> None:
        """A single address is returned as is."""
        assert first_address(" zk1:2181 ") == "zk1:2181"

    def test_split_host_port(self) -> None:
        """Host and port are split."""
        assert split_host_port("10.0.0.1:2182") == ("10.0.0.1", 2182)

    def test_split_default_port(self) -> None:
        """Missing port falls back to the ZooKeeper default."""
        assert split_host_port("zk1") == ("zk1", DEFAULT_ZK_PORT)

    def test_split_ignores_chroot(self) -> None:
        """Chroot suffix is dropped."""
        assert split_host_port("zk1:2181/apps") == ("zk1", 2181)

    def test_split_bracketed_ipv6(self) -> None:
        """Brackets around an IPv6 host are removed."""
        assert split_host_port("[::1]:2182") == ("::1", 2182)
        assert split_host_port("[fe80::1]") == ("fe80::1", DEFAULT_ZK_PORT)
        assert split_host_port("[::1]:2181/apps") == ("::1", 2181)

    def test_invalid_port(self) -> None:
        """Non-numeric port is a connectivity error."""
        with pytest.raises(ConnectivityError):
            split_host_port("zk1:abc")


class TestDetectLocalAddress:
    """Test probing the local interface address."""

    @pytest.fixture
    def listener(self) -> Iterator[int]:
        """Local TCP listener; yields its port."""
        server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        server.bind(("127.0.0.1", 0))
        server.listen(1)
        try:
            yield server.getsockname()[1]
        finally:
            server.close()

    def test_detects_loopback(self, listener: int) -> None:
        """Probing a loopback listener reports the loopback address."""
        assert detect_local_address(f"127.0.0.1:{listener},10.255.255.1:2181") == "127.0.0.1"

    def test_unreachable_raises(self) -> None:
        """A refused connection raises ConnectivityError."""
        probe = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        probe.bind(("127.0.0.1", 0))
        port = probe.getsockname()[1]
        probe.close()

        with pytest.raises(ConnectivityError) as exc_info:
            detect_local_address(f"127.0.0.1:{port}", timeout=1.0)
        assert exc_info.value.address == f"127.0.0.1:{port}"
        assert isinstance(exc_info.value, ConnectionError)
