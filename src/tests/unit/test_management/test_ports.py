"""Tests for port allocation."""

import socket
from unittest.mock import patch

import pytest

from cliproxy_supervisor.exceptions import PortAllocationError
from cliproxy_supervisor.management.ports import allocate_port, is_port_available


def _free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("", 0))
        return sock.getsockname()[1]


class TestIsPortAvailable:
    """Test cases for is_port_available."""

    def test_free_port(self):
        assert is_port_available(_free_port()) is True

    def test_busy_port(self):
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as holder:
            holder.bind(("", 0))
            holder.listen(1)
            assert is_port_available(holder.getsockname()[1]) is False

    @pytest.mark.parametrize("port", [0, -1, 65536])
    def test_out_of_range(self, port):
        assert is_port_available(port) is False


class TestAllocatePort:
    """Test cases for allocate_port."""

    @pytest.mark.asyncio
    async def test_preferred_port_used_when_free(self):
        preferred = _free_port()
        assert await allocate_port(preferred) == preferred

    @pytest.mark.asyncio
    async def test_busy_preferred_port_falls_back(self):
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as holder:
            holder.bind(("", 0))
            holder.listen(1)
            busy = holder.getsockname()[1]

            port = await allocate_port(busy)

        assert port != busy
        assert 1 <= port <= 65535

    @pytest.mark.asyncio
    @pytest.mark.parametrize("preferred", [None, 0])
    async def test_no_preference_gives_ephemeral_port(self, preferred):
        port = await allocate_port(preferred)
        assert 1 <= port <= 65535
        assert is_port_available(port) is True

    @pytest.mark.asyncio
    async def test_bind_failure_raises(self):
        with patch(
            "cliproxy_supervisor.management.ports._bind_probe",
            side_effect=OSError("no sockets"),
        ):
            with pytest.raises(PortAllocationError) as exc_info:
                await allocate_port(8317)

        assert exc_info.value.preferred == 8317
        assert "no sockets" in str(exc_info.value)
