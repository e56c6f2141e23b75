"""Tests for the per-host probe."""

import asyncio
import socket

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from network_inventory._types import OSFamily, PortProfile
from network_inventory.discovery import host_probe
from network_inventory.discovery.host_probe import (
    HostProbe,
    build_ping_command,
    os_hint_from_ttl,
    parse_ping_output,
)


LINUX_REPLY = """\
PING 192.168.1.1 (192.168.1.1) 56(84) bytes of data.
64 bytes from 192.168.1.1: icmp_seq=1 ttl=64 time=0.512 ms

--- 192.168.1.1 ping statistics ---
1 packets transmitted, 1 received, 0% packet loss, time 0ms
"""

WINDOWS_REPLY = """\
Pinging 192.168.1.10 with 32 bytes of data:
Reply from 192.168.1.10: bytes=32 time<1ms TTL=128
"""

WINDOWS_UNREACHABLE = """\
Pinging 192.168.1.99 with 32 bytes of data:
Reply from 192.168.1.5: Destination host unreachable.
"""


class TestTTLHeuristic:
    """Tests for the TTL-based OS hint."""

    @pytest.mark.parametrize("ttl,expected", [
        (64, OSFamily.UNIX),
        (65, OSFamily.UNIX),
        (30, OSFamily.UNIX),
        (128, OSFamily.WINDOWS),
        (120, OSFamily.WINDOWS),
        (255, OSFamily.WINDOWS),
        (100, OSFamily.UNKNOWN),
        (None, OSFamily.UNKNOWN),
    ])
    def test_thresholds(self, ttl, expected):
        assert os_hint_from_ttl(ttl) == expected


class TestParsePingOutput:
    """Tests for ping output parsing."""

    def test_linux_reply(self):
        assert parse_ping_output(LINUX_REPLY) == 64

    def test_windows_reply(self):
        assert parse_ping_output(WINDOWS_REPLY) == 128

    def test_windows_unreachable(self):
        """Windows reports unreachable with exit code 0; no TTL means no reply."""
        assert parse_ping_output(WINDOWS_UNREACHABLE) is None

    def test_no_reply(self):
        assert parse_ping_output("1 packets transmitted, 0 received") is None


class TestPingCommand:
    """Tests for platform ping commands."""

    def test_linux(self):
        with patch.object(host_probe.sys, "platform", "linux"):
            cmd = build_ping_command("10.0.0.1", 1.0)

        assert cmd == ["ping", "-c", "1", "-W", "1", "10.0.0.1"]

    def test_windows(self):
        with patch.object(host_probe.sys, "platform", "win32"):
            cmd = build_ping_command("10.0.0.1", 0.5)

        assert cmd == ["ping", "-n", "1", "-w", "500", "10.0.0.1"]

    def test_macos(self):
        with patch.object(host_probe.sys, "platform", "darwin"):
            cmd = build_ping_command("10.0.0.1", 1.0)

        assert cmd == ["ping", "-c", "1", "-W", "1000", "10.0.0.1"]


def _mock_process(stdout: bytes, returncode: int = 0):
    process = MagicMock()
    process.returncode = returncode
    process.communicate = AsyncMock(return_value=(stdout, b""))
    return process


class TestPing:
    """Tests for HostProbe.ping with a mocked subprocess."""

    @pytest.mark.asyncio
    async def test_reply_returns_ttl(self):
        with patch.object(
            host_probe.asyncio,
            "create_subprocess_exec",
            AsyncMock(return_value=_mock_process(LINUX_REPLY.encode())),
        ):
            ttl = await HostProbe().ping("192.168.1.1")

        assert ttl == 64

    @pytest.mark.asyncio
    async def test_nonzero_exit(self):
        with patch.object(
            host_probe.asyncio,
            "create_subprocess_exec",
            AsyncMock(return_value=_mock_process(b"", returncode=1)),
        ):
            ttl = await HostProbe().ping("192.168.1.99")

        assert ttl is None

    @pytest.mark.asyncio
    async def test_missing_ping_binary(self):
        with patch.object(
            host_probe.asyncio,
            "create_subprocess_exec",
            AsyncMock(side_effect=FileNotFoundError("ping")),
        ):
            ttl = await HostProbe().ping("192.168.1.1")

        assert ttl is None


class TestCheckPort:
    """Tests for TCP connect checks against a local listener."""

    @pytest.mark.asyncio
    async def test_open_port(self):
        async def handle(reader, writer):
            writer.close()

        server = await asyncio.start_server(handle, "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]
        try:
            assert await HostProbe(connect_timeout=1.0).check_port("127.0.0.1", port) is True
        finally:
            server.close()
            await server.wait_closed()

    @pytest.mark.asyncio
    async def test_closed_port(self):
        # Grab a free port, then release it so nothing listens there.
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.bind(("127.0.0.1", 0))
        port = sock.getsockname()[1]
        sock.close()

        assert await HostProbe(connect_timeout=1.0).check_port("127.0.0.1", port) is False

    @pytest.mark.asyncio
    async def test_timeout(self):
        async def never_connects(*args, **kwargs):
            await asyncio.sleep(10)

        with patch.object(host_probe.asyncio, "open_connection", never_connects):
            result = await HostProbe(connect_timeout=0.05).check_port("10.0.0.1", 80)

        assert result is False


class TestProbe:
    """Tests for the full probe sequence."""

    PROFILE = PortProfile("Test", frozenset({22, 80, 445, 9100}))

    @pytest.mark.asyncio
    async def test_unreachable_short_circuits(self):
        """No reply means no port checks and no OS hint."""
        probe = HostProbe()
        probe.ping = AsyncMock(return_value=None)
        probe.check_port = AsyncMock(return_value=True)

        result = await probe.probe("192.168.1.99", self.PROFILE)

        assert result.reachable is False
        assert result.open_ports == frozenset()
        assert result.os_hint == OSFamily.UNKNOWN
        probe.check_port.assert_not_called()

    @pytest.mark.asyncio
    async def test_all_ports_attempted(self):
        """Every port is tried even after failures."""
        probe = HostProbe()
        probe.ping = AsyncMock(return_value=128)
        probe.check_port = AsyncMock(side_effect=lambda ip, port: port in (80, 9100))

        result = await probe.probe("192.168.1.10", self.PROFILE)

        assert result.reachable is True
        assert result.open_ports == frozenset({80, 9100})
        assert result.os_hint == OSFamily.WINDOWS
        assert result.ttl == 128
        assert probe.check_port.call_count == 4
        tried = [call.args[1] for call in probe.check_port.call_args_list]
        assert tried == [22, 80, 445, 9100]


class TestResolveHostname:
    """Tests for reverse DNS."""

    @pytest.mark.asyncio
    async def test_resolved(self):
        with patch.object(
            host_probe.socket,
            "gethostbyaddr",
            return_value=("printer.lan", [], ["192.168.1.20"]),
        ):
            hostname = await HostProbe().resolve_hostname("192.168.1.20")

        assert hostname == "printer.lan"

    @pytest.mark.asyncio
    async def test_lookup_failure(self):
        with patch.object(
            host_probe.socket,
            "gethostbyaddr",
            side_effect=socket.herror(1, "Unknown host"),
        ):
            hostname = await HostProbe().resolve_hostname("192.168.1.21")

        assert hostname == "-"
