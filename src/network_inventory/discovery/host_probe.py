"""
Per-host reachability and service exposure probe.

One ICMP echo (via the system `ping`, so no raw-socket privileges are
needed) decides reachability and supplies the reply TTL. Reachable hosts
then get a short TCP connect attempt on every port of the active profile.
"""

from __future__ import annotations

import asyncio
import logging
import math
import re
import socket
import sys
from typing import Optional

from .._types import NOT_AVAILABLE, OSFamily, PortProfile, ProbeResult

logger = logging.getLogger(__name__)

TTL_PATTERN = re.compile(r"ttl[=:]\s*(\d+)", re.IGNORECASE)

# TTL heuristics: Unix-likes start at 64, Windows at 128.
UNIX_TTL_MAX = 65
WINDOWS_TTL_MIN = 120

DEFAULT_PING_TIMEOUT = 1.0
DEFAULT_CONNECT_TIMEOUT = 0.15
DEFAULT_DNS_TIMEOUT = 2.0


def os_hint_from_ttl(ttl: Optional[int]) -> OSFamily:
    """Guess the OS family from an echo reply TTL."""
    if ttl is None:
        return OSFamily.UNKNOWN
    if ttl <= UNIX_TTL_MAX:
        return OSFamily.UNIX
    if ttl >= WINDOWS_TTL_MIN:
        return OSFamily.WINDOWS
    return OSFamily.UNKNOWN


def parse_ping_output(output: str) -> Optional[int]:
    """
    Extract the TTL from ping output.

    Returns None when there was no echo reply. Windows ping exits 0 on
    "Destination host unreachable" replies, so the TTL is what counts.
    """
    if "unreachable" in output.lower():
        return None
    match = TTL_PATTERN.search(output)
    if not match:
        return None
    return int(match.group(1))


def build_ping_command(ip_address: str, timeout: float) -> list[str]:
    """Single-echo ping command for the current platform."""
    timeout_ms = max(1, int(timeout * 1000))
    if sys.platform == "win32":
        return ["ping", "-n", "1", "-w", str(timeout_ms), ip_address]
    if sys.platform == "darwin":
        return ["ping", "-c", "1", "-W", str(timeout_ms), ip_address]
    return ["ping", "-c", "1", "-W", str(max(1, math.ceil(timeout))), ip_address]


class HostProbe:
    """
    Probe one address for reachability, open ports and an OS hint.

    Holds no shared state; safe to use from concurrent tasks.
    """

    def __init__(
        self,
        ping_timeout: float = DEFAULT_PING_TIMEOUT,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        dns_timeout: float = DEFAULT_DNS_TIMEOUT,
    ):
        """
        Initialize the probe.

        Args:
            ping_timeout: ICMP echo timeout in seconds (single attempt)
            connect_timeout: Per-port TCP connect timeout in seconds
            dns_timeout: Reverse lookup timeout in seconds
        """
        self.ping_timeout = ping_timeout
        self.connect_timeout = connect_timeout
        self.dns_timeout = dns_timeout

    async def probe(self, ip_address: str, profile: PortProfile) -> ProbeResult:
        """
        Probe a single address.

        Unreachable hosts short-circuit: no ports are tried and no OS
        hint is given.
        """
        ttl = await self.ping(ip_address)
        if ttl is None:
            return ProbeResult.unreachable()

        open_ports = await self.scan_ports(ip_address, profile.sorted_ports())
        return ProbeResult(
            reachable=True,
            open_ports=frozenset(open_ports),
            os_hint=os_hint_from_ttl(ttl),
            ttl=ttl,
        )

    async def ping(self, ip_address: str) -> Optional[int]:
        """Send one echo request. Returns the reply TTL or None."""
        cmd = build_ping_command(ip_address, self.ping_timeout)
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except (FileNotFoundError, PermissionError) as e:
            logger.warning(f"ping unavailable: {e}")
            return None

        try:
            stdout, _ = await asyncio.wait_for(
                process.communicate(),
                timeout=self.ping_timeout + 2.0,
            )
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            logger.debug(f"ping {ip_address} timed out")
            return None

        if process.returncode != 0:
            return None
        return parse_ping_output(stdout.decode(errors="replace"))

    async def scan_ports(self, ip_address: str, ports: list[int]) -> list[int]:
        """Try every port in order; never stops early."""
        open_ports = []
        for port in ports:
            if await self.check_port(ip_address, port):
                open_ports.append(port)
        return open_ports

    async def check_port(self, ip_address: str, port: int) -> bool:
        """Return True if a TCP connect succeeds within the timeout."""
        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(ip_address, port),
                timeout=self.connect_timeout,
            )
        except (asyncio.TimeoutError, OSError):
            return False

        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass
        return True

    async def resolve_hostname(self, ip_address: str) -> str:
        """Reverse DNS lookup. Returns "-" on any failure."""
        loop = asyncio.get_running_loop()
        try:
            hostname, _, _ = await asyncio.wait_for(
                loop.run_in_executor(None, socket.gethostbyaddr, ip_address),
                timeout=self.dns_timeout,
            )
        except (asyncio.TimeoutError, OSError) as e:
            logger.debug(f"Reverse lookup failed for {ip_address}: {e}")
            return NOT_AVAILABLE
        return hostname or NOT_AVAILABLE
