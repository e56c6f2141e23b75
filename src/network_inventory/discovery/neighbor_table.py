"""
Neighbor (ARP cache) table snapshot.

Reads the local IP -> MAC resolution table once per scan. This is cheap
and also yields MACs for hosts that ignore ICMP but have recently talked
on the segment.

Sources, in order of preference:
- /proc/net/arp (Linux, no subprocess)
- `arp -an` (Linux/macOS) or `arp -a` (Windows)
"""

from __future__ import annotations

import asyncio
import logging
import re
import sys
from pathlib import Path
from types import MappingProxyType
from typing import Mapping, Optional

from .._types import NOT_AVAILABLE

logger = logging.getLogger(__name__)

PROC_ARP_PATH = Path("/proc/net/arp")

# Linux:  ? (192.168.1.1) at aa:bb:cc:dd:ee:ff [ether] on eth0
# macOS:  gateway (192.168.88.1) at 0:50:56:c0:0:8 on en0 ifscope [ethernet]
UNIX_ARP_PATTERN = re.compile(
    r"(?:(\S+)\s+)?\((\d+\.\d+\.\d+\.\d+)\)\s+at\s+([0-9a-fA-F:]+)"
)
# Windows:  192.168.1.1           aa-bb-cc-dd-ee-ff     dynamic
WINDOWS_ARP_PATTERN = re.compile(
    r"^\s*(\d+\.\d+\.\d+\.\d+)\s+([0-9a-fA-F]{2}(?:-[0-9a-fA-F]{2}){5})\s+\w+"
)

IGNORED_MACS = frozenset({"00:00:00:00:00:00", "ff:ff:ff:ff:ff:ff"})


def normalize_mac(mac_address: str) -> Optional[str]:
    """
    Normalize a MAC to lower-case, colon separated, zero padded octets.

    macOS prints octets without leading zeros ("0:50:56:c0:0:8").
    Returns None for anything that is not six octets.
    """
    parts = re.split(r"[:\-]", mac_address.strip())
    if len(parts) != 6:
        return None
    octets = []
    for part in parts:
        if not re.fullmatch(r"[0-9a-fA-F]{1,2}", part):
            return None
        octets.append(part.lower().zfill(2))
    return ":".join(octets)


def parse_arp_line(line: str) -> Optional[tuple[str, str]]:
    """Parse one line of `arp` output into (ip, mac)."""
    match = UNIX_ARP_PATTERN.search(line)
    if match:
        ip_address, raw_mac = match.group(2), match.group(3)
    else:
        match = WINDOWS_ARP_PATTERN.match(line)
        if not match:
            return None
        ip_address, raw_mac = match.group(1), match.group(2)

    mac_address = normalize_mac(raw_mac)
    if mac_address is None or mac_address in IGNORED_MACS:
        return None
    return ip_address, mac_address


def parse_proc_arp(text: str) -> dict[str, str]:
    """
    Parse /proc/net/arp.

    IP address       HW type     Flags       HW address            Mask     Device
    192.168.1.1      0x1         0x2         aa:bb:cc:dd:ee:ff     *        eth0
    """
    entries: dict[str, str] = {}
    for line in text.splitlines()[1:]:
        parts = line.split()
        if len(parts) < 4:
            continue
        # Flags 0x0 marks an incomplete entry
        if parts[2] == "0x0":
            continue
        mac_address = normalize_mac(parts[3])
        if mac_address and mac_address not in IGNORED_MACS:
            entries[parts[0]] = mac_address
    return entries


class NeighborTable:
    """
    Point-in-time snapshot of the local neighbor table.

    Call snapshot() once before probing begins. The table is not refreshed
    mid-scan.
    """

    def __init__(self, entries: Optional[Mapping[str, str]] = None):
        self._entries: Mapping[str, str] = MappingProxyType(dict(entries or {}))

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, ip_address: object) -> bool:
        return ip_address in self._entries

    @property
    def entries(self) -> Mapping[str, str]:
        return self._entries

    def lookup(self, ip_address: str) -> str:
        """Return the cached MAC for an IP, or "-"."""
        return self._entries.get(ip_address, NOT_AVAILABLE)

    async def snapshot(self) -> int:
        """
        Capture the current neighbor table, replacing any previous snapshot.

        Failure to read the table leaves it empty; the scan continues
        without MAC data. Returns the number of entries captured.
        """
        entries: dict[str, str] = {}
        try:
            if PROC_ARP_PATH.exists():
                entries = parse_proc_arp(PROC_ARP_PATH.read_text())
            if not entries:
                entries = await self._read_arp_command()
        except Exception as e:
            logger.warning(f"Could not read neighbor table: {e}")
            entries = {}

        self._entries = MappingProxyType(entries)
        logger.info(f"Neighbor table snapshot: {len(entries)} entries")
        return len(entries)

    async def _read_arp_command(self) -> dict[str, str]:
        cmd = ["arp", "-a"] if sys.platform == "win32" else ["arp", "-an"]
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError:
            logger.warning("arp command not available")
            return {}

        stdout, stderr = await process.communicate()
        if process.returncode != 0:
            logger.warning(f"arp command failed: {stderr.decode(errors='replace')}")
            return {}

        entries: dict[str, str] = {}
        for line in stdout.decode(errors="replace").splitlines():
            if not line.strip():
                continue
            parsed = parse_arp_line(line)
            if parsed:
                ip_address, mac_address = parsed
                entries[ip_address] = mac_address
        return entries
