"""
Type definitions for the network inventory engine.

These dataclasses define the domain model for a single discovery pass:
what gets probed (AddressRange, PortProfile), what comes back per host
(DeviceRecord, HardwareInfo), and the mutable state of one pass (ScanJob).
"""

from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, Sequence


# Placeholder for any field that could not be collected.
NOT_AVAILABLE = "-"
UNKNOWN_VENDOR = "Unknown"


def now_utc() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(timezone.utc)


class ReachStatus(str, Enum):
    """Result of the ICMP reachability check."""
    OK = "OK"
    UNREACHABLE = "Unreachable"


class OSFamily(str, Enum):
    """Operating system family guessed from the echo reply TTL."""
    UNIX = "Unix/Linux"
    WINDOWS = "Windows"
    UNKNOWN = "Unknown"


class DeviceCategory(str, Enum):
    """Device categories assigned by the classifier."""
    PRINTER = "Printer"
    VOIP_PHONE = "VoIP Phone"
    SMARTPHONE_OR_TABLET = "Smartphone/Tablet"
    SMART_TV_OR_ANDROID = "Smart TV/Android"
    RTSP_CAMERA = "RTSP Camera"
    WINDOWS_PC = "Windows PC"
    LINUX_DEVICE = "Linux Device"
    OFFLINE_DEVICE = "Offline Device"
    OTHER_DEVICE = "Other Device"


class ScanState(str, Enum):
    """Lifecycle of a ScanJob."""
    PENDING = "pending"
    RUNNING = "running"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ScanState.CANCELLED, ScanState.COMPLETED, ScanState.FAILED)


@dataclass(frozen=True)
class PortProfile:
    """A named set of TCP ports probed for service exposure."""
    name: str
    ports: frozenset[int]

    def __post_init__(self) -> None:
        for port in self.ports:
            if not 0 < port < 65536:
                raise ValueError(f"Invalid TCP port {port} in profile {self.name!r}")

    def sorted_ports(self) -> list[int]:
        return sorted(self.ports)


# Built-in port profiles. Exactly one is active per scan.
DEFAULT_PROFILE = PortProfile("Default", frozenset({
    21,    # FTP
    22,    # SSH
    23,    # Telnet
    80,    # HTTP
    139,   # NetBIOS session
    443,   # HTTPS
    445,   # SMB
    554,   # RTSP
    3389,  # RDP
    5060,  # SIP
    8080,  # HTTP alt
    9100,  # RAW/JetDirect
}))

IOT_PROFILE = PortProfile("IoT", frozenset({
    80, 443, 1883, 5683, 8008, 8009, 8080, 8443, 8883, 9000,
}))

VOIP_PROFILE = PortProfile("VoIP", frozenset({
    80, 443, 2000, 5060, 5061, 10000,
}))

SURVEILLANCE_PROFILE = PortProfile("Surveillance", frozenset({
    80, 443, 554, 8000, 8080, 8554, 34567, 37777,
}))

BUILTIN_PROFILES: dict[str, PortProfile] = {
    p.name: p
    for p in (DEFAULT_PROFILE, IOT_PROFILE, VOIP_PROFILE, SURVEILLANCE_PROFILE)
}


@dataclass(frozen=True)
class ProbeResult:
    """Outcome of probing one address."""
    reachable: bool
    open_ports: frozenset[int] = frozenset()
    os_hint: OSFamily = OSFamily.UNKNOWN
    ttl: Optional[int] = None

    @classmethod
    def unreachable(cls) -> "ProbeResult":
        return cls(reachable=False)


@dataclass(frozen=True)
class HardwareInfo:
    """Optional hardware/OS fields from the enrichment collaborator."""
    model: str = NOT_AVAILABLE
    processor: str = NOT_AVAILABLE
    memory: str = NOT_AVAILABLE
    storage: str = NOT_AVAILABLE
    os_name: str = NOT_AVAILABLE
    os_version: str = NOT_AVAILABLE
    os_architecture: str = NOT_AVAILABLE
    install_date: str = NOT_AVAILABLE
    uptime: str = NOT_AVAILABLE
    logged_in_user: str = NOT_AVAILABLE

    @classmethod
    def field_names(cls) -> list[str]:
        return [f.name for f in fields(cls)]


@dataclass(frozen=True)
class DeviceRecord:
    """
    One probed address.

    Created once per probe and never mutated. A re-scan produces a new
    record that replaces the old one by IP address.
    """
    ip_address: str
    status: ReachStatus = ReachStatus.UNREACHABLE
    hostname: str = NOT_AVAILABLE
    mac_address: str = NOT_AVAILABLE
    vendor: str = UNKNOWN_VENDOR
    category: DeviceCategory = DeviceCategory.OFFLINE_DEVICE
    open_ports: tuple[int, ...] = ()
    os_hint: OSFamily = OSFamily.UNKNOWN
    hardware: HardwareInfo = field(default_factory=HardwareInfo)
    scanned_at: datetime = field(default_factory=now_utc)

    @property
    def reachable(self) -> bool:
        return self.status == ReachStatus.OK

    def to_dict(self) -> dict[str, Any]:
        """Flatten into one row: every field, enrichment fields inlined."""
        row: dict[str, Any] = {
            "ip_address": self.ip_address,
            "status": self.status.value,
            "hostname": self.hostname,
            "mac_address": self.mac_address,
            "vendor": self.vendor,
            "category": self.category.value,
            "open_ports": list(self.open_ports),
            "os_hint": self.os_hint.value,
        }
        row.update(asdict(self.hardware))
        row["scanned_at"] = self.scanned_at.isoformat()
        return row

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DeviceRecord":
        hardware = HardwareInfo(**{
            name: str(data.get(name) or NOT_AVAILABLE)
            for name in HardwareInfo.field_names()
        })
        scanned_at = data.get("scanned_at")
        return cls(
            ip_address=data["ip_address"],
            status=ReachStatus(data.get("status", ReachStatus.UNREACHABLE.value)),
            hostname=data.get("hostname") or NOT_AVAILABLE,
            mac_address=data.get("mac_address") or NOT_AVAILABLE,
            vendor=data.get("vendor") or UNKNOWN_VENDOR,
            category=DeviceCategory(data.get("category", DeviceCategory.OFFLINE_DEVICE.value)),
            open_ports=tuple(sorted(int(p) for p in data.get("open_ports") or ())),
            os_hint=OSFamily(data.get("os_hint", OSFamily.UNKNOWN.value)),
            hardware=hardware,
            scanned_at=datetime.fromisoformat(scanned_at) if scanned_at else now_utc(),
        )


@dataclass
class ScanJob:
    """Mutable state of one discovery pass."""
    range_expression: str
    profile: PortProfile = DEFAULT_PROFILE
    addresses: Sequence[str] = ()
    scan_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    state: ScanState = ScanState.PENDING
    progress: int = 0
    started_at: datetime = field(default_factory=now_utc)
    completed_at: Optional[datetime] = None
    error_message: Optional[str] = None

    @property
    def total(self) -> int:
        return len(self.addresses)

    def to_dict(self) -> dict[str, Any]:
        return {
            "scan_id": self.scan_id,
            "range": self.range_expression,
            "profile": self.profile.name,
            "state": self.state.value,
            "progress": self.progress,
            "total": self.total,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "error_message": self.error_message,
        }


@dataclass(frozen=True)
class ScanHistory:
    """Historical record of a scan, as read back from the store."""
    id: str
    range_expression: str
    profile: str
    state: ScanState
    started_at: datetime
    completed_at: Optional[datetime]
    progress: int
    total: int
    error_message: Optional[str]
