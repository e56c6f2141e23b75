"""
Network Inventory - single-pass network discovery and device classification.

Parses an address range, probes every address for reachability and open
TCP ports, correlates MAC and vendor data from the local neighbor table
and the IEEE OUI registry, classifies each host with an ordered rule
chain, and streams results into a durable snapshot.

Architecture:
    address_range   - subnet expression -> ordered address sequence
    vendor_db       - OUI prefix -> vendor
    discovery       - neighbor table, host probe, optional enrichment
    classifier      - first-match-wins category rules
    orchestrator    - scan state machine, result sink, subscriptions
    result_store    - SQLite snapshot + scan history
    scanner_service - HTTP API and command line entry point
"""

__version__ = "1.0.0"

from ._types import (
    DeviceCategory,
    DeviceRecord,
    HardwareInfo,
    OSFamily,
    PortProfile,
    ProbeResult,
    ReachStatus,
    ScanJob,
    ScanState,
    BUILTIN_PROFILES,
)
from .address_range import AddressRange, InvalidRangeFormat, parse_range

__all__ = [
    "__version__",
    "DeviceCategory",
    "DeviceRecord",
    "HardwareInfo",
    "OSFamily",
    "PortProfile",
    "ProbeResult",
    "ReachStatus",
    "ScanJob",
    "ScanState",
    "BUILTIN_PROFILES",
    "AddressRange",
    "InvalidRangeFormat",
    "parse_range",
]
