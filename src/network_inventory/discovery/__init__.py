"""
Per-host data sources for a discovery pass.

- NeighborTable: snapshot of the local ARP cache (IP -> MAC)
- HostProbe: ICMP reachability, TCP port exposure, TTL OS hint
- Enricher: optional hardware/OS details (WinRM or none)
"""

from .neighbor_table import NeighborTable, normalize_mac, parse_arp_line
from .host_probe import HostProbe, os_hint_from_ttl, parse_ping_output
from .enrichment import Enricher, NullEnricher, WinRMCredentials, WinRMEnricher

__all__ = [
    "NeighborTable",
    "normalize_mac",
    "parse_arp_line",
    "HostProbe",
    "os_hint_from_ttl",
    "parse_ping_output",
    "Enricher",
    "NullEnricher",
    "WinRMCredentials",
    "WinRMEnricher",
]
