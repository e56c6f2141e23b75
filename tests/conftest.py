"""Shared fixtures for network inventory tests."""

import asyncio
import tempfile
from pathlib import Path
from typing import Callable, Optional

import pytest

from network_inventory._types import ProbeResult, PortProfile
from network_inventory.discovery import HostProbe, NeighborTable
from network_inventory.orchestrator import ScanOrchestrator
from network_inventory.result_store import ResultStore
from network_inventory.vendor_db import VendorDatabase


OUI_SAMPLE = """\
OUI/MA-L                                                    Organization
company_id                                                  Organization
                                                            Address

0C-38-3E   (hex)\t\tFanvil Technology Co., Ltd.
0C383E     (base 16)\t\tFanvil Technology Co., Ltd.
\t\t\t\tXiamen  Fujian  361009
\t\t\t\tCN

3C-22-FB   (hex)\t\tApple, Inc.
3C22FB     (base 16)\t\tApple, Inc.
\t\t\t\tCupertino  CA  95014
\t\t\t\tUS

00-80-77   (hex)\t\tBrother industries, LTD.
008077     (base 16)\t\tBrother industries, LTD.

00-1E-67   (hex)\t\tIntel Corporate
001E67     (base 16)\t\tIntel Corporate
"""


class FakeProbe(HostProbe):
    """HostProbe that answers from a table instead of the network."""

    def __init__(
        self,
        results: Optional[dict[str, ProbeResult]] = None,
        hostnames: Optional[dict[str, str]] = None,
        gate: Optional[asyncio.Event] = None,
        on_probe: Optional[Callable[[str], None]] = None,
    ):
        super().__init__()
        self.results = results or {}
        self.hostnames = hostnames or {}
        self.gate = gate
        self.on_probe = on_probe
        self.probed: list[str] = []

    async def probe(self, ip_address: str, profile: PortProfile) -> ProbeResult:
        self.probed.append(ip_address)
        if self.on_probe:
            self.on_probe(ip_address)
        if self.gate is not None:
            await self.gate.wait()
        return self.results.get(ip_address, ProbeResult.unreachable())

    async def resolve_hostname(self, ip_address: str) -> str:
        return self.hostnames.get(ip_address, "-")


class StaticNeighborTable(NeighborTable):
    """NeighborTable whose snapshot keeps the entries it was built with."""

    async def snapshot(self) -> int:
        return len(self)


@pytest.fixture
def temp_db():
    """Create temporary database path."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = Path(f.name)
    yield db_path
    # Cleanup
    db_path.unlink(missing_ok=True)
    Path(f"{db_path}-wal").unlink(missing_ok=True)
    Path(f"{db_path}-shm").unlink(missing_ok=True)


@pytest.fixture
def store(temp_db):
    """Result store on a temporary database."""
    return ResultStore(temp_db)


@pytest.fixture
def vendor_db():
    """Vendor database loaded with a small registry sample."""
    db = VendorDatabase()
    db.load_lines(OUI_SAMPLE.splitlines())
    return db


@pytest.fixture
def make_orchestrator(store, vendor_db):
    """Factory for orchestrators wired to fake network collaborators."""

    def _make(
        results=None,
        hostnames=None,
        neighbors=None,
        gate=None,
        on_probe=None,
        max_concurrent_hosts=1,
        neighbor_table=None,
        **kwargs,
    ) -> ScanOrchestrator:
        return ScanOrchestrator(
            store=store,
            vendor_db=vendor_db,
            probe=FakeProbe(results, hostnames, gate, on_probe),
            neighbor_table=(
                neighbor_table if neighbor_table is not None
                else StaticNeighborTable(neighbors or {})
            ),
            max_concurrent_hosts=max_concurrent_hosts,
            **kwargs,
        )

    return _make
