"""
Hardware/OS enrichment collaborators.

Enrichment is optional. Any failure, whole-query or per-field, yields "-"
for the affected fields and never aborts the scan.
"""

from __future__ import annotations

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional

from .._types import NOT_AVAILABLE, HardwareInfo

logger = logging.getLogger(__name__)


class Enricher(ABC):
    """Base class for enrichment sources."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Name of this enrichment source."""
        pass

    @abstractmethod
    async def enrich(self, ip_address: str) -> HardwareInfo:
        """
        Collect hardware/OS fields for a host.

        Implementations must not raise; unavailable fields are "-".
        """
        pass


class NullEnricher(Enricher):
    """Enricher that never collects anything."""

    @property
    def name(self) -> str:
        return "none"

    async def enrich(self, ip_address: str) -> HardwareInfo:
        return HardwareInfo()


# PowerShell run on the target. Output is one compact JSON object.
HARDWARE_QUERY = r"""
$ErrorActionPreference = 'SilentlyContinue'
$cs = Get-CimInstance Win32_ComputerSystem
$os = Get-CimInstance Win32_OperatingSystem
$cpu = Get-CimInstance Win32_Processor | Select-Object -First 1
$disk = Get-CimInstance Win32_LogicalDisk -Filter "DriveType=3" | Measure-Object -Property Size -Sum
[PSCustomObject]@{
    Model          = $cs.Model
    Processor      = $cpu.Name
    MemoryGB       = [math]::Round($cs.TotalPhysicalMemory / 1GB, 1)
    StorageGB      = [math]::Round($disk.Sum / 1GB, 1)
    OSName         = $os.Caption
    OSVersion      = $os.Version
    OSArchitecture = $os.OSArchitecture
    InstallDate    = if ($os.InstallDate) { $os.InstallDate.ToString('yyyy-MM-dd') } else { $null }
    UptimeHours    = if ($os.LastBootUpTime) { [math]::Round(((Get-Date) - $os.LastBootUpTime).TotalHours, 1) } else { $null }
    UserName       = $cs.UserName
} | ConvertTo-Json -Compress
"""


def _text(value: Any, suffix: str = "") -> str:
    if value is None:
        return NOT_AVAILABLE
    text = str(value).strip()
    if not text:
        return NOT_AVAILABLE
    return f"{text}{suffix}"


def parse_hardware_json(output: str) -> HardwareInfo:
    """Map the query's JSON output onto HardwareInfo, field by field."""
    try:
        data = json.loads(output)
    except (json.JSONDecodeError, TypeError):
        return HardwareInfo()
    if not isinstance(data, dict):
        return HardwareInfo()

    return HardwareInfo(
        model=_text(data.get("Model")),
        processor=_text(data.get("Processor")),
        memory=_text(data.get("MemoryGB"), " GB"),
        storage=_text(data.get("StorageGB"), " GB"),
        os_name=_text(data.get("OSName")),
        os_version=_text(data.get("OSVersion")),
        os_architecture=_text(data.get("OSArchitecture")),
        install_date=_text(data.get("InstallDate")),
        uptime=_text(data.get("UptimeHours"), " h"),
        logged_in_user=_text(data.get("UserName")),
    )


@dataclass
class WinRMCredentials:
    """Credentials for the WinRM enrichment source."""
    username: str
    password: str
    transport: str = "ntlm"  # ntlm, kerberos, certificate
    use_ssl: bool = False
    verify_ssl: bool = True
    port: Optional[int] = None

    @property
    def effective_port(self) -> int:
        if self.port:
            return self.port
        return 5986 if self.use_ssl else 5985


class WinRMEnricher(Enricher):
    """
    Collect hardware/OS details from Windows hosts over WinRM.

    Uses pywinrm, which is synchronous, so queries run in the default
    thread pool.
    """

    def __init__(self, credentials: WinRMCredentials, timeout: float = 30.0):
        self.credentials = credentials
        self.timeout = timeout

    @property
    def name(self) -> str:
        return "winrm"

    async def enrich(self, ip_address: str) -> HardwareInfo:
        loop = asyncio.get_running_loop()
        try:
            output = await asyncio.wait_for(
                loop.run_in_executor(None, self._query_sync, ip_address),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Enrichment of {ip_address} timed out after {self.timeout}s")
            return HardwareInfo()
        except Exception as e:
            logger.warning(f"Enrichment of {ip_address} failed: {e}")
            return HardwareInfo()

        if output is None:
            return HardwareInfo()
        return parse_hardware_json(output)

    def _session(self, ip_address: str):
        try:
            import winrm
        except ImportError:
            raise ImportError(
                "pywinrm is required for WinRM enrichment. "
                "Install with: pip install pywinrm"
            )

        creds = self.credentials
        protocol = "https" if creds.use_ssl else "http"
        endpoint = f"{protocol}://{ip_address}:{creds.effective_port}/wsman"
        return winrm.Session(
            endpoint,
            auth=(creds.username, creds.password),
            transport=creds.transport,
            server_cert_validation="validate" if creds.verify_ssl else "ignore",
        )

    def _query_sync(self, ip_address: str) -> Optional[str]:
        """Run the hardware query (runs in thread pool)."""
        result = self._session(ip_address).run_ps(HARDWARE_QUERY)
        if result.status_code != 0:
            stderr = result.std_err.decode("utf-8", errors="replace") if result.std_err else ""
            logger.debug(f"Hardware query on {ip_address} exited {result.status_code}: {stderr}")
            return None
        return result.std_out.decode("utf-8", errors="replace") if result.std_out else None
