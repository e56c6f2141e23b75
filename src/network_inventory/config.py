"""
Network inventory configuration.

Loaded from environment variables or a YAML file. WinRM enrichment
credentials may live in a separate credentials file so that the main
config can be shared without secrets.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml

from ._types import BUILTIN_PROFILES, PortProfile
from .address_range import InvalidRangeFormat, parse_range
from .discovery.enrichment import WinRMCredentials

logger = logging.getLogger(__name__)


def _env_bool(name: str, default: bool) -> bool:
    return os.getenv(name, "true" if default else "false").strip().lower() == "true"


@dataclass
class ScannerConfig:
    """Network inventory configuration."""

    # What to scan
    default_range: Optional[str] = None
    port_profile: str = "Default"
    custom_profiles: dict[str, list[int]] = field(default_factory=dict)

    # Probe timing
    ping_timeout_seconds: float = 1.0
    connect_timeout_seconds: float = 0.15
    dns_timeout_seconds: float = 2.0

    # 1 = strictly sequential, one host at a time
    max_concurrent_hosts: int = 1

    # Reference data and storage
    oui_path: Optional[Path] = None
    db_path: Path = field(default_factory=lambda: Path("/var/lib/network-inventory/results.db"))

    # Hardware enrichment over WinRM
    enable_enrichment: bool = False
    winrm_username: Optional[str] = None
    winrm_password: Optional[str] = None
    winrm_transport: str = "ntlm"
    winrm_use_ssl: bool = False
    enrichment_timeout_seconds: float = 30.0
    credentials_path: Path = field(
        default_factory=lambda: Path("/etc/network-inventory/credentials.yaml")
    )

    # API server
    api_host: str = "127.0.0.1"
    api_port: int = 8083

    # Logging
    log_level: str = "INFO"

    @property
    def profiles(self) -> dict[str, PortProfile]:
        """Built-in profiles plus those declared in configuration."""
        profiles = dict(BUILTIN_PROFILES)
        for name, ports in self.custom_profiles.items():
            profiles[name] = PortProfile(name, frozenset(int(p) for p in ports))
        return profiles

    def winrm_credentials(self) -> Optional[WinRMCredentials]:
        if not (self.winrm_username and self.winrm_password):
            return None
        return WinRMCredentials(
            username=self.winrm_username,
            password=self.winrm_password,
            transport=self.winrm_transport,
            use_ssl=self.winrm_use_ssl,
        )

    @classmethod
    def from_env(cls) -> "ScannerConfig":
        """Load configuration from environment variables."""
        config = cls()

        config.default_range = os.getenv("SCAN_RANGE") or None
        config.port_profile = os.getenv("PORT_PROFILE", "Default")

        config.ping_timeout_seconds = float(os.getenv("PING_TIMEOUT", "1.0"))
        config.connect_timeout_seconds = float(os.getenv("CONNECT_TIMEOUT", "0.15"))
        config.dns_timeout_seconds = float(os.getenv("DNS_TIMEOUT", "2.0"))
        config.max_concurrent_hosts = int(os.getenv("MAX_CONCURRENT_HOSTS", "1"))

        if oui_path := os.getenv("OUI_PATH"):
            config.oui_path = Path(oui_path)
        if db_path := os.getenv("DB_PATH"):
            config.db_path = Path(db_path)
        if creds_path := os.getenv("CREDENTIALS_PATH"):
            config.credentials_path = Path(creds_path)

        config.enable_enrichment = _env_bool("ENABLE_ENRICHMENT", False)
        config.winrm_username = os.getenv("WINRM_USERNAME")
        config.winrm_password = os.getenv("WINRM_PASSWORD")
        config.winrm_transport = os.getenv("WINRM_TRANSPORT", "ntlm")
        config.winrm_use_ssl = _env_bool("WINRM_USE_SSL", False)

        config.api_host = os.getenv("API_HOST", "127.0.0.1")
        config.api_port = int(os.getenv("API_PORT", "8083"))

        config.log_level = os.getenv("LOG_LEVEL", "INFO")

        return config

    @classmethod
    def from_yaml(cls, path: Path) -> "ScannerConfig":
        """Load configuration from YAML file."""
        if not path.exists():
            logger.warning(f"Config file not found: {path}, using defaults")
            return cls()

        with open(path) as f:
            data = yaml.safe_load(f) or {}

        config = cls()

        config.default_range = data.get("range")

        if "profiles" in data:
            p = data["profiles"]
            config.port_profile = p.get("active", "Default")
            config.custom_profiles = {
                str(name): list(ports) for name, ports in (p.get("custom") or {}).items()
            }

        if "probe" in data:
            p = data["probe"]
            config.ping_timeout_seconds = float(p.get("ping_timeout", 1.0))
            config.connect_timeout_seconds = float(p.get("connect_timeout", 0.15))
            config.dns_timeout_seconds = float(p.get("dns_timeout", 2.0))
            config.max_concurrent_hosts = int(p.get("max_concurrent_hosts", 1))

        if "enrichment" in data:
            e = data["enrichment"]
            config.enable_enrichment = bool(e.get("enabled", False))
            config.winrm_username = e.get("username")
            config.winrm_password = e.get("password")
            config.winrm_transport = e.get("transport", "ntlm")
            config.winrm_use_ssl = bool(e.get("use_ssl", False))
            config.enrichment_timeout_seconds = float(e.get("timeout", 30.0))

        if "api" in data:
            a = data["api"]
            config.api_host = a.get("host", "127.0.0.1")
            config.api_port = a.get("port", 8083)

        if "paths" in data:
            p = data["paths"]
            if "oui" in p:
                config.oui_path = Path(p["oui"])
            if "db" in p:
                config.db_path = Path(p["db"])
            if "credentials" in p:
                config.credentials_path = Path(p["credentials"])

        config.log_level = data.get("log_level", "INFO")

        return config

    def load_credentials(self) -> bool:
        """Load WinRM credentials from the separate credentials file."""
        if not self.credentials_path.exists():
            logger.debug(f"Credentials file not found: {self.credentials_path}")
            return False

        try:
            with open(self.credentials_path) as f:
                creds = yaml.safe_load(f) or {}

            if "winrm" in creds:
                self.winrm_username = creds["winrm"].get("username", self.winrm_username)
                self.winrm_password = creds["winrm"].get("password", self.winrm_password)

            logger.info("Enrichment credentials loaded")
            return True

        except Exception as e:
            logger.error(f"Failed to load credentials: {e}")
            return False

    def validate(self) -> list[str]:
        """Validate configuration, returning list of errors."""
        errors = []

        try:
            profiles = self.profiles
        except ValueError as e:
            errors.append(str(e))
            profiles = dict(BUILTIN_PROFILES)

        if self.port_profile not in profiles:
            errors.append(f"Unknown port profile: {self.port_profile}")

        if self.ping_timeout_seconds <= 0:
            errors.append(f"Invalid ping timeout: {self.ping_timeout_seconds}")
        if self.connect_timeout_seconds <= 0:
            errors.append(f"Invalid connect timeout: {self.connect_timeout_seconds}")
        if self.max_concurrent_hosts < 1:
            errors.append(f"Invalid host concurrency: {self.max_concurrent_hosts}")

        if self.default_range:
            try:
                parse_range(self.default_range)
            except InvalidRangeFormat as e:
                errors.append(str(e))

        if self.enable_enrichment and self.winrm_credentials() is None:
            errors.append("Enrichment enabled but no WinRM credentials configured")

        return errors


# Example config.yaml:
"""
range: "192.168.1.0/24"

profiles:
  active: "Default"
  custom:
    Lab: [22, 80, 443, 8443]

probe:
  ping_timeout: 1.0
  connect_timeout: 0.15
  max_concurrent_hosts: 1

enrichment:
  enabled: false

api:
  host: "127.0.0.1"
  port: 8083

paths:
  oui: "/var/lib/network-inventory/oui.txt"
  db: "/var/lib/network-inventory/results.db"
  credentials: "/etc/network-inventory/credentials.yaml"

log_level: "INFO"
"""
