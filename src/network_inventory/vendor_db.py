"""
MAC vendor (OUI) database.

Loads the IEEE OUI registry in its canonical text format, where each
vendor record has a line like:

    00000C     (base 16)\t\tCisco Systems, Inc

and maps the 24-bit prefix to the vendor name. A missing or unreadable
registry is not an error: lookups simply return "Unknown".
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from types import MappingProxyType
from typing import Iterable, Mapping, Optional

from ._types import UNKNOWN_VENDOR

logger = logging.getLogger(__name__)

OUI_LINE_PATTERN = re.compile(r"^([0-9A-Fa-f]{6})\s*\([^)]*\)(.*)$")
NON_HEX = re.compile(r"[^0-9A-Fa-f]")


def parse_registry(lines: Iterable[str]) -> dict[str, str]:
    """Parse registry lines into a prefix -> vendor mapping."""
    mapping: dict[str, str] = {}
    for line in lines:
        match = OUI_LINE_PATTERN.match(line)
        if not match:
            continue
        vendor = match.group(2).strip()
        if vendor:
            mapping[match.group(1).upper()] = vendor
    return mapping


def oui_prefix(mac_address: Optional[str]) -> Optional[str]:
    """Return the upper-cased 6 hex character prefix, or None if too short."""
    hex_only = NON_HEX.sub("", mac_address or "")
    if len(hex_only) < 6:
        return None
    return hex_only[:6].upper()


class VendorDatabase:
    """
    Prefix -> vendor lookup table.

    The mapping is read-only once loaded. Reloading replaces it wholesale,
    so a scan holding a reference to the old mapping is unaffected.
    """

    def __init__(self, path: Optional[Path | str] = None):
        self.path = Path(path) if path else None
        self._vendors: Mapping[str, str] = MappingProxyType({})

    def __len__(self) -> int:
        return len(self._vendors)

    @property
    def loaded(self) -> bool:
        return bool(self._vendors)

    def load(self, path: Optional[Path | str] = None) -> int:
        """
        Load (or reload) the registry from disk.

        Returns the number of prefixes loaded. An unavailable source
        leaves the database empty.
        """
        if path is not None:
            self.path = Path(path)

        if self.path is None:
            logger.warning("No OUI registry configured, vendor lookups will return Unknown")
            self._vendors = MappingProxyType({})
            return 0

        try:
            with open(self.path, encoding="utf-8", errors="replace") as f:
                mapping = parse_registry(f)
        except OSError as e:
            logger.warning(f"OUI registry unavailable at {self.path}: {e}")
            self._vendors = MappingProxyType({})
            return 0

        self._vendors = MappingProxyType(mapping)
        logger.info(f"Loaded {len(mapping)} OUI prefixes from {self.path}")
        return len(mapping)

    def load_lines(self, lines: Iterable[str]) -> int:
        """Load (or reload) the registry from already-read lines."""
        mapping = parse_registry(lines)
        self._vendors = MappingProxyType(mapping)
        return len(mapping)

    def lookup(self, mac_address: Optional[str]) -> str:
        """Return the vendor for a MAC address, or "Unknown"."""
        prefix = oui_prefix(mac_address)
        if prefix is None:
            return UNKNOWN_VENDOR
        return self._vendors.get(prefix, UNKNOWN_VENDOR)
