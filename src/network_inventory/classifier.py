"""
Device classification from vendor, open ports and hints.

The classifier is an ordered list of (predicate, category) rules. The
first rule whose predicate matches decides the category; later rules are
not evaluated. New rules can be inserted into a copy of the chain without
touching control flow.

Default order (must be preserved):

     1. printer hint                          -> Printer
     2. VoIP vendor and 5060 open             -> VoIP Phone
     3. mobile vendor                         -> Smartphone/Tablet
     4. smart-appliance vendor and any port   -> Smart TV/Android
     5. 5060 open                             -> VoIP Phone
     6. 554 open                              -> RTSP Camera
     7. 9100 open                             -> Printer
     8. 445 or 139 open                       -> Windows PC
     9. 22 open                               -> Linux Device
    10. no open ports                         -> Offline Device
    11. anything else                         -> Other Device

Rules 1 and 7 both yield Printer at different precedence levels.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Iterable, Optional, Sequence

from ._types import DeviceCategory, OSFamily


def _vendor_pattern(names: Iterable[str]) -> re.Pattern[str]:
    return re.compile(
        r"\b(?:" + "|".join(re.escape(n) for n in names) + r")\b",
        re.IGNORECASE,
    )


VOIP_VENDORS = (
    "Fanvil", "Yealink", "Grandstream", "Polycom", "Snom", "Gigaset",
    "Avaya", "Mitel", "Aastra", "Htek", "Alcatel-Lucent Enterprise",
)

MOBILE_VENDORS = (
    "Apple", "Samsung", "Xiaomi", "Huawei", "OnePlus", "OPPO", "vivo Mobile",
    "Realme", "Honor Device", "Motorola Mobility", "Nothing Technology",
)

SMART_APPLIANCE_VENDORS = (
    "LG Electronics", "Sony", "TCL", "Hisense", "Roku", "Vizio", "Sharp",
    "Panasonic", "Amazon Technologies", "Google", "Skyworth", "Philips",
)

PRINTER_VENDORS = (
    "Brother", "Seiko Epson", "Epson", "Xerox", "Lexmark", "Ricoh",
    "Kyocera", "Konica Minolta", "Canon", "Zebra Technologies", "Oki Data",
)

# Hostname fragments that indicate a print device.
PRINTER_HOSTNAME_HINTS = (
    "print", "prn", "mfp", "copier", "hp-", "xerox",
    "canon", "epson", "brother", "ricoh", "lexmark",
)

VOIP_VENDOR_PATTERN = _vendor_pattern(VOIP_VENDORS)
MOBILE_VENDOR_PATTERN = _vendor_pattern(MOBILE_VENDORS)
SMART_APPLIANCE_VENDOR_PATTERN = _vendor_pattern(SMART_APPLIANCE_VENDORS)
PRINTER_VENDOR_PATTERN = _vendor_pattern(PRINTER_VENDORS)

SIP_PORT = 5060
RTSP_PORT = 554
JETDIRECT_PORT = 9100
SMB_PORTS = frozenset({445, 139})
SSH_PORT = 22


@dataclass(frozen=True)
class ClassificationInput:
    """Everything a rule may look at."""
    vendor: str
    open_ports: frozenset[int]
    printer_hint: bool = False
    os_hint: OSFamily = OSFamily.UNKNOWN


@dataclass(frozen=True)
class ClassificationRule:
    """One link of the rule chain."""
    name: str
    predicate: Callable[[ClassificationInput], bool]
    category: DeviceCategory

    def matches(self, facts: ClassificationInput) -> bool:
        return bool(self.predicate(facts))


@dataclass(frozen=True)
class ClassificationResult:
    """Result of device classification."""
    category: DeviceCategory
    rule: str


DEFAULT_RULES: tuple[ClassificationRule, ...] = (
    ClassificationRule(
        "printer-hint",
        lambda f: f.printer_hint,
        DeviceCategory.PRINTER,
    ),
    ClassificationRule(
        "voip-vendor-sip",
        lambda f: bool(VOIP_VENDOR_PATTERN.search(f.vendor)) and SIP_PORT in f.open_ports,
        DeviceCategory.VOIP_PHONE,
    ),
    ClassificationRule(
        "mobile-vendor",
        lambda f: bool(MOBILE_VENDOR_PATTERN.search(f.vendor)),
        DeviceCategory.SMARTPHONE_OR_TABLET,
    ),
    ClassificationRule(
        "smart-appliance-vendor",
        lambda f: bool(SMART_APPLIANCE_VENDOR_PATTERN.search(f.vendor)) and bool(f.open_ports),
        DeviceCategory.SMART_TV_OR_ANDROID,
    ),
    ClassificationRule(
        "sip-port",
        lambda f: SIP_PORT in f.open_ports,
        DeviceCategory.VOIP_PHONE,
    ),
    ClassificationRule(
        "rtsp-port",
        lambda f: RTSP_PORT in f.open_ports,
        DeviceCategory.RTSP_CAMERA,
    ),
    ClassificationRule(
        "jetdirect-port",
        lambda f: JETDIRECT_PORT in f.open_ports,
        DeviceCategory.PRINTER,
    ),
    ClassificationRule(
        "smb-port",
        lambda f: bool(f.open_ports & SMB_PORTS),
        DeviceCategory.WINDOWS_PC,
    ),
    ClassificationRule(
        "ssh-port",
        lambda f: SSH_PORT in f.open_ports,
        DeviceCategory.LINUX_DEVICE,
    ),
    ClassificationRule(
        "no-open-ports",
        lambda f: not f.open_ports,
        DeviceCategory.OFFLINE_DEVICE,
    ),
    ClassificationRule(
        "fallback",
        lambda f: True,
        DeviceCategory.OTHER_DEVICE,
    ),
)


class DeviceClassifier:
    """First-match-wins rule chain. Stateless once built."""

    def __init__(self, rules: Sequence[ClassificationRule] = DEFAULT_RULES):
        self.rules: tuple[ClassificationRule, ...] = tuple(rules)

    def classify(
        self,
        vendor: str,
        open_ports: Iterable[int],
        printer_hint: bool = False,
        os_hint: OSFamily = OSFamily.UNKNOWN,
    ) -> ClassificationResult:
        """
        Classify a host.

        Args:
            vendor: Vendor name from the OUI database ("Unknown" if none)
            open_ports: Open TCP ports found by the probe
            printer_hint: Explicit signal that the host is a print device
            os_hint: TTL-derived OS family

        Returns:
            ClassificationResult naming the category and the rule that won
        """
        facts = ClassificationInput(
            vendor=vendor or "",
            open_ports=frozenset(open_ports),
            printer_hint=printer_hint,
            os_hint=os_hint,
        )
        for rule in self.rules:
            if rule.matches(facts):
                return ClassificationResult(category=rule.category, rule=rule.name)

        # Only reachable with a custom chain that lacks a catch-all.
        return ClassificationResult(category=DeviceCategory.OTHER_DEVICE, rule="none")

    def with_rule(
        self,
        rule: ClassificationRule,
        before: Optional[str] = None,
    ) -> "DeviceClassifier":
        """
        Return a new classifier with `rule` inserted before the named rule.

        Without `before`, the rule goes just ahead of the catch-all so it
        can still match.
        """
        names = [r.name for r in self.rules]
        if before is None:
            index = len(self.rules) - 1 if names and names[-1] == "fallback" else len(self.rules)
        elif before in names:
            index = names.index(before)
        else:
            raise KeyError(f"No rule named {before!r}")

        rules = list(self.rules)
        rules.insert(index, rule)
        return DeviceClassifier(rules)


_default_classifier = DeviceClassifier()


def classify_device(
    vendor: str,
    open_ports: Iterable[int],
    printer_hint: bool = False,
    os_hint: OSFamily = OSFamily.UNKNOWN,
) -> DeviceCategory:
    """Classify with the default rule chain."""
    return _default_classifier.classify(vendor, open_ports, printer_hint, os_hint).category


def detect_printer_hint(hostname: Optional[str], vendor: Optional[str]) -> bool:
    """
    Explicit printer signal from the hostname or a print-only vendor.

    Open port 9100 is deliberately not considered here; it has its own
    rule further down the chain.
    """
    hostname_lower = (hostname or "").lower()
    if hostname_lower and hostname_lower != "-":
        if any(hint in hostname_lower for hint in PRINTER_HOSTNAME_HINTS):
            return True
    return bool(PRINTER_VENDOR_PATTERN.search(vendor or ""))
