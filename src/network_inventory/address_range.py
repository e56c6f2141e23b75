"""
Address range parsing.

Turns a subnet expression into an ordered, duplicate-free sequence of IPv4
addresses. Four notations are accepted, tried in this order:

    192.168.1.0/24              CIDR block, network to broadcast inclusive
    192.168.1.10-20             last-octet range on a fixed /24 base
    10.0.0.1-10.0.1.254         full start-end range
    192.168.1.7                 single address

Enumeration is lazy: an AddressRange stores only its first and last
address as unsigned 32-bit integers and renders dotted quads on demand,
so even a /8 costs nothing until it is iterated.
"""

from __future__ import annotations

import ipaddress
import re
from collections.abc import Sequence
from typing import Iterator, Union, overload

_OCTET = r"\d{1,3}"
_IPV4 = rf"{_OCTET}\.{_OCTET}\.{_OCTET}\.{_OCTET}"

CIDR_PATTERN = re.compile(rf"^({_IPV4})/(\d{{1,2}})$")
LAST_OCTET_PATTERN = re.compile(
    rf"^({_OCTET}\.{_OCTET}\.{_OCTET})\.({_OCTET})\s*-\s*({_OCTET})$"
)
FULL_RANGE_PATTERN = re.compile(rf"^({_IPV4})\s*-\s*({_IPV4})$")
SINGLE_PATTERN = re.compile(rf"^({_IPV4})$")


class InvalidRangeFormat(ValueError):
    """Raised when an expression is not a valid address range."""

    def __init__(self, expression: str, reason: str = ""):
        self.expression = expression
        self.reason = reason
        message = f"Invalid range format: {expression!r}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


def _ip_to_int(address: str, expression: str) -> int:
    """Validate a dotted quad and return it as an unsigned 32-bit integer."""
    try:
        return int(ipaddress.IPv4Address(address))
    except ValueError:
        raise InvalidRangeFormat(expression, f"bad IPv4 address {address}") from None


def _int_to_ip(value: int) -> str:
    return str(ipaddress.IPv4Address(value))


class AddressRange(Sequence):
    """Immutable, ascending, contiguous run of IPv4 addresses."""

    __slots__ = ("_first", "_last", "_expression")

    def __init__(self, first: int, last: int, expression: str = ""):
        if not 0 <= first <= last <= 0xFFFFFFFF:
            raise InvalidRangeFormat(expression, "start address is after end address")
        self._first = first
        self._last = last
        self._expression = expression

    @property
    def expression(self) -> str:
        return self._expression

    @property
    def first(self) -> str:
        return _int_to_ip(self._first)

    @property
    def last(self) -> str:
        return _int_to_ip(self._last)

    def __len__(self) -> int:
        return self._last - self._first + 1

    @overload
    def __getitem__(self, index: int) -> str: ...

    @overload
    def __getitem__(self, index: slice) -> list[str]: ...

    def __getitem__(self, index: Union[int, slice]) -> Union[str, list[str]]:
        if isinstance(index, slice):
            return [self[i] for i in range(*index.indices(len(self)))]
        size = len(self)
        if index < 0:
            index += size
        if not 0 <= index < size:
            raise IndexError("address range index out of range")
        return _int_to_ip(self._first + index)

    def __iter__(self) -> Iterator[str]:
        for value in range(self._first, self._last + 1):
            yield _int_to_ip(value)

    def __contains__(self, address: object) -> bool:
        if not isinstance(address, str):
            return False
        try:
            value = int(ipaddress.IPv4Address(address))
        except ValueError:
            return False
        return self._first <= value <= self._last

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, AddressRange):
            return NotImplemented
        return (self._first, self._last) == (other._first, other._last)

    def __hash__(self) -> int:
        return hash((self._first, self._last))

    def __repr__(self) -> str:
        return f"AddressRange({self.first!r}..{self.last!r}, {len(self)} addresses)"


def parse_range(expression: str) -> AddressRange:
    """
    Parse a subnet expression into an AddressRange.

    Args:
        expression: CIDR, last-octet range, full range or single address

    Returns:
        AddressRange in ascending order

    Raises:
        InvalidRangeFormat: if no grammar matches or validation fails
    """
    text = (expression or "").strip()

    match = CIDR_PATTERN.match(text)
    if match:
        return _parse_cidr(text, match.group(1), int(match.group(2)))

    match = LAST_OCTET_PATTERN.match(text)
    if match:
        base, low, high = match.group(1), int(match.group(2)), int(match.group(3))
        # Validates the three-octet base as part of a real address.
        base_value = _ip_to_int(f"{base}.0", text)
        if low > 255 or high > 255:
            raise InvalidRangeFormat(text, "last octet out of range")
        if low > high:
            raise InvalidRangeFormat(text, "start address is after end address")
        return AddressRange(base_value + low, base_value + high, text)

    match = FULL_RANGE_PATTERN.match(text)
    if match:
        start = _ip_to_int(match.group(1), text)
        end = _ip_to_int(match.group(2), text)
        if start > end:
            raise InvalidRangeFormat(text, "start address is after end address")
        return AddressRange(start, end, text)

    match = SINGLE_PATTERN.match(text)
    if match:
        value = _ip_to_int(match.group(1), text)
        return AddressRange(value, value, text)

    raise InvalidRangeFormat(text)


def _parse_cidr(text: str, address: str, prefix: int) -> AddressRange:
    if prefix > 32:
        raise InvalidRangeFormat(text, f"prefix length {prefix} exceeds 32")
    value = _ip_to_int(address, text)
    mask = (0xFFFFFFFF << (32 - prefix)) & 0xFFFFFFFF
    network = value & mask
    broadcast = network | (~mask & 0xFFFFFFFF)
    return AddressRange(network, broadcast, text)
