"""
Bit-level IPv6 prefix helpers.

Addresses are handled as ``ipaddress.IPv6Address`` values and compared on
their 16-byte packed form:

- ``matches``: does an address fall inside ``prefix/prefix_len``
- ``remap``: replace the network bits of an address with another prefix
- ``is_global_unicast``: is an address inside 2000::/3
"""

import ipaddress
import string
from typing import Union

from .errors import AddressParseError

ADDRESS_BITS = 128
ADDRESS_BYTES = ADDRESS_BITS // 8

# Top three bits of the first byte; 001 marks global unicast (2000::/3)
GLOBAL_UNICAST_MASK = 0xE0
GLOBAL_UNICAST_VALUE = 0x20

HEX_LITERAL_CHARS = frozenset(string.hexdigits + ":")

AddressLike = Union[str, ipaddress.IPv6Address]


def parse_address(text: AddressLike) -> ipaddress.IPv6Address:
    """
    Parse an IPv6 literal.

    Args:
        text: Address literal (e.g. "fd00:1::5") or an IPv6Address.

    Returns:
        The parsed address.

    Raises:
        AddressParseError: if the literal is not a plain IPv6 address.
    """
    if isinstance(text, ipaddress.IPv6Address):
        return text
    if not isinstance(text, str):
        raise AddressParseError(repr(text))

    try:
        address = ipaddress.IPv6Address(text)
    except ipaddress.AddressValueError as e:
        raise AddressParseError(text) from e

    # Zone ids ("fe80::1%eth0") name a link, not a 128-bit value
    if address.scope_id is not None:
        raise AddressParseError(text, "Scoped IPv6 addresses are not supported")
    return address


def _check_prefix_len(prefix_len: int):
    if not 0 <= prefix_len <= ADDRESS_BITS:
        raise ValueError(f"Prefix length {prefix_len} is out of range [0, {ADDRESS_BITS}]")


def _partial_mask(bits: int) -> int:
    return (0xFF << (8 - bits)) & 0xFF


def matches(addr: AddressLike, prefix_addr: AddressLike, prefix_len: int) -> bool:
    """
    Check whether the top ``prefix_len`` bits of ``addr`` equal those of
    ``prefix_addr``.

    Full bytes are compared for equality, then the remaining bits of the
    next byte are compared under a mask. A length of 0 matches everything.
    """
    _check_prefix_len(prefix_len)
    addr_bytes = parse_address(addr).packed
    prefix_bytes = parse_address(prefix_addr).packed

    full_bytes, bits = divmod(prefix_len, 8)
    if addr_bytes[:full_bytes] != prefix_bytes[:full_bytes]:
        return False

    if bits:
        mask = _partial_mask(bits)
        if (addr_bytes[full_bytes] & mask) != (prefix_bytes[full_bytes] & mask):
            return False

    return True


def remap(
    addr: AddressLike,
    old_prefix: AddressLike,
    new_prefix: AddressLike,
    prefix_len: int
) -> ipaddress.IPv6Address:
    """
    Rewrite the network part of an address.

    The top ``prefix_len`` bits are taken from ``new_prefix``; the host bits
    of ``addr`` are kept. ``old_prefix`` is only validated: the result does
    not depend on it.

    Args:
        addr: Address to translate.
        old_prefix: Prefix ``addr`` is expected to belong to.
        new_prefix: Prefix to translate into.
        prefix_len: Number of network bits (0-128).

    Returns:
        The translated address.

    Example:
        remap("fd00:1::5", "fd00:1::", "2001:db8:1::", 64)
        -> IPv6Address('2001:db8:1::5')
    """
    _check_prefix_len(prefix_len)
    result = bytearray(parse_address(addr).packed)
    parse_address(old_prefix)
    new_bytes = parse_address(new_prefix).packed

    full_bytes, bits = divmod(prefix_len, 8)
    result[:full_bytes] = new_bytes[:full_bytes]

    if bits:
        mask = _partial_mask(bits)
        result[full_bytes] = (new_bytes[full_bytes] & mask) | (result[full_bytes] & ~mask & 0xFF)

    return ipaddress.IPv6Address(bytes(result))


def is_global_unicast(addr: AddressLike) -> bool:
    """True when ``addr`` lies in 2000::/3."""
    first_byte = parse_address(addr).packed[0]
    return (first_byte & GLOBAL_UNICAST_MASK) == GLOBAL_UNICAST_VALUE


def is_hex_literal(text: str) -> bool:
    """True when ``text`` only uses hex digits and colons (no dotted quads)."""
    return bool(text) and all(c in HEX_LITERAL_CHARS for c in text)
