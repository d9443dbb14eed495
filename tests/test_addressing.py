import ipaddress
import random

import pytest

from slicknat.addressing import is_global_unicast, matches, parse_address, remap
from slicknat.errors import AddressParseError

PREFIX_LENGTHS = [0, 1, 7, 8, 9, 64, 127, 128]

SAMPLE_ADDRESSES = [
    "::",
    "::1",
    "fd00:1::5",
    "2001:db8:1::5",
    "ffff:ffff:ffff:ffff:ffff:ffff:ffff:ffff",
    "7607:af56:abb1:c7::100",
]


def flip_bit(address: str, position: int) -> ipaddress.IPv6Address:
    """Flip bit ``position`` counted from the most significant bit (0)."""
    value = int(ipaddress.IPv6Address(address))
    return ipaddress.IPv6Address(value ^ (1 << (127 - position)))


# --- parse_address --- #

def test_parse_address_accepts_literals():
    assert parse_address("fd00:1::5") == ipaddress.IPv6Address("fd00:1::5")


def test_parse_address_passes_address_objects_through():
    address = ipaddress.IPv6Address("2001:db8::1")
    assert parse_address(address) is address


@pytest.mark.parametrize("text", [
    "", "not-an-ip", "1.2.3.4", "2001:db8::/64", "fe80::1%eth0", "1::2::3",
    " ::1 ", " fd00:1::5\n", "fd00:1::5\t",
])
def test_parse_address_rejects_invalid_literals(text):
    with pytest.raises(AddressParseError):
        parse_address(text)


def test_parse_address_rejects_non_strings():
    with pytest.raises(AddressParseError):
        parse_address(42)


# --- matches --- #

@pytest.mark.parametrize("prefix_len", PREFIX_LENGTHS)
@pytest.mark.parametrize("address", SAMPLE_ADDRESSES)
def test_matches_is_reflexive(address, prefix_len):
    assert matches(address, address, prefix_len)


@pytest.mark.parametrize("prefix_len", [n for n in PREFIX_LENGTHS if n < 128])
@pytest.mark.parametrize("address", SAMPLE_ADDRESSES)
def test_matches_ignores_bits_past_prefix(address, prefix_len):
    for position in range(prefix_len, 128, 13):
        assert matches(flip_bit(address, position), address, prefix_len)
    assert matches(flip_bit(address, 127), address, prefix_len)


@pytest.mark.parametrize("prefix_len", [n for n in PREFIX_LENGTHS if n > 0])
@pytest.mark.parametrize("address", SAMPLE_ADDRESSES)
def test_matches_checks_every_prefix_bit(address, prefix_len):
    # last bit inside the prefix, including the partial byte
    assert not matches(flip_bit(address, prefix_len - 1), address, prefix_len)
    assert not matches(flip_bit(address, 0), address, prefix_len)


def test_zero_length_matches_everything():
    assert matches("ffff::", "::", 0)
    assert matches("::", "2001:db8::", 0)


def test_full_length_requires_equality():
    assert matches("2001:db8::1", "2001:db8::1", 128)
    assert not matches("2001:db8::2", "2001:db8::1", 128)


def test_partial_byte_prefix():
    # fd00::/7 is unique-local; fc00:: and fdff:: are both inside
    assert matches("fc00::1", "fd00::", 7)
    assert matches("fdff::1", "fc00::", 7)
    assert not matches("fe00::1", "fc00::", 7)


@pytest.mark.parametrize("prefix_len", [-1, 129])
def test_matches_rejects_out_of_range_length(prefix_len):
    with pytest.raises(ValueError):
        matches("::1", "::1", prefix_len)


# --- remap --- #

def test_remap_replaces_network_bits():
    assert remap("fd00:1::5", "fd00:1::", "2001:db8:1::", 64) == ipaddress.IPv6Address("2001:db8:1::5")


def test_remap_partial_byte():
    # top 7 bits come from 0x20, the low bit of the first byte from 0xfd
    assert remap("fd00::1", "fc00::", "2000::", 7) == ipaddress.IPv6Address("2100::1")


def test_remap_zero_length_is_identity():
    assert remap("fd00:1::5", "::", "2001:db8::", 0) == ipaddress.IPv6Address("fd00:1::5")


def test_remap_full_length_is_new_prefix():
    assert remap("fd00:1::5", "fd00:1::5", "2001:db8::7", 128) == ipaddress.IPv6Address("2001:db8::7")


def test_remap_ignores_old_prefix_value():
    assert remap("fd00:1::5", "::", "2001:db8:1::", 64) == remap("fd00:1::5", "fd00:1::", "2001:db8:1::", 64)


@pytest.mark.parametrize("prefix_len", PREFIX_LENGTHS + [3, 48, 56, 96, 121])
def test_remap_round_trip_restores_address(prefix_len):
    rng = random.Random(prefix_len)
    for _ in range(20):
        old_prefix = ipaddress.IPv6Address(rng.getrandbits(128))
        new_prefix = ipaddress.IPv6Address(rng.getrandbits(128))
        host = rng.getrandbits(128)
        # build an address inside old_prefix/prefix_len
        net_mask = ((1 << prefix_len) - 1) << (128 - prefix_len)
        addr = ipaddress.IPv6Address((int(old_prefix) & net_mask) | (host & ~net_mask & ((1 << 128) - 1)))
        assert matches(addr, old_prefix, prefix_len)

        there = remap(addr, old_prefix, new_prefix, prefix_len)
        assert matches(there, new_prefix, prefix_len)
        assert remap(there, new_prefix, old_prefix, prefix_len) == addr


# --- is_global_unicast --- #

@pytest.mark.parametrize("address, expected", [
    ("2001:db8:1::5", True),
    ("2000::", True),
    ("3fff:ffff::1", True),
    ("1fff::1", False),
    ("4000::", False),
    ("fd00:1::5", False),
    ("fe80::1", False),
    ("::1", False),
])
def test_is_global_unicast(address, expected):
    assert is_global_unicast(address) is expected
