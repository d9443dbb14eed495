"""
Mapping-source rules.

Each non-comment line of the mapping source describes one prefix rewrite::

    eth0 fd00:1::/64 -> 2001:db8:1::/64

i.e. ``<interface> <internal-prefix>/<len> -> <external-prefix>/<len>``.
"""

import ipaddress
import logging
from dataclasses import dataclass

from .addressing import ADDRESS_BITS, is_hex_literal, parse_address
from .errors import AddressParseError, RuleSyntaxError

ARROW = "->"
COMMENT_PREFIX = "#"

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NatRule:
    """One interface-scoped prefix rewrite."""
    interface: str
    internal: ipaddress.IPv6Address
    external: ipaddress.IPv6Address
    prefix_len: int

    @property
    def internal_prefix(self) -> str:
        return f"{self.internal}/{self.prefix_len}"

    @property
    def external_prefix(self) -> str:
        return f"{self.external}/{self.prefix_len}"

    def __str__(self):
        return f"{self.interface} {self.internal_prefix} -> {self.external_prefix}"


def is_ignorable(line: str) -> bool:
    """Blank lines and ``#`` comments carry no rule."""
    return not line.strip() or line.lstrip().startswith(COMMENT_PREFIX)


def _parse_prefix(token: str, side: str):
    address_text, sep, len_text = token.partition("/")
    if not sep:
        raise RuleSyntaxError(f"{side} prefix '{token}' has no /length")

    if not (len_text.isascii() and len_text.isdigit()):
        raise RuleSyntaxError(f"{side} prefix length '{len_text}' is not a number")
    prefix_len = int(len_text)
    if prefix_len > ADDRESS_BITS:
        raise RuleSyntaxError(
            f"{side} prefix length {prefix_len} is out of range [0, {ADDRESS_BITS}]"
        )

    if not is_hex_literal(address_text):
        raise RuleSyntaxError(f"{side} address '{address_text}' is not a hex IPv6 literal")
    try:
        address = parse_address(address_text)
    except AddressParseError as e:
        raise RuleSyntaxError(f"{side} address '{address_text}' is invalid") from e

    return address, prefix_len


def parse_rule_line(line: str) -> NatRule:
    """
    Parse one mapping-source line into a rule.

    Args:
        line: Raw line, with or without its trailing newline.

    Returns:
        The parsed NatRule.

    Raises:
        RuleSyntaxError: with the rejection reason if the line does not
            follow the grammar.
    """
    tokens = line.split()
    if len(tokens) != 4:
        raise RuleSyntaxError(f"expected 4 fields, found {len(tokens)}")

    interface, internal_token, arrow, external_token = tokens
    if arrow != ARROW:
        raise RuleSyntaxError(f"expected '{ARROW}', found '{arrow}'")

    internal, internal_len = _parse_prefix(internal_token, "internal")
    external, external_len = _parse_prefix(external_token, "external")

    if internal_len != external_len:
        # the rewrite covers the internal prefix length
        logger.debug(
            f"{interface}: prefix lengths differ (/{internal_len} -> /{external_len}), "
            f"using /{internal_len}"
        )

    return NatRule(
        interface=interface,
        internal=internal,
        external=external,
        prefix_len=internal_len,
    )
