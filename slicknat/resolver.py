"""
Address lookups against the rule table.

Rules are tried in table order and the first match wins; overlapping rules
are never ranked by prefix length.
"""

import ipaddress
import logging
from dataclasses import dataclass
from typing import Dict

from .addressing import is_global_unicast, matches, parse_address, remap
from .errors import MappingNotFoundError
from .store import MappingStore

OUTBOUND = "outbound"
INBOUND = "inbound"
GLOBAL = "global"

NOT_FOUND_MESSAGE = "IP not found in mappings"


@dataclass(frozen=True)
class Resolution:
    """
    Result of a successful lookup.

    ``query`` is the literal as the client sent it; ``translated`` is the
    address computed from the matching rule.
    """
    query: str
    translated: ipaddress.IPv6Address
    interface: str
    direction: str

    def to_response(self) -> Dict[str, str]:
        translated = str(self.translated)
        if self.direction == OUTBOUND:
            fields = {"internal_ip": self.query, "public_ip": translated}
        elif self.direction == INBOUND:
            fields = {"external_ip": self.query, "internal_ip": translated}
        else:
            fields = {"internal_ip": self.query, "global_ip": translated}
        fields["interface"] = self.interface
        fields["status"] = "success"
        return fields


class Resolver:
    """Answers address queries from a MappingStore."""

    def __init__(self, store: MappingStore):
        self.store = store
        self.logger = logging.getLogger(__name__)

    def resolve_ip(self, ip: str) -> Resolution:
        """
        Translate an address in either direction.

        The internal prefixes are tried first (internal -> external), then
        the external prefixes (external -> internal).

        Raises:
            AddressParseError: if ``ip`` is not a valid IPv6 literal.
            MappingNotFoundError: if no rule matches either side.
        """
        address = parse_address(ip)

        with self.store.reading() as rules:
            for rule in rules:
                if matches(address, rule.internal, rule.prefix_len):
                    translated = remap(address, rule.internal, rule.external, rule.prefix_len)
                    return Resolution(ip, translated, rule.interface, OUTBOUND)

            for rule in rules:
                if matches(address, rule.external, rule.prefix_len):
                    translated = remap(address, rule.external, rule.internal, rule.prefix_len)
                    return Resolution(ip, translated, rule.interface, INBOUND)

        raise MappingNotFoundError(ip, NOT_FOUND_MESSAGE)

    def get_global_ip(self, ip: str) -> Resolution:
        """
        Find the global unicast (2000::/3) address an internal address is
        translated to.

        A rule whose translation falls outside 2000::/3 is skipped and the
        scan continues with the next rule.

        Raises:
            AddressParseError: if ``ip`` is not a valid IPv6 literal.
            MappingNotFoundError: if no rule yields a global address. The
                error carries the number of rules searched.
        """
        address = parse_address(ip)
        self.logger.debug(f"Looking for global IP mapping for: {ip}")

        with self.store.reading() as rules:
            for rule in rules:
                self.logger.debug(f"Checking if {ip} matches prefix {rule.internal_prefix}")
                if not matches(address, rule.internal, rule.prefix_len):
                    continue

                translated = remap(address, rule.internal, rule.external, rule.prefix_len)
                if is_global_unicast(translated):
                    self.logger.debug(f"Found match! Mapped to: {translated}")
                    return Resolution(ip, translated, rule.interface, GLOBAL)

                self.logger.debug(
                    f"Mapped IP {translated} is not in global unicast range (2000::/3)"
                )

            available = len(rules)

        raise MappingNotFoundError(
            ip,
            f"No global unicast mapping found for {ip}",
            available_mappings=available
        )
