"""
Fixtures used in the tests
"""
import socket

import pytest

from slicknat.resolver import Resolver
from slicknat.store import MappingStore, Refresher

SCENARIO_MAPPINGS = """\
# interface internal -> external
eth0 fd00:1::/64 -> 2001:db8:1::/64
"""


def ipv6_loopback_available() -> bool:
    if not socket.has_ipv6:
        return False
    try:
        with socket.socket(socket.AF_INET6, socket.SOCK_STREAM) as sock:
            sock.bind(("::1", 0))
    except OSError:
        return False
    return True


requires_ipv6_loopback = pytest.mark.skipif(
    not ipv6_loopback_available(), reason="no IPv6 loopback on this host"
)


@pytest.fixture()
def write_mappings(tmp_path):
    """Return a function writing a mapping source and returning its path."""
    path = tmp_path / "slick_nat_mappings"

    def _write(text: str):
        path.write_text(text, encoding="utf-8")
        return path

    return _write


@pytest.fixture()
def store():
    return MappingStore()


@pytest.fixture()
def load_rules(store, write_mappings):
    """Load mapping text into the ``store`` fixture and return the refresher."""

    def _load(text: str) -> Refresher:
        refresher = Refresher(store, write_mappings(text))
        refresher.refresh()
        return refresher

    return _load


@pytest.fixture()
def resolver(store):
    return Resolver(store)


@pytest.fixture()
def scenario_resolver(resolver, load_rules):
    load_rules(SCENARIO_MAPPINGS)
    return resolver
