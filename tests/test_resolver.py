import ipaddress

import pytest

from slicknat.errors import AddressParseError, MappingNotFoundError, SourceUnavailableError
from slicknat.resolver import GLOBAL, INBOUND, OUTBOUND
from slicknat.store import Refresher


def test_resolve_internal_to_public(scenario_resolver):
    result = scenario_resolver.resolve_ip("fd00:1::5")
    assert result.direction == OUTBOUND
    assert result.translated == ipaddress.IPv6Address("2001:db8:1::5")
    assert result.to_response() == {
        "internal_ip": "fd00:1::5",
        "public_ip": "2001:db8:1::5",
        "interface": "eth0",
        "status": "success",
    }


def test_resolve_external_to_internal(scenario_resolver):
    result = scenario_resolver.resolve_ip("2001:db8:1::5")
    assert result.direction == INBOUND
    assert result.to_response() == {
        "external_ip": "2001:db8:1::5",
        "internal_ip": "fd00:1::5",
        "interface": "eth0",
        "status": "success",
    }


def test_resolve_not_found(scenario_resolver):
    with pytest.raises(MappingNotFoundError) as excinfo:
        scenario_resolver.resolve_ip("::42")
    assert excinfo.value.ip == "::42"
    assert excinfo.value.message == "IP not found in mappings"
    assert excinfo.value.available_mappings is None


def test_resolve_invalid_address(scenario_resolver):
    with pytest.raises(AddressParseError):
        scenario_resolver.resolve_ip("fd00::zz")


def test_resolve_on_empty_table(resolver):
    with pytest.raises(MappingNotFoundError):
        resolver.resolve_ip("fd00:1::5")


def test_first_match_wins(resolver, load_rules):
    load_rules(
        "wide fd00::/16 -> 2001:db8::/16\n"
        "narrow fd00:1::/64 -> 2001:db8:aaaa::/64\n"
    )
    result = resolver.resolve_ip("fd00:1::5")
    assert result.interface == "wide"
    assert str(result.translated) == "2001:1::5"


def test_first_match_wins_ignores_prefix_length(resolver, load_rules):
    load_rules(
        "narrow fd00:1::/64 -> 2001:db8:aaaa::/64\n"
        "wide fd00::/16 -> 2001:db8::/16\n"
    )
    assert resolver.resolve_ip("fd00:1::5").interface == "narrow"


def test_internal_side_checked_before_external(resolver, load_rules):
    # 2001:db8:1::5 is the external side of rule one and the internal side of rule two
    load_rules(
        "eth0 fd00:1::/64 -> 2001:db8:1::/64\n"
        "eth1 2001:db8:1::/64 -> 2001:db8:2::/64\n"
    )
    result = resolver.resolve_ip("2001:db8:1::5")
    assert result.direction == OUTBOUND
    assert result.interface == "eth1"


def test_get_global_ip(scenario_resolver):
    result = scenario_resolver.get_global_ip("fd00:1::5")
    assert result.direction == GLOBAL
    assert result.to_response() == {
        "internal_ip": "fd00:1::5",
        "global_ip": "2001:db8:1::5",
        "interface": "eth0",
        "status": "success",
    }


def test_get_global_ip_skips_unique_local_target(resolver, load_rules):
    load_rules("lan fd00:1::/64 -> fd99:1::/64\n")

    with pytest.raises(MappingNotFoundError) as excinfo:
        resolver.get_global_ip("fd00:1::5")
    assert excinfo.value.message == "No global unicast mapping found for fd00:1::5"
    assert excinfo.value.available_mappings == 1

    # resolve_ip still uses the rule
    assert str(resolver.resolve_ip("fd00:1::5").translated) == "fd99:1::5"


def test_get_global_ip_continues_past_non_global_match(resolver, load_rules):
    load_rules(
        "lan fd00:1::/64 -> fd99:1::/64\n"
        "wan fd00:1::/64 -> 2a0a:8dc0:1::/64\n"
    )
    result = resolver.get_global_ip("fd00:1::5")
    assert result.interface == "wan"
    assert str(result.translated) == "2a0a:8dc0:1::5"


def test_get_global_ip_only_uses_internal_side(scenario_resolver):
    with pytest.raises(MappingNotFoundError) as excinfo:
        scenario_resolver.get_global_ip("2001:db8:1::5")
    assert excinfo.value.available_mappings == 1


def test_queries_use_stale_table_after_source_loss(resolver, store, write_mappings):
    path = write_mappings("eth0 fd00:1::/64 -> 2001:db8:1::/64\n")
    refresher = Refresher(store, path)
    refresher.refresh()
    path.unlink()

    with pytest.raises(SourceUnavailableError):
        refresher.refresh()
    assert str(resolver.resolve_ip("fd00:1::5").translated) == "2001:db8:1::5"
