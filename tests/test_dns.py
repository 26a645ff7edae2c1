import ipaddress

import pytest

from headscale.dns import (
    DNSConfig,
    generate_ipv4_dns_root_domain,
    generate_ipv6_dns_root_domain,
    generate_magic_dns_root_domains,
    get_map_response_dns_config,
)

BASE_DOMAIN = "foobar.headscale.net"


def test_magic_dns_root_domains_100():
    domains = generate_magic_dns_root_domains(["100.64.0.0/10"])
    assert "64.100.in-addr.arpa." in domains
    assert "100.100.in-addr.arpa." in domains
    assert "127.100.in-addr.arpa." in domains
    assert len(domains) == 64


def test_magic_dns_root_domains_172():
    domains = generate_magic_dns_root_domains([ipaddress.ip_network("172.16.0.0/16")])
    assert "0.16.172.in-addr.arpa." in domains
    assert "255.16.172.in-addr.arpa." in domains
    assert len(domains) == 256


def test_magic_dns_root_domains_ipv6_single():
    domains = generate_magic_dns_root_domains(["fd7a:115c:a1e0::/48"])
    assert domains == ["0.e.1.a.c.5.1.1.a.7.d.f.ip6.arpa."]


def test_magic_dns_root_domains_ipv6_multiple():
    domains = generate_magic_dns_root_domains(["fd7a:115c:a1e0::/50"])
    assert len(domains) == 4
    for nibble in "0123":
        assert f"{nibble}.0.e.1.a.c.5.1.1.a.7.d.f.ip6.arpa." in domains


def test_mixed_prefixes_are_concatenated_in_order():
    domains = generate_magic_dns_root_domains(
        ["fd7a:115c:a1e0::/48", "100.64.0.0/10"]
    )
    assert domains[0] == "0.e.1.a.c.5.1.1.a.7.d.f.ip6.arpa."
    assert domains[1] == "64.100.in-addr.arpa."
    assert len(domains) == 65


def test_ipv4_host_prefix_has_no_wildcard_octet():
    with pytest.raises(ValueError):
        generate_ipv4_dns_root_domain("10.0.0.1/32")


def test_ipv4_prefix_on_octet_boundary():
    assert generate_ipv4_dns_root_domain("10.1.2.0/24") == [
        f"{value}.2.1.10.in-addr.arpa." for value in range(256)
    ][:256]
    assert generate_ipv4_dns_root_domain("10.1.2.0/24")[3] == "3.2.1.10.in-addr.arpa."


def test_ipv6_all_domains_end_with_arpa():
    domains = generate_ipv6_dns_root_domain("fd7a:115c:a1e0::/51")
    assert len(domains) == 8
    assert all(domain.endswith(".ip6.arpa.") for domain in domains)
    assert domains[-1] == "7.0.e.1.a.c.5.1.1.a.7.d.f.ip6.arpa."


def test_dns_config_map_response_with_magic_dns():
    original = DNSConfig(routes={}, domains=[BASE_DOMAIN], proxied=True)
    config = get_map_response_dns_config(
        original, BASE_DOMAIN, "shared1", ["shared2", "shared3", "shared1"]
    )
    assert len(config.routes) == 3
    assert "shared1.foobar.headscale.net" in config.routes
    assert "shared2.foobar.headscale.net" in config.routes
    assert "shared3.foobar.headscale.net" in config.routes
    assert config.routes["shared2.foobar.headscale.net"] is None
    assert config.domains == [BASE_DOMAIN, "shared1.foobar.headscale.net"]


def test_magic_dns_does_not_mutate_original():
    original = DNSConfig(routes={}, domains=[BASE_DOMAIN], proxied=True)
    get_map_response_dns_config(original, BASE_DOMAIN, "shared1", ["shared2"])
    assert original.routes == {}
    assert original.domains == [BASE_DOMAIN]


def test_dns_config_map_response_without_magic_dns():
    original = DNSConfig(routes={}, domains=[BASE_DOMAIN], proxied=False)
    config = get_map_response_dns_config(
        original, BASE_DOMAIN, "shared1", ["shared2", "shared3", "shared1"]
    )
    assert config is original
    assert len(config.routes) == 0
    assert len(config.domains) == 1


def test_dns_config_none_passes_through():
    assert get_map_response_dns_config(None, BASE_DOMAIN, "ns", ["other"]) is None


def test_clone_is_independent():
    original = DNSConfig(routes={"a.example.com": ["x"]}, domains=["d"], proxied=True)
    cloned = original.clone()
    cloned.routes["a.example.com"].append("y")
    cloned.domains.append("e")
    assert original.routes == {"a.example.com": ["x"]}
    assert original.domains == ["d"]
    assert cloned.proxied is True