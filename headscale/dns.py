"""MagicDNS helpers: reverse-DNS root domains and per-client DNS configuration."""

from __future__ import annotations

import copy
import ipaddress
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any, Union

BYTE_SIZE = 8
_NIBBLE_LEN = 4
_MAX_LABEL_LENGTH = 63
_MAX_NAME_LENGTH = 253

PrefixLike = Union[str, ipaddress.IPv4Network, ipaddress.IPv6Network]


@dataclass
class DNSConfig:
    """DNS settings pushed to clients in a map response."""

    resolvers: list[Any] = field(default_factory=list)
    routes: dict[str, list[Any] | None] = field(default_factory=dict)
    fallback_resolvers: list[Any] = field(default_factory=list)
    domains: list[str] = field(default_factory=list)
    proxied: bool = False
    nameservers: list[str] = field(default_factory=list)

    def clone(self) -> DNSConfig:
        """Return an independent deep copy of this configuration."""
        return copy.deepcopy(self)


def _to_fqdn(name: str) -> str:
    """Validate ``name`` as a DNS name and return it with a single trailing dot."""
    bare = name[:-1] if name.endswith(".") else name
    if not bare:
        raise ValueError(f"invalid DNS name {name!r}: empty")
    if len(bare) > _MAX_NAME_LENGTH:
        raise ValueError(f"invalid DNS name {name!r}: too long")
    for label in bare.split("."):
        if not label:
            raise ValueError(f"invalid DNS name {name!r}: empty label")
        if len(label) > _MAX_LABEL_LENGTH:
            raise ValueError(f"invalid DNS name {name!r}: label too long")
    return bare + "."


def _as_network(prefix: PrefixLike) -> ipaddress.IPv4Network | ipaddress.IPv6Network:
    if isinstance(prefix, (ipaddress.IPv4Network, ipaddress.IPv6Network)):
        return prefix
    return ipaddress.ip_network(str(prefix), strict=False)


def generate_magic_dns_root_domains(prefixes: Iterable[PrefixLike]) -> list[str]:
    """Return the root domains the embedded DNS server answers for, per prefix."""
    fqdns: list[str] = []
    for prefix in prefixes:
        network = _as_network(prefix)
        if network.version == 4:
            fqdns.extend(generate_ipv4_dns_root_domain(network))
        elif network.version == 6:
            fqdns.extend(generate_ipv6_dns_root_domain(network))
        else:
            raise ValueError(
                f"unsupported IP version with address length {network.max_prefixlen}"
            )
    return fqdns


def generate_ipv4_dns_root_domain(prefix: PrefixLike) -> list[str]:
    """Return the in-addr.arpa domains covering the next class block of ``prefix``."""
    network = _as_network(prefix)
    mask_bits = network.prefixlen
    octets = network.network_address.packed

    last_octet = mask_bits // BYTE_SIZE
    if last_octet >= len(octets):
        raise ValueError(f"prefix {network} has no wildcard octet")
    wildcard_bits = BYTE_SIZE - mask_bits % BYTE_SIZE

    low = octets[last_octet]
    high = low + (1 << wildcard_bits) - 1

    base_parts = [str(octet) for octet in reversed(octets[:last_octet])]
    rdns_base = ".".join([*base_parts, "in-addr.arpa."])

    fqdns: list[str] = []
    for value in range(low, high + 1):
        try:
            fqdns.append(_to_fqdn(f"{value}.{rdns_base}"))
        except ValueError:
            continue
    return fqdns


def generate_ipv6_dns_root_domain(prefix: PrefixLike) -> list[str]:
    """Return the ip6.arpa domains covering ``prefix`` at nibble granularity."""
    network = _as_network(prefix)
    mask_bits = network.prefixlen
    nibbles = network.network_address.exploded.replace(":", "")

    constant_parts = list(reversed(nibbles[: mask_bits // _NIBBLE_LEN]))

    def make_domain(*variable: str) -> str:
        return _to_fqdn(".".join([*variable, *constant_parts]) + ".ip6.arpa")

    remainder = mask_bits % _NIBBLE_LEN
    if remainder == 0:
        try:
            return [make_domain()]
        except ValueError:
            return []

    fqdns: list[str] = []
    for value in range(1 << remainder):
        try:
            fqdns.append(make_domain(f"{value:x}"))
        except ValueError:
            continue
    return fqdns


def get_map_response_dns_config(
    dns_config: DNSConfig | None,
    base_domain: str,
    namespace: str,
    peer_namespaces: Iterable[str],
) -> DNSConfig | None:
    """Build the DNS configuration sent to a machine in ``namespace``.

    With MagicDNS enabled, the machine's own namespace becomes a search domain
    and every namespace it can see (its own and its peers') gets a route.
    Otherwise the original configuration is returned unchanged.
    """
    if dns_config is None or not dns_config.proxied:
        return dns_config

    result = dns_config.clone()
    result.domains.append(f"{namespace}.{base_domain}")

    seen = {namespace, *peer_namespaces}
    for name in seen:
        result.routes[f"{name}.{base_domain}"] = None
    return result