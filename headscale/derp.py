"""DERP relay maps: loading, merging and describing the embedded DERP region."""

from __future__ import annotations

import json
import logging
import re
import urllib.request
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from urllib.parse import urlsplit

import yaml

logger = logging.getLogger(__name__)

HTTP_READ_TIMEOUT = 30.0

_PORT_PATTERN = re.compile(r"[+-]?\d+")


def _lower_keys(data: Any, what: str) -> dict[str, Any]:
    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise ValueError(f"{what} must be a mapping, got {type(data).__name__}")
    return {str(key).lower(): value for key, value in data.items()}


def _as_int(value: Any, what: str) -> int:
    if value is None:
        return 0
    if isinstance(value, bool):
        raise ValueError(f"{what} must be an integer, got a boolean")
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{what} must be an integer, got {value!r}") from exc


def _as_str(value: Any) -> str:
    return "" if value is None else str(value)


@dataclass
class DERPNode:
    """A single DERP server within a region."""

    name: str = ""
    region_id: int = 0
    host_name: str = ""
    cert_name: str = ""
    ipv4: str = ""
    ipv6: str = ""
    stun_port: int = 0
    stun_only: bool = False
    derp_port: int = 0
    insecure_for_tests: bool = False
    stun_test_ip: str = ""

    @classmethod
    def _from_dict(cls, data: Any) -> DERPNode:
        raw = _lower_keys(data, "DERP node")
        return cls(
            name=_as_str(raw.get("name")),
            region_id=_as_int(raw.get("regionid"), "RegionID"),
            host_name=_as_str(raw.get("hostname")),
            cert_name=_as_str(raw.get("certname")),
            ipv4=_as_str(raw.get("ipv4")),
            ipv6=_as_str(raw.get("ipv6")),
            stun_port=_as_int(raw.get("stunport"), "STUNPort"),
            stun_only=bool(raw.get("stunonly", False)),
            derp_port=_as_int(raw.get("derpport"), "DERPPort"),
            insecure_for_tests=bool(raw.get("insecurefortests", False)),
            stun_test_ip=_as_str(raw.get("stuntestip")),
        )


@dataclass
class DERPRegion:
    """A geographic group of DERP servers sharing one region ID."""

    region_id: int = 0
    region_code: str = ""
    region_name: str = ""
    avoid: bool = False
    nodes: list[DERPNode] = field(default_factory=list)

    @classmethod
    def _from_dict(cls, data: Any) -> DERPRegion:
        raw = _lower_keys(data, "DERP region")
        nodes = raw.get("nodes") or []
        if not isinstance(nodes, list):
            raise ValueError("DERP region nodes must be a list")
        return cls(
            region_id=_as_int(raw.get("regionid"), "RegionID"),
            region_code=_as_str(raw.get("regioncode")),
            region_name=_as_str(raw.get("regionname")),
            avoid=bool(raw.get("avoid", False)),
            nodes=[DERPNode._from_dict(node) for node in nodes],
        )


@dataclass
class DERPMap:
    """The set of DERP regions handed to clients, keyed by region ID."""

    regions: dict[int, DERPRegion] = field(default_factory=dict)
    omit_default_regions: bool = False


def derp_map_from_dict(data: Any) -> DERPMap:
    """Build a :class:`DERPMap` from decoded JSON or YAML.

    Field names are matched case-insensitively, so both the JSON form
    (``Regions``, ``RegionID``) and the lower-case YAML form are accepted.
    """
    raw = _lower_keys(data, "DERP map")
    regions_raw = _lower_keys(raw.get("regions"), "DERP map regions")
    regions = {
        _as_int(region_id, "region key"): DERPRegion._from_dict(region)
        for region_id, region in regions_raw.items()
    }
    return DERPMap(
        regions=regions,
        omit_default_regions=bool(raw.get("omitdefaultregions", False)),
    )


def load_derp_map_from_path(path: str | Path) -> DERPMap:
    """Read a DERP map from a YAML (or JSON) file."""
    with open(path, encoding="utf-8") as handle:
        data = yaml.safe_load(handle)
    return derp_map_from_dict(data)


def load_derp_map_from_url(url: str, timeout: float = HTTP_READ_TIMEOUT) -> DERPMap:
    """Fetch a JSON DERP map over HTTP."""
    request = urllib.request.Request(url, method="GET")
    with urllib.request.urlopen(request, timeout=timeout) as response:
        body = response.read()
    return derp_map_from_dict(json.loads(body))


def merge_derp_maps(derp_maps: Iterable[DERPMap]) -> DERPMap:
    """Merge the regions of several maps; a later map wins on a shared region ID."""
    result = DERPMap(omit_default_regions=False)
    for derp_map in derp_maps:
        result.regions.update(derp_map.regions)
    return result


def get_derp_map(paths: Iterable[str | Path], urls: Iterable[str]) -> DERPMap:
    """Load DERP maps from files, then URLs, and merge them.

    Loading from a kind of source stops at the first one that fails; whatever
    was loaded before it is kept.
    """
    derp_maps: list[DERPMap] = []

    for path in paths:
        logger.debug("Loading DERPMap from path %s", path)
        try:
            derp_maps.append(load_derp_map_from_path(path))
        except (OSError, ValueError, yaml.YAMLError) as exc:
            logger.error("Could not load DERP map from path %s: %s", path, exc)
            break

    for url in urls:
        try:
            loaded = load_derp_map_from_url(url)
        except (OSError, ValueError) as exc:
            logger.debug("Loading DERPMap from url %s", url)
            logger.error("Could not load DERP map from url %s: %s", url, exc)
            break
        logger.debug("Loading DERPMap from url %s", url)
        derp_maps.append(loaded)

    derp_map = merge_derp_maps(derp_maps)
    logger.debug("DERPMap loaded: %r", derp_map)

    if not derp_map.regions:
        logger.warning(
            "DERP map is empty, not a single DERP map datasource was loaded "
            "correctly or contained a region"
        )
    return derp_map


def _split_host_port(hostport: str) -> tuple[str, str]:
    """Split ``host:port`` or ``[host]:port``, rejecting anything else."""
    if hostport.startswith("["):
        end = hostport.find("]")
        if end < 0:
            raise ValueError(f"address {hostport}: missing ']' in address")
        rest = hostport[end + 1 :]
        if not rest:
            raise ValueError(f"address {hostport}: missing port in address")
        if not rest.startswith(":") or ":" in rest[1:]:
            raise ValueError(f"address {hostport}: too many colons in address")
        host, port = hostport[1:end], rest[1:]
        if "[" in host or "]" in port:
            raise ValueError(f"address {hostport}: unexpected bracket in address")
        return host, port

    index = hostport.rfind(":")
    if index < 0:
        raise ValueError(f"address {hostport}: missing port in address")
    host, port = hostport[:index], hostport[index + 1 :]
    if ":" in host:
        raise ValueError(f"address {hostport}: too many colons in address")
    if any(bracket in host or bracket in port for bracket in "[]"):
        raise ValueError(f"address {hostport}: unexpected bracket in address")
    return host, port


def _parse_port(text: str) -> int:
    if not _PORT_PATTERN.fullmatch(text):
        raise ValueError(f"invalid port {text!r}")
    return int(text)


def generate_region_local_derp(
    server_url: str,
    region_id: int,
    region_code: str,
    region_name: str,
    stun_addr: str,
) -> DERPRegion:
    """Describe the embedded DERP server as a single-node region.

    The DERP host and port come from the public server URL, falling back to
    443 for https and 80 otherwise; the STUN port comes from ``stun_addr``.
    """
    parts = urlsplit(server_url)
    netloc = parts.netloc.rpartition("@")[2]
    try:
        host, port_text = _split_host_port(netloc)
    except ValueError:
        host = netloc
        port = 443 if parts.scheme == "https" else 80
    else:
        port = _parse_port(port_text)

    _, stun_port_text = _split_host_port(stun_addr)
    stun_port = _parse_port(stun_port_text)

    region = DERPRegion(
        region_id=region_id,
        region_code=region_code,
        region_name=region_name,
        avoid=False,
        nodes=[
            DERPNode(
                name=str(region_id),
                region_id=region_id,
                host_name=host,
                derp_port=port,
                stun_port=stun_port,
            )
        ],
    )
    logger.info("DERP region: %r", region)
    return region