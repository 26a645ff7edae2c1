# headscale

Python building blocks for a mesh VPN coordination server. It has MagicDNS
root domains, ACL tag checks, DERP relay maps, a STUN binding responder, a
small SQLite key-value store, and helpers that format command output and
tables.

## Installation

```
pip install .
```

To run the test suite:

```
pip install ".[test]"
pytest
```

## Modules

### `headscale.dns`

- `generate_magic_dns_root_domains(prefixes)` returns the reverse-DNS root
  domains for a list of address prefixes. A prefix can be a string or an
  `ipaddress` network.
  - An IPv4 prefix gives `in-addr.arpa.` names for each value of the next
    octet it covers. For example, `100.64.0.0/10` gives
    `64.100.in-addr.arpa.` through `127.100.in-addr.arpa.`.
  - An IPv6 prefix gives `ip6.arpa.` names at nibble granularity. If the
    prefix length is not a multiple of 4, it gives one name for each value of
    the partial nibble.
- `generate_ipv4_dns_root_domain(prefix)` and
  `generate_ipv6_dns_root_domain(prefix)` do the same work for a single
  prefix of one address family.
- `DNSConfig` is a dataclass. Its fields are `resolvers`, `routes`,
  `fallback_resolvers`, `domains`, `proxied` and `nameservers`.
  `clone()` returns a deep copy.
- `get_map_response_dns_config(dns_config, base_domain, namespace, peer_namespaces)`
  builds the DNS settings for one client.
  - When `proxied` (MagicDNS) is set, it works on a copy of the settings. It
    appends `<namespace>.<base_domain>` to the search domains. It also adds a
    route, with value `None`, for the client's namespace and for every peer
    namespace.
  - Otherwise it returns the settings it was given, unchanged. That includes
    `None`.

### `headscale.tags`

`validate_tag(tag)` raises `InvalidTagError` (a `ValueError`) in any of these
cases:

- the tag does not start with `tag:`
- the tag has uppercase letters
- the tag contains whitespace

### `headscale.derp`

- `DERPMap`, `DERPRegion` and `DERPNode` are dataclasses that describe DERP
  relay regions and their servers. `DERPMap.regions` is keyed by region ID.
- `derp_map_from_dict(data)` builds a map from decoded JSON or YAML. It
  matches field names without regard to case.
- `load_derp_map_from_path(path)` reads a YAML or JSON file.
- `load_derp_map_from_url(url, timeout=30.0)` fetches JSON over HTTP.
- `merge_derp_maps(maps)` merges the regions of several maps. When two maps
  have the same region ID, the later one wins.
- `get_derp_map(paths, urls)` loads the files first, then the URLs, and
  merges the results. Among the paths, loading stops at the first one that
  fails, and the same holds for the URLs; whatever loaded before the failure
  is kept. If the result has no regions, it logs a warning.
- `generate_region_local_derp(server_url, region_id, region_code, region_name, stun_addr)`
  describes an embedded DERP server as a region with a single node.
  - The host and port come from the server URL. If the URL has no port, the
    port is 443 for `https` and 80 for anything else.
  - The STUN port comes from `stun_addr`, which must have the form
    `host:port`.

### `headscale.stun`

- `is_stun(packet)` checks for a STUN header that carries the magic cookie.
- `parse_binding_request(packet)` returns the 12-byte transaction ID. It
  raises `StunError` in these cases:
  - the packet is not a STUN packet
  - the packet is not a binding request
  - an attribute is truncated
  - the FINGERPRINT attribute is wrong or is not the last attribute
- `binding_response(txid, host, port)` builds a binding success response that
  carries an XOR-MAPPED-ADDRESS attribute. It works for IPv4 and IPv6.
  IPv4-mapped IPv6 addresses are sent as IPv4.
- `serve_stun(sock, stop=None)` answers binding requests on a bound UDP
  socket until the `threading.Event` `stop` is set. Give the socket a timeout
  so that it notices `stop` promptly.

### `headscale.store`

- `KVStore(path)` opens or creates an SQLite database that holds a key-value
  table. It records `db_version` when it opens.
  - `get_value(key)` returns the stored value. It raises
    `ValueNotFoundError` (a `KeyError`) when the key is missing.
  - `set_value(key, value)` inserts the value or replaces the existing one.
  - `ping()` checks that the database still answers.
  - `close()` closes the connection. A `KVStore` can also be used as a
    context manager.
- `encode_json_column(value)` writes compact JSON text. It handles IP
  addresses and networks, dates, dataclasses, sets and tuples.
- `decode_json_column(raw)` reads that text back from `str` or `bytes`. It
  raises `InvalidColumnDataError` for other types and for JSON it cannot
  parse.

### `headscale.output`

- `format_output(result, override, output_format)` returns the text for a
  result.
  - `"json"` gives tab-indented JSON.
  - `"json-line"` gives compact JSON.
  - `"yaml"` gives YAML.
  - Any other format, including an empty one, gives the human-readable
    `override` text.
- `success_output(...)` prints the result of `format_output`.
- `error_output(error, override, output_format)` prints
  `{"error": "<message>"}` in the same way.
- `has_machine_output_flag(argv=None)` reports whether any argument is
  `json`, `json-line` or `yaml`. It checks `sys.argv` when no arguments are
  given.
- `colour_time(date, now=None)` formats a timestamp as
  `YYYY-MM-DD HH:MM:SS`. The text is green when the time is in the future and
  red otherwise.

### `headscale.tables`

- `parse_duration(text)` parses durations such as `30m`, `24h` or `1w2d`.
  The units are `y`, `w`, `d`, `h`, `m`, `s` and `ms`. It returns a
  `datetime.timedelta` and raises `ValueError` for text it cannot parse.
- `routes_to_table(advertised, enabled)` builds the route listing.
- `preauth_keys_to_table(keys, now=None)` builds the pre-auth key listing from
  `PreAuthKeyRow` items.
- `namespaces_to_table(namespaces)` builds the namespace listing from
  `NamespaceRow` items.
- `render_table(rows)` lays the rows out as aligned columns separated by
  ` | `. It ignores colour codes when it measures column widths.

## Example

```python
import ipaddress

from headscale.dns import generate_magic_dns_root_domains
from headscale.tables import render_table, routes_to_table
from headscale.tags import validate_tag

domains = generate_magic_dns_root_domains(
    [ipaddress.ip_network("fd7a:115c:a1e0::/48")]
)
print(domains)  # ['0.e.1.a.c.5.1.1.a.7.d.f.ip6.arpa.']

validate_tag("tag:servers")

print(render_table(routes_to_table(["10.0.0.0/24", "10.1.0.0/24"], ["10.0.0.0/24"])))
```

## What this package does not do

- It installs no command-line program.
- It does not run a coordination server, and it has no API for clients or
  administrators.
- It does not relay DERP traffic.
- It does not store machines, namespaces, pre-auth keys or API keys.

The DNS, DERP and STUN helpers, the key-value store and the table and output
functions are pieces that such a server or command could build on.