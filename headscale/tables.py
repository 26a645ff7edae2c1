"""Table views of routes, pre-auth keys and namespaces for the command line."""

from __future__ import annotations

import datetime as _dt
import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from headscale.output import HEADSCALE_DATE_TIME_FORMAT, colour_time

_DURATION_PATTERN = re.compile(
    r"(?:(?P<y>[0-9]+)y)?"
    r"(?:(?P<w>[0-9]+)w)?"
    r"(?:(?P<d>[0-9]+)d)?"
    r"(?:(?P<h>[0-9]+)h)?"
    r"(?:(?P<m>[0-9]+)m)?"
    r"(?:(?P<s>[0-9]+)s)?"
    r"(?:(?P<ms>[0-9]+)ms)?"
)

_UNIT_MILLISECONDS = {
    "y": 365 * 24 * 60 * 60 * 1000,
    "w": 7 * 24 * 60 * 60 * 1000,
    "d": 24 * 60 * 60 * 1000,
    "h": 60 * 60 * 1000,
    "m": 60 * 1000,
    "s": 1000,
    "ms": 1,
}

_ANSI_ESCAPE = re.compile(r"\x1b\[[0-9;]*m")

_PREAUTH_HEADER = [
    "ID",
    "Key",
    "Reusable",
    "Ephemeral",
    "Used",
    "Expiration",
    "Created",
    "Tags",
]


@dataclass
class PreAuthKeyRow:
    """A pre-auth key as listed for a namespace."""

    id: str
    key: str
    reusable: bool = False
    ephemeral: bool = False
    used: bool = False
    expiration: _dt.datetime | None = None
    created_at: _dt.datetime = field(
        default_factory=lambda: _dt.datetime(1970, 1, 1, tzinfo=_dt.timezone.utc)
    )
    acl_tags: list[str] = field(default_factory=list)


@dataclass
class NamespaceRow:
    """A namespace as listed by the server."""

    id: str
    name: str
    created_at: _dt.datetime = field(
        default_factory=lambda: _dt.datetime(1970, 1, 1, tzinfo=_dt.timezone.utc)
    )


def _bool_text(value: bool) -> str:
    return "true" if value else "false"


def parse_duration(text: str) -> _dt.timedelta:
    """Parse a human duration such as ``30m``, ``24h`` or ``1w2d``.

    Units are ``y`` (365 days), ``w``, ``d``, ``h``, ``m``, ``s`` and ``ms``,
    each at most once and in that order. ``"0"`` is accepted on its own.
    """
    if text == "0":
        return _dt.timedelta(0)
    if text == "":
        raise ValueError("empty duration string")
    match = _DURATION_PATTERN.fullmatch(text)
    if match is None:
        raise ValueError(f"not a valid duration string: {text!r}")
    milliseconds = sum(
        int(amount) * _UNIT_MILLISECONDS[unit]
        for unit, amount in match.groupdict().items()
        if amount is not None
    )
    return _dt.timedelta(milliseconds=milliseconds)


def routes_to_table(advertised: Iterable[str], enabled: Iterable[str]) -> list[list[str]]:
    """List every advertised route with whether it is enabled."""
    enabled_set = set(enabled)
    rows = [["Route", "Enabled"]]
    rows.extend([route, _bool_text(route in enabled_set)] for route in advertised)
    return rows


def preauth_keys_to_table(
    keys: Iterable[PreAuthKeyRow], now: _dt.datetime | None = None
) -> list[list[str]]:
    """Build the pre-auth key listing, header first."""
    rows = [list(_PREAUTH_HEADER)]
    for key in keys:
        expiration = "-" if key.expiration is None else colour_time(key.expiration, now)
        reusable = "N/A" if key.ephemeral else _bool_text(key.reusable)
        rows.append(
            [
                key.id,
                key.key,
                reusable,
                _bool_text(key.ephemeral),
                _bool_text(key.used),
                expiration,
                key.created_at.strftime(HEADSCALE_DATE_TIME_FORMAT),
                ",".join(key.acl_tags),
            ]
        )
    return rows


def namespaces_to_table(namespaces: Iterable[NamespaceRow]) -> list[list[str]]:
    """Build the namespace listing, header first."""
    rows = [["ID", "Name", "Created"]]
    rows.extend(
        [ns.id, ns.name, ns.created_at.strftime(HEADSCALE_DATE_TIME_FORMAT)]
        for ns in namespaces
    )
    return rows


def _visible_width(text: str) -> int:
    return len(_ANSI_ESCAPE.sub("", text))


def render_table(rows: Sequence[Sequence[str]]) -> str:
    """Lay out rows as aligned columns separated by ``" | "``."""
    if not rows:
        return ""
    column_count = max(len(row) for row in rows)
    widths = [0] * column_count
    for row in rows:
        for column, cell in enumerate(row):
            widths[column] = max(widths[column], _visible_width(cell))

    lines = []
    for row in rows:
        cells = list(row) + [""] * (column_count - len(row))
        padded = [
            cell + " " * (width - _visible_width(cell))
            for cell, width in zip(cells, widths)
        ]
        lines.append(" | ".join(padded).rstrip())
    return "\n".join(lines)