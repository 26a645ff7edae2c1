"""Command output formatting: human text, JSON, JSON lines or YAML."""

from __future__ import annotations

import dataclasses
import datetime as _dt
import enum
import ipaddress
import json
import sys
from collections.abc import Iterable, Mapping
from typing import Any

import yaml

VERSION = "dev"
HEADSCALE_DATE_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"
MACHINE_OUTPUT_FORMATS = frozenset({"json", "json-line", "yaml"})

_LIGHT_GREEN = "\x1b[92m"
_LIGHT_RED = "\x1b[91m"
_RESET = "\x1b[0m"


def _colour(code: str, text: str) -> str:
    return f"{code}{text}{_RESET}"


def _to_plain(value: Any) -> Any:
    """Convert ``value`` into data that JSON and YAML encoders accept."""
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return _to_plain(dataclasses.asdict(value))
    if isinstance(value, Mapping):
        return {str(key): _to_plain(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_to_plain(item) for item in value]
    if isinstance(value, enum.Enum):
        return _to_plain(value.value)
    if isinstance(value, (_dt.datetime, _dt.date)):
        return value.isoformat()
    if isinstance(
        value,
        (
            ipaddress.IPv4Address,
            ipaddress.IPv6Address,
            ipaddress.IPv4Network,
            ipaddress.IPv6Network,
        ),
    ):
        return str(value)
    return value


def format_output(result: Any, override: str, output_format: str) -> str:
    """Return the text printed for ``result`` in ``output_format``.

    An empty or unknown format yields the human-readable ``override``.
    """
    if output_format == "json":
        return json.dumps(_to_plain(result), indent="\t", sort_keys=True)
    if output_format == "json-line":
        return json.dumps(_to_plain(result), separators=(",", ":"), sort_keys=True)
    if output_format == "yaml":
        return yaml.safe_dump(
            _to_plain(result), default_flow_style=False, sort_keys=True
        )
    return override


def success_output(result: Any, override: str, output_format: str) -> None:
    """Print ``result`` in the requested format."""
    print(format_output(result, override, output_format))


def error_output(error: BaseException | str, override: str, output_format: str) -> None:
    """Print an error as ``{"error": ...}`` or as the human-readable ``override``."""
    success_output({"error": str(error)}, override, output_format)


def has_machine_output_flag(argv: Iterable[str] | None = None) -> bool:
    """Report whether the arguments ask for machine-readable output."""
    args = sys.argv if argv is None else argv
    return any(arg in MACHINE_OUTPUT_FORMATS for arg in args)


def colour_time(date: _dt.datetime, now: _dt.datetime | None = None) -> str:
    """Format ``date``, green if it lies in the future and red otherwise."""
    if now is None:
        now = _dt.datetime.now(date.tzinfo) if date.tzinfo else _dt.datetime.now()
    text = date.strftime(HEADSCALE_DATE_TIME_FORMAT)
    return _colour(_LIGHT_GREEN if date > now else _LIGHT_RED, text)