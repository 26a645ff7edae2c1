"""Persistent key-value settings and JSON-encoded column helpers."""

from __future__ import annotations

import dataclasses
import datetime as _dt
import ipaddress
import json
import sqlite3
from pathlib import Path
from typing import Any

DB_VERSION = "1"

_IP_TYPES = (
    ipaddress.IPv4Address,
    ipaddress.IPv6Address,
    ipaddress.IPv4Network,
    ipaddress.IPv6Network,
    ipaddress.IPv4Interface,
    ipaddress.IPv6Interface,
)


class ValueNotFoundError(KeyError):
    """Raised when a key has no stored value."""


class InvalidColumnDataError(ValueError):
    """Raised when a JSON column holds data that cannot be decoded."""


class KVStore:
    """A small key-value table kept in an SQLite database."""

    def __init__(self, path: str | Path) -> None:
        self._conn = sqlite3.connect(str(path))
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA synchronous=1")
        self._conn.execute("PRAGMA foreign_keys=ON")
        with self._conn:
            self._conn.execute(
                "CREATE TABLE IF NOT EXISTS kvs (key TEXT, value TEXT)"
            )
        self.set_value("db_version", DB_VERSION)

    def __enter__(self) -> KVStore:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def get_value(self, key: str) -> str:
        """Return the value stored for ``key``."""
        row = self._conn.execute(
            "SELECT value FROM kvs WHERE key = ? LIMIT 1", (key,)
        ).fetchone()
        if row is None:
            raise ValueNotFoundError("not found")
        return row[0]

    def set_value(self, key: str, value: str) -> None:
        """Store ``value`` under ``key``, replacing any earlier value."""
        try:
            self.get_value(key)
        except ValueNotFoundError:
            try:
                with self._conn:
                    self._conn.execute(
                        "INSERT INTO kvs (key, value) VALUES (?, ?)", (key, value)
                    )
            except sqlite3.Error as exc:
                raise RuntimeError(
                    f"failed to create key value pair in the database: {exc}"
                ) from exc
            return
        with self._conn:
            self._conn.execute("UPDATE kvs SET value = ? WHERE key = ?", (value, key))

    def ping(self) -> None:
        """Check that the database still answers queries."""
        self._conn.execute("SELECT 1").fetchone()

    def close(self) -> None:
        """Close the underlying database connection."""
        self._conn.close()


def _json_default(value: Any) -> Any:
    if isinstance(value, _IP_TYPES):
        return str(value)
    if isinstance(value, (_dt.datetime, _dt.date)):
        return value.isoformat()
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    raise TypeError(f"cannot encode {type(value).__name__} as JSON")


def encode_json_column(value: Any) -> str:
    """Encode a structured value as the compact JSON text stored in a column."""
    return json.dumps(value, default=_json_default, separators=(",", ":"))


def decode_json_column(raw: Any) -> Any:
    """Decode JSON column text (``str`` or ``bytes``) back into Python data."""
    if isinstance(raw, (bytes, bytearray, memoryview)):
        text = bytes(raw).decode("utf-8")
    elif isinstance(raw, str):
        text = raw
    else:
        raise InvalidColumnDataError(f"unexpected data type {type(raw).__name__}")
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise InvalidColumnDataError(f"invalid JSON column data: {exc}") from exc