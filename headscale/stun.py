"""A minimal STUN binding server: request parsing and XOR-MAPPED-ADDRESS replies."""

from __future__ import annotations

import ipaddress
import logging
import socket
import struct
import threading
import zlib
from collections.abc import Iterator

logger = logging.getLogger(__name__)

MAGIC_COOKIE = b"\x21\x12\xa4\x42"
HEADER_LEN = 20
TXID_LEN = 12
BINDING_REQUEST = b"\x00\x01"
BINDING_SUCCESS = b"\x01\x01"
ATTR_XOR_MAPPED_ADDRESS = 0x0020
ATTR_FINGERPRINT = 0x8028
FINGERPRINT_XOR = 0x5354554E
_READ_BUFFER = 64 << 10


class StunError(ValueError):
    """Raised when a packet is not an acceptable STUN binding request."""


def is_stun(packet: bytes) -> bool:
    """Report whether ``packet`` carries a STUN header with the magic cookie."""
    return (
        len(packet) >= HEADER_LEN
        and packet[0] & 0xC0 == 0
        and packet[4:8] == MAGIC_COOKIE
    )


def _attributes(packet: bytes) -> Iterator[tuple[int, int, bytes]]:
    """Yield ``(offset, type, value)`` for each attribute after the header."""
    offset = HEADER_LEN
    while offset < len(packet):
        if len(packet) - offset < 4:
            raise StunError("truncated STUN attribute header")
        attr_type, attr_len = struct.unpack_from("!HH", packet, offset)
        padded = (attr_len + 3) & ~3
        start = offset + 4
        if start + padded > len(packet):
            raise StunError("truncated STUN attribute")
        yield offset, attr_type, bytes(packet[start : start + attr_len])
        offset = start + padded


def parse_binding_request(packet: bytes) -> bytes:
    """Return the transaction ID of a binding request.

    A FINGERPRINT attribute, if present, must be the last attribute and match.
    """
    if not is_stun(packet):
        raise StunError("not a STUN packet")
    if packet[:2] != BINDING_REQUEST:
        raise StunError("not a STUN binding request")
    txid = bytes(packet[8 : 8 + TXID_LEN])

    fingerprint: tuple[int, bytes] | None = None
    for offset, attr_type, value in _attributes(packet):
        if fingerprint is not None:
            raise StunError("STUN fingerprint is not the last attribute")
        if attr_type == ATTR_FINGERPRINT:
            fingerprint = (offset, value)

    if fingerprint is not None:
        offset, value = fingerprint
        if len(value) != 4:
            raise StunError("malformed STUN fingerprint")
        expected = (zlib.crc32(packet[:offset]) ^ FINGERPRINT_XOR) & 0xFFFFFFFF
        if struct.unpack("!I", value)[0] != expected:
            raise StunError("wrong STUN fingerprint")
    return txid


def binding_response(txid: bytes, host: str | ipaddress._BaseAddress, port: int) -> bytes:
    """Build a binding success response telling the client its public address."""
    if len(txid) != TXID_LEN:
        raise ValueError(f"transaction ID must be {TXID_LEN} bytes")
    if not 0 <= port <= 0xFFFF:
        raise ValueError(f"port {port} out of range")

    address = ipaddress.ip_address(host)
    if isinstance(address, ipaddress.IPv6Address) and address.ipv4_mapped is not None:
        address = address.ipv4_mapped

    if address.version == 4:
        family, key = 0x01, MAGIC_COOKIE
    else:
        family, key = 0x02, MAGIC_COOKIE + bytes(txid)
    xored = bytes(a ^ b for a, b in zip(address.packed, key))
    value = struct.pack("!xBH", family, port ^ 0x2112) + xored

    attribute = struct.pack("!HH", ATTR_XOR_MAPPED_ADDRESS, len(value)) + value
    header = BINDING_SUCCESS + struct.pack("!H", len(attribute)) + MAGIC_COOKIE + bytes(txid)
    return header + attribute


def serve_stun(sock: socket.socket, stop: threading.Event | None = None) -> None:
    """Answer binding requests on a UDP socket until ``stop`` is set.

    Give the socket a timeout so that ``stop`` is noticed promptly.
    """
    while stop is None or not stop.is_set():
        try:
            packet, addr = sock.recvfrom(_READ_BUFFER)
        except TimeoutError:
            continue
        except OSError as exc:
            if stop is not None and stop.is_set():
                return
            logger.error("STUN ReadFrom: %s", exc)
            if stop is not None:
                stop.wait(1.0)
            else:
                threading.Event().wait(1.0)
            continue

        logger.debug("STUN request from %s", addr)
        if not is_stun(packet):
            logger.debug("UDP packet is not STUN")
            continue
        try:
            txid = parse_binding_request(packet)
        except StunError as exc:
            logger.debug("STUN parse error: %s", exc)
            continue

        try:
            response = binding_response(txid, addr[0], addr[1])
            sock.sendto(response, addr)
        except (OSError, ValueError) as exc:
            logger.debug("Issue writing to UDP: %s", exc)
            continue