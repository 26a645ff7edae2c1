import socket
import struct
import threading
import zlib

import pytest

from headscale.stun import (
    StunError,
    binding_response,
    is_stun,
    parse_binding_request,
    serve_stun,
)

COOKIE = b"\x21\x12\xa4\x42"
RFC_TXID = bytes.fromhex("b7e7a701bc34d686fa87dfae")


def _attr(attr_type, value):
    pad = (-len(value)) % 4
    return struct.pack("!HH", attr_type, len(value)) + value + b"\x00" * pad


def _request(txid, attrs=b"", fingerprint=True, msg_type=b"\x00\x01"):
    body = attrs
    length = len(body) + (8 if fingerprint else 0)
    packet = msg_type + struct.pack("!H", length) + COOKIE + txid + body
    if fingerprint:
        crc = (zlib.crc32(packet) ^ 0x5354554E) & 0xFFFFFFFF
        packet += _attr(0x8028, struct.pack("!I", crc))
    return packet


def test_is_stun_accepts_request():
    assert is_stun(_request(RFC_TXID)) is True


def test_is_stun_rejects_short_and_bad_cookie():
    packet = _request(RFC_TXID, fingerprint=False)
    assert is_stun(packet[:19]) is False
    assert is_stun(packet[:4] + b"\x00\x00\x00\x00" + packet[8:]) is False
    assert is_stun(b"\xc0" + packet[1:]) is False


def test_parse_returns_txid_with_fingerprint():
    software = _attr(0x8022, b"tailnode")
    assert parse_binding_request(_request(RFC_TXID, software)) == RFC_TXID


def test_parse_without_attributes():
    assert parse_binding_request(_request(RFC_TXID, fingerprint=False)) == RFC_TXID


def test_parse_rejects_non_stun():
    with pytest.raises(StunError):
        parse_binding_request(b"hello world, this is not stun")


def test_parse_rejects_other_message_type():
    with pytest.raises(StunError):
        parse_binding_request(_request(RFC_TXID, msg_type=b"\x01\x01"))


def test_parse_rejects_corrupt_fingerprint():
    packet = bytearray(_request(RFC_TXID, _attr(0x8022, b"tailnode")))
    packet[-1] ^= 0xFF
    with pytest.raises(StunError):
        parse_binding_request(bytes(packet))


def test_parse_rejects_attribute_after_fingerprint():
    packet = _request(RFC_TXID) + _attr(0x8022, b"tailnode")
    with pytest.raises(StunError):
        parse_binding_request(packet)


def test_parse_rejects_truncated_attribute():
    packet = _request(RFC_TXID, fingerprint=False) + struct.pack("!HH", 0x8022, 16) + b"ab"
    with pytest.raises(StunError):
        parse_binding_request(packet)


def test_response_matches_rfc5769_ipv4_sample():
    response = binding_response(RFC_TXID, "192.0.2.1", 32853)
    expected = (
        b"\x01\x01\x00\x0c"
        + COOKIE
        + RFC_TXID
        + bytes.fromhex("002000080001a147e112a643")
    )
    assert response == expected


def test_response_ipv6_address_unxors_to_original():
    host = "2001:db8::1"
    response = binding_response(RFC_TXID, host, 4000)
    assert response[:2] == b"\x01\x01"
    assert struct.unpack("!H", response[2:4])[0] == len(response) - 20
    value = response[24:]
    assert value[1] == 0x02
    assert struct.unpack("!H", value[2:4])[0] ^ 0x2112 == 4000
    key = COOKIE + RFC_TXID
    import ipaddress

    decoded = bytes(a ^ b for a, b in zip(value[4:20], key))
    assert decoded == ipaddress.ip_address(host).packed


def test_response_unmaps_ipv4_mapped_ipv6():
    assert binding_response(RFC_TXID, "::ffff:192.0.2.1", 32853) == binding_response(
        RFC_TXID, "192.0.2.1", 32853
    )


def test_response_rejects_bad_txid_and_port():
    with pytest.raises(ValueError):
        binding_response(b"short", "192.0.2.1", 1)
    with pytest.raises(ValueError):
        binding_response(RFC_TXID, "192.0.2.1", 70000)


def test_serve_stun_answers_binding_request():
    server = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    server.bind(("127.0.0.1", 0))
    server.settimeout(0.1)
    stop = threading.Event()
    thread = threading.Thread(target=serve_stun, args=(server, stop), daemon=True)
    thread.start()

    client = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    client.bind(("127.0.0.1", 0))
    client.settimeout(5)
    try:
        client.sendto(b"not stun at all", server.getsockname())
        client.sendto(_request(RFC_TXID), server.getsockname())
        response, _ = client.recvfrom(1024)
    finally:
        stop.set()
        thread.join(timeout=5)
        client.close()
        server.close()

    host, port = client_addr = ("127.0.0.1", None)[0], None
    assert response[8:20] == RFC_TXID
    assert response == binding_response(RFC_TXID, host, struct.unpack("!H", response[26:28])[0] ^ 0x2112)
    assert not thread.is_alive()


def test_serve_stun_returns_when_stopped():
    server = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    server.bind(("127.0.0.1", 0))
    server.settimeout(0.05)
    stop = threading.Event()
    stop.set()
    try:
        serve_stun(server, stop)
    finally:
        server.close()
    assert stop.is_set()