import ipaddress
import struct

from zdefender.capture import parse_ip_packet, parse_packet
from zdefender.models import PacketType

SRC4 = ipaddress.IPv4Address("192.0.2.1")
DST4 = ipaddress.IPv4Address("198.51.100.7")
SRC6 = ipaddress.IPv6Address("2001:db8::1")
DST6 = ipaddress.IPv6Address("2001:db8::2")


def ethernet(ethertype, body):
    return b"\x00" * 12 + struct.pack("!H", ethertype) + body


def ipv4(proto, payload, total_length=None):
    total = 20 + len(payload) if total_length is None else total_length
    header = struct.pack(
        "!BBHHHBBH4s4s", 0x45, 0, total, 0, 0, 64, proto, 0, SRC4.packed, DST4.packed
    )
    return header + payload


def ipv6(next_header, payload):
    header = struct.pack("!IHBB16s16s", 0x60000000, len(payload), next_header, 64, SRC6.packed, DST6.packed)
    return header + payload


def tcp(sport, dport):
    return struct.pack("!HH", sport, dport) + b"\x00" * 16


def udp(sport, dport, data=b""):
    return struct.pack("!HHHH", sport, dport, 8 + len(data), 0) + data


def test_ipv4_tcp_frame():
    payload = tcp(40000, 443)
    info = parse_packet(ethernet(0x0800, ipv4(6, payload)))
    assert info.protocol is PacketType.TCP
    assert info.source_ip == SRC4
    assert info.dest_ip == DST4
    assert (info.source_port, info.dest_port) == (40000, 443)
    assert info.size == len(payload)
    assert info.ttl == 64
    assert info.flags is None


def test_ipv4_udp_frame():
    payload = udp(5353, 53, b"query")
    info = parse_packet(ethernet(0x0800, ipv4(17, payload)))
    assert info.protocol is PacketType.UDP
    assert (info.source_port, info.dest_port) == (5353, 53)
    assert info.size == len(payload)


def test_ipv4_icmp_has_no_ports():
    payload = b"\x08\x00" + b"\x00" * 6
    info = parse_packet(ethernet(0x0800, ipv4(1, payload)))
    assert info.protocol is PacketType.ICMP
    assert info.source_port is None and info.dest_port is None


def test_other_protocol():
    info = parse_packet(ethernet(0x0800, ipv4(47, b"\x00" * 4)))
    assert info.protocol is PacketType.OTHER


def test_ethernet_padding_is_ignored():
    payload = udp(1, 2)
    info = parse_packet(ethernet(0x0800, ipv4(17, payload) + b"\x00" * 10))
    assert info.size == len(payload)


def test_short_total_length_truncates_transport():
    payload = tcp(1234, 80)
    info = parse_packet(ethernet(0x0800, ipv4(6, payload, total_length=28)))
    assert info.protocol is PacketType.TCP
    assert info.size == 8
    assert info.source_port is None


def test_ipv6_udp_frame():
    payload = udp(1000, 123)
    info = parse_packet(ethernet(0x86DD, ipv6(17, payload)))
    assert info.source_ip == SRC6
    assert info.dest_ip == DST6
    assert info.dest_port == 123
    assert info.size == len(payload)


def test_unsupported_or_short_frames():
    assert parse_packet(b"\x00" * 10) is None
    assert parse_packet(ethernet(0x0806, b"\x00" * 28)) is None
    assert parse_packet(ethernet(0x0800, b"\x45" + b"\x00" * 10)) is None
    assert parse_packet(ethernet(0x86DD, b"\x60" + b"\x00" * 20)) is None


def test_parse_ip_packet_direct():
    payload = udp(7, 9)
    info = parse_ip_packet("10.0.0.1", "10.0.0.2", 17, payload, len(payload))
    assert info.source_ip == ipaddress.ip_address("10.0.0.1")
    assert (info.source_port, info.dest_port) == (7, 9)
    assert info.size == len(payload)


def test_parse_ip_packet_short_udp():
    info = parse_ip_packet(SRC4, DST4, 17, b"\x00\x01", 2)
    assert info.protocol is PacketType.UDP
    assert info.dest_port is None