"""Decoding raw Ethernet frames into packet summaries."""

from __future__ import annotations

import ipaddress
import time
from typing import Optional

from zdefender.models import PacketInfo, PacketType

ETHERNET_HEADER_LEN = 14
ETHERTYPE_IPV4 = 0x0800
ETHERTYPE_IPV6 = 0x86DD

IPV4_MIN_HEADER_LEN = 20
IPV6_HEADER_LEN = 40
TCP_MIN_HEADER_LEN = 20
UDP_HEADER_LEN = 8

PROTO_ICMP = 1
PROTO_TCP = 6
PROTO_UDP = 17

DEFAULT_TTL = 64


def _slice_payload(packet: bytes, start: int, length: int) -> bytes:
    if len(packet) <= start:
        return b""
    return packet[start:min(start + length, len(packet))]


def _parse_ipv4(packet: bytes) -> Optional[PacketInfo]:
    if len(packet) < IPV4_MIN_HEADER_LEN:
        return None
    header_len = (packet[0] & 0x0F) * 4
    total_len = int.from_bytes(packet[2:4], "big")
    payload = _slice_payload(packet, header_len, max(total_len - header_len, 0))
    return parse_ip_packet(
        ipaddress.IPv4Address(packet[12:16]),
        ipaddress.IPv4Address(packet[16:20]),
        packet[9],
        payload,
        len(payload),
    )


def _parse_ipv6(packet: bytes) -> Optional[PacketInfo]:
    if len(packet) < IPV6_HEADER_LEN:
        return None
    payload_len = int.from_bytes(packet[4:6], "big")
    payload = _slice_payload(packet, IPV6_HEADER_LEN, payload_len)
    return parse_ip_packet(
        ipaddress.IPv6Address(packet[8:24]),
        ipaddress.IPv6Address(packet[24:40]),
        packet[6],
        payload,
        len(payload),
    )


def parse_packet(data: bytes) -> Optional[PacketInfo]:
    """Decode an Ethernet frame carrying IPv4 or IPv6; None for anything else."""
    frame = bytes(data)
    if len(frame) < ETHERNET_HEADER_LEN:
        return None
    ethertype = int.from_bytes(frame[12:14], "big")
    body = frame[ETHERNET_HEADER_LEN:]
    if ethertype == ETHERTYPE_IPV4:
        return _parse_ipv4(body)
    if ethertype == ETHERTYPE_IPV6:
        return _parse_ipv6(body)
    return None


def parse_ip_packet(source_ip, dest_ip, protocol: int, payload: bytes, size: int) -> PacketInfo:
    """Summarise an IP payload, reading ports when the transport header is whole."""
    source_port = dest_port = None
    if protocol == PROTO_TCP:
        kind = PacketType.TCP
        if len(payload) >= TCP_MIN_HEADER_LEN:
            source_port = int.from_bytes(payload[0:2], "big")
            dest_port = int.from_bytes(payload[2:4], "big")
    elif protocol == PROTO_UDP:
        kind = PacketType.UDP
        if len(payload) >= UDP_HEADER_LEN:
            source_port = int.from_bytes(payload[0:2], "big")
            dest_port = int.from_bytes(payload[2:4], "big")
    elif protocol == PROTO_ICMP:
        kind = PacketType.ICMP
    else:
        kind = PacketType.OTHER

    return PacketInfo(
        source_ip=source_ip,
        dest_ip=dest_ip,
        protocol=kind,
        size=size,
        source_port=source_port,
        dest_port=dest_port,
        flags=None,
        ttl=DEFAULT_TTL,
        timestamp=time.time(),
    )