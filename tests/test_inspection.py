import ipaddress

import pytest

from zdefender.inspection import BOTNET_ACTIVITY, PacketInspector
from zdefender.models import ActionKind, PacketInfo, PacketType, Settings
from zdefender.screening import AttackType, OtherAttack

T0 = 1_000_000.0
SRC = "10.0.0.5"


def make(reports, block_duration=300):
    return PacketInspector(Settings(block_duration=block_duration), reports.append)


def packet(protocol, dest_port=None, src=SRC):
    return PacketInfo(source_ip=src, dest_ip="10.0.0.1", protocol=protocol, dest_port=dest_port)


def feed(inspector, pkt, count, now):
    return [inspector.inspect_packet(pkt, now) for _ in range(count)]


def test_syn_flood_after_threshold():
    reports = []
    inspector = make(reports)
    pkt = packet(PacketType.TCP, 80)
    assert feed(inspector, pkt, 100, T0) == [None] * 100
    assert reports == []
    assert inspector.inspect_packet(pkt, T0) is AttackType.SYN_FLOOD
    assert len(reports) == 1
    report = reports[0]
    assert report.severity == 6
    assert report.source_ip == ipaddress.ip_address(SRC)
    assert report.suggested_action.kind is ActionKind.BLOCK
    assert report.suggested_action.duration == 300


def test_tcp_to_other_port_never_counts():
    reports = []
    inspector = make(reports)
    results = feed(inspector, packet(PacketType.TCP, 22), 150, T0)
    assert all(result is None for result in results)
    assert inspector.counter_sizes["syn"] == 0


def test_window_boundary_keeps_counting():
    inspector = make([])
    pkt = packet(PacketType.TCP, 443)
    feed(inspector, pkt, 100, T0)
    assert inspector.inspect_packet(pkt, T0 + 60) is AttackType.SYN_FLOOD


def test_window_expiry_resets_counter():
    inspector = make([])
    pkt = packet(PacketType.TCP, 8080)
    feed(inspector, pkt, 100, T0)
    assert inspector.inspect_packet(pkt, T0 + 61) is None


def test_clock_going_backwards_resets_counter():
    inspector = make([])
    pkt = packet(PacketType.TCP, 80)
    feed(inspector, pkt, 100, T0)
    assert inspector.inspect_packet(pkt, T0 - 10) is None


def test_icmp_flood():
    reports = []
    inspector = make(reports)
    pkt = packet(PacketType.ICMP)
    assert feed(inspector, pkt, 50, T0) == [None] * 50
    assert inspector.inspect_packet(pkt, T0) is AttackType.PING_FLOOD
    assert reports[0].severity == 5


def test_dns_amplification():
    reports = []
    inspector = make(reports)
    pkt = packet(PacketType.UDP, 53)
    assert feed(inspector, pkt, 200, T0) == [None] * 200
    assert inspector.inspect_packet(pkt, T0) is AttackType.DNS_AMPLIFICATION
    assert reports[0].severity == 6


def test_ntp_and_other_protocol_ignored():
    inspector = make([])
    assert all(r is None for r in feed(inspector, packet(PacketType.UDP, 123), 300, T0))
    assert all(r is None for r in feed(inspector, packet(PacketType.OTHER), 300, T0))


def test_sources_counted_separately():
    inspector = make([])
    feed(inspector, packet(PacketType.ICMP, src="10.0.0.7"), 50, T0)
    assert inspector.inspect_packet(packet(PacketType.ICMP, src="10.0.0.8"), T0) is None
    assert inspector.counter_sizes["icmp"] == 2


def test_botnet_file_and_detection(tmp_path):
    listing = tmp_path / "botnets.txt"
    listing.write_text("# known hosts\n\n192.0.2.10\nnot-an-ip\n2001:db8::1\n", encoding="utf-8")
    reports = []
    inspector = make(reports, block_duration=300)
    assert inspector.load_botnet_ips(listing) == 2
    result = inspector.inspect_packet(packet(PacketType.TCP, 22, src="192.0.2.10"), T0)
    assert result == OtherAttack("Botnet Activity")
    assert result == BOTNET_ACTIVITY
    assert result.label() == "Other Attack: Botnet Activity"
    assert reports[0].severity == 9
    assert reports[0].suggested_action.duration == 600


def test_botnet_ipv6_detected(tmp_path):
    listing = tmp_path / "botnets.txt"
    listing.write_text("2001:db8::1\n", encoding="utf-8")
    inspector = make([])
    inspector.load_botnet_ips(listing)
    assert inspector.inspect_packet(packet(PacketType.ICMP, src="2001:db8::1"), T0) == BOTNET_ACTIVITY


def test_load_missing_file_raises(tmp_path):
    inspector = make([])
    with pytest.raises(FileNotFoundError):
        inspector.load_botnet_ips(tmp_path / "absent.txt")


def test_cleanup_keeps_recent_counters():
    inspector = make([])
    inspector.inspect_packet(packet(PacketType.TCP, 80), T0)
    inspector.inspect_packet(packet(PacketType.ICMP), T0)
    inspector.inspect_packet(packet(PacketType.UDP, 53), T0)
    inspector.cleanup_counters(T0 + 120)
    assert inspector.counter_sizes == {"syn": 1, "icmp": 1, "dns": 1}


def test_cleanup_drops_stale_and_future_counters():
    inspector = make([])
    inspector.inspect_packet(packet(PacketType.TCP, 80), T0)
    inspector.inspect_packet(packet(PacketType.ICMP, src="10.0.0.9"), T0 + 500)
    inspector.cleanup_counters(T0 + 121)
    assert inspector.counter_sizes == {"syn": 0, "icmp": 0, "dns": 0}


def test_copy_is_independent():
    inspector = make([])
    inspector.inspect_packet(packet(PacketType.TCP, 80), T0)
    clone = inspector.copy()
    clone.inspect_packet(packet(PacketType.ICMP), T0)
    assert inspector.counter_sizes["icmp"] == 0
    assert clone.counter_sizes["syn"] == inspector.counter_sizes["syn"]


def test_copy_keeps_counts():
    inspector = make([])
    pkt = packet(PacketType.TCP, 80)
    feed(inspector, pkt, 100, T0)
    clone = inspector.copy()
    assert clone.inspect_packet(pkt, T0) is AttackType.SYN_FLOOD


def test_signatures_cover_known_attacks():
    inspector = make([])
    assert set(inspector.signatures) == {
        AttackType.SYN_FLOOD,
        AttackType.PING_FLOOD,
        AttackType.DNS_AMPLIFICATION,
        AttackType.HTTP_FLOOD,
    }
    assert "TCP SYN without ACK" in inspector.signatures[AttackType.SYN_FLOOD]