import ipaddress
import time

import pytest

from zdefender.models import (
    Action,
    ActionKind,
    BlockedIp,
    IpStats,
    LogMode,
    PacketInfo,
    PacketType,
    Report,
    ReportType,
    Settings,
    UpdateChannel,
)


def test_update_settings():
    settings = Settings()
    settings.auto_update = True
    settings.update_channel = UpdateChannel.STABLE
    settings.update_check_interval = 24

    settings.auto_update = False
    assert settings.auto_update is False
    settings.auto_update = True
    assert settings.auto_update is True
    settings.update_channel = UpdateChannel.BETA
    assert settings.update_channel == UpdateChannel.BETA
    settings.update_check_interval = 48
    assert settings.update_check_interval == 48


def test_settings_round_trip(tmp_path):
    settings = Settings(update_channel=UpdateChannel.BETA, log_mode=LogMode.SYSTEMD_JOURNAL)
    settings.region_trust_scores["EU"] = 0.8
    path = tmp_path / "config.json"
    settings.save(path)
    assert Settings.load(path) == settings


def test_settings_whitelist():
    settings = Settings(whitelist=["10.0.0.1"])
    assert settings.is_whitelisted(ipaddress.ip_address("10.0.0.1"))
    assert not settings.is_whitelisted("10.0.0.2")


def test_action_constructors():
    action = Action.block("1.2.3.4", 60)
    assert action.kind is ActionKind.BLOCK
    assert action.ip == ipaddress.ip_address("1.2.3.4")
    assert action.duration == 60.0
    assert Action.rate_limit("1.2.3.4") == Action(ActionKind.RATE_LIMIT, ipaddress.ip_address("1.2.3.4"))
    assert Action.drop().ip is None


def test_report_builders_return_new_reports():
    base = Report(ReportType.ALERT, "hello")
    built = base.with_ip("::1").with_details("d").with_severity(7)
    assert built.source_ip == ipaddress.ip_address("::1")
    assert built.details == "d"
    assert built.severity == 7
    assert base.source_ip is None and base.severity == 0


def test_packet_info_normalises_fields():
    packet = PacketInfo("1.1.1.1", "2.2.2.2", PacketType.TCP, flags=["SYN"])
    assert packet.source_ip == ipaddress.ip_address("1.1.1.1")
    assert packet.flags == frozenset({"SYN"})
    assert packet.is_syn_without_ack


def test_ip_stats_counts_protocols():
    stats = IpStats()
    now = time.time()
    packets = [
        PacketInfo("1.1.1.1", "2.2.2.2", PacketType.TCP, size=10, flags={"SYN"}, timestamp=now),
        PacketInfo("1.1.1.1", "2.2.2.2", PacketType.TCP, size=10, flags={"SYN", "ACK"}, timestamp=now),
        PacketInfo("1.1.1.1", "2.2.2.2", PacketType.UDP, size=20, timestamp=now),
        PacketInfo("1.1.1.1", "2.2.2.2", PacketType.ICMP, size=30, timestamp=now),
        PacketInfo("1.1.1.1", "2.2.2.2", PacketType.OTHER, size=30, timestamp=now),
    ]
    for packet in packets:
        stats.update_with_packet(packet)
    assert stats.packet_count == 5
    assert stats.total_bytes == 100
    assert (stats.tcp_count, stats.udp_count, stats.icmp_count, stats.other_count) == (2, 1, 1, 1)
    assert stats.syn_count == 1
    assert stats.packets_per_second == pytest.approx(5.0)
    assert stats.bytes_per_second == pytest.approx(100.0)


def test_blocked_ip_expiry():
    assert BlockedIp("1.2.3.4", 10, "r", blocked_at=time.time() - 20).is_expired()
    active = BlockedIp("1.2.3.4", 1000, "r")
    assert not active.is_expired()
    assert active.expires_at == pytest.approx(active.blocked_at + 1000)