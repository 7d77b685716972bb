"""Per-packet analysis combining inspection, behaviour scoring and rate rules."""

from __future__ import annotations

import logging
from typing import Callable, Mapping, Optional

from zdefender.inspection import PacketInspector
from zdefender.models import (
    Action,
    ActionKind,
    BlockedIp,
    IpAddress,
    IpStats,
    PacketInfo,
    PacketType,
    Report,
    ReportType,
)
from zdefender.protection import ProtectionManager

logger = logging.getLogger(__name__)

AnomalyScorer = Callable[[PacketInfo, Mapping[IpAddress, IpStats]], Optional[float]]

BLOCK_SCORE = 0.8
SUSPICION_SCORE = 0.5

FORTRESS_MIN_PACKETS = 5
FORTRESS_SYN_LIMIT = 3
FORTRESS_BLOCK_SECONDS = 300
HIGH_RATE_BLOCK_SECONDS = 600
SYN_FLOOD_BLOCK_SECONDS = 900
ICMP_FLOOD_BLOCK_SECONDS = 600
PORT_SCAN_BLOCK_SECONDS = 1800


def detect_attacks(
    packet: PacketInfo,
    stats: IpStats,
    threshold_packets_per_second: float,
    threshold_syn_percentage: float,
    fortress_mode: bool,
) -> Optional[Action]:
    """Apply rate and ratio rules to a source's statistics."""
    src = packet.source_ip

    if fortress_mode:
        if stats.packet_count < FORTRESS_MIN_PACKETS:
            return None
        if (
            packet.protocol is PacketType.TCP
            and stats.syn_count > FORTRESS_SYN_LIMIT
            and packet.is_syn_without_ack
        ):
            logger.debug("Fortress mode: pre-emptive block of %s", src)
            return Action.block(src, FORTRESS_BLOCK_SECONDS)

    if stats.packets_per_second > threshold_packets_per_second:
        logger.info(
            "High packet rate from %s: %.2f packets/s", src, stats.packets_per_second
        )
        if stats.packets_per_second > threshold_packets_per_second * 3.0:
            return Action.block(src, HIGH_RATE_BLOCK_SECONDS)
        return Action.rate_limit(src)

    if stats.tcp_count > 10:
        syn_ratio = stats.syn_count / stats.tcp_count
        if syn_ratio > threshold_syn_percentage:
            logger.warning("Suspected SYN flood from %s: ratio=%.2f", src, syn_ratio)
            return Action.block(src, SYN_FLOOD_BLOCK_SECONDS)

    if (
        stats.icmp_count > 50
        and stats.packets_per_second > threshold_packets_per_second * 0.7
    ):
        logger.warning("Suspected ICMP flood from %s", src)
        return Action.block(src, ICMP_FLOOD_BLOCK_SECONDS)

    if (
        packet.protocol is PacketType.TCP
        and stats.tcp_count > 20
        and stats.tcp_count / stats.packet_count > 0.9
    ):
        logger.warning("Suspected port scan from %s", src)
        return Action.block(src, PORT_SCAN_BLOCK_SECONDS)

    return None


def _format_seconds(duration: float) -> str:
    return f"{duration:g}s"


class PacketAnalyzer:
    """Runs every protection stage on a packet and returns the decision."""

    def __init__(
        self,
        manager: ProtectionManager,
        inspector: Optional[PacketInspector] = None,
        anomaly_scorer: Optional[AnomalyScorer] = None,
    ) -> None:
        self.manager = manager
        self.inspector = (
            inspector
            if inspector is not None
            else PacketInspector(manager.settings, self._forward_report)
        )
        self.anomaly_scorer = anomaly_scorer

    def _forward_report(self, report: Report) -> None:
        self.manager.send_report(
            report.report_type,
            report.message,
            report.source_ip,
            report.details,
            report.severity,
            report.suggested_action,
        )

    def analyze_packet(self, packet: PacketInfo) -> Optional[Action]:
        """Decide what to do with a packet; None lets it through."""
        ip = packet.source_ip
        manager = self.manager

        if manager.is_blocked(ip):
            return Action.drop()

        stats = manager.ip_stats.setdefault(ip, IpStats())
        stats.update_with_packet(packet)

        attack = self.inspector.inspect_packet(packet)
        if attack is not None:
            logger.info("Attack detected by packet inspector: %s", attack.label())
            return Action.block(ip, manager.block_duration)

        behaviour = self._score_behaviour(packet)
        if behaviour is not None:
            return behaviour

        action = detect_attacks(
            packet,
            stats,
            manager.threshold_packets_per_second,
            manager.threshold_syn_percentage,
            manager.fortress_mode,
        )
        if action is not None:
            self.handle_action(action, packet)
        return action

    def _score_behaviour(self, packet: PacketInfo) -> Optional[Action]:
        if self.anomaly_scorer is None:
            return None
        score = self.anomaly_scorer(packet, dict(self.manager.ip_stats))
        if score is None:
            return None
        if score > BLOCK_SCORE:
            logger.info("Abnormal behaviour detected: score=%s", score)
            return Action.block(packet.source_ip, self.manager.block_duration)
        if score > SUSPICION_SCORE:
            logger.warning("Suspicious behaviour detected: score=%s", score)
            return Action.rate_limit(packet.source_ip)
        return None

    def handle_action(self, action: Action, packet: PacketInfo) -> None:
        """Record and report a decision taken on a packet."""
        if action.kind is ActionKind.BLOCK:
            self.manager.blocked_records.append(
                BlockedIp(action.ip, action.duration, "Suspicious behaviour detected")
            )
            self.manager.send_report(
                ReportType.ACTION,
                f"IP {action.ip} blocked for {_format_seconds(action.duration)}",
                action.ip,
                f"Suspicious traffic detected from {action.ip}",
                7,
            )
        elif action.kind is ActionKind.RATE_LIMIT:
            self.manager.send_report(
                ReportType.ACTION,
                f"Rate limit applied to IP {action.ip}",
                action.ip,
                f"High traffic from {action.ip}",
                6,
            )
        elif action.kind is ActionKind.DROP:
            logger.debug("Packet dropped: %s", packet)