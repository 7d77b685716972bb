"""Blocking, fortress mode and protocol rules applied to incoming packets."""

from __future__ import annotations

import ipaddress
import logging
import random
import time
from typing import Callable, Dict, List, Optional, Set, Tuple

from zdefender.models import (
    Action,
    BlockedIp,
    IpAddress,
    IpStats,
    PacketInfo,
    PacketType,
    Report,
    ReportType,
    Settings,
)

logger = logging.getLogger(__name__)

ReportSink = Callable[[Report], None]
Clock = Callable[[], float]

DEFAULT_PACKETS_PER_SECOND = 100.0
DEFAULT_SYN_PERCENTAGE = 0.8
SYN_FLOOD_MIN_PACKETS = 100


def _to_ip(value) -> IpAddress:
    if isinstance(value, (ipaddress.IPv4Address, ipaddress.IPv6Address)):
        return value
    return ipaddress.ip_address(value)


def _format_seconds(duration: float) -> str:
    return f"{duration:g}s"


class ProtectionManager:
    """Coordinates address blocking, DDoS mode and per-protocol rules."""

    def __init__(
        self,
        settings: Settings,
        report_sink: ReportSink,
        rng: Optional[random.Random] = None,
        clock: Clock = time.time,
    ) -> None:
        self.settings = settings
        self._report_sink = report_sink
        self._rng = rng if rng is not None else random.Random()
        self._clock = clock
        self._blocked: Set[IpAddress] = set()
        self._block_expiry: Dict[IpAddress, float] = {}
        self.ip_stats: Dict[IpAddress, IpStats] = {}
        self.blocked_records: List[BlockedIp] = []
        self.threshold_packets_per_second = DEFAULT_PACKETS_PER_SECOND
        self.threshold_syn_percentage = DEFAULT_SYN_PERCENTAGE
        self.fortress_mode = False
        self.fortress_mode_active = False
        self.ddos_protection_active = False
        self.rate_limit_factor = 1.0
        self.syn_count = 0
        self.total_count = 0

    # -- reporting -----------------------------------------------------

    def send_report(
        self,
        report_type: ReportType,
        message: str,
        source_ip=None,
        details: Optional[str] = None,
        severity: int = 0,
        suggested_action: Optional[Action] = None,
    ) -> None:
        """Hand a report to the sink; a failing sink is logged, not raised."""
        report = Report(
            report_type=report_type,
            message=message,
            source_ip=source_ip,
            details=details,
            severity=severity,
            suggested_action=suggested_action,
            timestamp=self._clock(),
        )
        try:
            self._report_sink(report)
        except Exception as exc:  # the sink is outside our control
            logger.warning("Failed to send report: %s", exc)

    # -- blocked addresses ---------------------------------------------

    @property
    def block_duration(self) -> int:
        return self.settings.block_duration

    @property
    def blocked_ips(self) -> Dict[IpAddress, float]:
        """Currently blocked addresses with their expiry time."""
        return {ip: self._block_expiry.get(ip, float("inf")) for ip in self._blocked}

    def is_blocked(self, ip) -> bool:
        return _to_ip(ip) in self._blocked

    def is_blocked_record(self, ip) -> bool:
        """Whether an unexpired block record exists for the address."""
        address = _to_ip(ip)
        return any(r.ip == address and not r.is_expired() for r in self.blocked_records)

    def block_ip(self, ip, duration: float, reason: str) -> None:
        """Block an address for ``duration`` seconds, replacing any earlier expiry."""
        address = _to_ip(ip)
        if address in self._blocked:
            logger.debug("IP %s already blocked, updating duration", address)
        else:
            logger.info("Blocking IP %s for %s - reason: %s", address, _format_seconds(duration), reason)
        self._blocked.add(address)
        self._block_expiry[address] = self._clock() + duration
        self.send_report(
            ReportType.ACTION,
            f"IP {address} blocked for {_format_seconds(duration)}",
            address,
            f"Reason: {reason}",
            8,
        )

    def unblock_ip(self, ip) -> None:
        address = _to_ip(ip)
        self._blocked.discard(address)
        self._block_expiry.pop(address, None)
        self.send_report(ReportType.INFO, f"IP {address} unblocked", address, None, 0)

    def cleanup_expired_blocks(self, now: Optional[float] = None) -> List[IpAddress]:
        """Unblock every address whose block has expired; return them."""
        now = self._clock() if now is None else now
        expired = [ip for ip, expiry in self._block_expiry.items() if expiry < now]
        for ip in expired:
            self.unblock_ip(ip)
        return expired

    def cleanup_expired_records(self) -> int:
        """Drop expired block records; return how many were removed."""
        before = len(self.blocked_records)
        self.blocked_records = [r for r in self.blocked_records if not r.is_expired()]
        removed = before - len(self.blocked_records)
        if removed:
            logger.info("%d IP(s) unblocked after expiry", removed)
        return removed

    # -- packet processing ---------------------------------------------

    def process_packet(self, packet: PacketInfo) -> Optional[Action]:
        """Decide what to do with a packet; None lets it through."""
        if self.fortress_mode_active:
            return self._process_fortress(packet)

        if self.ddos_protection_active:
            action = self._process_ddos(packet)
            if action is not None:
                return action

        ip = packet.source_ip
        if ip in self._blocked and ip in self._block_expiry:
            if self._block_expiry[ip] > self._clock():
                return Action.drop()
            self._blocked.discard(ip)
            del self._block_expiry[ip]

        return self._check_protocol_rules(packet)

    def _process_fortress(self, packet: PacketInfo) -> Optional[Action]:
        if self.settings.is_whitelisted(packet.source_ip):
            return None
        protocol = packet.protocol
        if protocol is PacketType.TCP:
            if packet.flags is not None and packet.is_syn_without_ack:
                return Action.block(packet.source_ip, self.settings.block_duration)
            return None
        if protocol is PacketType.UDP:
            if packet.dest_port is None or packet.dest_port not in self.settings.essential_ports:
                return Action.drop()
            return None
        if protocol is PacketType.ICMP:
            return Action.rate_limit(packet.source_ip)
        return Action.drop()

    def _process_ddos(self, packet: PacketInfo) -> Optional[Action]:
        if self.settings.is_whitelisted(packet.source_ip):
            return None
        if not self._rng.random() < self.rate_limit_factor:
            return Action.drop()
        return Action.rate_limit(packet.source_ip)

    def _check_protocol_rules(self, packet: PacketInfo) -> Optional[Action]:
        if packet.protocol is not PacketType.TCP or packet.flags is None:
            return None
        self.total_count += 1
        if not packet.is_syn_without_ack:
            return None
        self.syn_count += 1
        syn_percentage = self.syn_count / self.total_count
        if (
            syn_percentage > self.threshold_syn_percentage
            and self.total_count > SYN_FLOOD_MIN_PACKETS
            and not self.settings.is_whitelisted(packet.source_ip)
        ):
            duration = self.settings.block_duration
            self.block_ip(packet.source_ip, duration, "Suspected SYN flood")
            return Action.block(packet.source_ip, duration)
        return None

    def set_thresholds(self, packets_per_second: float, syn_percentage: float) -> None:
        self.threshold_packets_per_second = packets_per_second
        self.threshold_syn_percentage = syn_percentage
        logger.info(
            "Detection thresholds set: pps=%s, syn_percentage=%s",
            packets_per_second,
            syn_percentage,
        )

    # -- fortress and DDoS modes ---------------------------------------

    def enable_fortress_mode(self) -> None:
        self.fortress_mode = True
        self.fortress_mode_active = True
        self.send_report(
            ReportType.INFO,
            "Fortress mode enabled",
            None,
            "Maximum protection enabled, all non-established connections will be rejected",
            8,
        )
        logger.info("Fortress mode enabled")

    def disable_fortress_mode(self) -> None:
        if not self.fortress_mode:
            logger.warning("Fortress mode is already disabled")
            return
        self.fortress_mode = False
        self.fortress_mode_active = False
        self.send_report(ReportType.INFO, "Fortress mode disabled", None, None, 5)
        logger.info("Fortress mode disabled")

    def is_fortress_mode_active(self) -> bool:
        return self.fortress_mode_active

    def enable_ddos_protection(self, intensity: float) -> None:
        """Enter DDoS mode, sampling traffic harder as intensity grows."""
        if self.settings.ddos_auto_fortress and not self.fortress_mode_active:
            self.fortress_mode_active = True
            self.send_report(
                ReportType.ACTION,
                "FORTRESS MODE enabled after a distributed DDoS attack",
                None,
                f"Attack intensity: {intensity:.2f}",
                9,
                Action.enable_fortress(),
            )
        if intensity > 0.8:
            factor = 0.1
        elif intensity > 0.5:
            factor = 0.3
        else:
            factor = 0.5
        self.ddos_protection_active = True
        self.rate_limit_factor = factor
        logger.info("DDoS protection enabled with rate limit factor %s", factor)

    def disable_ddos_protection(self) -> None:
        if (
            self.ddos_protection_active
            and self.fortress_mode_active
            and self.settings.ddos_auto_fortress
        ):
            self.fortress_mode_active = False
            self.send_report(
                ReportType.ACTION,
                "FORTRESS MODE disabled, distributed DDoS attack over",
                None,
                None,
                6,
                Action.disable_fortress(),
            )
        self.ddos_protection_active = False
        self.rate_limit_factor = 1.0
        logger.info("DDoS protection disabled")

    def stats(self) -> Tuple[int, int, int]:
        """Tracked addresses, block records and total packets seen."""
        return (
            len(self.ip_stats),
            len(self.blocked_records),
            sum(s.packet_count for s in self.ip_stats.values()),
        )