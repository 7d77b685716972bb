"""Stateful deep packet inspection with per-source rate windows."""

from __future__ import annotations

import dataclasses
import ipaddress
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Optional, Union

from zdefender.models import (
    Action,
    IpAddress,
    PacketInfo,
    PacketType,
    Report,
    ReportType,
    Settings,
)
from zdefender.screening import AttackType, OtherAttack

logger = logging.getLogger(__name__)

ReportSink = Callable[[Report], None]
Detection = Union[AttackType, OtherAttack]

DEFAULT_ANALYSIS_WINDOW = 60
SYN_THRESHOLD = 100
ICMP_THRESHOLD = 50
DNS_THRESHOLD = 200

_WEB_PORTS = frozenset({80, 443, 8080})
_DNS_PORT = 53

BOTNET_ACTIVITY = OtherAttack("Botnet Activity")

_SIGNATURES = {
    AttackType.SYN_FLOOD: (
        "TCP SYN without ACK",
        "High rate of SYN packets",
        "SYN packets with same source port",
    ),
    AttackType.PING_FLOOD: (
        "High rate of ICMP Echo requests",
        "ICMP packets with abnormal size",
    ),
    AttackType.DNS_AMPLIFICATION: (
        "DNS response without matching request",
        "DNS response with large payload",
        "Multiple identical DNS queries",
    ),
    AttackType.HTTP_FLOOD: (
        "Repeated HTTP GET/POST to same endpoint",
        "HTTP requests with similar User-Agent",
        "HTTP requests to nonexistent resources",
    ),
}


@dataclass
class _Window:
    count: int
    started: float


def _severity(attack: Detection, count: int) -> int:
    if attack in (
        AttackType.SYN_FLOOD,
        AttackType.DNS_AMPLIFICATION,
        AttackType.NTP_AMPLIFICATION,
    ):
        return 8 if count > 500 else 6
    if attack in (AttackType.PING_FLOOD, AttackType.HTTP_FLOOD):
        return 7 if count > 1000 else 5
    return 5


class PacketInspector:
    """Counts packets per source in fixed windows and reports floods."""

    def __init__(
        self,
        settings: Settings,
        report_sink: ReportSink,
        analysis_window: int = DEFAULT_ANALYSIS_WINDOW,
    ) -> None:
        self._settings = settings
        self._report_sink = report_sink
        self.analysis_window = analysis_window
        self._signatures = {kind: list(items) for kind, items in _SIGNATURES.items()}
        self._botnet_ips: set = set()
        self._syn: Dict[IpAddress, _Window] = {}
        self._icmp: Dict[IpAddress, _Window] = {}
        self._dns: Dict[IpAddress, _Window] = {}
        logger.info("Attack signatures initialised for %d attack types", len(self._signatures))

    @property
    def signatures(self) -> Dict[AttackType, list]:
        return {kind: list(items) for kind, items in self._signatures.items()}

    @property
    def counter_sizes(self) -> Dict[str, int]:
        """Number of tracked sources per counter."""
        return {"syn": len(self._syn), "icmp": len(self._icmp), "dns": len(self._dns)}

    def inspect_packet(self, packet: PacketInfo, now: Optional[float] = None) -> Optional[Detection]:
        """Account for a packet and return the attack it reveals, if any."""
        now = time.time() if now is None else now
        ip = packet.source_ip

        if ip in self._botnet_ips:
            self._report_botnet_activity(ip)
            return BOTNET_ACTIVITY

        if packet.protocol is PacketType.TCP:
            if packet.dest_port in _WEB_PORTS:
                return self._check(self._syn, ip, now, SYN_THRESHOLD, AttackType.SYN_FLOOD)
        elif packet.protocol is PacketType.ICMP:
            return self._check(self._icmp, ip, now, ICMP_THRESHOLD, AttackType.PING_FLOOD)
        elif packet.protocol is PacketType.UDP:
            if packet.dest_port == _DNS_PORT:
                return self._check(
                    self._dns, ip, now, DNS_THRESHOLD, AttackType.DNS_AMPLIFICATION
                )
        return None

    def _check(
        self,
        counters: Dict[IpAddress, _Window],
        ip: IpAddress,
        now: float,
        threshold: int,
        attack: AttackType,
    ) -> Optional[AttackType]:
        window = counters.setdefault(ip, _Window(0, now))
        elapsed = now - window.started
        if elapsed < 0 or int(elapsed) > self.analysis_window:
            window.count, window.started = 1, now
        else:
            window.count += 1
        if window.count > threshold:
            self._report_attack(ip, attack, window.count)
            return attack
        return None

    def _report_botnet_activity(self, ip: IpAddress) -> None:
        duration = self._settings.block_duration * 2
        self._report_sink(
            Report(
                report_type=ReportType.ALERT,
                message=f"Botnet activity detected from IP {ip}",
                source_ip=ip,
                severity=9,
                suggested_action=Action.block(ip, duration),
            )
        )

    def _report_attack(self, ip: IpAddress, attack: AttackType, count: int) -> None:
        message = (
            f"{attack.label()} attack detected from IP {ip} "
            f"({count} packets in {self.analysis_window} seconds)"
        )
        self._report_sink(
            Report(
                report_type=ReportType.ALERT,
                message=message,
                source_ip=ip,
                severity=_severity(attack, count),
                suggested_action=Action.block(ip, self._settings.block_duration),
            )
        )

    def cleanup_counters(self, now: Optional[float] = None) -> None:
        """Drop counters idle for more than twice the analysis window."""
        now = time.time() if now is None else now
        limit = self.analysis_window * 2

        def keep(window: _Window) -> bool:
            elapsed = now - window.started
            return elapsed >= 0 and int(elapsed) <= limit

        for counters in (self._syn, self._icmp, self._dns):
            for ip in [ip for ip, window in counters.items() if not keep(window)]:
                del counters[ip]
        logger.debug(
            "Counters cleaned: SYN=%d, ICMP=%d, DNS=%d",
            len(self._syn),
            len(self._icmp),
            len(self._dns),
        )

    def load_botnet_ips(self, path) -> int:
        """Add known botnet addresses from a file, one per line; return how many."""
        text = Path(path).read_text(encoding="utf-8", errors="replace")
        count = 0
        for line in text.splitlines():
            if not line.strip() or line.startswith("#"):
                continue
            if "%" in line:
                continue
            try:
                address = ipaddress.ip_address(line)
            except ValueError:
                continue
            self._botnet_ips.add(address)
            count += 1
        logger.info("Loaded %d known botnet IPs from %s", count, path)
        return count

    def copy(self) -> "PacketInspector":
        """Return an independent inspector sharing settings and report sink."""
        clone = PacketInspector(self._settings, self._report_sink, self.analysis_window)
        clone._signatures = {kind: list(items) for kind, items in self._signatures.items()}
        clone._botnet_ips = set(self._botnet_ips)
        clone._syn = {ip: dataclasses.replace(w) for ip, w in self._syn.items()}
        clone._icmp = {ip: dataclasses.replace(w) for ip, w in self._icmp.items()}
        clone._dns = {ip: dataclasses.replace(w) for ip, w in self._dns.items()}
        return clone