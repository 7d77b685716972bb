"""Core data types shared by the protection components."""

from __future__ import annotations

import dataclasses
import ipaddress
import json
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Optional, Union

IpAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]


def _to_ip(value: Any) -> IpAddress:
    if isinstance(value, (ipaddress.IPv4Address, ipaddress.IPv6Address)):
        return value
    return ipaddress.ip_address(value)


class PacketType(Enum):
    """Transport protocol of a captured packet."""

    TCP = "tcp"
    UDP = "udp"
    ICMP = "icmp"
    OTHER = "other"


class ReportType(Enum):
    """Kind of event carried by a report."""

    INFO = "info"
    ALERT = "alert"
    ACTION = "action"


class UpdateChannel(Enum):
    """Release channel followed by the updater."""

    STABLE = "stable"
    BETA = "beta"


class LogMode(Enum):
    """Where log records are written."""

    FILE = "file"
    SYSTEMD_JOURNAL = "systemd_journal"


class ActionKind(Enum):
    """What a decision asks the firewall to do."""

    BLOCK = "block"
    RATE_LIMIT = "rate_limit"
    DROP = "drop"
    ENABLE_FORTRESS = "enable_fortress"
    DISABLE_FORTRESS = "disable_fortress"


@dataclass(frozen=True)
class Action:
    """A mitigation decision; duration is in seconds."""

    kind: ActionKind
    ip: Optional[IpAddress] = None
    duration: Optional[float] = None

    @classmethod
    def block(cls, ip, duration) -> "Action":
        return cls(ActionKind.BLOCK, _to_ip(ip), float(duration))

    @classmethod
    def rate_limit(cls, ip) -> "Action":
        return cls(ActionKind.RATE_LIMIT, _to_ip(ip))

    @classmethod
    def drop(cls) -> "Action":
        return cls(ActionKind.DROP)

    @classmethod
    def enable_fortress(cls) -> "Action":
        return cls(ActionKind.ENABLE_FORTRESS)

    @classmethod
    def disable_fortress(cls) -> "Action":
        return cls(ActionKind.DISABLE_FORTRESS)


@dataclass(frozen=True)
class PacketInfo:
    """Summary of one captured packet."""

    source_ip: IpAddress
    dest_ip: IpAddress
    protocol: PacketType
    size: int = 0
    source_port: Optional[int] = None
    dest_port: Optional[int] = None
    flags: Optional[frozenset] = None
    ttl: Optional[int] = None
    timestamp: float = field(default_factory=time.time)

    def __post_init__(self) -> None:
        object.__setattr__(self, "source_ip", _to_ip(self.source_ip))
        object.__setattr__(self, "dest_ip", _to_ip(self.dest_ip))
        if self.flags is not None:
            object.__setattr__(self, "flags", frozenset(self.flags))

    def has_flag(self, flag: str) -> bool:
        return self.flags is not None and flag in self.flags

    @property
    def is_syn_without_ack(self) -> bool:
        return self.has_flag("SYN") and not self.has_flag("ACK")


@dataclass(frozen=True)
class Report:
    """An event sent to the central report handler."""

    report_type: ReportType
    message: str
    source_ip: Optional[IpAddress] = None
    details: Optional[str] = None
    severity: int = 0
    suggested_action: Optional[Action] = None
    timestamp: float = field(default_factory=time.time)

    def __post_init__(self) -> None:
        if self.source_ip is not None:
            object.__setattr__(self, "source_ip", _to_ip(self.source_ip))

    def with_ip(self, ip) -> "Report":
        return dataclasses.replace(self, source_ip=_to_ip(ip))

    def with_details(self, details: str) -> "Report":
        return dataclasses.replace(self, details=details)

    def with_severity(self, severity: int) -> "Report":
        return dataclasses.replace(self, severity=severity)


@dataclass
class IpStats:
    """Running traffic statistics for one source address."""

    packet_count: int = 0
    total_bytes: int = 0
    tcp_count: int = 0
    udp_count: int = 0
    icmp_count: int = 0
    other_count: int = 0
    syn_count: int = 0
    packets_per_second: float = 0.0
    bytes_per_second: float = 0.0
    first_seen: float = field(default_factory=time.time)
    last_seen: float = field(default_factory=time.time)
    trust_score: float = 0.5
    anomaly_score: float = 0.0
    connection_stability: float = 0.0
    suspicious_count: int = 0
    is_blocked: bool = False

    def update_with_packet(self, packet: PacketInfo) -> None:
        """Account for one more packet and refresh the rates."""
        if self.packet_count == 0:
            self.first_seen = packet.timestamp
        self.packet_count += 1
        self.total_bytes += packet.size
        if packet.protocol is PacketType.TCP:
            self.tcp_count += 1
            if packet.is_syn_without_ack:
                self.syn_count += 1
        elif packet.protocol is PacketType.UDP:
            self.udp_count += 1
        elif packet.protocol is PacketType.ICMP:
            self.icmp_count += 1
        else:
            self.other_count += 1
        self.last_seen = max(self.last_seen, packet.timestamp)
        elapsed = max(self.last_seen - self.first_seen, 1.0)
        self.packets_per_second = self.packet_count / elapsed
        self.bytes_per_second = self.total_bytes / elapsed


@dataclass
class BlockedIp:
    """An address blocked for a fixed number of seconds."""

    ip: IpAddress
    duration: float
    reason: str
    blocked_at: float = field(default_factory=time.time)

    def __post_init__(self) -> None:
        self.ip = _to_ip(self.ip)

    @property
    def expires_at(self) -> float:
        return self.blocked_at + self.duration

    def is_expired(self) -> bool:
        return time.time() >= self.expires_at


_ENUM_FIELDS = {"update_channel": UpdateChannel, "log_mode": LogMode}


@dataclass
class Settings:
    """Runtime configuration of the defender."""

    version: str = "0.1.3"
    interfaces: list = field(default_factory=lambda: ["eth0"])
    packet_threshold: int = 1000
    check_interval: int = 5
    block_duration: int = 300
    whitelist: list = field(default_factory=lambda: ["127.0.0.1"])
    essential_ports: list = field(default_factory=lambda: [22, 80, 443])
    allowed_ports: list = field(default_factory=list)
    fortress_mode: bool = False
    ddos_auto_fortress: bool = True
    auto_update: bool = False
    update_channel: UpdateChannel = UpdateChannel.STABLE
    update_check_interval: int = 24
    log_file: str = "/var/log/zdefender.log"
    log_mode: LogMode = LogMode.FILE
    packet_queue_size: int = 10000
    report_queue_size: int = 1000
    analyzer_threads: int = 4
    parallel_processing: bool = True
    realtime_stats: bool = False
    display_realtime_stats: bool = False
    trust_threshold: float = 0.7
    auto_block_threshold: float = 0.2
    auto_whitelist_threshold: float = 0.9
    region_trust_scores: dict = field(default_factory=dict)

    def is_whitelisted(self, ip) -> bool:
        return str(ip) in self.whitelist

    def to_dict(self) -> dict:
        data = dataclasses.asdict(self)
        for name in _ENUM_FIELDS:
            data[name] = getattr(self, name).value
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Settings":
        known = {f.name for f in dataclasses.fields(cls)}
        values = {key: value for key, value in data.items() if key in known}
        for name, enum_type in _ENUM_FIELDS.items():
            if name in values:
                values[name] = enum_type(values[name])
        return cls(**values)

    def save(self, path) -> None:
        Path(path).write_text(json.dumps(self.to_dict(), indent=2), encoding="utf-8")

    @classmethod
    def load(cls, path) -> "Settings":
        return cls.from_dict(json.loads(Path(path).read_text(encoding="utf-8")))