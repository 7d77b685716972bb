"""Parsing of control commands sent to the running defender."""

from __future__ import annotations

import ipaddress
import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional

from zdefender.models import IpAddress

_UNSIGNED = re.compile(r"\+?[0-9]+")
_MAX_PORT = 65535


class CommandKind(Enum):
    """Commands understood by the service."""

    STATS = "stats"
    DETAILED_STATS = "detailed_stats"
    IP_INFO = "ip_info"
    SECURE = "secure"
    REALTIME = "realtime"
    LOGS = "logs"
    UNKNOWN = "unknown"


class CommandError(ValueError):
    """A command was recognised but its argument is invalid."""


@dataclass(frozen=True)
class Command:
    """A parsed command; only the fields of its kind are set."""

    kind: CommandKind
    ip: Optional[IpAddress] = None
    ports: tuple = ()
    enable: Optional[bool] = None
    lines: Optional[int] = None
    level: Optional[str] = None


def _strip_prefix(text: str, prefix: str) -> str:
    while text.startswith(prefix):
        text = text[len(prefix):]
    return text


def _unsigned(text: str) -> Optional[int]:
    if _UNSIGNED.fullmatch(text) is None:
        return None
    return int(text)


def parse_ports_argument(parts: Iterable[str]) -> List[int]:
    """Collect ports from every ``ports=A,B,...`` argument, skipping bad values."""
    ports: List[int] = []
    for part in parts:
        if not part.startswith("ports="):
            continue
        for value in _strip_prefix(part, "ports=").split(","):
            port = _unsigned(value.strip())
            if port is not None and port <= _MAX_PORT:
                ports.append(port)
    return ports


def _parse_ip(text: str) -> IpAddress:
    if "%" in text:
        raise CommandError(f"Adresse IP invalide: {text}")
    try:
        return ipaddress.ip_address(text)
    except ValueError:
        raise CommandError(f"Adresse IP invalide: {text}") from None


def _parse_logs(parts: List[str]) -> Command:
    lines: Optional[int] = None
    level: Optional[str] = None
    for part in parts:
        if part.startswith("lines="):
            value = _unsigned(_strip_prefix(part, "lines="))
            if value is not None:
                lines = value
        elif part.startswith("level="):
            level = _strip_prefix(part, "level=")
    return Command(CommandKind.LOGS, lines=lines, level=level)


def parse_command(text: str) -> Command:
    """Parse one command line; raise CommandError on an invalid address."""
    if text in ("stats", "statistics"):
        return Command(CommandKind.STATS)
    if text == "detailed_stats":
        return Command(CommandKind.DETAILED_STATS)
    if text.startswith("ip_info "):
        return Command(CommandKind.IP_INFO, ip=_parse_ip(text.split(" ", 1)[1]))
    if text.startswith("secure"):
        ports = parse_ports_argument(text.split(" ")[1:])
        return Command(CommandKind.SECURE, ports=tuple(ports))
    if text == "realtime on":
        return Command(CommandKind.REALTIME, enable=True)
    if text == "realtime off":
        return Command(CommandKind.REALTIME, enable=False)
    if text.startswith("logs"):
        return _parse_logs(text.split(" ")[1:])
    return Command(CommandKind.UNKNOWN)