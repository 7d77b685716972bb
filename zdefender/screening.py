"""Attack categories and a stateless first-pass packet screen."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from zdefender.models import Action, PacketInfo, PacketType

logger = logging.getLogger(__name__)

_WEB_PORTS = {80, 443, 8080}


class AttackType(Enum):
    """Known DDoS attack signatures."""

    SYN_FLOOD = "SYN Flood"
    PING_FLOOD = "ICMP Flood"
    DNS_AMPLIFICATION = "DNS Amplification"
    NTP_AMPLIFICATION = "NTP Amplification"
    SLOWLORIS = "Slowloris"
    HTTP_FLOOD = "HTTP Flood"
    FRAGMENTATION_ATTACK = "Fragmentation Attack"

    def label(self) -> str:
        return self.value


@dataclass(frozen=True)
class OtherAttack:
    """An attack outside the known categories."""

    description: str

    def label(self) -> str:
        return f"Other Attack: {self.description}"


def inspect_packet(packet: PacketInfo) -> Optional[Action]:
    """Screen a single packet without history; return an action or None."""
    src = packet.source_ip

    if packet.protocol is PacketType.TCP and packet.flags is not None:
        if packet.is_syn_without_ack and packet.dest_port in _WEB_PORTS:
            logger.debug("SYN packet to port %s from %s", packet.dest_port, src)
        if all(packet.has_flag(flag) for flag in ("FIN", "URG", "PSH")):
            logger.warning("Xmas scan attempt from %s", src)
            return Action.block(src, 1800)

    if packet.protocol is PacketType.ICMP and packet.size > 1000:
        logger.warning("Large ICMP packet: %d bytes from %s", packet.size, src)
        return Action.block(src, 900)

    if packet.protocol is PacketType.UDP and packet.dest_port is not None:
        port = packet.dest_port
        if port == 53:
            if packet.size < 40:
                logger.debug("Small DNS query from %s (possible amplification)", src)
        elif port == 123:
            logger.debug("NTP traffic from %s", src)
        elif port == 389:
            logger.warning("Possible LDAP amplification from %s", src)
            return Action.rate_limit(src)
        elif port == 1900:
            logger.warning("Possible SSDP amplification from %s", src)
            return Action.rate_limit(src)
        elif port == 11211:
            logger.warning("Possible Memcached amplification from %s", src)
            return Action.block(src, 3600)

    if packet.ttl is not None and packet.ttl < 5:
        logger.warning("Very low TTL (%d) from %s", packet.ttl, src)
        return Action.block(src, 300)

    return None