"""Hardening the host firewall with a fixed set of iptables rules."""

from __future__ import annotations

import logging
import subprocess
from typing import Any, Callable, Iterable, List, Optional, Sequence

from zdefender.models import Settings

logger = logging.getLogger(__name__)

Runner = Callable[[Sequence[str]], Any]

SSH_PORT = 22
_MAX_PORT = 65535

_CLOSING_NOTES = (
    "\nSécurisation terminée!\n",
    "\nIMPORTANT: Si vous devez ouvrir d'autres ports à l'avenir, utilisez:\n",
    "- La commande 'zdefender secure --ports=X,Y,Z'\n",
    "- Ou les commandes iptables directement:\n",
    "  iptables -A INPUT -p tcp --dport PORT -j ACCEPT\n",
)


def _iptables(*args: str) -> List[str]:
    return ["iptables", *args]


def _validate_ports(ports: Iterable[int]) -> List[int]:
    checked = []
    for port in ports:
        value = int(port)
        if not 0 <= value <= _MAX_PORT:
            raise ValueError(f"Invalid port: {port}")
        checked.append(value)
    return checked


def firewall_commands(allowed_ports: Iterable[int]) -> List[List[str]]:
    """Return, in order, every command that secures the host for these ports."""
    ports = _validate_ports(allowed_ports)
    commands: List[List[str]] = [
        ["iptables-save"],
        _iptables("-F"),
        _iptables("-P", "INPUT", "DROP"),
        _iptables("-P", "FORWARD", "DROP"),
        _iptables("-A", "INPUT", "-i", "lo", "-j", "ACCEPT"),
        _iptables(
            "-A", "INPUT", "-m", "state", "--state", "ESTABLISHED,RELATED", "-j", "ACCEPT"
        ),
    ]
    for port in ports:
        for proto in ("tcp", "udp"):
            commands.append(
                _iptables("-A", "INPUT", "-p", proto, "--dport", str(port), "-j", "ACCEPT")
            )
    commands += [
        _iptables("-A", "INPUT", "-p", "tcp", "--tcp-flags", "ALL", "NONE", "-j", "DROP"),
        _iptables(
            "-A", "INPUT", "-p", "tcp", "--tcp-flags", "SYN,FIN", "SYN,FIN", "-j", "DROP"
        ),
        _iptables(
            "-A", "INPUT", "-p", "tcp", "--tcp-flags", "SYN,RST", "SYN,RST", "-j", "DROP"
        ),
    ]
    if SSH_PORT in ports:
        commands += [
            _iptables(
                "-A", "INPUT", "-p", "tcp", "--dport", "22",
                "-m", "state", "--state", "NEW",
                "-m", "recent", "--set", "--name", "SSH",
            ),
            _iptables(
                "-A", "INPUT", "-p", "tcp", "--dport", "22",
                "-m", "state", "--state", "NEW",
                "-m", "recent", "--update", "--seconds", "60", "--hitcount", "4",
                "--name", "SSH", "-j", "DROP",
            ),
        ]
    commands.append(
        _iptables(
            "-A", "INPUT", "-p", "tcp",
            "-m", "connlimit", "--connlimit-above", "20",
            "-j", "DROP",
        )
    )
    return commands


def _run(args: Sequence[str]) -> subprocess.CompletedProcess:
    return subprocess.run(list(args), capture_output=True, check=False)


def secure_server(
    allowed_ports: Iterable[int],
    settings: Settings,
    runner: Optional[Runner] = None,
) -> str:
    """Apply the firewall rules and return a report of what was done.

    With no ports given, the essential ports of the settings are opened.
    Failures of individual commands are ignored, as a partial rule set is
    still better than none.
    """
    runner = _run if runner is None else runner
    ports = _validate_ports(allowed_ports)
    if not ports:
        ports = _validate_ports(settings.essential_ports)

    logger.info("Securing the server...")
    for command in firewall_commands(ports):
        try:
            runner(command)
        except OSError as exc:
            logger.debug("Command %s failed: %s", " ".join(command), exc)

    lines = [
        "=== SÉCURISATION DU SERVEUR ===\n\n",
        "Application des règles de sécurité de base...\n",
    ]
    lines += [f"Port {port} ouvert (TCP/UDP)\n" for port in ports]
    if SSH_PORT in ports:
        lines.append("Protection contre les attaques par force brute SSH activée\n")
    lines.append("Protection anti-DDoS de base activée\n")

    settings.allowed_ports = list(ports)

    lines += _CLOSING_NOTES
    return "".join(lines)