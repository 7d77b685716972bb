import pytest

from zdefender.firewall import firewall_commands, secure_server
from zdefender.models import Settings


class RecordingRunner:
    def __init__(self, fail=False):
        self.calls = []
        self.fail = fail

    def __call__(self, args):
        self.calls.append(list(args))
        if self.fail:
            raise FileNotFoundError(args[0])
        return None


def test_commands_start_with_save_and_flush():
    commands = firewall_commands([80])
    assert commands[0] == ["iptables-save"]
    assert commands[1] == ["iptables", "-F"]
    assert commands[2] == ["iptables", "-P", "INPUT", "DROP"]
    assert commands[3] == ["iptables", "-P", "FORWARD", "DROP"]


def test_commands_open_each_port_for_tcp_and_udp():
    commands = firewall_commands([80, 443])
    for port in ("80", "443"):
        for proto in ("tcp", "udp"):
            assert ["iptables", "-A", "INPUT", "-p", proto, "--dport", port, "-j", "ACCEPT"] in commands


def test_ssh_rules_only_with_port_22():
    without = firewall_commands([80])
    with_ssh = firewall_commands([22, 80])
    assert not any("SSH" in cmd for cmd in without)
    assert sum("SSH" in cmd for cmd in with_ssh) == 2
    assert len(with_ssh) == len(without) + 4


def test_connlimit_is_last():
    commands = firewall_commands([])
    assert commands[-1][-2:] == ["-j", "DROP"]
    assert "connlimit" in commands[-1]


def test_invalid_port_rejected():
    with pytest.raises(ValueError):
        firewall_commands([70000])


def test_secure_server_runs_all_commands():
    runner = RecordingRunner()
    settings = Settings()
    response = secure_server([80, 443], settings, runner)
    assert runner.calls == firewall_commands([80, 443])
    assert "Port 80 ouvert (TCP/UDP)\n" in response
    assert "Port 443 ouvert (TCP/UDP)\n" in response
    assert "SSH" not in response
    assert settings.allowed_ports == [80, 443]


def test_secure_server_ssh_message():
    response = secure_server([22], Settings(), RecordingRunner())
    assert "Protection contre les attaques par force brute SSH activée\n" in response
    assert response.startswith("=== SÉCURISATION DU SERVEUR ===")


def test_secure_server_defaults_to_essential_ports():
    settings = Settings(essential_ports=[22, 8080])
    runner = RecordingRunner()
    secure_server([], settings, runner)
    assert runner.calls == firewall_commands([22, 8080])
    assert settings.allowed_ports == [22, 8080]


def test_secure_server_tolerates_missing_tools():
    runner = RecordingRunner(fail=True)
    settings = Settings()
    response = secure_server([443], settings, runner)
    assert len(runner.calls) == len(firewall_commands([443]))
    assert "Sécurisation terminée!" in response
    assert settings.allowed_ports == [443]