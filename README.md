# zdefender

zdefender is a library for protecting a Linux host against DDoS attacks. It
works on packet records: it decides what should happen to each packet (let it
through, drop it, rate-limit its source or block its source for a while),
keeps track of blocked addresses, decodes raw Ethernet frames into packet
records and produces the iptables rule set for a hardened host.

## Modules

| Module | Purpose |
| --- | --- |
| `zdefender.models` | `PacketInfo`, `Action`, `Report`, `IpStats`, `BlockedIp` and the `Settings` dataclass (saved and loaded as JSON) |
| `zdefender.screening` | `inspect_packet`, a stateless screen of single packets, and the `AttackType` catalogue |
| `zdefender.inspection` | `PacketInspector`: per-address counters over a time window and a botnet address list |
| `zdefender.protection` | `ProtectionManager`: blocking, expiry clean-up, fortress mode and DDoS sampling |
| `zdefender.analysis` | `PacketAnalyzer` and `detect_attacks`: rate, SYN-ratio, ICMP-flood and port-scan rules |
| `zdefender.capture` | `parse_packet` and `parse_ip_packet`: Ethernet/IPv4/IPv6 frames to `PacketInfo` |
| `zdefender.commands` | `parse_command`: operator commands to `Command` values |
| `zdefender.firewall` | `firewall_commands` and `secure_server`: iptables hardening |
| `zdefender.logs` | `read_logs` and `logs_response`: reading and filtering the log file |
| `zdefender.updater` | `UpdateManager`, `is_newer_version`, `format_size`, `find_appropriate_asset` |
| `zdefender.timefmt` | `format_elapsed`: French "il y a ..." strings for timestamps |

The only runtime dependency is `requests`, used by the updater.

## Packets and actions

A `PacketInfo` holds the source and destination addresses, the protocol
(`PacketType.TCP`, `UDP`, `ICMP` or `OTHER`), the size, optional ports, TCP
flags and TTL. Decisions are `Action` values built with `Action.block(ip,
seconds)`, `Action.rate_limit(ip)` or `Action.drop()`; `None` means the
packet may pass.

## Screening single packets

```python
from zdefender.models import PacketInfo, PacketType
from zdefender.screening import inspect_packet

packet = PacketInfo("192.0.2.10", "198.51.100.1", PacketType.UDP, size=60, dest_port=11211)
action = inspect_packet(packet)   # block 192.0.2.10 for 3600 seconds
```

`inspect_packet` uses no history:

* TCP packets carrying FIN, URG and PSH together (an Xmas scan) block the
  source for 1800 seconds.
* ICMP packets larger than 1000 bytes block the source for 900 seconds.
* UDP to port 389 (LDAP) or 1900 (SSDP) rate-limits the source; UDP to
  11211 (memcached) blocks it for 3600 seconds.
* A TTL below 5 blocks the source for 300 seconds.

## Windowed inspection

`PacketInspector(settings, report_sink)` counts, per source address over a
60-second window, TCP packets to ports 80, 443 and 8080, ICMP packets and
UDP packets to port 53. Above 100, 50 and 200 packets respectively,
`inspect_packet` returns `AttackType.SYN_FLOOD`, `PING_FLOOD` or
`DNS_AMPLIFICATION` and passes an alert `Report` suggesting a block to
`report_sink`. Addresses read by `load_botnet_ips(path)` (one per line, lines
starting with `#` are skipped) are reported at once with twice the configured
block duration. `cleanup_counters` drops counters idle for more than twice
the window.

## Protection manager

```python
from zdefender.models import PacketInfo, PacketType, Settings
from zdefender.protection import ProtectionManager

reports = []
manager = ProtectionManager(Settings(), reports.append)
manager.block_ip("203.0.113.5", 600, "manual block")
manager.process_packet(PacketInfo("203.0.113.5", "198.51.100.1", PacketType.TCP))
# -> Action.drop()
```

`process_packet` drops traffic from sources whose block has not expired and
watches the overall share of SYN-without-ACK packets among TCP packets with
flags: once more than 100 have been seen and the share exceeds the threshold
(0.8 by default, see `set_thresholds`), the source is blocked for
`Settings.block_duration` seconds unless it is whitelisted.

* `enable_fortress_mode()` blocks every new TCP connection, drops UDP outside
  `Settings.essential_ports` and other protocols, and rate-limits ICMP;
  whitelisted addresses pass.
* `enable_ddos_protection(intensity)` lets through 10 %, 30 % or 50 % of
  non-whitelisted traffic (intensity above 0.8, above 0.5, otherwise) and
  rate-limits what passes. With `Settings.ddos_auto_fortress` set (the
  default) it also turns fortress mode on; `disable_ddos_protection()` turns
  it off again.
* `cleanup_expired_blocks()` unblocks expired addresses and returns them.

Reports go to the callable given to the constructor; an exception raised by
it is logged, not propagated.

`PacketAnalyzer(manager)` chains all stages: known blocks, per-address
`IpStats`, a `PacketInspector`, an optional anomaly scorer (a callable
returning a score; above 0.8 blocks, above 0.5 rate-limits) and
`detect_attacks`.

## Decoding frames

`zdefender.capture.parse_packet(frame)` decodes an Ethernet frame carrying
IPv4 or IPv6 and reads TCP/UDP ports when the transport header is complete.
It returns `None` for other frames. Flags are not decoded and the TTL is
always recorded as 64.

## Commands

```python
from zdefender.commands import parse_command

parse_command("secure ports=22,443").ports   # (22, 443)
parse_command("logs lines=20 level=warn")     # Command(kind=LOGS, lines=20, level="warn")
parse_command("ip_info not-an-ip")            # raises CommandError
```

`zdefender.logs.logs_response(command, settings)` answers a `logs` command
from `Settings.log_file`, keeping lines that contain `[LEVEL]` (upper-cased)
and the last N lines. In journal mode it returns a hint to use journalctl.

## Hardening the firewall

```python
from zdefender.firewall import firewall_commands

for command in firewall_commands([22, 80, 443]):
    print(" ".join(command))
```

The rule set is default-deny: loopback and established traffic allowed, the
listed ports opened for TCP and UDP, common scan flag patterns dropped, SSH
brute-force limiting when port 22 is listed and a limit of 20 connections per
address. `secure_server(ports, settings)` runs the commands (root is needed),
opens `settings.essential_ports` when no port is given, stores the ports in
`settings.allowed_ports` and returns a French report. It does not save the
settings.

## Updates

```python
from zdefender.updater import format_size, is_newer_version

is_newer_version("0.2.0", "0.1.3")   # True
format_size(2048)                     # "2.00 KB"
```

`UpdateManager(settings, releases_url)` fetches release metadata as JSON from
`releases_url`. `check_for_updates()` returns `True` after installing a newer
release when `settings.auto_update` is set; `.sh` assets are run with `sh`,
`.zip` assets are extracted and their `install.sh` run or their `zdefender`
binary copied to the install path. Failures raise `UpdateError`.

## What it does not do

zdefender is a library. It has no command-line program and no long-running
service: it does not open network interfaces or capture live traffic, does
not run workers or periodic clean-up on its own, and does not apply its
actions to the host firewall (except the fixed rule set of
`secure_server`). The `stats`, `detailed_stats`, `ip_info` and `realtime`
commands are parsed but nothing here answers them, and there is no live
statistics display. Behavioural scoring is left to the scorer you pass to
`PacketAnalyzer`.

## Tests

The tests use pytest and responses, listed in the `test` extra.