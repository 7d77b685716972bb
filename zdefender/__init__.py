"""DDoS protection library: packet screening, attack detection, IP blocking and firewall hardening."""

__version__ = "0.1.3"