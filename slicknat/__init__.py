"""SlickNAT: IPv6 NAT mapping query daemon and client."""

__version__ = "1.0.0"
