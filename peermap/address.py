"""Peer address parsing: IP extraction, syntax validation, local-range checks."""

import ipaddress
import logging

logger = logging.getLogger(__name__)

# Loopback forms the daemon reports verbatim.
_LOOPBACK = frozenset({"127.0.0.1", "::1", "::ffff:127.0.0.1"})


def extract_ip(address: str) -> str:
    """Return the host portion of a raw peer address.

    Handles the forms ``getpeerinfo`` reports:

    * ``"[2001:db8::1]:8333"`` → ``"2001:db8::1"``
    * ``"192.0.2.1:8333"`` → ``"192.0.2.1"``
    * ``"2001:db8::1"`` → ``"2001:db8::1"`` (bare IPv6, no port)
    * ``"192.0.2.1"`` → ``"192.0.2.1"``

    Args:
        address: Raw ``host[:port]`` string.

    Returns:
        The bare host, or ``""`` for empty input.
    """
    if not address:
        return ""

    if "[" in address and "]" in address:
        return address[address.index("[") + 1 : address.index("]")]

    if address.count(":") == 1:
        return address.split(":")[0]

    if ":" in address:
        # A complete IPv6 address may itself end in an all-digit group.
        if is_valid_ip(address):
            return address
        head, _, tail = address.rpartition(":")
        if tail.isdigit() and head:
            return head
        return address

    return address


def is_valid_ip(ip: str) -> bool:
    """Return True if *ip* is a syntactically valid IPv4 or IPv6 address.

    IPv4 must be a strict dotted quad.  IPv6 accepts the full, compressed,
    embedded-IPv4 and ``%zone``-scoped forms.  Hostnames are rejected.
    """
    if not ip:
        return False
    try:
        ipaddress.ip_address(ip)
    except ValueError:
        return False
    return True


def is_local_address(ip: str) -> bool:
    """Return True for loopback, RFC 1918 private and ``fe80:`` link-local IPs.

    Such addresses carry no useful public geolocation, so peers behind them
    are skipped during aggregation.
    """
    if ip in _LOOPBACK:
        return True
    if ip.startswith(("10.", "192.168.", "fe80:")):
        return True
    if ip.startswith("172."):
        parts = ip.split(".")
        if len(parts) > 1 and parts[1].isdigit():
            return 16 <= int(parts[1]) <= 31
    return False
