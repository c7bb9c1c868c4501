"""Reverse DNS resolution with static overrides and a negative cache."""

import asyncio
import logging
import socket

from peermap.address import extract_ip
from peermap.cache import TTLCache

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 5.0

# Well-known resolvers whose PTR records are slow or inconsistent.
FIXED_HOSTNAMES: dict[str, str] = {
    "8.8.8.8": "dns.google",
    "1.1.1.1": "one.one.one.one",
}


def dns_cache_key(ip: str) -> str:
    return f"dns:{ip}"


def _gethostbyaddr(ip: str) -> list[str]:
    """Blocking PTR lookup returning the primary name followed by aliases."""
    hostname, aliases, _addresses = socket.gethostbyaddr(ip)
    return [name for name in [hostname, *aliases] if name]


class DnsResolver:
    """Map IPs to hostnames, degrading silently to ``""``.

    Lookup precedence is: static override, cache (including cached ``""``
    "no record" markers), then a live PTR lookup run in the default
    executor.  Failed or empty lookups are cached as ``""`` so a dead PTR
    is not retried every cycle.

    Args:
        cache: Shared cache; entries are stored under ``dns:<ip>``.
        overrides: Static ``ip -> hostname`` table, defaults to
            ``FIXED_HOSTNAMES``.
        timeout: Upper bound in seconds for a single live lookup.
    """

    def __init__(
        self,
        cache: TTLCache,
        overrides: dict[str, str] | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self._cache = cache
        self._overrides = FIXED_HOSTNAMES if overrides is None else overrides
        self._timeout = timeout

    async def resolve(self, ip: str) -> str:
        """Return the hostname for *ip*, or ``""`` when there is none."""
        clean_ip = extract_ip(ip)
        if not clean_ip:
            return ""

        fixed = self._overrides.get(clean_ip)
        if fixed is not None:
            return fixed

        key = dns_cache_key(clean_ip)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        hostname = await self._lookup(clean_ip)
        self._cache.set(key, hostname)
        return hostname

    async def _lookup(self, ip: str) -> str:
        loop = asyncio.get_running_loop()
        try:
            names = await asyncio.wait_for(
                loop.run_in_executor(None, _gethostbyaddr, ip),
                timeout=self._timeout,
            )
        except (OSError, TimeoutError) as exc:
            logger.warning("Reverse DNS lookup failed for %s: %s", ip, exc)
            return ""

        if not names:
            logger.debug("No PTR record for %s", ip)
            return ""
        logger.debug("Reverse DNS %s → %s", ip, names[0])
        return names[0]
