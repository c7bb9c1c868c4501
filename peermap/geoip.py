"""Geolocation: cached ipinfo.io lookups, org and location parsing."""

import logging
import re
from urllib.parse import quote

import httpx

from peermap.address import is_valid_ip
from peermap.cache import TTLCache
from peermap.models import GeoInfo, OrgInfo

logger = logging.getLogger(__name__)

IPINFO_BASE_URL = "https://ipinfo.io"
DEFAULT_TIMEOUT = 10.0

_ORG_PATTERN = re.compile(r"^(AS\d+)\s*(.*)$")

# Provider fields read into a PeerRecord; each must be a string when present.
_STRING_FIELDS = ("loc", "org", "country", "city", "region", "timezone")


def geo_cache_key(ip: str) -> str:
    return f"geo:{ip}"


class GeoResolver:
    """Resolve IPs to ipinfo.io records through a shared TTL cache.

    The resolver never raises: an invalid IP, a provider outage, a rate
    limit or a malformed body all yield ``None``, which callers treat as
    "location unknown".

    Args:
        token: ipinfo.io API token, sent as a bearer token.
        cache: Shared cache; entries are stored under ``geo:<ip>``.
        client: Optional pre-built ``httpx.AsyncClient`` (tests inject one
            backed by ``httpx.MockTransport``).
        base_url: Provider base URL.
        timeout: Per-request timeout in seconds when the resolver builds
            its own client.
    """

    def __init__(
        self,
        token: str,
        cache: TTLCache,
        client: httpx.AsyncClient | None = None,
        base_url: str = IPINFO_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self._token = token
        self._cache = cache
        self._base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def aclose(self) -> None:
        """Close the HTTP client if this resolver created it."""
        if self._owns_client:
            await self._client.aclose()

    async def resolve(self, ip: str) -> GeoInfo | None:
        """Return the provider record for *ip*, or None if unavailable.

        Args:
            ip: Bare IPv4 or IPv6 address.

        Returns:
            The raw provider dict (``loc``, ``country``, ``region``,
            ``city``, ``hostname``, ``org``, ``timezone``), or None.
        """
        if not is_valid_ip(ip):
            logger.warning("Invalid IP address, skipping geolocation: %r", ip)
            return None

        key = geo_cache_key(ip)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        data = await self._fetch(ip)
        if data is not None:
            self._cache.set(key, data)
        return data

    async def _fetch(self, ip: str) -> GeoInfo | None:
        url = f"{self._base_url}/{quote(ip, safe=':')}"
        logger.debug("Requesting geolocation for %s", ip)
        try:
            response = await self._client.get(
                url,
                headers={
                    "Authorization": f"Bearer {self._token}",
                    "Accept": "application/json",
                },
            )
        except httpx.HTTPError as exc:
            logger.error("Geolocation request failed for %s: %s", ip, exc)
            return None

        if response.status_code == 429:
            logger.error("Geolocation rate limit hit (429) for %s", ip)
            return None
        if response.status_code != 200:
            logger.error(
                "Geolocation lookup for %s returned HTTP %d",
                ip,
                response.status_code,
            )
            return None

        try:
            data = response.json()
        except ValueError:
            logger.error("Geolocation response for %s is not JSON", ip)
            return None

        if not isinstance(data, dict):
            logger.error(
                "Unexpected geolocation payload for %s: %s", ip, type(data).__name__
            )
            return None

        bad = [
            name
            for name in _STRING_FIELDS
            if data.get(name) is not None and not isinstance(data[name], str)
        ]
        if bad:
            logger.error(
                "Malformed geolocation payload for %s: non-string %s",
                ip,
                ", ".join(bad),
            )
            return None
        return data


def format_org(org: str | None) -> OrgInfo:
    """Split an ipinfo ``org`` field into ASN and name.

    >>> format_org("AS15169 Google LLC")
    OrgInfo(asn='AS15169', name='Google LLC')
    >>> format_org("NoAsnPrefix")
    OrgInfo(asn='', name='NoAsnPrefix')
    """
    if not isinstance(org, str) or not org:
        return OrgInfo()
    match = _ORG_PATTERN.match(org)
    if match:
        return OrgInfo(asn=match.group(1), name=match.group(2))
    return OrgInfo(name=org)


def parse_location(loc: str | None) -> tuple[float, float] | None:
    """Parse a ``"lat,lon"`` string into a coordinate pair.

    Returns None for missing, malformed or out-of-range values.
    """
    if not isinstance(loc, str) or not loc:
        return None
    parts = loc.split(",")
    if len(parts) != 2:
        return None
    try:
        lat, lon = float(parts[0]), float(parts[1])
    except ValueError:
        return None
    if not (-90 <= lat <= 90 and -180 <= lon <= 180):
        return None
    return (lat, lon)
