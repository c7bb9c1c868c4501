"""Data models: PeerRecord, Snapshot and the daemon RPC result shapes."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

# Raw ipinfo.io response, cached as-is under ``geo:<ip>``.
GeoInfo = dict[str, Any]


@dataclass(frozen=True)
class DisplayPair:
    """A primary value with a secondary annotation shown beneath it."""

    primary: str
    secondary: str = ""


@dataclass(frozen=True)
class OrgInfo:
    """Organization field split into ASN and name.

    Attributes:
        asn: ``"AS15169"``-style number, or ``""`` when absent.
        name: Organization name.
    """

    asn: str = ""
    name: str = ""


@dataclass(frozen=True)
class PeerRecord:
    """One enriched entry of the published peer map.

    Built once per connected peer and per advertised local address during
    an aggregation cycle, then replaced wholesale by the next cycle.

    Attributes:
        raw_address: Address as reported by the daemon (may include port).
        ip: Bare IP extracted from ``raw_address``.
        dns_hostname: Reverse DNS name, or ``""`` if none.
        user_agent: Peer sub-version string (e.g. ``/Satoshi:27.0.0/``).
        protocol_version: Peer protocol version.
        block_height: Starting height for peers, current height for the
            node's own addresses.
        location: ``(latitude, longitude)`` or None when unknown.
        country: Country code from the geolocation provider.
        timezone: IANA timezone from the geolocation provider.
        city: City name.
        region: Region / state name.
        org_name: Hosting organization name.
        org_asn: Autonomous system number (``"AS####"``).
    """

    raw_address: str
    ip: str
    dns_hostname: str = ""
    user_agent: str = ""
    protocol_version: str = ""
    block_height: int = 0
    location: tuple[float, float] | None = None
    country: str = ""
    timezone: str = ""
    city: str = ""
    region: str = ""
    org_name: str = ""
    org_asn: str = ""

    def display_fields(self) -> dict[str, DisplayPair]:
        """Return the two-line display pairs keyed by front-end column."""
        return {
            "ip": DisplayPair(self.raw_address, self.dns_hostname),
            "userAgent": DisplayPair(self.user_agent, self.protocol_version),
            "blockHeight": DisplayPair(str(self.block_height), "blocks"),
            "country": DisplayPair(self.country, self.timezone),
            "city": DisplayPair(self.city, self.region),
            "org": DisplayPair(self.org_name, self.org_asn),
        }


@dataclass(frozen=True)
class Snapshot:
    """The published peer map: records plus the time they were built."""

    records: tuple[PeerRecord, ...]
    last_updated: datetime = field(default_factory=lambda: datetime.now(UTC))


# ---------------------------------------------------------------------------
# Daemon RPC result shapes (transient, one cycle)
# ---------------------------------------------------------------------------


@dataclass
class PeerInfo:
    """The subset of a ``getpeerinfo`` entry used for aggregation."""

    addr: str
    subver: str = ""
    version: str = ""
    starting_height: int = 0

    @classmethod
    def from_rpc(cls, raw: dict) -> "PeerInfo":
        return cls(
            addr=str(raw.get("addr") or ""),
            subver=str(raw.get("subver") or ""),
            version=str(raw.get("version") or ""),
            starting_height=_as_int(raw.get("startingheight")),
        )


@dataclass
class LocalAddress:
    """An address the node advertises for itself."""

    address: str
    port: int | None = None

    @property
    def raw_address(self) -> str:
        """``addr:port``, with IPv6 hosts bracketed."""
        if self.port is None:
            return self.address
        if ":" in self.address:
            return f"[{self.address}]:{self.port}"
        return f"{self.address}:{self.port}"


@dataclass
class NetworkInfo:
    """Node identity and advertised addresses from ``getnetworkinfo``."""

    subversion: str = ""
    protocol_version: str = ""
    local_addresses: list[LocalAddress] = field(default_factory=list)

    @classmethod
    def from_rpc(cls, raw: dict) -> "NetworkInfo":
        addresses = [
            LocalAddress(
                address=str(entry.get("address") or ""),
                port=_as_optional_int(entry.get("port")),
            )
            for entry in raw.get("localaddresses") or []
            if isinstance(entry, dict)
        ]
        return cls(
            subversion=str(raw.get("subversion") or ""),
            protocol_version=str(raw.get("protocolversion") or ""),
            local_addresses=addresses,
        )


@dataclass
class MiningInfo:
    """Chain tip information from ``getmininginfo``."""

    blocks: int | None = None

    @classmethod
    def from_rpc(cls, raw: dict) -> "MiningInfo":
        return cls(blocks=_as_optional_int(raw.get("blocks")))


def _as_int(value: object, default: int = 0) -> int:
    parsed = _as_optional_int(value)
    return default if parsed is None else parsed


def _as_optional_int(value: object) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None
