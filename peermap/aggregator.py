"""Aggregator: turn daemon peers and local addresses into enriched PeerRecords."""

import asyncio
import logging

from peermap.address import extract_ip, is_local_address, is_valid_ip
from peermap.daemon import InfoGateway
from peermap.dns import DnsResolver
from peermap.geoip import GeoResolver, format_org, parse_location
from peermap.models import (
    GeoInfo,
    LocalAddress,
    MiningInfo,
    NetworkInfo,
    PeerInfo,
    PeerRecord,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONCURRENT_LOOKUPS = 10


class PeerLocationAggregator:
    """Build the peer map for one aggregation cycle.

    The three daemon calls run concurrently, then every peer and local
    address is enriched concurrently (bounded by *max_concurrent_lookups*).
    Output order follows input order: peers first, then the node's own
    advertised addresses.

    Args:
        gateway: Source of peer, network and mining info.
        geo: Geolocation resolver.
        dns: Reverse DNS resolver.
        max_concurrent_lookups: Upper bound on addresses enriched at once.
    """

    def __init__(
        self,
        gateway: InfoGateway,
        geo: GeoResolver,
        dns: DnsResolver,
        max_concurrent_lookups: int = DEFAULT_MAX_CONCURRENT_LOOKUPS,
    ) -> None:
        self._gateway = gateway
        self._geo = geo
        self._dns = dns
        self._max_concurrent = max(1, max_concurrent_lookups)

    async def collect(self) -> list[PeerRecord] | None:
        """Fetch daemon state and return the enriched records.

        Returns:
            The combined record list, or None when the daemon reported no
            peers (the caller should keep its previous snapshot).
        """
        peers, network_info, mining_info = await asyncio.gather(
            self._gateway.fetch_peer_info(),
            self._gateway.fetch_network_info(),
            self._gateway.fetch_mining_info(),
        )

        if not peers:
            logger.warning("No peer information available")
            return None

        semaphore = asyncio.Semaphore(self._max_concurrent)

        peer_results = await asyncio.gather(
            *(self._peer_record(peer, semaphore) for peer in peers),
            return_exceptions=True,
        )
        local_results = await asyncio.gather(
            *(
                self._local_record(addr, network_info, mining_info, semaphore)
                for addr in network_info.local_addresses
            ),
            return_exceptions=True,
        )

        records = _successful(peer_results, [p.addr for p in peers])
        records.extend(
            _successful(
                local_results, [a.raw_address for a in network_info.local_addresses]
            )
        )
        logger.info(
            "Built %d record(s) from %d peer(s) and %d local address(es)",
            len(records),
            len(peers),
            len(network_info.local_addresses),
        )
        return records

    async def _peer_record(
        self, peer: PeerInfo, semaphore: asyncio.Semaphore
    ) -> PeerRecord | None:
        ip = extract_ip(peer.addr)
        if not is_valid_ip(ip) or is_local_address(ip):
            logger.warning("Invalid or local IP address skipped: %r", ip)
            return None

        async with semaphore:
            geo_info, hostname = await self._enrich(ip)

        return _build_record(
            raw_address=peer.addr,
            ip=ip,
            hostname=hostname,
            geo_info=geo_info,
            user_agent=peer.subver,
            protocol_version=peer.version,
            block_height=peer.starting_height,
        )

    async def _local_record(
        self,
        addr: LocalAddress,
        network_info: NetworkInfo,
        mining_info: MiningInfo,
        semaphore: asyncio.Semaphore,
    ) -> PeerRecord | None:
        # The node's own addresses are kept even when private.
        ip = extract_ip(addr.address)
        if not is_valid_ip(ip):
            logger.warning("Invalid local address skipped: %r", addr.address)
            return None

        async with semaphore:
            geo_info, hostname = await self._enrich(ip)

        if mining_info.blocks is None:
            logger.debug("Block height unknown for local address %s", ip)

        return _build_record(
            raw_address=addr.raw_address,
            ip=ip,
            hostname=hostname,
            geo_info=geo_info,
            user_agent=network_info.subversion,
            protocol_version=network_info.protocol_version,
            block_height=mining_info.blocks or 0,
        )

    async def _enrich(self, ip: str) -> tuple[GeoInfo, str]:
        """Resolve geolocation and DNS for *ip* concurrently.

        Either lookup failing leaves its half empty; the other still counts.
        """
        geo_result, dns_result = await asyncio.gather(
            self._geo.resolve(ip),
            self._dns.resolve(ip),
            return_exceptions=True,
        )
        if isinstance(geo_result, Exception):
            logger.error("Geolocation failed for %s: %s", ip, geo_result)
            geo_result = None
        if isinstance(dns_result, Exception):
            logger.error("Reverse DNS failed for %s: %s", ip, dns_result)
            dns_result = ""
        return geo_result or {}, dns_result or ""


def _successful(
    results: list[PeerRecord | BaseException | None], addresses: list[str]
) -> list[PeerRecord]:
    """Keep built records; log and drop items whose enrichment raised."""
    records = []
    for address, result in zip(addresses, results):
        if isinstance(result, BaseException):
            logger.error("Failed to build record for %s: %r", address, result)
        elif result is not None:
            records.append(result)
    return records


def _text(geo_info: GeoInfo, key: str) -> str:
    value = geo_info.get(key)
    return value if isinstance(value, str) else ""


def _build_record(
    *,
    raw_address: str,
    ip: str,
    hostname: str,
    geo_info: GeoInfo,
    user_agent: str,
    protocol_version: str,
    block_height: int,
) -> PeerRecord:
    org = format_org(_text(geo_info, "org"))
    return PeerRecord(
        raw_address=raw_address,
        ip=ip,
        dns_hostname=hostname,
        user_agent=user_agent,
        protocol_version=protocol_version,
        block_height=block_height,
        location=parse_location(_text(geo_info, "loc")),
        country=_text(geo_info, "country"),
        timezone=_text(geo_info, "timezone"),
        city=_text(geo_info, "city"),
        region=_text(geo_info, "region"),
        org_name=org.name,
        org_asn=org.asn,
    )
