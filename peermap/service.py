"""AggregationService: snapshot publishing, refresh scheduling, on-demand refresh."""

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime

from peermap.aggregator import PeerLocationAggregator
from peermap.cache import TTLCache
from peermap.config import PeermapConfig
from peermap.daemon import DaemonGateway, DaemonRpcClient
from peermap.dns import DnsResolver
from peermap.geoip import GeoResolver
from peermap.models import Snapshot

logger = logging.getLogger(__name__)

SNAPSHOT_KEY = "peer-locations"
DEFAULT_REFRESH_INTERVAL = 3600.0


class AggregationService:
    """Own the shared cache and keep the published snapshot fresh.

    ``start()`` runs one aggregation immediately and then one every
    *refresh_interval* seconds; ``stop()`` cancels the loop.  A cycle that
    fails or finds no peers leaves the previous snapshot in place.

    Args:
        aggregator: Builds the records for a cycle.
        cache: Shared TTL cache (also used by the resolvers).
        refresh_interval: Seconds between the starts of two cycles.
    """

    def __init__(
        self,
        aggregator: PeerLocationAggregator,
        cache: TTLCache,
        refresh_interval: float = DEFAULT_REFRESH_INTERVAL,
    ) -> None:
        self.aggregator = aggregator
        self.cache = cache
        self.refresh_interval = refresh_interval
        self.last_updated: datetime | None = None
        self._scheduler: asyncio.Task | None = None
        self._refresh: asyncio.Task | None = None

    # ------------------------------------------------------------------
    # Snapshot access
    # ------------------------------------------------------------------

    def snapshot(self) -> Snapshot | None:
        """Return the currently published snapshot, if any."""
        return self.cache.get(SNAPSHOT_KEY)

    async def update_peer_locations(self) -> Snapshot | None:
        """Run one aggregation cycle and publish its result.

        Never raises.  Returns the newly published snapshot, or None when
        the cycle was abandoned and the previous snapshot stays in effect.
        """
        try:
            records = await self.aggregator.collect()
            if records is None:
                return None

            snapshot = Snapshot(records=tuple(records), last_updated=datetime.now(UTC))
            self.cache.set(SNAPSHOT_KEY, snapshot)
            self.last_updated = snapshot.last_updated
        except Exception:
            logger.exception("Failed to update peer locations")
            return None

        self.cache.purge_expired()
        logger.info(
            "Peer locations updated: %d record(s) at %s",
            len(snapshot.records),
            snapshot.last_updated.isoformat(),
        )
        return snapshot

    async def ensure_snapshot(self) -> Snapshot | None:
        """Return the cached snapshot, refreshing on demand when it is missing.

        Concurrent callers that all find the cache empty share a single
        in-flight refresh instead of each starting their own.
        """
        snapshot = self.snapshot()
        if snapshot is not None:
            return snapshot

        if self._refresh is None or self._refresh.done():
            logger.info("No cached snapshot; refreshing on demand")
            self._refresh = asyncio.ensure_future(self.update_peer_locations())
        await asyncio.shield(self._refresh)
        return self.snapshot()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._scheduler is not None and not self._scheduler.done()

    def start(self) -> None:
        """Start the refresh loop on the running event loop."""
        if self.running:
            return
        logger.info(
            "Starting peer location refresh every %.0f seconds", self.refresh_interval
        )
        self._scheduler = asyncio.get_running_loop().create_task(self._run())

    async def stop(self) -> None:
        """Cancel the refresh loop and any on-demand refresh in flight."""
        for task in (self._scheduler, self._refresh):
            if task is None or task.done():
                continue
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._scheduler = None
        self._refresh = None

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        while True:
            started = loop.time()
            await self.update_peer_locations()
            delay = self.refresh_interval - (loop.time() - started)
            await asyncio.sleep(max(0.0, delay))


def build_service(
    config: PeermapConfig,
) -> tuple[AggregationService, Callable[[], Awaitable[None]]]:
    """Wire the daemon gateway, resolvers and cache for *config*.

    Returns:
        The service and a coroutine function that closes the HTTP clients
        it created.
    """
    cache = TTLCache(default_ttl=config.cache_refresh_interval)
    rpc = DaemonRpcClient(
        config.rpc_url,
        username=config.daemon_rpc_username,
        password=config.daemon_rpc_password,
        timeout=config.daemon_rpc_timeout,
    )
    geo = GeoResolver(config.ipinfo_token or "", cache)
    aggregator = PeerLocationAggregator(
        gateway=DaemonGateway(rpc, rpc_port=config.daemon_rpc_port),
        geo=geo,
        dns=DnsResolver(cache, timeout=config.dns_timeout),
        max_concurrent_lookups=config.max_concurrent_lookups,
    )
    service = AggregationService(
        aggregator, cache, refresh_interval=config.cache_refresh_interval
    )

    async def aclose() -> None:
        await rpc.aclose()
        await geo.aclose()

    logger.info("Daemon RPC endpoint: %s", config.rpc_url)
    return service, aclose
