"""HTTP API: GET /peer-locations for the map front end."""

import html
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from peermap.models import DisplayPair, PeerRecord, Snapshot
from peermap.service import AggregationService

logger = logging.getLogger(__name__)


def format_pair(pair: DisplayPair) -> str:
    """Render a display pair as ``primary<br><span class="text-light">secondary</span>``."""
    return (
        f'{html.escape(pair.primary)}<br><span class="text-light">'
        f"{html.escape(pair.secondary)}</span>"
    )


def record_view(record: PeerRecord) -> dict:
    """Convert a PeerRecord into the JSON row the map table renders."""
    pairs = record.display_fields()
    ip = html.escape(record.raw_address)
    if record.dns_hostname:
        ip = format_pair(pairs["ip"])
    return {
        "ip": ip,
        "dnsHostname": record.dns_hostname,
        "userAgent": format_pair(pairs["userAgent"]),
        "blockHeight": format_pair(pairs["blockHeight"]),
        "location": list(record.location) if record.location else [],
        "country": format_pair(pairs["country"]),
        "city": format_pair(pairs["city"]),
        "org": format_pair(pairs["org"]),
        "dns": record.dns_hostname,
    }


def snapshot_view(snapshot: Snapshot) -> dict:
    return {
        "locations": [record_view(r) for r in snapshot.records],
        "lastUpdated": snapshot.last_updated.isoformat() if snapshot.last_updated else None,
    }


def create_app(
    service: AggregationService,
    on_shutdown: Callable[[], Awaitable[None]] | None = None,
) -> FastAPI:
    """Build the FastAPI application around *service*.

    The lifespan starts the refresh scheduler and, on shutdown, stops it and
    awaits *on_shutdown* (used to close HTTP clients).
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        service.start()
        try:
            yield
        finally:
            await service.stop()
            if on_shutdown is not None:
                await on_shutdown()

    app = FastAPI(
        title="peermap",
        description="Geolocated peers of a cryptocurrency node",
        version="0.1.0",
        lifespan=lifespan,
    )

    @app.get(
        "/peer-locations",
        tags=["Peers"],
        summary="Enriched peer and local-address locations",
        responses={
            200: {"description": "Latest snapshot"},
            404: {"description": "No snapshot could be built"},
            500: {"description": "Internal error"},
        },
    )
    async def peer_locations():
        try:
            snapshot = await service.ensure_snapshot()
            if snapshot is None:
                return JSONResponse(
                    status_code=404,
                    content={"error": "No peer location data available"},
                )
            return snapshot_view(snapshot)
        except Exception as exc:
            logger.exception("Failed to serve peer locations")
            return JSONResponse(
                status_code=500,
                content={"error": "Internal server error", "details": str(exc)},
            )

    return app
