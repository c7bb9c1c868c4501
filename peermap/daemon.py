"""Daemon access: JSON-RPC transport and the failure-isolated info gateway."""

import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import Any

import httpx

from peermap.models import LocalAddress, MiningInfo, NetworkInfo, PeerInfo

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


class RpcError(Exception):
    """Raised when the daemon answers a call with a JSON-RPC error."""

    def __init__(self, method: str, error: object) -> None:
        self.method = method
        self.error = error
        message = error.get("message") if isinstance(error, dict) else error
        super().__init__(f"{method}: {message}")


class DaemonRpcClient:
    """Minimal Bitcoin-Core style JSON-RPC 1.0 client over HTTP(S).

    Args:
        url: Full RPC endpoint, e.g. ``http://127.0.0.1:8332``.
        username: RPC user for HTTP basic auth, or None.
        password: RPC password for HTTP basic auth, or None.
        timeout: Request timeout in seconds.
        client: Optional pre-built ``httpx.AsyncClient``.
    """

    def __init__(
        self,
        url: str,
        username: str | None = None,
        password: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.url = url
        self._auth = httpx.BasicAuth(username, password or "") if username else None
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def call(self, method: str, *params: Any) -> Any:
        """Invoke *method* and return its ``result`` member.

        Raises:
            RpcError: If the daemon reports an error for the call.
            httpx.HTTPError: On transport failures or non-JSON error pages.
        """
        payload = {
            "jsonrpc": "1.0",
            "id": "peermap",
            "method": method,
            "params": list(params),
        }
        response = await self._client.post(
            self.url,
            json=payload,
            headers={"Content-Type": "text/plain"},
            auth=self._auth or httpx.USE_CLIENT_DEFAULT,
        )

        # bitcoind reports RPC errors with HTTP 500 and a JSON body.
        try:
            body = response.json()
        except ValueError:
            response.raise_for_status()
            raise RpcError(method, "response is not JSON") from None

        if not isinstance(body, dict):
            raise RpcError(method, f"unexpected response type {type(body).__name__}")
        if body.get("error"):
            raise RpcError(method, body["error"])
        response.raise_for_status()
        return body.get("result")


class InfoGateway(ABC):
    """Source of the three daemon views an aggregation cycle needs.

    Implementations must never raise: each call degrades to an empty
    default so one failing call does not abort the others.
    """

    @abstractmethod
    async def fetch_peer_info(self) -> list[PeerInfo]:
        """Return connected peers, or ``[]`` on failure."""

    @abstractmethod
    async def fetch_network_info(self) -> NetworkInfo:
        """Return node identity and local addresses, empty on failure."""

    @abstractmethod
    async def fetch_mining_info(self) -> MiningInfo:
        """Return chain tip info, empty on failure."""


class DaemonGateway(InfoGateway):
    """``InfoGateway`` backed by a live daemon over JSON-RPC.

    Args:
        rpc: Transport used for every call.
        rpc_port: Port reported for the node's address when network info
            has to be rebuilt from the legacy ``getinfo`` call.
    """

    def __init__(self, rpc: DaemonRpcClient, rpc_port: int) -> None:
        self._rpc = rpc
        self._rpc_port = rpc_port
        self._network_info_strategies: list[
            tuple[str, Callable[[], Awaitable[NetworkInfo]]]
        ] = [
            ("getnetworkinfo", self._network_info_from_getnetworkinfo),
            ("getinfo", self._network_info_from_getinfo),
        ]

    async def fetch_peer_info(self) -> list[PeerInfo]:
        try:
            result = await self._rpc.call("getpeerinfo")
        except (RpcError, httpx.HTTPError) as exc:
            logger.error("getpeerinfo failed: %s", exc)
            return []

        if not isinstance(result, list):
            logger.error("getpeerinfo returned %s, expected a list", type(result).__name__)
            return []

        peers = [PeerInfo.from_rpc(entry) for entry in result if isinstance(entry, dict)]
        logger.info("Daemon reported %d peer(s)", len(peers))
        return peers

    async def fetch_network_info(self) -> NetworkInfo:
        for method, strategy in self._network_info_strategies:
            try:
                info = await strategy()
            except (RpcError, httpx.HTTPError) as exc:
                logger.error("%s failed: %s", method, exc)
                continue
            logger.debug(
                "Network info via %s: %d local address(es)",
                method,
                len(info.local_addresses),
            )
            return info

        logger.error("No network info available; continuing without local addresses")
        return NetworkInfo()

    async def fetch_mining_info(self) -> MiningInfo:
        try:
            result = await self._rpc.call("getmininginfo")
        except (RpcError, httpx.HTTPError) as exc:
            logger.error("getmininginfo failed: %s", exc)
            return MiningInfo()
        if not isinstance(result, dict):
            return MiningInfo()
        return MiningInfo.from_rpc(result)

    # ------------------------------------------------------------------
    # Network info strategies, tried in order
    # ------------------------------------------------------------------

    async def _network_info_from_getnetworkinfo(self) -> NetworkInfo:
        result = await self._rpc.call("getnetworkinfo")
        if not isinstance(result, dict):
            raise RpcError("getnetworkinfo", "empty result")
        return NetworkInfo.from_rpc(result)

    async def _network_info_from_getinfo(self) -> NetworkInfo:
        result = await self._rpc.call("getinfo")
        if not isinstance(result, dict):
            raise RpcError("getinfo", "empty result")
        return NetworkInfo(
            subversion=str(result.get("version") or ""),
            protocol_version=str(result.get("protocolversion") or ""),
            local_addresses=[
                LocalAddress(address=str(result.get("ip") or ""), port=self._rpc_port)
            ],
        )
