"""Tests for the daemon JSON-RPC client and info gateway."""

import asyncio
import base64
import json

import httpx
import pytest

from peermap.daemon import DaemonGateway, DaemonRpcClient, InfoGateway, RpcError
from peermap.models import LocalAddress, MiningInfo, NetworkInfo

RPC_URL = "http://node.example:8332"

_PEERS = [
    {
        "addr": "203.0.113.5:8333",
        "subver": "/Satoshi:27.0.0/",
        "version": 70016,
        "startingheight": 850000,
    },
    {
        "addr": "[2001:db8::7]:8333",
        "subver": "/Satoshi:26.1.0/",
        "version": 70016,
        "startingheight": 849990,
    },
]

_NETWORK_INFO = {
    "subversion": "/Satoshi:27.0.0/",
    "protocolversion": 70016,
    "localaddresses": [
        {"address": "198.51.100.1", "port": 8333, "score": 4},
        {"address": "2001:db8::1", "port": 8333, "score": 1},
    ],
}


class FakeDaemon:
    """Minimal bitcoind: answers methods from a dict of results or errors."""

    def __init__(self, results: dict, status: int = 200) -> None:
        self.results = results
        self.status = status
        self.calls: list[str] = []
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        body = json.loads(request.content)
        method = body["method"]
        self.calls.append(method)

        outcome = self.results.get(method)
        if isinstance(outcome, Exception):
            raise outcome
        if outcome is None:
            return httpx.Response(
                500,
                json={
                    "result": None,
                    "error": {"code": -32601, "message": "Method not found"},
                    "id": body["id"],
                },
            )
        return httpx.Response(
            self.status, json={"result": outcome, "error": None, "id": body["id"]}
        )


def _run(daemon: FakeDaemon, fn, *, username: str | None = "rpcuser", rpc_port: int = 8333):
    async def go():
        client = httpx.AsyncClient(transport=httpx.MockTransport(daemon))
        rpc = DaemonRpcClient(RPC_URL, username=username, password="rpcpass", client=client)
        try:
            return await fn(rpc, DaemonGateway(rpc, rpc_port=rpc_port))
        finally:
            await client.aclose()

    return asyncio.run(go())


# ---------------------------------------------------------------------------
# DaemonRpcClient
# ---------------------------------------------------------------------------


class TestDaemonRpcClient:
    def test_call_returns_result(self) -> None:
        daemon = FakeDaemon({"getblockcount": 850123})
        result = _run(daemon, lambda rpc, gw: rpc.call("getblockcount"))
        assert result == 850123

    def test_request_shape(self) -> None:
        daemon = FakeDaemon({"getblockhash": "00ab"})
        _run(daemon, lambda rpc, gw: rpc.call("getblockhash", 1))

        request = daemon.requests[0]
        assert request.method == "POST"
        assert str(request.url) == RPC_URL
        assert request.headers["Content-Type"] == "text/plain"
        body = json.loads(request.content)
        assert body["jsonrpc"] == "1.0"
        assert body["method"] == "getblockhash"
        assert body["params"] == [1]

    def test_basic_auth(self) -> None:
        daemon = FakeDaemon({"getblockcount": 1})
        _run(daemon, lambda rpc, gw: rpc.call("getblockcount"))

        expected = base64.b64encode(b"rpcuser:rpcpass").decode()
        assert daemon.requests[0].headers["Authorization"] == f"Basic {expected}"

    def test_no_auth_without_username(self) -> None:
        daemon = FakeDaemon({"getblockcount": 1})
        _run(daemon, lambda rpc, gw: rpc.call("getblockcount"), username=None)
        assert "Authorization" not in daemon.requests[0].headers

    def test_rpc_error_raises(self) -> None:
        daemon = FakeDaemon({})
        with pytest.raises(RpcError, match="Method not found"):
            _run(daemon, lambda rpc, gw: rpc.call("getinfo"))

    def test_non_json_error_page_raises_http_error(self) -> None:
        def unauthorized(request: httpx.Request) -> httpx.Response:
            return httpx.Response(401, text="")

        async def go():
            client = httpx.AsyncClient(transport=httpx.MockTransport(unauthorized))
            rpc = DaemonRpcClient(RPC_URL, client=client)
            try:
                await rpc.call("getpeerinfo")
            finally:
                await client.aclose()

        with pytest.raises(httpx.HTTPStatusError):
            asyncio.run(go())


# ---------------------------------------------------------------------------
# DaemonGateway
# ---------------------------------------------------------------------------


class TestFetchPeerInfo:
    def test_parses_peers(self) -> None:
        daemon = FakeDaemon({"getpeerinfo": _PEERS})
        peers = _run(daemon, lambda rpc, gw: gw.fetch_peer_info())

        assert [p.addr for p in peers] == ["203.0.113.5:8333", "[2001:db8::7]:8333"]
        assert peers[0].subver == "/Satoshi:27.0.0/"
        assert peers[0].version == "70016"
        assert peers[0].starting_height == 850000

    def test_failure_returns_empty_list(self) -> None:
        daemon = FakeDaemon({"getpeerinfo": httpx.ConnectError("refused")})
        assert _run(daemon, lambda rpc, gw: gw.fetch_peer_info()) == []

    def test_rpc_error_returns_empty_list(self) -> None:
        assert _run(FakeDaemon({}), lambda rpc, gw: gw.fetch_peer_info()) == []

    def test_non_list_result_returns_empty_list(self) -> None:
        daemon = FakeDaemon({"getpeerinfo": {"unexpected": True}})
        assert _run(daemon, lambda rpc, gw: gw.fetch_peer_info()) == []


class TestFetchNetworkInfo:
    def test_primary_call(self) -> None:
        daemon = FakeDaemon({"getnetworkinfo": _NETWORK_INFO})
        info = _run(daemon, lambda rpc, gw: gw.fetch_network_info())

        assert info.subversion == "/Satoshi:27.0.0/"
        assert info.protocol_version == "70016"
        assert info.local_addresses == [
            LocalAddress("198.51.100.1", 8333),
            LocalAddress("2001:db8::1", 8333),
        ]
        assert daemon.calls == ["getnetworkinfo"]

    def test_falls_back_to_getinfo(self) -> None:
        daemon = FakeDaemon(
            {"getinfo": {"version": 1140200, "protocolversion": 70015, "ip": "198.51.100.2"}}
        )
        info = _run(daemon, lambda rpc, gw: gw.fetch_network_info(), rpc_port=8876)

        assert daemon.calls == ["getnetworkinfo", "getinfo"]
        assert info == NetworkInfo(
            subversion="1140200",
            protocol_version="70015",
            local_addresses=[LocalAddress("198.51.100.2", 8876)],
        )

    def test_fallback_after_transport_error(self) -> None:
        daemon = FakeDaemon(
            {
                "getnetworkinfo": httpx.ReadTimeout("timed out"),
                "getinfo": {"version": 1, "protocolversion": 2, "ip": "198.51.100.3"},
            }
        )
        info = _run(daemon, lambda rpc, gw: gw.fetch_network_info())
        assert info.local_addresses[0].address == "198.51.100.3"

    def test_both_fail_returns_empty(self) -> None:
        info = _run(FakeDaemon({}), lambda rpc, gw: gw.fetch_network_info())
        assert info == NetworkInfo()
        assert info.local_addresses == []


class TestFetchMiningInfo:
    def test_blocks(self) -> None:
        daemon = FakeDaemon({"getmininginfo": {"blocks": 850123, "difficulty": 1.0}})
        assert _run(daemon, lambda rpc, gw: gw.fetch_mining_info()) == MiningInfo(blocks=850123)

    def test_failure_returns_empty(self) -> None:
        info = _run(FakeDaemon({}), lambda rpc, gw: gw.fetch_mining_info())
        assert info == MiningInfo()
        assert info.blocks is None


class TestInfoGatewayABC:
    def test_cannot_instantiate(self) -> None:
        with pytest.raises(TypeError, match="abstract method"):
            InfoGateway()  # type: ignore[abstract]
