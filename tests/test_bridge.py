"""
Tests for the bridge registry, redirect server, and LAN address detection.
"""

import asyncio
from types import SimpleNamespace
from unittest.mock import patch

import httpx
import pytest

from yousonos.bridge import network
from yousonos.bridge.registry import BridgeRegistry
from yousonos.bridge.server import BridgeServer, parse_handle


def adapter(name: str, *ips: tuple) -> SimpleNamespace:
    """Fake ifaddr adapter: ips are (ip, network_prefix) pairs."""
    return SimpleNamespace(
        nice_name=name,
        ips=[SimpleNamespace(ip=ip, network_prefix=prefix) for ip, prefix in ips],
    )


@pytest.fixture
def registry() -> BridgeRegistry:
    return BridgeRegistry()


@pytest.fixture
def server(registry: BridgeRegistry) -> BridgeServer:
    return BridgeServer(registry, port=9372, advertise_address="192.168.1.5")


@pytest.fixture
async def client(server: BridgeServer):
    transport = httpx.ASGITransport(app=server.app)
    async with httpx.AsyncClient(transport=transport, base_url="http://bridge") as c:
        yield c


class TestBridgeRegistry:
    """Tests for handle allocation."""

    async def test_handles_start_at_one(self, registry: BridgeRegistry) -> None:
        assert await registry.register("https://a/1") == 1
        assert await registry.register("https://a/2") == 2
        assert len(registry) == 2

    async def test_handles_stay_stable(self, registry: BridgeRegistry) -> None:
        """A handle keeps resolving to its URL after later registrations."""
        first = await registry.register("https://a/first")
        for i in range(10):
            await registry.register(f"https://a/{i}")

        assert await registry.resolve(first) == "https://a/first"

    async def test_unknown_handle(self, registry: BridgeRegistry) -> None:
        assert await registry.resolve(1) is None
        await registry.register("https://a/1")
        assert await registry.resolve(0) is None
        assert await registry.resolve(2) is None

    async def test_concurrent_registration_unique(self, registry: BridgeRegistry) -> None:
        """Concurrent registrations never share a handle."""
        urls = [f"https://a/{i}" for i in range(50)]
        handles = await asyncio.gather(*(registry.register(u) for u in urls))

        assert sorted(handles) == list(range(1, 51))
        for handle, url in zip(handles, urls):
            assert await registry.resolve(handle) == url

    def test_empty_registry(self, registry: BridgeRegistry) -> None:
        assert len(registry) == 0


class TestParseHandle:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("1", 1),
            ("42", 42),
            ("abc", None),
            ("", None),
            ("1_0", None),
            (" 7", None),
            ("+3", None),
            ("-1", None),
            ("\u0663", None),
        ],
    )
    def test_parse(self, raw: str, expected: int | None) -> None:
        assert parse_handle(raw) == expected


class TestRedirectRoute:
    """Tests for GET /{handle}.mp4."""

    async def test_known_handle_redirects(
        self, client: httpx.AsyncClient, registry: BridgeRegistry
    ) -> None:
        url = "https://invidious.example/latest_version?id=abc&itag=18"
        handle = await registry.register(url)

        response = await client.get(f"/{handle}.mp4")

        assert response.status_code == 302
        assert response.headers["location"] == url

    async def test_redirect_after_later_registrations(
        self, client: httpx.AsyncClient, registry: BridgeRegistry
    ) -> None:
        await registry.register("https://a/1")
        await registry.register("https://a/2")

        response = await client.get("/1.mp4")
        assert response.headers["location"] == "https://a/1"

    async def test_unknown_handle_is_empty(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/7.mp4")

        assert response.status_code == 200
        assert response.content == b""
        assert "location" not in response.headers

    async def test_malformed_handle_is_empty(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/abc.mp4")

        assert response.status_code == 200
        assert response.content == b""
        assert "location" not in response.headers

    @pytest.mark.parametrize("segment", ["1_0", "+3", "%207"])
    async def test_int_like_segments_not_redirected(
        self, client: httpx.AsyncClient, registry: BridgeRegistry, segment: str
    ) -> None:
        """Segments int() would accept but that are not plain digits get no redirect."""
        for i in range(10):
            await registry.register(f"https://a/{i + 1}")

        response = await client.get(f"/{segment}.mp4")

        assert response.status_code == 200
        assert response.content == b""
        assert "location" not in response.headers


class TestBridgeUrls:
    """Tests for composing and publishing bridge URLs."""

    def test_url_for(self, server: BridgeServer) -> None:
        assert server.url_for(3) == "http://192.168.1.5:9372/3.mp4"

    async def test_publish_registers(self, server: BridgeServer) -> None:
        first = await server.publish("https://a/1")
        second = await server.publish("https://a/2")

        assert first == "http://192.168.1.5:9372/1.mp4"
        assert second == "http://192.168.1.5:9372/2.mp4"
        assert await server.registry.resolve(2) == "https://a/2"

    def test_detects_address_when_not_configured(self, registry: BridgeRegistry) -> None:
        server = BridgeServer(registry, port=9000)
        with patch("yousonos.bridge.server.detect_local_address", return_value="10.1.2.3"):
            assert server.url_for(1) == "http://10.1.2.3:9000/1.mp4"

    def test_not_running_until_started(self, server: BridgeServer) -> None:
        assert server.is_running is False
        assert server.port == 9372
        assert server.host == "0.0.0.0"


class TestLanAddress:
    """Tests for interface selection."""

    def test_first_slash_24_ipv4(self) -> None:
        adapters = [
            adapter("lo", ("127.0.0.1", 8)),
            adapter("docker0", ("172.17.0.1", 16)),
            adapter("wlan0", (("fe80::1", 0, 3), 64), ("192.168.1.5", 24)),
            adapter("eth1", ("10.0.0.9", 24)),
        ]
        with patch.object(network.ifaddr, "get_adapters", return_value=adapters):
            assert network.find_lan_address() == "192.168.1.5"

    def test_loopback_skipped_even_on_slash_24(self) -> None:
        adapters = [adapter("lo", ("127.0.0.1", 24))]
        with patch.object(network.ifaddr, "get_adapters", return_value=adapters):
            assert network.find_lan_address() is None

    def test_falls_back_to_route(self) -> None:
        with patch.object(network, "find_lan_address", return_value=None), patch.object(
            network, "_route_address", return_value="10.0.0.7"
        ):
            assert network.detect_local_address() == "10.0.0.7"

    def test_falls_back_to_loopback(self) -> None:
        with patch.object(network, "find_lan_address", return_value=None), patch.object(
            network, "_route_address", return_value=None
        ):
            assert network.detect_local_address() == network.FALLBACK_ADDRESS
