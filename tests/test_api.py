"""Tests for the ngrok status API client."""

import aiohttp
import pytest
from aioresponses import aioresponses
from yarl import URL

from ngrokctl.core.api import (
    ApiTunnel,
    ApiTunnelConfig,
    StatusAPIClient,
    TunnelList,
    find_tunnel,
    parse_tunnels,
)
from ngrokctl.core.exceptions import ResponseParseFailure, StatusUnreachable

API_URL = "http://127.0.0.1:4040"
TUNNELS_URL = f"{API_URL}/api/tunnels"


def tunnels_payload(*entries):
    return {
        "tunnels": [
            {
                "name": f"command_line_{i}",
                "proto": public_url.split(":")[0],
                "public_url": public_url,
                "config": {"addr": addr, "inspect": True},
            }
            for i, (public_url, addr) in enumerate(entries)
        ],
        "uri": "/api/tunnels",
    }


class TestApiTunnelConfig:
    """Port extraction from ngrok's addr field."""

    @pytest.mark.parametrize(
        "addr,port",
        [
            ("http://localhost:3030", 3030),
            ("https://localhost:8443", 8443),
            ("localhost:3030", 3030),
            ("127.0.0.1:5000", 5000),
            ("3030", 3030),
            ("http://localhost", 80),
        ],
    )
    def test_port(self, addr, port):
        assert ApiTunnelConfig(addr=addr).port == port


class TestParseTunnels:
    """Validation of the decoded body."""

    def test_valid(self):
        tunnels = parse_tunnels(
            tunnels_payload(("https://abc.ngrok.io", "http://localhost:3030"))
        )
        assert isinstance(tunnels, TunnelList)
        assert tunnels.tunnels[0].public_url == "https://abc.ngrok.io"
        assert tunnels.tunnels[0].name == "command_line_0"

    def test_empty_list(self):
        assert parse_tunnels({"tunnels": []}).tunnels == []

    @pytest.mark.parametrize(
        "data",
        [
            [],
            {},
            {"tunnels": "nope"},
            {"tunnels": [{"config": {"addr": "localhost:3030"}}]},
            {"tunnels": [{"public_url": "https://abc.ngrok.io"}]},
        ],
    )
    def test_invalid(self, data):
        with pytest.raises(ResponseParseFailure):
            parse_tunnels(data)

    def test_tcp_tunnel_alongside_http(self):
        """Other protocols on other ports do not spoil the list."""
        tunnels = parse_tunnels(
            tunnels_payload(
                ("tcp://0.tcp.ngrok.io:1234", "localhost:22"),
                ("https://abc.ngrok.io", "http://localhost:3030"),
            )
        )
        assert len(tunnels.tunnels) == 2
        assert str(find_tunnel(tunnels, 3030).http_url()) == "https://abc.ngrok.io"


class TestHttpUrl:
    """The public URL is only checked on the tunnel that gets used."""

    @pytest.mark.parametrize(
        "public_url",
        ["tcp://0.tcp.ngrok.io:1234", "not a url", "https://", ""],
    )
    def test_rejects_non_http(self, public_url):
        tunnel = ApiTunnel(
            public_url=public_url, config=ApiTunnelConfig(addr="localhost:3030")
        )
        with pytest.raises(ResponseParseFailure):
            tunnel.http_url()

    def test_accepts_http(self):
        tunnel = ApiTunnel(
            public_url="http://abc.ngrok.io",
            config=ApiTunnelConfig(addr="localhost:3030"),
        )
        assert tunnel.http_url() == URL("http://abc.ngrok.io")


class TestFindTunnel:
    """Matching tunnels to a local port."""

    def test_finds_matching_port(self):
        tunnels = parse_tunnels(
            tunnels_payload(
                ("https://other.ngrok.io", "http://localhost:9000"),
                ("https://mine.ngrok.io", "http://localhost:3030"),
            )
        )
        found = find_tunnel(tunnels, 3030)
        assert found is not None
        assert found.public_url == "https://mine.ngrok.io"

    def test_first_match_wins(self):
        tunnels = parse_tunnels(
            tunnels_payload(
                ("https://first.ngrok.io", "http://localhost:3030"),
                ("http://first.ngrok.io", "http://localhost:3030"),
            )
        )
        assert find_tunnel(tunnels, 3030).public_url == "https://first.ngrok.io"

    def test_no_match(self):
        tunnels = parse_tunnels(
            tunnels_payload(("https://other.ngrok.io", "localhost:9000"))
        )
        assert find_tunnel(tunnels, 3030) is None


class TestStatusAPIClient:
    """Status API client tests."""

    def test_init(self):
        client = StatusAPIClient("http://127.0.0.1:4040/", request_timeout=1.5)
        assert client.api_url == API_URL
        assert client.tunnels_url == TUNNELS_URL
        assert client.request_timeout == 1.5

    @pytest.mark.asyncio
    async def test_requires_context_manager(self):
        client = StatusAPIClient(API_URL)
        with pytest.raises(RuntimeError):
            await client.list_tunnels()

    @pytest.mark.asyncio
    async def test_list_tunnels(self):
        with aioresponses() as m:
            m.get(
                TUNNELS_URL,
                payload=tunnels_payload(
                    ("https://abc.ngrok.io", "http://localhost:3030")
                ),
            )
            async with StatusAPIClient(API_URL) as api:
                tunnels = await api.list_tunnels()
        assert len(tunnels.tunnels) == 1
        assert tunnels.tunnels[0].config.port == 3030

    @pytest.mark.asyncio
    async def test_connection_refused(self):
        with aioresponses() as m:
            m.get(TUNNELS_URL, exception=aiohttp.ClientConnectionError("refused"))
            async with StatusAPIClient(API_URL) as api:
                with pytest.raises(StatusUnreachable) as exc_info:
                    await api.list_tunnels()
        assert exc_info.value.status_code is None
        assert isinstance(exc_info.value.__cause__, aiohttp.ClientError)

    @pytest.mark.asyncio
    async def test_timeout(self):
        with aioresponses() as m:
            m.get(TUNNELS_URL, exception=aiohttp.ServerTimeoutError())
            async with StatusAPIClient(API_URL) as api:
                with pytest.raises(StatusUnreachable):
                    await api.list_tunnels()

    @pytest.mark.asyncio
    async def test_http_error_status(self):
        with aioresponses() as m:
            m.get(TUNNELS_URL, status=502, body="Bad Gateway")
            async with StatusAPIClient(API_URL) as api:
                with pytest.raises(StatusUnreachable) as exc_info:
                    await api.list_tunnels()
        assert exc_info.value.status_code == 502

    @pytest.mark.asyncio
    async def test_malformed_json(self):
        with aioresponses() as m:
            m.get(TUNNELS_URL, status=200, body="{not json")
            async with StatusAPIClient(API_URL) as api:
                with pytest.raises(ResponseParseFailure):
                    await api.list_tunnels()

    @pytest.mark.asyncio
    async def test_invalid_encoding(self):
        """A body that is not UTF-8 is a parse failure, not a crash."""
        with aioresponses() as m:
            m.get(TUNNELS_URL, status=200, body=b'{"tunnels": [\xff\xfe]}')
            async with StatusAPIClient(API_URL) as api:
                with pytest.raises(ResponseParseFailure) as exc_info:
                    await api.list_tunnels()
        assert isinstance(exc_info.value.__cause__, UnicodeDecodeError)

    @pytest.mark.asyncio
    async def test_missing_public_url(self):
        with aioresponses() as m:
            m.get(
                TUNNELS_URL,
                payload={"tunnels": [{"config": {"addr": "localhost:3030"}}]},
            )
            async with StatusAPIClient(API_URL) as api:
                with pytest.raises(ResponseParseFailure):
                    await api.list_tunnels()

    @pytest.mark.asyncio
    async def test_close(self):
        client = StatusAPIClient(API_URL)
        await client.__aenter__()
        session = client._session
        await client.close()
        assert client._session is None
        assert session.closed
        # Closing twice is harmless
        await client.close()
