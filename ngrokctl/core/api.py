"""Client for ngrok's local status API."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, List, Optional

import aiohttp
from pydantic import BaseModel, ConfigDict, ValidationError
from yarl import URL

from .exceptions import ResponseParseFailure, StatusUnreachable

logger = logging.getLogger(__name__)

TUNNELS_PATH = "/api/tunnels"


class ApiTunnelConfig(BaseModel):
    """The ``config`` block of a tunnel entry."""

    model_config = ConfigDict(extra="ignore")

    addr: str

    @property
    def port(self) -> Optional[int]:
        """Local port the tunnel forwards to, if one can be read."""
        addr = self.addr.strip()
        if addr.isdigit():
            return int(addr)
        # "localhost:3030" has no scheme, parse it as a network path
        try:
            return URL(addr if "://" in addr else f"//{addr}").port
        except ValueError:
            return None


class ApiTunnel(BaseModel):
    """One entry of the ``tunnels`` list."""

    model_config = ConfigDict(extra="ignore")

    public_url: str
    config: ApiTunnelConfig
    name: Optional[str] = None
    proto: Optional[str] = None

    def http_url(self) -> URL:
        """Public URL, which must be absolute http(s) with a host.

        Only checked for the tunnel that is actually used; ngrok may
        list tcp or tls tunnels for other ports alongside it.
        """
        try:
            url = URL(self.public_url)
        except ValueError as e:
            raise ResponseParseFailure(
                f"Unreadable public_url {self.public_url!r}: {e}"
            ) from e
        if url.scheme not in ("http", "https") or not url.host:
            raise ResponseParseFailure(
                f"Tunnel public_url is not an http(s) URL: {self.public_url!r}"
            )
        return url


class TunnelList(BaseModel):
    """Body of ``GET /api/tunnels``."""

    model_config = ConfigDict(extra="ignore")

    tunnels: List[ApiTunnel]


def find_tunnel(tunnels: TunnelList, port: int) -> Optional[ApiTunnel]:
    """Return the first tunnel forwarding to ``port``."""
    for tunnel in tunnels.tunnels:
        if tunnel.config.port == port:
            return tunnel
    return None


def parse_tunnels(data: Any) -> TunnelList:
    """Validate a decoded status API body."""
    try:
        return TunnelList.model_validate(data)
    except ValidationError as e:
        raise ResponseParseFailure(
            f"Unexpected status API response: {e}"
        ) from e


class StatusAPIClient:
    """Client for ngrok's local introspection API."""

    def __init__(
        self,
        api_url: str = "http://127.0.0.1:4040",
        request_timeout: float = 2.0,
    ):
        """Initialize status API client

        Args:
            api_url: Base URL of the status API
            request_timeout: Upper bound in seconds for one request
        """
        self.api_url = api_url.rstrip("/")
        self.request_timeout = request_timeout
        self._session: Optional[aiohttp.ClientSession] = None

    @property
    def tunnels_url(self) -> str:
        return f"{self.api_url}{TUNNELS_PATH}"

    async def __aenter__(self) -> StatusAPIClient:
        """Async context manager entry."""
        timeout = aiohttp.ClientTimeout(total=self.request_timeout)
        self._session = aiohttp.ClientSession(timeout=timeout)
        return self

    async def __aexit__(
        self, exc_type: Any, exc_val: Any, exc_tb: Any
    ) -> None:
        """Async context manager exit."""
        await self.close()

    async def _get_json(self, url: str) -> Any:
        """GET ``url`` and decode its JSON body.

        Raises:
            StatusUnreachable: connection failure, timeout or HTTP error
            ResponseParseFailure: body is not UTF-8 encoded JSON
        """
        if not self._session:
            raise RuntimeError(
                "Status API client not initialized. Use async context manager."
            )

        try:
            async with self._session.get(url) as response:
                if response.status >= 400:
                    raise StatusUnreachable(
                        f"Status API returned HTTP {response.status}",
                        status_code=response.status,
                    )
                body = await response.read()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise StatusUnreachable(
                f"Status API unreachable at {url}: {str(e) or type(e).__name__}"
            ) from e

        try:
            return json.loads(body.decode("utf-8"))
        except ValueError as e:
            # UnicodeDecodeError is a ValueError too
            raise ResponseParseFailure(
                f"Status API returned malformed JSON: {e}"
            ) from e

    async def list_tunnels(self) -> TunnelList:
        """Fetch and validate the active tunnel list."""
        data = await self._get_json(self.tunnels_url)
        tunnels = parse_tunnels(data)
        logger.debug(f"Status API reports {len(tunnels.tunnels)} tunnel(s)")
        return tunnels

    async def close(self) -> None:
        """Close HTTP session."""
        if self._session:
            await self._session.close()
            self._session = None
