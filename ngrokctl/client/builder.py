"""Chained configuration for an ngrok session."""

from __future__ import annotations

import copy
from typing import Any, Dict, Optional

from pydantic import ValidationError

from ..core.config import Protocol, Settings, TunnelConfig
from ..core.exceptions import BuilderError, ConfigurationError
from .session import Ngrok


class NgrokBuilder:
    """Collects settings for an ngrok session.

    Every setter returns a new builder, so a partially configured builder
    can be shared and extended::

        base = ngrokctl.builder().http()
        ngrok = await base.port(3030).run()
    """

    def __init__(self, settings: Optional[Settings] = None) -> None:
        if settings is None:
            try:
                settings = Settings()
            except ValidationError as e:
                raise ConfigurationError(
                    f"Invalid NGROKCTL_ settings in environment or .env: {e}"
                ) from e
        self._settings = settings
        self._options: Dict[str, Any] = {}

    def _with(self, **options: Any) -> NgrokBuilder:
        builder = copy.copy(self)
        builder._options = {**self._options, **options}
        return builder

    def http(self) -> NgrokBuilder:
        """Set the tunnel protocol to HTTP."""
        return self._with(protocol=Protocol.HTTP)

    def port(self, port: int) -> NgrokBuilder:
        """Set the local port to expose."""
        return self._with(port=port)

    def executable(self, executable: str) -> NgrokBuilder:
        """Set the ngrok executable. Defaults to ``ngrok`` on PATH."""
        return self._with(executable=executable)

    def api_url(self, api_url: str) -> NgrokBuilder:
        """Set the base URL of ngrok's status API."""
        return self._with(api_url=api_url)

    def startup_timeout(self, seconds: float) -> NgrokBuilder:
        """How long to wait for the status API to report the tunnel."""
        return self._with(startup_timeout=seconds)

    def poll_interval(self, seconds: float) -> NgrokBuilder:
        return self._with(poll_interval=seconds)

    def request_timeout(self, seconds: float) -> NgrokBuilder:
        return self._with(request_timeout=seconds)

    def shutdown_timeout(self, seconds: float) -> NgrokBuilder:
        return self._with(shutdown_timeout=seconds)

    def config(self) -> TunnelConfig:
        """Validate the collected settings.

        Raises:
            BuilderError: protocol or port missing, or a value is invalid
        """
        if "protocol" not in self._options:
            raise BuilderError("Builder expected `.http()` to be called")
        if "port" not in self._options:
            raise BuilderError("Builder expected `.port(port)` to be set")

        try:
            return TunnelConfig(
                **{**self._settings.tunnel_defaults(), **self._options}
            )
        except ValidationError as e:
            raise BuilderError(f"Invalid ngrok configuration: {e}") from e

    def build(self) -> Ngrok:
        """Create an unstarted session."""
        return Ngrok(self.config())

    async def run(self) -> Ngrok:
        """Spawn ngrok and return the running session."""
        return await self.build().start()


def builder(settings: Optional[Settings] = None) -> NgrokBuilder:
    """Entry point for starting an ngrok tunnel. Only HTTP is supported.

    Example::

        ngrok = await ngrokctl.builder().http().port(3030).run()
        try:
            public = await ngrok.http()
        finally:
            await ngrok.close()
    """
    return NgrokBuilder(settings)
