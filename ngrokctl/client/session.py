"""
A running ngrok child process and the tunnel it reports
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
from dataclasses import dataclass
from typing import Any, Optional

from yarl import URL

from ..core.api import ApiTunnel, StatusAPIClient, find_tunnel
from ..core.config import TunnelConfig
from ..core.exceptions import (
    ExecutableNotFound,
    NgrokError,
    ProcessExited,
    ProcessSpawnFailure,
    StatusUnreachable,
    TunnelNotFound,
)
from ..utils.id import generate_session_id

logger = logging.getLogger(__name__)


def resolve_executable(executable: str) -> str:
    """Return an absolute path for ``executable`` or raise ExecutableNotFound.

    Bare names are looked up on ``PATH``; anything containing a path
    separator must point at an executable file.
    """
    if os.sep in executable:
        if os.path.isfile(executable) and os.access(executable, os.X_OK):
            return os.path.abspath(executable)
        raise ExecutableNotFound(
            executable, f"Not an executable file: {executable}"
        )

    found = shutil.which(executable)
    if not found:
        raise ExecutableNotFound(
            executable,
            f"{executable} not found in PATH. "
            "Install ngrok or pass an explicit executable path",
        )
    logger.debug(f"Resolved {executable} to {found}")
    return found


@dataclass(frozen=True)
class Tunnel:
    """Public address of an ngrok tunnel"""

    url: URL
    name: Optional[str] = None
    proto: Optional[str] = None
    addr: Optional[str] = None

    @classmethod
    def from_api(cls, tunnel: ApiTunnel) -> Tunnel:
        """Raises ResponseParseFailure if the public URL is not http(s)."""
        return cls(
            url=tunnel.http_url(),
            name=tunnel.name,
            proto=tunnel.proto,
            addr=tunnel.config.addr,
        )

    def http(self) -> URL:
        """The tunnel's URL as reported by ngrok"""
        return self.url

    def https(self) -> URL:
        """The tunnel's URL with the scheme forced to https"""
        return self.url.with_scheme("https")

    def __str__(self) -> str:
        return str(self.url)


class Ngrok:
    """
    One ngrok child process, owned exclusively by this session.

    Use as an async context manager so the process is terminated on
    every exit path::

        async with ngrokctl.builder().http().port(3030).build() as ngrok:
            public = await ngrok.http()
    """

    def __init__(self, config: TunnelConfig) -> None:
        self.config = config
        self.session_id = generate_session_id()
        self._process: Optional[asyncio.subprocess.Process] = None
        self._started = False
        self._closed = False

        self.logger = logging.getLogger(f"{__name__}.{self.session_id}")

    def __repr__(self) -> str:
        return (
            f"<Ngrok {self.session_id} port={self.port} "
            f"pid={self.pid} alive={self.is_alive}>"
        )

    @property
    def port(self) -> int:
        """The local port being tunneled"""
        return self.config.port

    @property
    def pid(self) -> Optional[int]:
        return self._process.pid if self._process else None

    @property
    def returncode(self) -> Optional[int]:
        return self._process.returncode if self._process else None

    @property
    def is_alive(self) -> bool:
        return (
            self._process is not None
            and self._process.returncode is None
            and not self._closed
        )

    async def start(self) -> Ngrok:
        """Spawn the ngrok child process.

        A session spawns at most once; build a new session for another
        process.

        Raises:
            ExecutableNotFound: the executable cannot be located
            ProcessSpawnFailure: the OS failed to create the process
        """
        if self._started:
            raise NgrokError(
                f"Session {self.session_id} already started; build a new one"
            )
        self._started = True

        executable = resolve_executable(self.config.executable)
        command = self.config.command(executable)
        self.logger.info(f"Starting {' '.join(command)}")

        try:
            self._process = await asyncio.create_subprocess_exec(
                *command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except FileNotFoundError as e:
            raise ExecutableNotFound(executable) from e
        except OSError as e:
            raise ProcessSpawnFailure(
                f"Failed to spawn {executable}: {e}"
            ) from e

        self.logger.info(f"ngrok running with pid {self._process.pid}")
        return self

    def status(self) -> None:
        """Raise ProcessExited if the child process is gone."""
        if self._process is None:
            raise NgrokError(f"Session {self.session_id} was never started")
        if self._closed or self._process.returncode is not None:
            raise ProcessExited(self._process.returncode)

    async def tunnel(self) -> Tunnel:
        """Query the status API for this session's tunnel.

        Polls every ``poll_interval`` seconds until the tunnel shows up or
        ``startup_timeout`` elapses. Nothing is cached between calls.

        Raises:
            ProcessExited: the child exited before or while waiting
            StatusUnreachable: the status API never answered in time
            ResponseParseFailure: the status API answered with garbage
            TunnelNotFound: the API answered but never listed our port
        """
        self.status()

        config = self.config
        loop = asyncio.get_running_loop()
        deadline = loop.time() + config.startup_timeout
        last_error: Optional[StatusUnreachable] = None
        attempts = 0

        async with StatusAPIClient(
            config.api_url, config.request_timeout
        ) as api:
            while True:
                attempts += 1
                try:
                    tunnels = await api.list_tunnels()
                except StatusUnreachable as e:
                    last_error = e
                    self.logger.debug(f"Status API not ready: {e}")
                else:
                    last_error = None
                    found = find_tunnel(tunnels, config.port)
                    if found is not None:
                        tunnel = Tunnel.from_api(found)
                        self.logger.info(
                            f"Tunnel {tunnel} -> localhost:{config.port}"
                        )
                        return tunnel

                self.status()

                remaining = deadline - loop.time()
                if remaining <= 0:
                    break
                await asyncio.sleep(min(config.poll_interval, remaining))

        if last_error is not None:
            raise StatusUnreachable(
                f"ngrok status API at {config.api_url} did not respond "
                f"within {config.startup_timeout}s ({attempts} attempts)",
                status_code=last_error.status_code,
            ) from last_error
        raise TunnelNotFound(config.port, api.tunnels_url)

    async def http(self) -> URL:
        """The public URL of this session's tunnel"""
        return (await self.tunnel()).http()

    async def https(self) -> URL:
        """The public URL of this session's tunnel over https"""
        return (await self.tunnel()).https()

    async def close(self) -> None:
        """Terminate the child process; safe to call more than once."""
        proc = self._process
        if proc is not None and proc.returncode is None:
            try:
                proc.terminate()
                await asyncio.wait_for(
                    proc.wait(), timeout=self.config.shutdown_timeout
                )
            except asyncio.TimeoutError:
                self.logger.warning(
                    f"ngrok (pid {proc.pid}) ignored SIGTERM, killing it"
                )
                try:
                    proc.kill()
                except ProcessLookupError:
                    pass
                await proc.wait()
            except ProcessLookupError:
                pass
            self.logger.info(f"Stopped ngrok (pid {proc.pid})")
        self._closed = True

    async def __aenter__(self) -> Ngrok:
        """Async context manager entry; starts the process if needed."""
        if not self._started:
            await self.start()
        return self

    async def __aexit__(
        self, exc_type: Any, exc_val: Any, exc_tb: Any
    ) -> None:
        """Async context manager exit."""
        await self.close()
