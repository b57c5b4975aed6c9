"""SSH session establishment, direct or through a jump host."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

import asyncssh

from .config import ExecutionConfig
from .errors import HostConnectionError, TrustError
from .hosts import Host

logger = logging.getLogger(__name__)


def _describe(error: BaseException) -> str:
    return str(error) or type(error).__name__


class Session:
    """An authenticated connection to one host.

    When tunneled, ``tunnel`` is the jump host connection the target
    connection rides on. Closing the session closes both.
    """

    def __init__(
        self,
        host: Host,
        conn: asyncssh.SSHClientConnection,
        tunnel: asyncssh.SSHClientConnection | None = None,
    ):
        self.host = host
        self.conn = conn
        self.tunnel = tunnel

    async def run(self, command: str, input: bytes | None = None) -> asyncssh.SSHCompletedProcess:
        """Run one remote command with stderr merged into stdout."""
        return await self.conn.run(
            command,
            input=input,
            stderr=asyncssh.STDOUT,
            check=False,
            encoding=None,
        )

    async def close(self) -> None:
        for conn in (self.conn, self.tunnel):
            if conn is not None:
                conn.close()
                await conn.wait_closed()

    async def __aenter__(self) -> "Session":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()


class Connector:
    """Opens sessions using the run's auth methods and trust settings."""

    def __init__(self, config: ExecutionConfig):
        self.config = config

    def _options(self) -> dict[str, Any]:
        options = {
            "username": self.config.user,
            "known_hosts": self.config.trust.known_hosts,
            "connect_timeout": self.config.timeout,
            "agent_forwarding": self.config.agent_forwarding,
            "client_factory": self.config.auth.client_factory,
        }
        options.update(self.config.auth.connect_options())
        return options

    async def _open(
        self,
        target: Host,
        dial: Callable[..., Awaitable[asyncssh.SSHClientConnection]],
        hop: Host,
    ) -> asyncssh.SSHClientConnection:
        where = "" if hop is target else f"via proxy {hop.label}: "
        logger.debug("Connecting to %s@%s", self.config.user, hop.label)
        try:
            return await dial(hop.address, port=hop.port, **self._options())
        except asyncssh.HostKeyNotVerifiable as e:
            raise TrustError(target.label, f"{where}host key not trusted: {_describe(e)}") from e
        except (asyncssh.Error, OSError, asyncio.TimeoutError) as e:
            raise HostConnectionError(target.label, f"{where}{_describe(e)}") from e

    async def connect(self, host: Host) -> Session:
        """Open a session to ``host``, tunneling through the proxy if set."""
        proxy = self.config.proxy
        if proxy is None:
            conn = await self._open(host, asyncssh.connect, host)
            return Session(host, conn)

        tunnel = await self._open(host, asyncssh.connect, proxy)
        try:
            conn = await self._open(host, tunnel.connect_ssh, host)
        except BaseException:
            tunnel.close()
            raise
        return Session(host, conn, tunnel)
