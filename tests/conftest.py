"""Shared fixtures for fanout tests."""

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from fanout.auth import AuthMethods
from fanout.config import ExecutionConfig
from fanout.hosts import Host
from fanout.trust import TrustVerifier


class FakeSession:
    """Stands in for an open session, recording the commands it runs."""

    def __init__(self, host: Host, output: bytes = b"", exit_status: int = 0):
        self.host = host
        self.output = output
        self.exit_status = exit_status
        self.commands: list[tuple[str, bytes | None]] = []
        self.closed = False

    async def run(self, command: str, input: bytes | None = None) -> SimpleNamespace:
        self.commands.append((command, input))
        return SimpleNamespace(stdout=self.output, exit_status=self.exit_status)

    async def __aenter__(self) -> "FakeSession":
        return self

    async def __aexit__(self, *exc_info) -> None:
        self.closed = True


class FakeConnector:
    """Connector that hands out FakeSessions, or raises per-address errors."""

    def __init__(self, failures: dict | None = None, delay: float = 0.0):
        self.failures = failures or {}
        self.delay = delay
        self.sessions: list[FakeSession] = []
        self.active = 0
        self.peak = 0

    async def connect(self, host: Host) -> FakeSession:
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if host.address in self.failures:
                raise self.failures[host.address]
        finally:
            self.active -= 1
        session = FakeSession(host, output=f"{host.address} up\n".encode())
        self.sessions.append(session)
        return session


@pytest.fixture
def make_config():
    """Factory for ExecutionConfig with no credentials and no host key checks."""

    def _make(**kwargs) -> ExecutionConfig:
        kwargs.setdefault("user", "tester")
        kwargs.setdefault("auth", AuthMethods())
        kwargs.setdefault("trust", TrustVerifier(None))
        return ExecutionConfig(**kwargs)

    return _make


@pytest.fixture
def fake_connector() -> FakeConnector:
    return FakeConnector()


@pytest.fixture
def mock_conn() -> MagicMock:
    """A mocked asyncssh connection."""
    conn = MagicMock()
    conn.wait_closed = AsyncMock()
    return conn


@pytest.fixture
def connector_factory():
    """FakeConnector class, for tests that need failures or delays."""
    return FakeConnector


@pytest.fixture
def session_factory():
    return FakeSession
