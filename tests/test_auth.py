"""Tests for authentication method resolution."""

import asyncio
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import asyncssh
import pytest

from fanout.auth import (
    PREFERRED_AUTH,
    AuthMethods,
    FanoutClient,
    PasswordPrompt,
    load_identity,
    resolve_auth,
)
from fanout.errors import AuthConfigurationError


@pytest.fixture(autouse=True)
def no_agent(monkeypatch: pytest.MonkeyPatch) -> None:
    """Tests run without the user's SSH agent unless they set one up."""
    monkeypatch.delenv("SSH_AUTH_SOCK", raising=False)


@pytest.fixture
def key_file(tmp_path: Path) -> Path:
    """An unencrypted private key on disk."""
    path = tmp_path / "id_ed25519"
    asyncssh.generate_private_key("ssh-ed25519").write_private_key(str(path))
    return path


class TestLoadIdentity:
    """Tests for reading identity files."""

    def test_reads_key(self, key_file: Path) -> None:
        assert load_identity(key_file, required=True) is not None

    def test_missing_required_key_is_fatal(self, tmp_path: Path) -> None:
        with pytest.raises(AuthConfigurationError, match="Could not use identity file"):
            load_identity(tmp_path / "nope", required=True)

    def test_unparsable_required_key_is_fatal(self, tmp_path: Path) -> None:
        bad = tmp_path / "garbage"
        bad.write_text("not a key")
        with pytest.raises(AuthConfigurationError):
            load_identity(bad, required=True)

    def test_missing_optional_key_is_skipped(self, tmp_path: Path) -> None:
        assert load_identity(tmp_path / "nope", required=False) is None

    def test_unparsable_optional_key_is_skipped(self, tmp_path: Path) -> None:
        bad = tmp_path / "garbage"
        bad.write_text("not a key")
        assert load_identity(bad, required=False) is None


class TestResolveAuth:
    """Tests for building the ordered method list."""

    @pytest.mark.asyncio
    async def test_explicit_identity_file(self, key_file: Path, tmp_path: Path) -> None:
        """Explicit key is used and the default key is not consulted."""
        with patch("fanout.auth.load_identity", wraps=load_identity) as spy:
            auth = await resolve_auth(key_file, default_identity_file=tmp_path / "default")
        assert len(auth.client_keys) == 1
        spy.assert_called_once_with(key_file, required=True)

    @pytest.mark.asyncio
    async def test_explicit_identity_file_failure_is_fatal(self, tmp_path: Path) -> None:
        with pytest.raises(AuthConfigurationError):
            await resolve_auth(tmp_path / "missing")

    @pytest.mark.asyncio
    async def test_default_identity_file(self, key_file: Path) -> None:
        auth = await resolve_auth(default_identity_file=key_file)
        assert len(auth.client_keys) == 1

    @pytest.mark.asyncio
    async def test_missing_default_identity_file_is_omitted(self, tmp_path: Path) -> None:
        auth = await resolve_auth(default_identity_file=tmp_path / "missing")
        assert auth.client_keys == ()
        assert auth.connect_options()["client_keys"] is None

    @pytest.mark.asyncio
    async def test_agent_keys_come_first(
        self, key_file: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Agent keys are offered before the identity file."""
        monkeypatch.setenv("SSH_AUTH_SOCK", "/tmp/agent.sock")
        agent = MagicMock()
        agent.get_keys = AsyncMock(return_value=["agent-key"])

        with patch("asyncssh.connect_agent", new_callable=AsyncMock) as mock_connect:
            mock_connect.return_value = agent
            auth = await resolve_auth(key_file)

        assert auth.client_keys[0] == "agent-key"
        assert len(auth.client_keys) == 2
        assert auth.agent is agent

    @pytest.mark.asyncio
    async def test_unreachable_agent_is_omitted(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("SSH_AUTH_SOCK", "/tmp/agent.sock")
        with patch("asyncssh.connect_agent", new_callable=AsyncMock) as mock_connect:
            mock_connect.side_effect = OSError("No such file")
            auth = await resolve_auth(default_identity_file=tmp_path / "missing")
        assert auth.client_keys == ()
        assert auth.agent is None

    @pytest.mark.asyncio
    async def test_agent_skipped_without_socket(self, tmp_path: Path) -> None:
        with patch("asyncssh.connect_agent", new_callable=AsyncMock) as mock_connect:
            await resolve_auth(default_identity_file=tmp_path / "missing")
        mock_connect.assert_not_called()

    @pytest.mark.asyncio
    async def test_password_provider_not_invoked_eagerly(self, tmp_path: Path) -> None:
        """Resolving methods never prompts."""
        provider = AsyncMock(return_value="secret")
        auth = await resolve_auth(
            default_identity_file=tmp_path / "missing", password=provider
        )
        assert auth.password is provider
        provider.assert_not_called()


def test_connect_options_order_publickey_first() -> None:
    """Key methods are preferred over password methods."""
    options = AuthMethods(password=AsyncMock()).connect_options()
    assert PREFERRED_AUTH == "publickey,keyboard-interactive,password"
    assert options["preferred_auth"] == PREFERRED_AUTH
    assert options["password_auth"] is True


def test_connect_options_without_password() -> None:
    options = AuthMethods(client_keys=("k",)).connect_options()
    assert options["client_keys"] == ["k"]
    assert options["password_auth"] is False
    assert options["kbdint_auth"] is False


class TestFanoutClient:
    """Tests for the per-connection password callbacks."""

    @pytest.mark.asyncio
    async def test_password_requested_once_per_connection(self) -> None:
        provider = AsyncMock(return_value="secret")
        client = FanoutClient(provider)

        assert await client.password_auth_requested() == "secret"
        assert await client.password_auth_requested() is None
        provider.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_new_connection_asks_again(self) -> None:
        provider = AsyncMock(return_value="secret")
        await FanoutClient(provider).password_auth_requested()
        await FanoutClient(provider).password_auth_requested()
        assert provider.await_count == 2

    @pytest.mark.asyncio
    async def test_no_provider(self) -> None:
        client = FanoutClient(None)
        assert await client.password_auth_requested() is None
        assert client.kbdint_auth_requested() is None

    @pytest.mark.asyncio
    async def test_kbdint_password_prompt(self) -> None:
        provider = AsyncMock(return_value="secret")
        client = FanoutClient(provider)

        assert client.kbdint_auth_requested() == ""
        answer = await client.kbdint_challenge_received("", "", "", [("Password: ", False)])
        assert answer == ["secret"]
        # Shares the once-per-connection budget with password auth
        assert await client.password_auth_requested() is None
        provider.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_kbdint_empty_challenge(self) -> None:
        client = FanoutClient(AsyncMock())
        assert await client.kbdint_challenge_received("", "", "", []) == []

    @pytest.mark.asyncio
    async def test_kbdint_other_prompts_declined(self) -> None:
        provider = AsyncMock()
        client = FanoutClient(provider)
        answer = await client.kbdint_challenge_received("", "", "", [("Code: ", True)])
        assert answer is None
        provider.assert_not_called()


class TestPasswordPrompt:
    """Tests for the terminal password prompt."""

    @pytest.mark.asyncio
    async def test_strips_trailing_whitespace(self) -> None:
        prompt = PasswordPrompt("alice", read=lambda _: "hunter2 \n")
        assert await prompt() == "hunter2"

    @pytest.mark.asyncio
    async def test_prompts_once_for_concurrent_callers(self) -> None:
        read = MagicMock(return_value="hunter2")
        prompt = PasswordPrompt("alice", read=read)

        results = await asyncio.gather(prompt(), prompt(), prompt())

        assert results == ["hunter2"] * 3
        read.assert_called_once_with("Password for alice: ")
        assert prompt.prompt_count == 1

    @pytest.mark.asyncio
    async def test_no_terminal(self) -> None:
        read = MagicMock(side_effect=EOFError)
        prompt = PasswordPrompt("alice", read=read)

        assert await prompt() is None
        assert await prompt() is None
        read.assert_called_once()

    @pytest.mark.asyncio
    async def test_ask_replaces_terminal_read(self) -> None:
        read = MagicMock(side_effect=AssertionError("terminal read"))
        prompt = PasswordPrompt("alice", read=read)
        prompt.ask = AsyncMock(return_value="hunter2")

        assert await asyncio.gather(prompt(), prompt()) == ["hunter2", "hunter2"]
        prompt.ask.assert_awaited_once_with("Password for alice: ")
        read.assert_not_called()

    @pytest.mark.asyncio
    async def test_declined_ask_disables_password(self) -> None:
        prompt = PasswordPrompt("alice")
        prompt.ask = AsyncMock(return_value=None)

        assert await prompt() is None
        assert await prompt() is None
        prompt.ask.assert_awaited_once()


@pytest.mark.asyncio
async def test_close_closes_agent() -> None:
    agent = MagicMock()
    agent.wait_closed = AsyncMock()
    await AuthMethods(agent=agent).close()
    agent.close.assert_called_once()
