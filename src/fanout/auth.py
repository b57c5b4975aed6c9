"""Authentication method resolution.

Methods are offered to the server in a fixed order: agent keys, the
explicit (or default) identity file, then password as a last resort. The
password is only asked for when the server actually requests it.
"""

from __future__ import annotations

import asyncio
import getpass
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, Sequence

import asyncssh

from .errors import AuthConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_IDENTITY_FILE = Path("~/.ssh/id_rsa")
PREFERRED_AUTH = "publickey,keyboard-interactive,password"

# Type alias for a lazily evaluated password source
PasswordProvider = Callable[[], Awaitable[str | None]]


class PasswordPrompt:
    """Reads the password from the terminal the first time it is needed.

    The answer is cached for the rest of the run, so concurrent workers
    that all fall back to password auth trigger a single prompt.

    When ``ask`` is set it replaces the terminal read, for front ends that
    own the terminal themselves. It returns None if the user declines.
    """

    def __init__(self, user: str, read: Callable[[str], str] = getpass.getpass):
        self.user = user
        self._read = read
        self.ask: Callable[[str], Awaitable[str | None]] | None = None
        self._lock = asyncio.Lock()
        self._password: str | None = None
        self._unavailable = False
        self.prompt_count = 0

    async def __call__(self) -> str | None:
        async with self._lock:
            if self._password is None and not self._unavailable:
                self.prompt_count += 1
                raw = await self._prompt(f"Password for {self.user}: ")
                if raw is None:
                    self._unavailable = True
                    return None
                self._password = raw.rstrip()
            return self._password

    async def _prompt(self, prompt: str) -> str | None:
        if self.ask is not None:
            return await self.ask(prompt)
        try:
            return await asyncio.to_thread(self._read, prompt)
        except EOFError:
            logger.warning("No terminal available to read a password")
            return None


class FanoutClient(asyncssh.SSHClient):
    """Per-connection client callbacks.

    One instance exists per connection attempt, so the password provider
    is invoked at most once per attempt whichever method asks for it.
    """

    def __init__(self, password: PasswordProvider | None = None):
        self._password = password
        self._password_used = False

    async def _next_password(self) -> str | None:
        if self._password is None or self._password_used:
            return None
        self._password_used = True
        return await self._password()

    async def password_auth_requested(self) -> str | None:
        return await self._next_password()

    def kbdint_auth_requested(self) -> str | None:
        return "" if self._password is not None else None

    async def kbdint_challenge_received(
        self,
        name: str,
        instructions: str,
        lang: str,
        prompts: Sequence[tuple[str, bool]],
    ) -> list[str] | None:
        if not prompts:
            return []
        # Only a lone, non-echoed prompt is treated as a password request
        if len(prompts) == 1 and not prompts[0][1]:
            password = await self._next_password()
            return None if password is None else [password]
        return None


@dataclass(frozen=True)
class AuthMethods:
    """Ordered credential sources shared by every connection of a run."""

    client_keys: tuple[asyncssh.SSHKey | asyncssh.SSHKeyPair, ...] = ()
    password: PasswordProvider | None = None
    agent: asyncssh.SSHAgentClient | None = None

    def client_factory(self) -> FanoutClient:
        return FanoutClient(self.password)

    def connect_options(self) -> dict:
        """Keyword arguments for ``asyncssh.connect``."""
        return {
            # None disables public key auth, an empty list would load defaults
            "client_keys": list(self.client_keys) or None,
            "password_auth": self.password is not None,
            "kbdint_auth": self.password is not None,
            "preferred_auth": PREFERRED_AUTH,
        }

    async def close(self) -> None:
        if self.agent is not None:
            self.agent.close()
            await self.agent.wait_closed()


def load_identity(path: str | Path, required: bool) -> asyncssh.SSHKey | None:
    """Read a private key file.

    A required key that cannot be used raises AuthConfigurationError,
    otherwise the failure is logged and None is returned.
    """
    key_path = Path(path).expanduser()
    try:
        return asyncssh.read_private_key(str(key_path))
    except (OSError, asyncssh.KeyImportError) as e:
        if required:
            raise AuthConfigurationError(
                f"Could not use identity file {key_path}: {e}"
            ) from e
        logger.debug("Skipping identity file %s: %s", key_path, e)
        return None


async def _load_agent_keys() -> tuple[asyncssh.SSHAgentClient | None, list]:
    if not os.environ.get("SSH_AUTH_SOCK"):
        return None, []
    try:
        agent = await asyncssh.connect_agent()
    except (OSError, asyncssh.Error) as e:
        logger.debug("SSH agent unreachable: %s", e)
        return None, []
    if agent is None:
        return None, []

    try:
        keys = await agent.get_keys()
    except (OSError, asyncssh.Error) as e:
        logger.debug("Could not list SSH agent keys: %s", e)
        agent.close()
        return None, []

    logger.debug("Using %d key(s) from SSH agent", len(keys))
    return agent, list(keys)


async def resolve_auth(
    identity_file: str | Path | None = None,
    *,
    default_identity_file: str | Path = DEFAULT_IDENTITY_FILE,
    use_agent: bool = True,
    password: PasswordProvider | None = None,
) -> AuthMethods:
    """Build the ordered list of authentication methods for a run."""
    if identity_file:
        file_key = load_identity(identity_file, required=True)
    else:
        file_key = load_identity(default_identity_file, required=False)

    keys: list = []
    agent = None
    if use_agent:
        agent, agent_keys = await _load_agent_keys()
        keys.extend(agent_keys)
    if file_key is not None:
        keys.append(file_key)

    return AuthMethods(client_keys=tuple(keys), password=password, agent=agent)
