"""Host key trust verification."""

from __future__ import annotations

import logging
from pathlib import Path

import asyncssh

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_KNOWN_HOSTS = Path("~/.ssh/known_hosts")


class TrustVerifier:
    """Decides which host keys are trusted for every connection of a run.

    Either all keys are accepted (insecure, explicit opt-in) or keys are
    checked against a known_hosts file loaded once at startup. Unknown or
    mismatched keys are rejected, nothing is ever added to the file.
    """

    def __init__(self, known_hosts: asyncssh.SSHKnownHosts | None, source: Path | None = None):
        self._known_hosts = known_hosts
        self.source = source

    @classmethod
    def accept_all(cls) -> "TrustVerifier":
        logger.warning(
            "Host key checking disabled, connections are vulnerable to MITM attacks"
        )
        return cls(None)

    @classmethod
    def from_known_hosts(cls, path: str | Path = DEFAULT_KNOWN_HOSTS) -> "TrustVerifier":
        """Load a known_hosts file. Raises ConfigurationError if unusable."""
        known_hosts_path = Path(path).expanduser()
        try:
            known_hosts = asyncssh.read_known_hosts(str(known_hosts_path))
        except (OSError, ValueError) as e:
            raise ConfigurationError(
                f"Could not parse known_hosts file {known_hosts_path}: {e}"
            ) from e
        logger.debug("Loaded known hosts from %s", known_hosts_path)
        return cls(known_hosts, known_hosts_path)

    @property
    def strict(self) -> bool:
        return self._known_hosts is not None

    @property
    def known_hosts(self) -> asyncssh.SSHKnownHosts | None:
        """Value for asyncssh's ``known_hosts`` option; None disables checks."""
        return self._known_hosts
