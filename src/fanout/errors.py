"""Exception types for fanout.

Pre-flight errors (configuration, auth setup, script read) abort the run
before any host is contacted. ``HostError`` subclasses are recorded in the
failing host's response and never stop the other workers.
"""

from __future__ import annotations


class FanoutError(Exception):
    """Base class for all fanout errors."""


class ConfigurationError(FanoutError):
    """Invalid flags, arguments or config file."""


class HostListError(ConfigurationError):
    """The host list could not be parsed."""


class AuthConfigurationError(ConfigurationError):
    """An explicitly requested identity file is unreadable or unparsable."""


class ScriptReadError(FanoutError):
    """The script file could not be read."""


class HostError(FanoutError):
    """Failure scoped to a single host."""

    def __init__(self, host: str, message: str):
        self.host = host
        super().__init__(f"{host}: {message}")


class HostConnectionError(HostError):
    """Dial, handshake, authentication or tunnel failure."""


class TrustError(HostError):
    """The host key could not be verified against known_hosts."""


class ExecutionError(HostError):
    """The remote command failed or the session dropped mid-execution."""

    def __init__(
        self,
        host: str,
        message: str,
        output: str = "",
        exit_status: int | None = None,
    ):
        self.output = output
        self.exit_status = exit_status
        super().__init__(host, message)
