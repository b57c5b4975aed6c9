"""Configuration loader for fanout."""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any

import yaml

from .auth import AuthMethods
from .errors import ConfigurationError
from .hosts import DEFAULT_PORT, Host
from .trust import DEFAULT_KNOWN_HOSTS, TrustVerifier

DEFAULT_CONFIG_PATH = Path("~/.config/fanout/config.yaml")
CONNECT_TIMEOUT = 20


@dataclass
class Settings:
    """User settings merged from defaults, the config file and flags."""

    user: str = field(default_factory=lambda: os.environ.get("USER", ""))
    port: int = DEFAULT_PORT
    procs: int = field(default_factory=lambda: os.cpu_count() or 1)
    identity_file: Path | None = None
    known_hosts_file: Path = field(default_factory=lambda: DEFAULT_KNOWN_HOSTS.expanduser())
    strict_host_check: bool = True
    proxy_host: str | None = None
    sudo: bool = False
    agent_forwarding: bool = False
    log_dir: Path | None = None
    timeout: int = CONNECT_TIMEOUT
    source_path: Path | None = None  # Path to the config file, if any

    def merge(self, overrides: dict[str, Any]) -> "Settings":
        """Return a copy with every non-None override applied."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})


@dataclass(frozen=True)
class ExecutionConfig:
    """Run-scoped settings shared read-only by every worker."""

    user: str
    auth: AuthMethods
    trust: TrustVerifier
    procs: int = 1
    proxy: Host | None = None
    timeout: int = CONNECT_TIMEOUT
    agent_forwarding: bool = False


_PATH_KEYS = {"identity_file", "known_hosts_file", "log_dir"}
_INT_KEYS = {"port", "procs", "timeout"}
_BOOL_KEYS = {"strict_host_check", "sudo", "agent_forwarding"}
_FILE_KEYS = {f.name for f in fields(Settings)} - {"source_path"}


def load_config(config_path: str | Path | None = None) -> Settings:
    """Load settings from a YAML file.

    Without an explicit path the default location is used when it exists;
    an explicit path that does not exist is an error.
    """
    if config_path is None:
        default = DEFAULT_CONFIG_PATH.expanduser()
        if not default.exists():
            return Settings()
        config_path = default

    config_path = Path(config_path).expanduser().resolve()
    if not config_path.exists():
        raise ConfigurationError(f"Config file not found: {config_path}")

    try:
        with open(config_path) as f:
            raw = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Could not read config file {config_path}: {e}") from e

    settings = Settings().merge(_parse_config(raw or {}))
    settings.source_path = config_path
    return settings


def _parse_config(raw: Any) -> dict[str, Any]:
    """Validate raw YAML data and convert it to Settings fields."""
    if not isinstance(raw, dict):
        raise ConfigurationError("Config file must contain a mapping")

    unknown = set(raw) - _FILE_KEYS
    if unknown:
        raise ConfigurationError(f"Unknown config keys: {', '.join(sorted(unknown))}")

    parsed: dict[str, Any] = {}
    for key, value in raw.items():
        if value is None:
            continue
        if key in _PATH_KEYS:
            parsed[key] = Path(str(value)).expanduser()
        elif key in _INT_KEYS:
            if isinstance(value, bool) or not isinstance(value, int):
                raise ConfigurationError(f"'{key}' must be an integer")
            parsed[key] = value
        elif key in _BOOL_KEYS:
            if not isinstance(value, bool):
                raise ConfigurationError(f"'{key}' must be true or false")
            parsed[key] = value
        else:
            parsed[key] = str(value)
    return parsed
