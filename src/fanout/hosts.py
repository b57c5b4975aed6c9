"""Host list parsing."""

from __future__ import annotations

from dataclasses import dataclass

from .errors import ConfigurationError, HostListError

DEFAULT_PORT = 22


@dataclass(frozen=True)
class Host:
    """A single remote execution target."""

    address: str
    port: int = DEFAULT_PORT

    @property
    def label(self) -> str:
        """Address as shown to the user, with the port when non-default."""
        if self.port == DEFAULT_PORT:
            return self.address
        return f"{self.address}:{self.port}"


def parse_host_list(raw: str, port: int = DEFAULT_PORT) -> tuple[Host, ...]:
    """Split a comma separated host specification into hosts.

    Order is preserved and duplicates are kept, every entry is an
    independent target. Raises HostListError if no host remains.
    """
    if not raw or not raw.strip():
        raise HostListError("Host list is empty")

    entries = [entry.strip() for entry in raw.split(",")]
    hosts = tuple(Host(entry, port) for entry in entries if entry)
    if not hosts:
        raise HostListError(f"No hosts found in {raw!r}")
    return hosts


def parse_proxy_host(raw: str, port: int = DEFAULT_PORT) -> Host:
    """Parse a jump host given as ``host`` or ``host:port``."""
    value = raw.strip()
    if not value:
        raise ConfigurationError("Proxy host is empty")

    # Bare IPv6 addresses need brackets to carry a port.
    if value.count(":") > 1 and not value.startswith("["):
        return Host(value, port)
    if value.startswith("[") and value.endswith("]"):
        return Host(value[1:-1], port)

    address, sep, port_str = value.rpartition(":")
    if not sep:
        return Host(value.strip("[]"), port)
    address = address.strip("[]")
    if not address or not port_str.isdigit():
        raise ConfigurationError(f"Invalid proxy host: {raw!r}")

    proxy_port = int(port_str)
    if not 1 <= proxy_port <= 65535:
        raise ConfigurationError(f"Proxy port out of range: {proxy_port}")
    return Host(address, proxy_port)
