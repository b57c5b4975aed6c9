"""fanout: Run a command or script on many SSH hosts concurrently."""

__version__ = "0.1.0"

from .config import ExecutionConfig, Settings, load_config
from .dispatcher import ClientResponse, Dispatcher, HostStatus, effective_workers
from .hosts import Host, parse_host_list
from .workload import CommandWorkload, ScriptWorkload, Workload

__all__ = [
    "ExecutionConfig",
    "Settings",
    "load_config",
    "ClientResponse",
    "Dispatcher",
    "HostStatus",
    "effective_workers",
    "Host",
    "parse_host_list",
    "CommandWorkload",
    "ScriptWorkload",
    "Workload",
]
