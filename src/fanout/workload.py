"""Payloads executed identically on every host."""

from __future__ import annotations

import asyncio
import shlex
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

import asyncssh

from .errors import ExecutionError, ScriptReadError

if TYPE_CHECKING:
    from .connector import Session

SUDO_PREFIX = "sudo "
SCRIPT_SHELL = "sh -s"


@dataclass(frozen=True)
class ExecutionResult:
    """Captured output of a successful execution."""

    output: str
    exit_status: int | None


class Workload(Protocol):
    """Anything that can run against an open session."""

    async def execute(self, session: "Session") -> ExecutionResult: ...


async def _run(session: "Session", command: str, input: bytes | None = None) -> ExecutionResult:
    label = session.host.label
    try:
        result = await session.run(command, input=input)
    except (asyncssh.Error, OSError, asyncio.TimeoutError) as e:
        raise ExecutionError(label, f"Session failed: {str(e) or type(e).__name__}") from e

    stdout = result.stdout or b""
    output = stdout.decode("utf-8", errors="replace") if isinstance(stdout, bytes) else stdout
    if result.exit_status:
        raise ExecutionError(
            label,
            f"Command exited with status {result.exit_status}",
            output=output,
            exit_status=result.exit_status,
        )
    return ExecutionResult(output, result.exit_status)


@dataclass(frozen=True)
class CommandWorkload:
    """A command line, run as a single remote shell invocation."""

    tokens: tuple[str, ...]
    sudo: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "tokens", tuple(self.tokens))

    @property
    def command(self) -> str:
        command = " ".join(self.tokens)
        if self.sudo:
            return f"{SUDO_PREFIX}sh -c {shlex.quote(command)}"
        return command

    async def execute(self, session: "Session") -> ExecutionResult:
        return await _run(session, self.command)


@dataclass(frozen=True)
class ScriptWorkload:
    """A local script piped to the remote shell over stdin."""

    content: bytes
    sudo: bool = False

    @classmethod
    def from_file(cls, path: str | Path, sudo: bool = False) -> "ScriptWorkload":
        """Read the script once, before any host is contacted."""
        script_path = Path(path).expanduser()
        try:
            content = script_path.read_bytes()
        except OSError as e:
            raise ScriptReadError(f"Could not read script {script_path}: {e}") from e
        return cls(content, sudo)

    @property
    def command(self) -> str:
        return f"{SUDO_PREFIX}{SCRIPT_SHELL}" if self.sudo else SCRIPT_SHELL

    async def execute(self, session: "Session") -> ExecutionResult:
        return await _run(session, self.command, input=self.content)
