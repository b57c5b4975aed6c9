"""Printing and logging of collected responses."""

from __future__ import annotations

import re
import shutil
import sys
from datetime import datetime
from pathlib import Path
from typing import Iterable, TextIO

from .dispatcher import ClientResponse

GREEN = "\033[0;32m"
RED = "\033[0;31m"
RESET = "\033[0m"
SEPARATOR = "-" * 32


def format_response(response: ClientResponse, color: bool = True) -> str:
    """Render one response as a host header, its output and a separator."""
    green, red, reset = (GREEN, RED, RESET) if color else ("", "", "")
    lines = [f"Host: {green}{response.host.label}{reset}"]
    if response.output:
        lines.append(response.output.rstrip("\n"))
    if response.error is not None:
        lines.append(f"{red}ERROR: {response.error}{reset}")
    lines.append(SEPARATOR)
    return "\n".join(lines) + "\n"


def print_responses(
    responses: Iterable[ClientResponse],
    stream: TextIO | None = None,
    color: bool | None = None,
) -> None:
    stream = stream or sys.stdout
    if color is None:
        color = stream.isatty()
    for response in responses:
        stream.write(format_response(response, color))
    stream.flush()


def print_summary(responses: list[ClientResponse], stream: TextIO | None = None) -> None:
    """Print the failed hosts, if any."""
    stream = stream or sys.stderr
    failed = [r.host.label for r in responses if not r.ok]
    if failed:
        print(f"\nFailed hosts ({len(failed)}/{len(responses)}): {', '.join(failed)}", file=stream)


class ResponseLog:
    """Writes each host's response to a file in a timestamped directory."""

    def __init__(self, log_dir: Path, config_path: Path | None = None):
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        self.path = Path(log_dir).expanduser() / timestamp
        self.path.mkdir(parents=True, exist_ok=True)

        # Copy the config file used for the run next to the logs
        if config_path and config_path.exists():
            shutil.copy(config_path, self.path / "config.yaml")

    def log_file(self, response: ClientResponse) -> Path:
        name = re.sub(r"[^A-Za-z0-9._-]", "_", response.host.label)
        return self.path / f"{name}.log"

    def write(self, response: ClientResponse) -> None:
        # Duplicate hosts append to the same file
        with open(self.log_file(response), "a") as f:
            f.write(format_response(response, color=False))
