#!/usr/bin/env python3
"""Main entry point for fanout."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from . import __version__
from .auth import PasswordPrompt, resolve_auth
from .config import ExecutionConfig, Settings, load_config
from .dispatcher import ClientResponse, Dispatcher, effective_workers
from .errors import ConfigurationError, FanoutError, HostListError, ScriptReadError
from .hosts import Host, parse_host_list, parse_proxy_host
from .report import ResponseLog, print_responses, print_summary
from .trust import TrustVerifier
from .workload import CommandWorkload, ScriptWorkload, Workload

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_NO_HOSTS = 2
EXIT_BAD_ARGS = 3


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="fanout",
        description="Run a command or script on many hosts over SSH",
        epilog="Options must precede HOSTS, everything after HOSTS is the command.",
        add_help=False,
    )
    parser.add_argument("hosts", nargs="?", help="Comma separated list of hosts")
    parser.add_argument(
        "commands",
        nargs=argparse.REMAINDER,
        help="Command to run on every host (unless --script is given)",
    )
    parser.add_argument("-h", "--help", action="store_true", help="Print help / usage")
    parser.add_argument("-V", "--version", action="store_true", help="Print version")
    parser.add_argument("-v", "--verbose", action="store_true", help="Display verbose output")
    parser.add_argument(
        "-u",
        "--user",
        help="Username for SSH connections (default: $USER)",
    )
    parser.add_argument(
        "-i",
        "--identity-file",
        type=Path,
        help="Private key file. Defaults to ~/.ssh/id_rsa when present; password fallback is enabled",
    )
    parser.add_argument(
        "--known-hosts-file",
        type=Path,
        help="Location of known_hosts file (default: ~/.ssh/known_hosts)",
    )
    parser.add_argument(
        "--no-strict-host-check",
        action="store_const",
        const=False,
        dest="strict_host_check",
        help="Disable host key checking. Insecure",
    )
    parser.add_argument(
        "-s",
        "--sudo",
        action="store_const",
        const=True,
        help="Run the command or script with sudo",
    )
    parser.add_argument(
        "-S",
        "--script",
        type=Path,
        help="Path to a local script to run on every host",
    )
    parser.add_argument("-p", "--port", type=int, help="SSH port (default: 22)")
    parser.add_argument(
        "-J",
        "--proxy-host",
        help="Jump host to tunnel connections through, as host[:port]",
    )
    parser.add_argument(
        "--procs",
        type=int,
        help="Number of concurrent workers (default: CPU count, -1 for one per host)",
    )
    parser.add_argument(
        "-A",
        "--agent-forwarding",
        action="store_const",
        const=True,
        help="Forward the local SSH agent",
    )
    parser.add_argument("-c", "--config", type=Path, help="Path to YAML configuration file")
    parser.add_argument("--log-dir", type=Path, help="Write each host's output to this directory")
    parser.add_argument("--dashboard", action="store_true", help="Run with the TUI dashboard")
    return parser


def usage(parser: argparse.ArgumentParser, status: int, message: str | None = None) -> int:
    if message:
        print(message, file=sys.stderr)
    parser.print_help(sys.stderr if status else sys.stdout)
    return status


def _overrides(args: argparse.Namespace) -> dict:
    return {
        "user": args.user,
        "port": args.port,
        "procs": args.procs,
        "identity_file": args.identity_file,
        "known_hosts_file": args.known_hosts_file,
        "strict_host_check": args.strict_host_check,
        "proxy_host": args.proxy_host,
        "sudo": args.sudo,
        "agent_forwarding": args.agent_forwarding,
        "log_dir": args.log_dir,
    }


def build_workload(args: argparse.Namespace, settings: Settings) -> Workload:
    """Pick the workload. Raises ConfigurationError if there is nothing to run."""
    if args.script:
        return ScriptWorkload.from_file(args.script, sudo=settings.sudo)
    if args.commands:
        return CommandWorkload(args.commands, sudo=settings.sudo)
    raise ConfigurationError("No script or commands provided.")


async def execute(
    settings: Settings,
    hosts: tuple[Host, ...],
    workload: Workload,
    dashboard: bool = False,
) -> list[ClientResponse]:
    """Resolve credentials and run the workload on every host."""
    if settings.strict_host_check:
        trust = TrustVerifier.from_known_hosts(settings.known_hosts_file)
    else:
        trust = TrustVerifier.accept_all()

    proxy = parse_proxy_host(settings.proxy_host, settings.port) if settings.proxy_host else None
    # Fail on a bad worker count before any connection is made
    effective_workers(settings.procs, len(hosts))

    password_prompt = PasswordPrompt(settings.user)
    auth = await resolve_auth(
        settings.identity_file,
        password=password_prompt,
    )
    config = ExecutionConfig(
        user=settings.user,
        auth=auth,
        trust=trust,
        procs=settings.procs,
        proxy=proxy,
        timeout=settings.timeout,
        agent_forwarding=settings.agent_forwarding,
    )

    log = ResponseLog(settings.log_dir, settings.source_path) if settings.log_dir else None
    dispatcher = Dispatcher(
        config,
        workload,
        on_response=(lambda index, response: log.write(response)) if log else None,
    )
    try:
        if dashboard:
            from .dashboard import Dashboard

            app = Dashboard(dispatcher, hosts, password_prompt=password_prompt)
            await app.run_async()
            return app.responses
        return await dispatcher.run(hosts)
    finally:
        await auth.close()


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.help:
        return usage(parser, EXIT_OK)
    if args.version:
        print(__version__)
        return EXIT_OK

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    try:
        settings = load_config(args.config).merge(_overrides(args))
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return EXIT_FAILURE

    if not settings.user:
        return usage(parser, EXIT_FAILURE, "Username required.")
    if args.hosts is None:
        return usage(parser, EXIT_NO_HOSTS, "At least one argument (host) is required.")

    try:
        hosts = parse_host_list(args.hosts, settings.port)
    except HostListError as e:
        return usage(parser, EXIT_BAD_ARGS, f"Server list could not be parsed: {e}")

    try:
        workload = build_workload(args, settings)
    except ConfigurationError as e:
        return usage(parser, EXIT_BAD_ARGS, str(e))
    except ScriptReadError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_FAILURE

    try:
        responses = asyncio.run(execute(settings, hosts, workload, args.dashboard))
    except FanoutError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_FAILURE

    print_responses(responses)
    print_summary(responses)
    if len(responses) < len(hosts) or not all(r.ok for r in responses):
        return EXIT_FAILURE
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
