"""stocksim CLI entrypoint.

Subcommands:
    credential  run the credential service (UDP)
    quote       run the quote service (UDP)
    ledger      run the ledger service (UDP)
    router      run the front-end router (TCP)
    client      interactive client session

Config layers, lowest first: built-in defaults, ``--config`` TOML file,
``--set KEY=VALUE`` overrides, then the dedicated flags (``--host``,
``--port``, ``--data``).
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Any, Optional

from stocksim.config import ServiceConfig, StockSimConfig
from stocksim.config_loader import ConfigLoader
from stocksim.errors import ConfigurationError, DataFileError
from stocksim.services import BaseService, CredentialService, LedgerService, QuoteService
from stocksim.utility import insert_path, parse_overrides

logger = logging.getLogger(__name__)

SERVICE_COMMANDS = ("credential", "quote", "ledger")


def build_parser() -> argparse.ArgumentParser:
    """
    Return the top-level CLI argument parser.
    """
    p = argparse.ArgumentParser(prog="stocksim", description="Distributed trading simulation")
    sub = p.add_subparsers(dest="command", required=True)

    def add_common(sp: argparse.ArgumentParser) -> None:
        """Add arguments shared across all subcommands."""
        sp.add_argument("--config", type=Path, required=False, help="Path to a TOML config file")
        sp.add_argument("--host", help="Override the host to bind or connect to")
        sp.add_argument("--port", type=int, help="Override the port to bind or connect to")
        sp.add_argument(
            "--set",
            dest="config_overrides",
            action="append",
            default=[],
            metavar="KEY=VALUE",
            help="Override a config entry (may be repeated)",
        )
        sp.add_argument("--debug", action="store_true", help="Enable debug logging")

    for name in SERVICE_COMMANDS:
        sp = sub.add_parser(name, help=f"Run the {name} service")
        add_common(sp)
        sp.add_argument("--data", type=Path, help="Directory holding the data files")
        if name == "credential":
            sp.add_argument(
                "--plaintext-passwords",
                action="store_true",
                help="members file holds plaintext passwords; obfuscate them on load",
            )

    router = sub.add_parser("router", help="Run the front-end router")
    add_common(router)
    router.add_argument("--admin-port", type=int, help="Serve the admin HTTP app on this port")
    router.add_argument("--audit", type=Path, help="Append JSON-lines audit events to this file")

    client = sub.add_parser("client", help="Start an interactive client session")
    add_common(client)
    return p


def _cli_overrides(args: argparse.Namespace) -> dict[str, Any]:
    overrides = parse_overrides(args.config_overrides)

    if args.command in SERVICE_COMMANDS:
        section = f"backends.{args.command}"
        if getattr(args, "data", None) is not None:
            insert_path(overrides, "data_dir", str(args.data))
        if getattr(args, "plaintext_passwords", False):
            insert_path(overrides, "plaintext_passwords", True)
    else:
        # The client connects to the router endpoint
        section = "router"
        if getattr(args, "admin_port", None) is not None:
            insert_path(overrides, "router.admin_port", args.admin_port)
        if getattr(args, "audit", None) is not None:
            insert_path(overrides, "router.audit_path", str(args.audit))

    if args.host is not None:
        insert_path(overrides, f"{section}.host", args.host)
    if args.port is not None:
        insert_path(overrides, f"{section}.port", args.port)
    return overrides


def _setup_logging(debug: bool, quiet: bool = False) -> None:
    level = logging.DEBUG if debug else (logging.WARNING if quiet else logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
    )


def build_service(cfg: ServiceConfig) -> BaseService:
    """Load the data file for one backend and build its service."""
    if cfg.name == "credential":
        return CredentialService.from_file(cfg.data_path, plaintext=cfg.plaintext_passwords)
    if cfg.name == "quote":
        return QuoteService.from_file(cfg.data_path)
    return LedgerService.from_file(cfg.data_path)


async def _run_service(cfg: ServiceConfig) -> None:
    from stocksim.transport.datagram import DatagramServer

    server = DatagramServer(build_service(cfg), cfg.listen)
    await server.start()
    try:
        await server.serve_forever()
    finally:
        await server.stop()


async def _run_router(config: StockSimConfig) -> None:
    from stocksim.router.server import RouterServer

    router = RouterServer(config.router)
    await router.start()
    try:
        await router.serve_forever()
    finally:
        await router.stop()


def main(argv: Optional[list[str]] = None) -> int:
    """CLI entrypoint wrapper compatible with setuptools scripts."""
    parser = build_parser()
    args = parser.parse_args(argv)
    _setup_logging(args.debug, quiet=args.command == "client")

    try:
        config = ConfigLoader(base_dir=".").load_config(args.config, _cli_overrides(args))
    except (ConfigurationError, ValueError) as exc:
        print(f"[!] {exc}", file=sys.stderr)
        return 1

    try:
        if args.command in SERVICE_COMMANDS:
            asyncio.run(_run_service(config.service(args.command)))
        elif args.command == "router":
            asyncio.run(_run_router(config))
        else:
            from stocksim.client.session import run_interactive

            return asyncio.run(run_interactive(config.client))
    except KeyboardInterrupt:
        print("Interrupted by user.", file=sys.stderr)
        return 130
    except DataFileError as exc:
        print(f"[!] {exc}", file=sys.stderr)
        return 1
    except OSError as exc:
        print(f"[!] {args.command} failed to start: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
