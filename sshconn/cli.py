"""
Command line interface for ssh-conn.

Every subcommand works on one SSH config file (``--config`` or the
configured default). Library errors are reported as ``Error: <message>`` on
stderr and mapped to the exit code carried by the exception.
"""

from __future__ import annotations

import argparse
import getpass
import json
import logging
import sys
from typing import Dict, List, Optional, Sequence

from . import __version__
from .config import Config
from .command_builder import needs_config_flag
from .config_engine import ConfigEngine
from .credentials import create_credential_store
from .errors import (
    EXIT_OK,
    EXIT_REFUSED,
    EXIT_UNREACHABLE,
    CredentialError,
    InvalidField,
    SshConnError,
)
from .logging_setup import setup_logging
from .models import ConnectionState, HostRecord, OptionValue
from .orchestrator import ConnectionOrchestrator
from .prober import ConnectivityProber, run_sync
from .ssh_config_utils import get_effective_ssh_config, split_directive
from .tui.editor import HostEditSession, confirm_host_key_change

logger = logging.getLogger(__name__)

EXIT_INTERRUPTED = 130


class CliContext:
    """Objects shared by the subcommand handlers of one invocation."""

    def __init__(self, args: argparse.Namespace, config: Optional[Config] = None):
        self.args = args
        self.config = config or Config()
        self.config_path = self.config.get_ssh_config_path(getattr(args, 'config', None))
        self.engine = ConfigEngine(self.config_path)
        self._credentials = None

    @property
    def credentials(self):
        if self._credentials is None:
            self._credentials = create_credential_store(
                self.config, use_keyring=not getattr(self.args, 'no_keyring', False)
            )
        return self._credentials

    def prober(self, timeout: Optional[float] = None, concurrency: Optional[int] = None) -> ConnectivityProber:
        return ConnectivityProber(
            timeout=timeout or float(self.config.get_setting('probe.timeout', 5)),
            concurrency_limit=concurrency or int(self.config.get_setting('probe.concurrency', 16)),
        )

    def persist(self) -> None:
        backup = self.engine.persist()
        if backup:
            print(f"Backup saved to {backup}")


def _parse_options(items: Optional[List[str]]) -> Dict[str, OptionValue]:
    """Turn repeated ``-o Key=Value`` arguments into an options mapping."""
    options: Dict[str, OptionValue] = {}
    for item in items or []:
        keyword, value = split_directive(item)
        if not keyword or not value:
            raise InvalidField('extra_options', f"'{item}' is not KEY=VALUE")
        existing_key = next((key for key in options if key.lower() == keyword.lower()), None)
        if existing_key is None:
            options[keyword] = value
        elif isinstance(options[existing_key], list):
            options[existing_key].append(value)
        else:
            options[existing_key] = [options[existing_key], value]
    return options


def _is_interactive() -> bool:
    return sys.stdin.isatty()


def _print_record(record: HostRecord) -> None:
    print(f"Host {record.alias}")
    address = record.address + ("  (implied from alias)" if record.address_implied else "")
    print(f"  HostName      {address}")
    print(f"  User          {record.user or '-'}")
    print(f"  Port          {record.effective_port()}")
    if record.proxy_command:
        print(f"  ProxyCommand  {record.proxy_command}")
    if record.identity_file:
        print(f"  IdentityFile  {record.identity_file}")
    for key, value in record.extra_options.items():
        for item in value if isinstance(value, list) else [value]:
            print(f"  {key:<13} {item}")


def _print_table(records: Sequence[HostRecord]) -> None:
    if not records:
        print("No hosts configured.")
        return
    headers = ("ALIAS", "HOSTNAME", "USER", "PORT")
    rows = [(r.alias, r.address, r.user or "-", str(r.effective_port())) for r in records]
    widths = [max(len(row[i]) for row in rows + [headers]) for i in range(len(headers))]
    for row in [headers] + rows:
        print("  ".join(cell.ljust(widths[i]) for i, cell in enumerate(row)).rstrip())


def _store_password(ctx: CliContext, alias: str, password: Optional[str]) -> None:
    if password:
        ctx.credentials.set(alias, password)
        print(f"Password stored for {alias}")


# ---------------------------------------------------------------- handlers
def cmd_list(ctx: CliContext, args) -> int:
    records = ctx.engine.list_records()
    if args.json:
        print(json.dumps([r.to_dict() for r in records], indent=2))
    else:
        _print_table(records)
    for warning in ctx.engine.store.warnings:
        logger.debug("Config warning: %s", warning)
    return EXIT_OK


def cmd_show(ctx: CliContext, args) -> int:
    record = ctx.engine.find(args.alias)
    _print_record(record)
    if args.effective:
        config_file = ctx.config_path if needs_config_flag(ctx.config_path) else None
        effective = get_effective_ssh_config(record.alias, config_file)
        if not effective:
            print("\n(ssh -G produced no output)")
        else:
            print("\nEffective options (ssh -G):")
            for key, value in sorted(effective.items()):
                for item in value if isinstance(value, list) else [value]:
                    print(f"  {key} {item}")
    return EXIT_OK


def cmd_search(ctx: CliContext, args) -> int:
    _print_table(ctx.engine.search(args.query))
    return EXIT_OK


def cmd_add(ctx: CliContext, args) -> int:
    password = None
    if args.hostname is None:
        if not _is_interactive():
            raise InvalidField('address', "--hostname is required when not running interactively")
        session = HostEditSession(existing_aliases=ctx.engine.store.aliases())
        payload = session.run()
        if payload is None:
            return EXIT_REFUSED
        password = payload.pop('password', None)
        record = HostRecord(extra_options=_parse_options(args.option), **payload)
    else:
        if not args.alias:
            raise InvalidField('alias', "must not be empty")
        record = HostRecord(
            alias=args.alias,
            address=args.hostname,
            user=args.user,
            port=args.port,
            proxy_command=args.proxy_command,
            identity_file=args.identity_file,
            extra_options=_parse_options(args.option),
        )
        if args.password:
            password = getpass.getpass(f"Password for {record.alias}: ")

    ctx.engine.add(record)
    ctx.persist()
    print(f"Added host {record.alias}")
    _store_password(ctx, record.alias, password)
    return EXIT_OK


def cmd_edit(ctx: CliContext, args) -> int:
    fields = {}
    for name in ('hostname', 'user', 'port', 'proxy_command', 'identity_file'):
        value = getattr(args, name)
        if value is not None:
            fields['address' if name == 'hostname' else name] = value
    for name in args.clear or []:
        fields['address' if name == 'hostname' else name] = None
    if args.option:
        current = ctx.engine.find(args.alias)
        options = dict(current.extra_options)
        options.update(_parse_options(args.option))
        fields['extra_options'] = options

    password = None
    if not fields:
        if not _is_interactive():
            raise InvalidField('fields', "nothing to change")
        session = HostEditSession(ctx.engine.find(args.alias))
        payload = session.run()
        if payload is None:
            return EXIT_REFUSED
        password = payload.pop('password', None)
        fields = payload

    if fields:
        ctx.engine.edit(args.alias, **fields)
        ctx.persist()
        print(f"Updated host {args.alias}")
    else:
        print("No changes.")
    _store_password(ctx, args.alias, password)
    return EXIT_OK


def cmd_delete(ctx: CliContext, args) -> int:
    record = ctx.engine.find(args.alias)
    if not args.yes:
        answer = input(f"Delete host '{record.alias}' ({record.connection_string()})? [y/N] ")
        if answer.strip().lower() not in ('y', 'yes'):
            print("Aborted.")
            return EXIT_REFUSED
    ctx.engine.delete(args.alias)
    ctx.persist()
    print(f"Deleted host {args.alias}")
    try:
        if ctx.credentials.delete(args.alias):
            print(f"Stored password for {args.alias} removed")
    except CredentialError as e:
        logger.warning("Could not remove stored password for %s: %s", args.alias, e)
    return EXIT_OK


def cmd_rename(ctx: CliContext, args) -> int:
    ctx.engine.rename(args.old, args.new)
    ctx.persist()
    try:
        ctx.credentials.rename(args.old, args.new)
    except CredentialError as e:
        logger.warning("Could not move stored password for %s: %s", args.old, e)
    print(f"Renamed host {args.old} to {args.new}")
    return EXIT_OK


def cmd_connect(ctx: CliContext, args) -> int:
    orchestrator = ConnectionOrchestrator.from_settings(
        ctx.engine, ctx.credentials, ctx.config, foreground=True if args.exec else None
    )
    outcome = orchestrator.connect(args.alias, confirm=confirm_host_key_change)
    if outcome.state is ConnectionState.ABORTED:
        print("Connection aborted: host key change not accepted.", file=sys.stderr)
        return EXIT_REFUSED
    if outcome.state is ConnectionState.SUCCEEDED:
        return outcome.exit_code or EXIT_OK
    kind = outcome.failure.value if outcome.failure else "unknown"
    print(f"Connection to {args.alias} failed ({kind}).", file=sys.stderr)
    return outcome.exit_code or EXIT_REFUSED


def cmd_probe(ctx: CliContext, args) -> int:
    if args.aliases:
        records = [ctx.engine.find(alias) for alias in args.aliases]
    else:
        records = ctx.engine.list_records()
    if not records:
        print("No hosts configured.")
        return EXIT_OK

    width = max(len(r.alias) for r in records)

    def report(result):
        print(f"{result.alias.ljust(width)}  {result.detail_string()}")
        sys.stdout.flush()

    prober = ctx.prober(args.timeout, args.concurrency)
    results = prober.probe_many_sync(records, on_result=report)
    unreachable = [r for r in results if not r.reachable]
    print(f"\n{len(results) - len(unreachable)}/{len(results)} reachable")
    return EXIT_UNREACHABLE if unreachable else EXIT_OK


def cmd_ping(ctx: CliContext, args) -> int:
    record = ctx.engine.find(args.alias)
    prober = ctx.prober(args.timeout)
    print(f"Probing {record.alias} ({record.address}:{record.effective_port()})")
    average, samples = run_sync(prober.measure_latency(record, count=args.count, timeout=args.timeout))
    for index, sample in enumerate(samples, 1):
        print(f"  #{index}: " + (f"{sample * 1000:.1f} ms" if sample is not None else "no response"))
    answered = sum(1 for s in samples if s is not None)
    print(f"average {average * 1000:.1f} ms ({answered}/{len(samples)} answered)")
    return EXIT_OK


def cmd_backup(ctx: CliContext, args) -> int:
    path = ctx.engine.backup()
    if path:
        print(f"Backup saved to {path}")
    else:
        print(f"Nothing to back up: {ctx.config_path} does not exist")
    return EXIT_OK


def cmd_password(ctx: CliContext, args) -> int:
    ctx.engine.find(args.alias)
    if args.action == 'set':
        if args.stdin:
            password = sys.stdin.readline().rstrip('\r\n')
        else:
            password = getpass.getpass(f"Password for {args.alias}: ")
        if not password:
            raise InvalidField('password', "must not be empty")
        ctx.credentials.set(args.alias, password)
        print(f"Password stored for {args.alias}")
    elif ctx.credentials.delete(args.alias):
        print(f"Stored password for {args.alias} removed")
    else:
        print(f"No stored password for {args.alias}")
    return EXIT_OK


def cmd_tui(ctx: CliContext, args) -> int:
    from .tui.app import SshConnTuiApp

    app = SshConnTuiApp(
        engine=ctx.engine,
        credentials=ctx.credentials,
        config=ctx.config,
    )
    try:
        app.run()
    except KeyboardInterrupt:
        pass
    return EXIT_OK


# ------------------------------------------------------------------ parser
def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ssh-conn",
        description="Manage the hosts in your SSH config and connect to them.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--config", metavar="PATH", help="SSH config file to manage (default: ~/.ssh/config)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    parser.add_argument("--no-keyring", action="store_true", help="Do not read or store passwords in the system keyring")

    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    p = sub.add_parser("list", help="List configured hosts")
    p.add_argument("--json", action="store_true", help="Print hosts as JSON")
    p.set_defaults(func=cmd_list)

    p = sub.add_parser("show", help="Show one host")
    p.add_argument("alias")
    p.add_argument("--effective", action="store_true", help="Also show the options ssh resolves (ssh -G)")
    p.set_defaults(func=cmd_show)

    p = sub.add_parser("search", help="Search hosts by alias, hostname or user")
    p.add_argument("query")
    p.set_defaults(func=cmd_search)

    def add_field_args(p, editing: bool):
        p.add_argument("--hostname", "-H", help="Address to connect to (HostName)")
        p.add_argument("--user", "-u", help="Login user")
        p.add_argument("--port", "-p", type=int, help="Port (default 22)")
        p.add_argument("--proxy-command", help="ProxyCommand value")
        p.add_argument("--identity-file", "-i", help="IdentityFile path")
        p.add_argument("--option", "-o", action="append", metavar="KEY=VALUE", help="Additional directive (repeatable)")
        if editing:
            p.add_argument(
                "--clear",
                action="append",
                choices=["user", "port", "proxy_command", "identity_file"],
                help="Remove an optional field (repeatable)",
            )
        else:
            p.add_argument("--password", action="store_true", help="Prompt for a password to store")

    p = sub.add_parser("add", help="Add a host (interactive when --hostname is omitted)")
    p.add_argument("alias", nargs="?")
    add_field_args(p, editing=False)
    p.set_defaults(func=cmd_add)

    p = sub.add_parser("edit", help="Edit a host (interactive when no field is given)")
    p.add_argument("alias")
    add_field_args(p, editing=True)
    p.set_defaults(func=cmd_edit)

    p = sub.add_parser("delete", help="Delete a host")
    p.add_argument("alias")
    p.add_argument("--yes", "-y", action="store_true", help="Do not ask for confirmation")
    p.set_defaults(func=cmd_delete)

    p = sub.add_parser("rename", help="Rename a host")
    p.add_argument("old")
    p.add_argument("new")
    p.set_defaults(func=cmd_rename)

    p = sub.add_parser("connect", help="Connect to a host")
    p.add_argument("alias")
    p.add_argument("--exec", action="store_true", help="Replace this process with ssh")
    p.set_defaults(func=cmd_connect)

    p = sub.add_parser("probe", help="Check which hosts accept connections")
    p.add_argument("aliases", nargs="*", metavar="alias")
    p.add_argument("--timeout", "-t", type=float, help="Batch timeout in seconds")
    p.add_argument("--concurrency", "-j", type=int, help="Maximum probes in flight")
    p.set_defaults(func=cmd_probe)

    p = sub.add_parser("ping", help="Measure connect latency to a host")
    p.add_argument("alias")
    p.add_argument("--count", "-c", type=int, default=4, help="Number of probes (default 4)")
    p.add_argument("--timeout", "-t", type=float, help="Timeout per probe in seconds")
    p.set_defaults(func=cmd_ping)

    p = sub.add_parser("backup", help="Back up the SSH config file")
    p.set_defaults(func=cmd_backup)

    p = sub.add_parser("password", help="Manage stored passwords")
    p.add_argument("action", choices=["set", "delete"])
    p.add_argument("alias")
    p.add_argument("--stdin", action="store_true", help="Read the password from standard input")
    p.set_defaults(func=cmd_password)

    p = sub.add_parser("tui", help="Start the terminal UI")
    p.set_defaults(func=cmd_tui)

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command is None:
        args.command = "tui"
        args.func = cmd_tui

    config = Config()
    verbose = bool(args.verbose or config.get_setting('logging.debug', False))
    setup_logging(verbose=verbose, console=args.command != "tui")

    try:
        ctx = CliContext(args, config)
        return args.func(ctx, args)
    except SshConnError as e:
        logger.info("%s failed: %s", args.command, e)
        print(f"Error: {e}", file=sys.stderr)
        return e.exit_code
    except KeyboardInterrupt:
        print("", file=sys.stderr)
        return EXIT_INTERRUPTED


__all__ = ["main", "build_parser"]
