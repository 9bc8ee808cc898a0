"""Command-line interface for the directive agent."""

from __future__ import annotations

import argparse
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.table import Table

from .config import AppConfig, load_config
from .controller import ExecutionController, Outcome
from .directive import Directive, DirectiveStore, IdempotencyTracker
from .errors import AgentLockedError, DirectiveError
from .local import ExternalSecretCodec, LocalProbe, machine_id
from .reporting import NetworkRequestType, StatusReporter
from .utils.logging import get_logger

console = Console()

_OUTCOME_STYLE = {
    Outcome.SKIPPED: "dim",
    Outcome.APPLIED: "green",
    Outcome.FAILED: "yellow",
    Outcome.UNRECORDED: "bold red",
}


@dataclass
class CLIContext:
    """Context captured from CLI arguments."""

    config: AppConfig
    verbose: bool


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="directive-agent",
        description="Apply directive.ais manifests: nginx configs, systemd services and status reports.",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to a JSON config file overriding defaults.",
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Enable debug logging."
    )

    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("run", help="Poll the webroot forever")
    subparsers.add_parser("once", help="Run a single poll cycle and print a summary")

    check_parser = subparsers.add_parser(
        "check", help="Show fingerprint and execution state of one manifest"
    )
    check_parser.add_argument("path", help="Path to a directive.ais file")

    init_parser = subparsers.add_parser(
        "init", help="Write a prefilled directive.ais template"
    )
    init_parser.add_argument(
        "directory", nargs="?", default=".", help="Project directory (default: current)"
    )

    query_parser = subparsers.add_parser("query", help="Send a request to the status aggregator")
    query_parser.add_argument(
        "kind",
        choices=[kind.value for kind in NetworkRequestType],
        help="Request kind",
    )
    query_parser.add_argument("--data", default=None, help="Optional request payload")

    subparsers.add_parser("stats", help="Print host telemetry")

    encrypt_parser = subparsers.add_parser("encrypt", help="Encrypt text with the platform codec")
    encrypt_parser.add_argument("text")
    decrypt_parser = subparsers.add_parser("decrypt", help="Decrypt text with the platform codec")
    decrypt_parser.add_argument("text")

    return parser


def _build_context(args: argparse.Namespace) -> CLIContext:
    return CLIContext(config=load_config(args.config), verbose=args.verbose)


def handle_once_command(context: CLIContext) -> int:
    controller = ExecutionController.from_config(context.config)
    report = controller.run_cycle()

    if report.scan_error:
        console.print(f"[red]Scan failed:[/red] {report.scan_error}")
        return 1

    table = Table(title=f"Directives under {context.config.paths.webroot}")
    table.add_column("Manifest")
    table.add_column("Marker")
    table.add_column("Outcome")
    table.add_column("Detail")
    for item in report.outcomes:
        style = _OUTCOME_STYLE[item.outcome]
        detail = f"{item.error_kind}: {item.error}" if item.error else ", ".join(item.units)
        table.add_row(
            str(item.path),
            item.token or "-",
            f"[{style}]{item.outcome.value}[/{style}]",
            detail,
        )
    console.print(table)

    if report.reload_error:
        console.print(f"[red]Webserver reload failed:[/red] {report.reload_error}")
    return 0 if report.ok else 1


def handle_check_command(args: argparse.Namespace, context: CLIContext) -> int:
    path = Path(args.path).resolve()
    store = DirectiveStore(context.config.paths.webroot, context.config.agent.manifest_name)
    tracker = IdempotencyTracker(context.config.paths.marker_dir)

    try:
        manifest = store.load(path)
    except DirectiveError as exc:
        console.print(f"[red]{exc.kind}:[/red] {exc}")
        return 1

    token = tracker.fingerprint(manifest.raw, manifest.identity)
    console.print(f"Identity:    {manifest.identity}")
    console.print(f"Fingerprint: {token}")
    console.print(f"Marker:      {tracker.marker_path(token)}")
    console.print(f"Executed:    {'yes' if tracker.has_executed(token) else 'no'}")

    try:
        directive = store.parse(manifest)
    except DirectiveError as exc:
        console.print(f"[red]{exc.kind}:[/red] {exc}")
        return 1
    console.print_json(json.dumps(directive.to_dict()))
    return 0


def handle_init_command(args: argparse.Namespace, context: CLIContext) -> int:
    target = Path(args.directory) / context.config.agent.manifest_name
    if target.exists():
        console.print(f"[red]Refusing to overwrite {target}[/red]")
        return 1

    body = json.dumps(Directive.default_prefilled().to_dict(), indent=4)
    header = (
        "# Directive for the Artisan platform. Lines starting with '#' are ignored.\n"
        "# Any edit to this file, comments included, makes the agent apply it again.\n"
    )
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(header + body + "\n", encoding="utf-8")
    console.print(f"Wrote {target}")
    return 0


def handle_query_command(args: argparse.Namespace, context: CLIContext) -> int:
    reporter = StatusReporter(
        context.config.reporter.endpoint,
        token=context.config.reporter.token,
        timeout=context.config.reporter.timeout,
    )
    try:
        response = reporter.query(NetworkRequestType(args.kind), args.data)
    except DirectiveError as exc:
        console.print(f"[red]{exc.kind}:[/red] {exc}")
        response = getattr(exc, "response", None)
        if response is not None:
            console.print(str(response))
        return 1

    console.print(str(response), highlight=False)
    return 0


def handle_stats_command(context: CLIContext) -> int:
    stats = LocalProbe().collect()
    table = Table(title="Host telemetry")
    table.add_column("Metric")
    table.add_column("Value")
    for key, value in stats.to_payload().items():
        table.add_row(key, value)
    try:
        table.add_row("Machine ID", machine_id(Path(context.config.paths.machine_id_file)))
    except OSError as exc:
        table.add_row("Machine ID", f"unavailable ({exc.strerror})")
    console.print(table)
    return 0


def handle_codec_command(args: argparse.Namespace, context: CLIContext) -> int:
    codec = ExternalSecretCodec(context.config.codec.binary)
    try:
        if args.command == "encrypt":
            print(codec.encrypt(args.text))
        else:
            print(codec.decrypt(args.text))
    except DirectiveError as exc:
        console.print(f"[red]{exc}[/red]")
        return 1
    return 0


def dispatch_command(args: argparse.Namespace) -> int:
    context = _build_context(args)
    logger = get_logger("directive_agent", verbose=context.verbose)

    if args.command == "run":
        controller = ExecutionController.from_config(context.config)
        try:
            controller.run_forever()
        except AgentLockedError as exc:
            logger.error("%s", exc)
            return 2
        except KeyboardInterrupt:
            logger.info("Interrupted, stopping")
        return 0

    if args.command == "once":
        return handle_once_command(context)

    if args.command == "check":
        return handle_check_command(args, context)

    if args.command == "init":
        return handle_init_command(args, context)

    if args.command == "query":
        return handle_query_command(args, context)

    if args.command == "stats":
        return handle_stats_command(context)

    if args.command in ("encrypt", "decrypt"):
        return handle_codec_command(args, context)

    raise ValueError(f"Unsupported command: {args.command}")


def run_cli(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    return dispatch_command(args)
