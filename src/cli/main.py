"""ConceptFeed CLI entry points.
This module exposes import, subscription and run history commands.
It maps argparse commands onto SDK calls.
"""

from __future__ import annotations

import argparse
from pathlib import Path
from typing import Any, Sequence

from core.config import ConceptFeedConfig
from core.types import ImportRun
from store.import_sdk import ConceptFeedClient


def build_parser() -> argparse.ArgumentParser:
    """Build the top-level CLI parser.

    Returns:
        Configured argument parser.
    """
    parser = argparse.ArgumentParser(prog="conceptfeed", description="ConceptFeed import CLI")
    parser.add_argument("--data-root", help="Override CONCEPTFEED_DATA_ROOT for this command")
    subparsers = parser.add_subparsers(dest="command", required=True)
    _add_import_command(subparsers)
    _add_import_concept_command(subparsers)
    _add_subscribe_command(subparsers)
    subparsers.add_parser("unsubscribe", help="Remove the feed subscription")
    _add_status_command(subparsers)
    _add_details_command(subparsers)
    subparsers.add_parser("runs", help="List recorded import runs")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Run the ConceptFeed CLI.

    Args:
        argv: Optional argument vector.

    Returns:
        Process exit code.
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    client = _build_client(args.data_root)
    if args.command == "import":
        return _print_run(client.import_collection(args.file))
    if args.command == "import-concept":
        return _print_run(client.import_single_concept(args.file))
    if args.command == "subscribe":
        return _run_subscribe_command(client, args)
    if args.command == "unsubscribe":
        print(f"unsubscribed={str(client.unsubscribe()).lower()}")
        return 0
    if args.command == "status":
        return _run_status_command(client, args)
    if args.command == "details":
        return _run_details_command(client, args)
    if args.command == "runs":
        return _run_runs_command(client)
    parser.error(f"Unsupported command: {args.command}")
    return 2


def _build_client(data_root: str | None) -> ConceptFeedClient:
    """Build SDK client with optional data-root override.

    Args:
        data_root: Optional override path.

    Returns:
        Configured SDK client.
    """
    config = ConceptFeedConfig.from_env()
    if data_root:
        config = ConceptFeedConfig.for_data_root(
            Path(data_root),
            batch_size=config.batch_size,
            worker_count=config.worker_count,
            queue_capacity=config.queue_capacity,
            drain_timeout_seconds=config.drain_timeout_seconds,
            http_timeout_seconds=config.http_timeout_seconds,
            s3_region=config.s3_region,
            s3_profile=config.s3_profile,
        )
    return ConceptFeedClient(config)


def _print_run(run: ImportRun) -> int:
    """Print a finished run and map its status onto an exit code."""
    print(f"run_id={run.run_id}")
    print(f"status={run.status}")
    if run.error_message:
        print(f"error_message={run.error_message}")
    return 0 if run.status == "succeeded" else 1


def _run_subscribe_command(client: ConceptFeedClient, args: argparse.Namespace) -> int:
    subscription = client.subscribe(args.url, token=args.token, snapshot=args.snapshot)
    print(f"url={subscription.url}")
    print(f"subscribed_to_snapshot={str(subscription.subscribed_to_snapshot).lower()}")
    return 0


def _run_status_command(client: ConceptFeedClient, args: argparse.Namespace) -> int:
    """Handle status command.

    Args:
        client: SDK client.
        args: Parsed CLI args.

    Returns:
        Exit code.
    """
    running = client.is_running()
    report = client.run_report(args.run_id)
    progress = client.progress(report.run.run_id)
    print(f"run_id={report.run.run_id}")
    print(f"status={report.run.status}")
    print(f"running={str(running).lower()}")
    print(f"progress={progress.progress}")
    print(f"duration={report.duration}")
    print(f"items={len(report.items)}")
    print(f"error_items={report.error_count}")
    return 0


def _run_details_command(client: ConceptFeedClient, args: argparse.Namespace) -> int:
    """Handle details command.

    Args:
        client: SDK client.
        args: Parsed CLI args.

    Returns:
        Exit code.
    """
    report = client.run_report(args.run_id)
    run = report.run
    print(f"run_id={run.run_id}")
    print(f"status={run.status}")
    print(f"started={run.local_date_started}")
    print(f"duration={report.duration}")
    print(f"source={run.subscription_url or '-'}")
    print(f"release_version={run.release_version or '-'}")
    if run.error_message:
        print(f"error_message={run.error_message}")
    for item in report.items:
        print(
            f"{item.kind}\t"
            f"{item.state}\t"
            f"{item.uuid or '-'}\t"
            f"{item.url or '-'}\t"
            f"{item.error_message or '-'}"
        )
    return 0


def _run_runs_command(client: ConceptFeedClient) -> int:
    for run in client.list_runs():
        print(
            f"{run.run_id}\t"
            f"{run.status}\t"
            f"{run.local_date_started}\t"
            f"{run.local_date_stopped or '-'}\t"
            f"{run.subscription_url or '-'}"
        )
    return 0


def _add_import_command(subparsers: Any) -> None:
    """Register import subcommand."""
    parser = subparsers.add_parser(
        "import",
        help="Import from a file, the intake directory or the subscription feed",
    )
    parser.add_argument("--file", help="Local .zip/.json export or s3://bucket/key")


def _add_import_concept_command(subparsers: Any) -> None:
    """Register import-concept subcommand."""
    parser = subparsers.add_parser("import-concept", help="Import one exported concept")
    parser.add_argument("--file", required=True, help="Local .zip/.json concept export")


def _add_subscribe_command(subparsers: Any) -> None:
    """Register subscribe subcommand."""
    parser = subparsers.add_parser("subscribe", help="Subscribe to a feed collection")
    parser.add_argument("--url", required=True, help="Feed collection or source URL")
    parser.add_argument("--token", help="Optional API token")
    parser.add_argument(
        "--snapshot",
        action="store_true",
        help="Fetch incremental changes of the unreleased head",
    )


def _add_status_command(subparsers: Any) -> None:
    """Register status subcommand."""
    parser = subparsers.add_parser("status", help="Show progress of a run")
    parser.add_argument("--run-id", help="Run id, defaults to the latest run")


def _add_details_command(subparsers: Any) -> None:
    """Register details subcommand."""
    parser = subparsers.add_parser("details", help="Show items of a run")
    parser.add_argument("--run-id", help="Run id, defaults to the latest run")
