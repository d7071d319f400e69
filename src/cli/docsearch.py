# =============================================================================
# src/cli/docsearch.py - Worker, Sweep and Provisioning Commands
# =============================================================================
#
# The API process only accepts uploads and answers queries; indexing runs in
# separate worker processes that consume the work queue.  This CLI starts
# them and runs the operational chores around them.
#
# Supported subcommands:
#
#   provision - create the metadata tables, the search index schema and the
#               queue topology (stream + consumer group), then exit
#   worker    - run an IndexingWorker until SIGINT / SIGTERM
#   sweep     - republish index messages for INDEXED records that have no
#               search index entry (once, or every --interval seconds)
#
# Usage examples:
#   python -m src.cli provision
#   python -m src.cli worker --consumer indexer-2 --concurrency 8
#   python -m src.cli sweep --dry-run
#   python -m src.cli sweep --interval 600
# =============================================================================

"""Operational CLI: ``provision``, ``worker`` and ``sweep``."""

from __future__ import annotations

import argparse
import asyncio
import signal
import sys
from typing import Any

from src.config.settings import Settings


def _components(app_settings: Settings) -> dict[str, Any]:
    # Imported lazily: src.main configures logging on import.
    from src.main import build_components, config

    return build_components(app_settings, config)


def _stop_on_signals(stop_event: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows event loops have no signal handlers; Ctrl+C still
            # raises KeyboardInterrupt.
            pass


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


async def _handle_provision(app_settings: Settings) -> int:
    from src.main import provision

    components = _components(app_settings)
    try:
        await provision(components)
    finally:
        await components["work_queue"].close()
    print("Provisioned metadata store, search index and work queue.")
    return 0


async def _handle_worker(args: argparse.Namespace, app_settings: Settings) -> int:
    from src.main import provision

    overrides: dict[str, Any] = {}
    if args.consumer:
        overrides["worker_consumer_name"] = args.consumer
    if args.concurrency:
        overrides["worker_concurrency"] = args.concurrency
    app_settings = app_settings.model_copy(update=overrides)

    components = _components(app_settings)
    stop_event = asyncio.Event()
    _stop_on_signals(stop_event)
    try:
        await provision(components)
        await components["worker"].run(stop_event)
    finally:
        await components["work_queue"].close()
    return 0


async def _handle_sweep(args: argparse.Namespace, app_settings: Settings) -> int:
    from src.main import provision

    components = _components(app_settings)
    sweeper = components["sweeper"]
    interval = args.interval if args.interval is not None else app_settings.sweep_interval_seconds
    try:
        await provision(components)
        if interval and interval > 0 and not args.dry_run:
            stop_event = asyncio.Event()
            _stop_on_signals(stop_event)
            await sweeper.run_periodically(interval, stop_event)
            return 0

        report = await sweeper.sweep(dry_run=args.dry_run)
    finally:
        await components["work_queue"].close()

    print(f"Scanned INDEXED records: {report.scanned}")
    print(f"Missing index entries:   {report.missing}")
    print(f"Deleted via the API:     {report.deleted}")
    if args.dry_run:
        print("Dry run: nothing republished.")
    else:
        print(f"Republished:             {report.republished}")
        if report.publish_failures:
            print(f"Publish failures:        {report.publish_failures}", file=sys.stderr)
            return 1
    return 0


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the operational CLI."""
    parser = argparse.ArgumentParser(
        prog="python -m src.cli",
        description="Run indexing workers and maintenance tasks for document search.",
    )
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    subparsers.add_parser("provision", help="Create tables, index schema and queue topology")

    worker_parser = subparsers.add_parser("worker", help="Consume the index queue")
    worker_parser.add_argument("--consumer", help="Consumer name within the group")
    worker_parser.add_argument(
        "--concurrency", type=int, help="Documents processed in parallel per batch"
    )

    sweep_parser = subparsers.add_parser(
        "sweep", help="Requeue INDEXED documents missing from the search index"
    )
    sweep_parser.add_argument(
        "--interval",
        type=int,
        default=None,
        help="Repeat every N seconds (default: SWEEP_INTERVAL_SECONDS, 0 = once)",
    )
    sweep_parser.add_argument(
        "--dry-run",
        action="store_true",
        dest="dry_run",
        help="Report missing entries without republishing",
    )

    return parser


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main(argv: list[str] | None = None) -> None:
    """Parse the subcommand and dispatch to its handler."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    app_settings = Settings()

    if args.command == "provision":
        exit_code = asyncio.run(_handle_provision(app_settings))
    elif args.command == "worker":
        exit_code = asyncio.run(_handle_worker(args, app_settings))
    else:
        exit_code = asyncio.run(_handle_sweep(args, app_settings))
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
