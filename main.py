#!/usr/bin/env python3
"""Catalog Sync CLI.

This module provides a command-line interface for the resumable vendor
catalog sync. Commands map one-to-one onto the control surface; `start`
and `drive` also run the batch loop in the foreground, and `worker`
keeps ticking every active scope like the API server does.

Architecture:
    - SyncControlService records start/pause/resume/cancel intent
    - SyncEngine does one batch per invocation, SyncRunner loops over it
    - With DATABASE_URL set every port is backed by PostgreSQL, otherwise
      (or with --memory) by in-memory adapters for a one-off run

Environment Variables:
    - CATALOG_API_KEY: Vendor catalog API key (required to sync)
    - TRANSLATION_DRIVER / TRANSLATION_API_KEY: Translation backend
    - DATABASE_URL: PostgreSQL connection string (optional)
    - SYNC_PROFILES_FILE: JSON file with named sync profiles (optional)

Example Usage:
    $ python main.py start                        # Full sync of the default scope
    $ python main.py start --limit 20 --memory    # Test run, nothing persisted
    $ python main.py start --profile scooters --incremental
    $ python main.py pause --profile scooters     # Pause after the current batch
    $ python main.py resume --profile scooters --no-drive
    $ python main.py status                       # Show progress
    $ python main.py logs --limit 20              # Newest log entries
    $ python main.py worker                       # Drive all active scopes

Author: Catalog Sync Team
"""
import argparse
import asyncio
import logging
import os
import signal
import sys
from datetime import datetime, timezone
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

# Local imports
from src.catalog_sync.api.database import apply_schema, close_pool, create_pool
from src.catalog_sync.api.exceptions import CatalogSyncError, ConfigurationError
from src.catalog_sync.config import DEFAULT_SCOPE, SettingsRegistry
from src.catalog_sync.sync.domain.entities import LogLevel, SyncState
from src.catalog_sync.sync.services import SyncServices, build_services
from src.catalog_sync.sync.use_cases import ControlResult

logger = logging.getLogger("catalog_sync.cli")

# Commands that need the vendor API and the engine
ENGINE_COMMANDS = {"start", "resume", "cancel", "drive", "worker"}


def print_state(state: Optional[SyncState]) -> None:
    """Print a sync state summary."""
    if state is None:
        print("[Main] No sync has run for this scope")
        return

    counters = state.counters
    print(f"  Scope:       {state.scope}")
    print(f"  Status:      {state.status.value}")
    print(f"  Run:         {state.run_id or '-'} ({state.sync_type.value})")
    print(f"  Batches:     {state.cursor} (offset {state.offset}, batch size {state.batch_size})")
    print(
        f"  Items:       {counters.processed} processed, {counters.created} created, "
        f"{counters.updated} updated, {counters.unchanged} unchanged, {counters.failed} failed"
    )
    if state.limit:
        print(f"  Limit:       {state.limit}")
    if state.last_synced_at:
        print(f"  Last sync:   {state.last_synced_at.isoformat()}")
    if state.last_error:
        print(f"  Last error:  {state.last_error}")


def print_result(result: ControlResult) -> None:
    marker = "✓" if result.accepted else "✗"
    print(f"{marker} {result.message}")


async def setup_services(args: argparse.Namespace) -> SyncServices:
    """Build the sync services for a command.

    Raises:
        ConfigurationError: If settings are invalid or credentials are missing
    """
    settings = SettingsRegistry.from_env()

    pool = None
    database_url = settings.global_settings.database_url
    if database_url and not args.memory:
        pool = await create_pool(database_url)
        await apply_schema(pool)
        print("[Main] Connected to PostgreSQL")
    elif args.command not in ("start", "worker"):
        print("[Main] No database configured, state is not persisted between commands")

    return await build_services(settings, pool=pool, with_engine=args.command in ENGINE_COMMANDS)


def install_signal_handlers(shutdown_event: asyncio.Event) -> None:
    def handle_shutdown(signum, frame):
        print(f"\n[Main] Received signal {signum}, stopping after the current batch...")
        shutdown_event.set()

    signal.signal(signal.SIGTERM, handle_shutdown)
    signal.signal(signal.SIGINT, handle_shutdown)


async def drive(services: SyncServices, scope: str, shutdown_event: asyncio.Event) -> None:
    """Run batches for a scope in the foreground until it stops being active."""
    print(f"[Main] Driving '{scope}' (Ctrl+C stops between batches)")
    outcome = await services.runner.drive(scope, shutdown_event=shutdown_event)
    print(f"[Main] Last batch: {outcome.kind.value}")
    print_state(outcome.state)


async def run_command(args: argparse.Namespace) -> int:
    """Run one CLI command.

    Returns:
        Process exit code
    """
    start_time = datetime.now(timezone.utc)
    scope = args.profile

    try:
        services = await setup_services(args)
    except ConfigurationError as e:
        print(f"[Main] Configuration error: {e}")
        return 1
    except CatalogSyncError as e:
        print(f"[Main] Startup failed: {e}")
        return 1

    shutdown_event = asyncio.Event()
    control = services.control
    exit_code = 0

    try:
        if args.command == "start":
            result = await control.start(scope, limit=args.limit, incremental=args.incremental)
            print_result(result)
            if not result.accepted:
                exit_code = 1
            elif not args.no_drive:
                install_signal_handlers(shutdown_event)
                await drive(services, scope, shutdown_event)

        elif args.command in ("pause", "resume", "cancel", "reset"):
            result = await getattr(control, args.command)(scope)
            print_result(result)
            if not result.accepted:
                exit_code = 1
            elif args.command == "resume" and not args.no_drive:
                install_signal_handlers(shutdown_event)
                await drive(services, scope, shutdown_event)
            else:
                print_state(result.state)

        elif args.command == "drive":
            install_signal_handlers(shutdown_event)
            await drive(services, scope, shutdown_event)

        elif args.command == "worker":
            install_signal_handlers(shutdown_event)
            print("[Main] Worker started, driving all active scopes")
            await services.runner.run_forever(shutdown_event, interval=args.interval)

        elif args.command == "status":
            print_state(await control.get_status(scope))

        elif args.command == "logs":
            level = LogLevel(args.level) if args.level else None
            entries = await control.get_recent_logs(scope, limit=args.limit, level=level)
            if not entries:
                print("[Main] No log entries")
            for entry in entries:
                ref = f" [{entry.reference}]" if entry.reference else ""
                print(f"{entry.timestamp:%Y-%m-%d %H:%M:%S} {entry.level.value:<8}{ref} {entry.message}")

        elif args.command == "history":
            records = await control.get_history(None if args.all_scopes else scope, limit=args.limit)
            if not records:
                print("[Main] No sync history")
            print(f"{'Run':<20} {'Scope':<14} {'Type':<12} {'Status':<10} {'Items':>7} {'Failed':>7} {'Secs':>6}")
            print("-" * 82)
            for r in records:
                print(
                    f"{r.run_id:<20} {r.scope[:13]:<14} {r.sync_type.value:<12} {r.status.value:<10} "
                    f"{r.counters.processed:>7} {r.counters.failed:>7} {r.duration_seconds or 0:>6}"
                )
    finally:
        await services.close()
        if services.pool is not None:
            await close_pool(services.pool)

    duration = (datetime.now(timezone.utc) - start_time).total_seconds()
    logger.debug(f"Command '{args.command}' finished in {duration:.1f} seconds")
    return exit_code


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Resumable vendor catalog sync",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py start                        # Full sync of the default scope
  python main.py start --limit 20 --memory    # Test run without a database
  python main.py pause                        # Pause after the current batch
  python main.py resume                       # Resume and drive to completion
  python main.py status                       # Show progress
  python main.py worker                       # Drive every active scope
        """
    )

    commands = parser.add_subparsers(dest="command", required=True, metavar="COMMAND")

    def add_command(name: str, help_text: str) -> argparse.ArgumentParser:
        sub = commands.add_parser(name, help=help_text)
        common = sub.add_argument_group("Common Options")
        common.add_argument(
            "--profile",
            default=DEFAULT_SCOPE,
            metavar="SCOPE",
            help=f"Sync scope / profile name (default: {DEFAULT_SCOPE})"
        )
        common.add_argument(
            "--memory",
            action="store_true",
            help="Use in-memory storage even if DATABASE_URL is set"
        )
        common.add_argument(
            "--verbose",
            action="store_true",
            help="Enable debug logging"
        )
        return sub

    start = add_command("start", "Start a new sync run and drive it")
    run_group = start.add_argument_group("Run Options")
    run_group.add_argument(
        "--limit",
        type=int,
        default=0,
        metavar="N",
        help="Process at most N products (0 = no limit)"
    )
    run_group.add_argument(
        "--incremental",
        action="store_true",
        help="Only fetch products changed since the last completed sync"
    )
    run_group.add_argument(
        "--no-drive",
        action="store_true",
        help="Only record the start; a worker or the API server does the batches"
    )

    add_command("pause", "Pause the run after its current batch")
    resume = add_command("resume", "Resume a paused run")
    resume.add_argument(
        "--no-drive",
        action="store_true",
        help="Only record the resume; a worker or the API server does the batches"
    )
    add_command("cancel", "Cancel the run after its current batch")
    add_command("reset", "Return a finished run to idle")
    add_command("drive", "Drive an active run in the foreground")
    add_command("status", "Show the current sync state")

    worker = add_command("worker", "Drive every active scope until interrupted")
    worker.add_argument(
        "--interval",
        type=float,
        default=float(os.getenv("SYNC_RUNNER_INTERVAL_SECONDS", "5")),
        metavar="SECONDS",
        help="Seconds between ticks (default: 5)"
    )

    logs = add_command("logs", "Show the newest sync log entries")
    logs.add_argument("--limit", type=int, default=50, metavar="N", help="Number of entries (default: 50)")
    logs.add_argument(
        "--level",
        choices=[level.value for level in LogLevel],
        help="Only show entries of this level"
    )

    history = add_command("history", "Show recent sync runs")
    history.add_argument("--limit", type=int, default=20, metavar="N", help="Number of runs (default: 20)")
    history.add_argument("--all-scopes", action="store_true", help="Include every scope")

    return parser


def main():
    args = build_parser().parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    sys.exit(asyncio.run(run_command(args)))


if __name__ == "__main__":
    main()
