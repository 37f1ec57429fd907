"""
Reviewsync Orchestrator CLI
===========================

Command-line interface for the review refresh engine.

Commands:
    refresh   - On-demand full refresh (replace the stored set)
    cycle     - One periodic cycle (incremental delta)
    daemon    - Run the periodic scheduler in the foreground
    stats     - Show stored review count and mean rating
    init-db   - Create the reviews / oauth_tokens tables
    sources   - List enabled review sources

Usage:
    python -m reviewsync.orchestrator.cli refresh
    python -m reviewsync.orchestrator.cli cycle --json
    python -m reviewsync.orchestrator.cli daemon
    python -m reviewsync.orchestrator.cli stats
"""

import argparse
import json
import sys

from ..data.config import get_settings
from ..storage.backends import PersistenceError
from .logging_config import setup_logging_from_settings
from .refresh import ReviewRefresher, CycleResult, CycleStatus
from .scheduler import RefreshScheduler


def _print_cycle(result: CycleResult, as_json: bool) -> int:
    if as_json:
        print(json.dumps(result.get_summary(), indent=2, default=str))
    else:
        print()
        print("=" * 60)
        print(f"REVIEW REFRESH ({result.mode.value.upper()}) COMPLETE")
        print("=" * 60)
        print(f"Cycle: {result.cycle_id}")
        print(f"Status: {result.status.value}")
        print(f"Duration: {result.duration_seconds or 0:.1f} seconds")
        print(f"Inserted: {result.inserted}  Retired: {result.retired}")
        if result.replaced is False:
            print("Store left unchanged (nothing fetched)")
        print()
        print("Sources:")
        for fetch in result.fetch_results:
            status_icon = "✓" if fetch.ok else "✗"
            line = f"  {status_icon} {fetch.source.value}: {fetch.status.value} ({len(fetch.reviews)} reviews)"
            if fetch.error:
                line += f" - {fetch.error}"
            print(line)

    return 1 if result.status == CycleStatus.FAILED else 0


def cmd_refresh(args):
    """On-demand full refresh."""
    try:
        refresher = ReviewRefresher.from_settings()
        result = refresher.refresh_now()
    except PersistenceError as e:
        print(f"\nERROR: Refresh failed, stored reviews unchanged: {e.message}")
        return 1
    return _print_cycle(result, args.json)


def cmd_cycle(args):
    """One periodic (incremental) cycle."""
    try:
        refresher = ReviewRefresher.from_settings()
        result = refresher.run_periodic_cycle()
    except PersistenceError as e:
        print(f"\nERROR: Cycle failed, stored reviews unchanged: {e.message}")
        return 1
    return _print_cycle(result, args.json)


def cmd_daemon(args):
    """Run the periodic scheduler until interrupted."""
    refresher = ReviewRefresher.from_settings()
    scheduler = RefreshScheduler(refresher, run_at_start=not args.no_initial_run)
    scheduler.start(blocking=True)
    return 0


def cmd_stats(args):
    """Show stored review statistics."""
    try:
        refresher = ReviewRefresher.from_settings()
        stats = refresher.store.stats()
    except PersistenceError as e:
        print(f"ERROR: Failed to read reviews: {e.message}")
        return 1

    if args.json:
        print(json.dumps(stats, indent=2))
    else:
        print(f"Reviews stored: {stats['review_count']}")
        print(f"Mean rating: {stats['rating_value'] or 'N/A'}")
    return 0


def cmd_init_db(args):
    """Create tables."""
    try:
        refresher = ReviewRefresher.from_settings()
        refresher.store.backend.ensure_schema()
    except PersistenceError as e:
        print(f"ERROR: Schema creation failed: {e.message}")
        return 1
    print(f"Schema ready ({refresher.store.backend.name})")
    return 0


def cmd_sources(args):
    """List enabled sources."""
    refresher = ReviewRefresher.from_settings()
    sources = refresher.registry.enabled_sources
    if args.json:
        print(json.dumps({"sources": sources, "priority": get_settings().refresh.source_priority}))
    elif not sources:
        print("No review sources configured.")
    else:
        print("Enabled review sources:")
        for name in sources:
            print(f"  - {name}")
    return 0


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Reviewsync review refresh CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    refresh_parser = subparsers.add_parser("refresh", help="On-demand full refresh")
    refresh_parser.add_argument("--json", action="store_true", help="Output as JSON")

    cycle_parser = subparsers.add_parser("cycle", help="Run one periodic cycle")
    cycle_parser.add_argument("--json", action="store_true", help="Output as JSON")

    daemon_parser = subparsers.add_parser("daemon", help="Run the periodic scheduler")
    daemon_parser.add_argument(
        "--no-initial-run",
        action="store_true",
        help="Wait one interval before the first cycle",
    )

    stats_parser = subparsers.add_parser("stats", help="Show stored review statistics")
    stats_parser.add_argument("--json", action="store_true", help="Output as JSON")

    subparsers.add_parser("init-db", help="Create database tables")

    sources_parser = subparsers.add_parser("sources", help="List enabled review sources")
    sources_parser.add_argument("--json", action="store_true", help="Output as JSON")

    args = parser.parse_args()
    setup_logging_from_settings(verbose=args.verbose)

    if args.command is None:
        parser.print_help()
        return 1

    commands = {
        "refresh": cmd_refresh,
        "cycle": cmd_cycle,
        "daemon": cmd_daemon,
        "stats": cmd_stats,
        "init-db": cmd_init_db,
        "sources": cmd_sources,
    }

    handler = commands.get(args.command)
    if handler:
        return handler(args)
    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
