#!/usr/bin/env python3
"""Operator tool for the stats tables.

Talks to the database directly (DATABASE_URL), so it works while the API is down.

Usage:
    python scripts/stats_admin.py check                          # Dirty queue and freshness
    python scripts/stats_admin.py trigger                        # Main aggregation now
    python scripts/stats_admin.py trigger --agent zhipin-001     # Full reaggregation for one agent
    python scripts/stats_admin.py query --start 2025-12-01 --end 2025-12-07 [--agent A] [--range week]
    python scripts/stats_admin.py backfill --agent zhipin-001 --start 2025-11-01 --end 2025-11-30
"""

import argparse
import asyncio
import json
import sys
from datetime import date
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from recruit_stats.core.config import settings  # noqa: E402
from recruit_stats.core.database import db  # noqa: E402
from recruit_stats.core.logging import setup_logging  # noqa: E402
from recruit_stats.models.stats import AggregationResult, StatsQuery, TimeRange  # noqa: E402
from recruit_stats.services.aggregation import AggregationService  # noqa: E402
from recruit_stats.services.events import EventRepository  # noqa: E402
from recruit_stats.services.query import QueryService  # noqa: E402
from recruit_stats.services.stats_store import StatsRepository  # noqa: E402


def print_header(text: str) -> None:
    """Print section header."""
    print(f"\n{'=' * 60}")
    print(f"  {text}")
    print(f"{'=' * 60}\n")


def print_result(result: AggregationResult) -> None:
    marker = "✓" if result.success else "✗"
    print(
        f"{marker} processed={result.processed_count} failed={result.failed_count} "
        f"duration={result.duration_ms}ms"
    )
    for error in result.errors or []:
        print(f"  - {error}")


def build_aggregation() -> AggregationService:
    return AggregationService(EventRepository(db), StatsRepository(db), settings.reporting_tz)


async def check() -> None:
    """Show dirty queue depth and how fresh the stats are."""
    print_header("Stats health")
    row = await db.fetchrow(
        """
        SELECT
            COUNT(*) AS total_rows,
            COUNT(*) FILTER (WHERE is_dirty) AS dirty_rows,
            MIN(updated_at) FILTER (WHERE is_dirty) AS oldest_dirty,
            MAX(aggregated_at) AS last_aggregated
        FROM recruitment_daily_stats
        """
    )
    events = await db.fetchval("SELECT COUNT(*) FROM recruitment_events")

    print(f"Reporting timezone: {settings.reporting_timezone}")
    print(f"Events:             {events}")
    if row:
        print(f"Stats rows:         {row['total_rows']}")
        print(f"Dirty rows:         {row['dirty_rows']}")
        print(f"Oldest dirty mark:  {row['oldest_dirty'] or '-'}")
        print(f"Last aggregated:    {row['last_aggregated'] or '-'}")

    dirty = await StatsRepository(db).find_dirty_records(10)
    if dirty:
        print("\nNext dirty keys:")
        for key in dirty:
            print(f"  {key.label()}")


async def trigger(agent_id: str | None) -> None:
    aggregation = build_aggregation()
    if agent_id:
        print_header(f"Full reaggregation: {agent_id}")
        result = await aggregation.full_reaggregation(agent_id)
    else:
        print_header("Main aggregation")
        result = await aggregation.run_main_aggregation(settings.stats_main_batch_size)
    print_result(result)


async def query(agent_id: str | None, start: date, end: date, time_range: TimeRange) -> None:
    print_header(f"Stats {start} .. {end} ({time_range.value})")
    service = QueryService(StatsRepository(db), EventRepository(db), settings.reporting_tz)
    stats = await service.query_stats(
        StatsQuery(agent_id=agent_id, start_date=start, end_date=end, time_range=time_range)
    )
    if not stats:
        print("No stats in range")
        return
    for item in stats:
        print(json.dumps(item.model_dump(mode="json"), ensure_ascii=False, indent=2))


async def backfill(agent_id: str, start: date, end: date) -> None:
    print_header(f"Backfill {agent_id}: {start} .. {end}")
    result = await build_aggregation().aggregate_date_range(agent_id, start, end)
    print_result(result)


async def run(args: argparse.Namespace) -> None:
    await db.connect()
    try:
        if args.command == "check":
            await check()
        elif args.command == "trigger":
            await trigger(args.agent)
        elif args.command == "query":
            await query(args.agent, args.start, args.end, TimeRange(args.range))
        elif args.command == "backfill":
            if args.start > args.end:
                print("✗ --start must not be after --end")
                return
            await backfill(args.agent, args.start, args.end)
    finally:
        await db.disconnect()


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Recruitment stats operator tool",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("check", help="Dirty queue depth and freshness")

    trigger_parser = subparsers.add_parser("trigger", help="Run an aggregation now")
    trigger_parser.add_argument("--agent", help="Fully reaggregate this agent only")

    query_parser = subparsers.add_parser("query", help="Print summed stats for a range")
    query_parser.add_argument("--agent")
    query_parser.add_argument("--start", type=date.fromisoformat, required=True)
    query_parser.add_argument("--end", type=date.fromisoformat, required=True)
    query_parser.add_argument(
        "--range", choices=[r.value for r in TimeRange], default=TimeRange.CUSTOM.value
    )

    backfill_parser = subparsers.add_parser("backfill", help="Re-aggregate a date range")
    backfill_parser.add_argument("--agent", required=True)
    backfill_parser.add_argument("--start", type=date.fromisoformat, required=True)
    backfill_parser.add_argument("--end", type=date.fromisoformat, required=True)

    args = parser.parse_args()
    setup_logging(log_level="WARNING", json_logs=False)
    asyncio.run(run(args))


if __name__ == "__main__":
    main()
