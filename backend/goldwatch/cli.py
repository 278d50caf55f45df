"""Operator command line for goldwatch.

Usage:
    goldwatch init-db
    goldwatch scrape                     # default source
    goldwatch scrape --source galeri24
    goldwatch scrape --all
    goldwatch latest
    goldwatch stats
    goldwatch purge --days 365
    goldwatch schedule                   # runs until interrupted

Every command prints JSON on stdout; logs go to stderr.
"""

import argparse
import asyncio
import json
import sys
from typing import Any, List, Optional

import structlog

from goldwatch.config import settings
from goldwatch.core.logging import configure_logging
from goldwatch.schemas.price_record import PriceRecordResponse

logger = structlog.get_logger(__name__)


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=False, default=str))


def _records_json(rows) -> List[dict]:
    return [PriceRecordResponse.model_validate(row).model_dump(mode="json") for row in rows]


async def _scrape(args: argparse.Namespace) -> int:
    from goldwatch.scrapers.scraper_service import build_orchestrator

    orchestrator = build_orchestrator()
    if args.all:
        results = await orchestrator.trigger_all()
    else:
        results = [await orchestrator.trigger_scrape(args.source)]

    _print_json([result.model_dump(mode="json", exclude={"data"} if args.quiet else None) for result in results])
    return 0 if all(result.success for result in results) else 1


async def _latest(args: argparse.Namespace) -> int:
    from goldwatch.db.session import async_session_factory
    from goldwatch.services.price_record_service import PriceRecordStore

    rows = await PriceRecordStore(async_session_factory).get_latest()
    _print_json(_records_json(rows))
    return 0


async def _stats(args: argparse.Namespace) -> int:
    from goldwatch.db.session import async_session_factory
    from goldwatch.services.price_record_service import PriceRecordStore

    store = PriceRecordStore(async_session_factory)
    stats = await store.get_stats()
    vendors = await store.get_vendor_list()
    _print_json({**stats.model_dump(mode="json"), "vendors": [v.value for v in vendors]})
    return 0


async def _purge(args: argparse.Namespace) -> int:
    from goldwatch.db.session import async_session_factory
    from goldwatch.services.price_record_service import PriceRecordStore

    deleted = await PriceRecordStore(async_session_factory).delete_older_than(args.days)
    _print_json({"deleted": deleted, "days": args.days})
    return 0


async def _init_db(args: argparse.Namespace) -> int:
    from goldwatch.db.utils import check_database_health, init_db

    await init_db()
    health = await check_database_health()
    _print_json({"initialized": True, **health})
    return 0 if health.get("healthy") else 1


async def _schedule(args: argparse.Namespace) -> int:
    from goldwatch.scrapers.scheduler import ScrapeScheduler
    from goldwatch.scrapers.scraper_service import build_orchestrator

    interval = args.interval if args.interval is not None else settings.SCRAPE_INTERVAL_MINUTES
    if interval <= 0:
        _print_json({"scheduled": False, "reason": "SCRAPE_INTERVAL_MINUTES is 0"})
        return 1

    scheduler = ScrapeScheduler(build_orchestrator(), interval_minutes=interval)
    scheduler.start()
    _print_json({"scheduled": True, "jobs": scheduler.get_jobs_status()})
    try:
        await asyncio.Event().wait()
    finally:
        scheduler.stop()
    return 0


COMMANDS = {
    "scrape": _scrape,
    "latest": _latest,
    "stats": _stats,
    "purge": _purge,
    "init-db": _init_db,
    "schedule": _schedule,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="goldwatch",
        description="Scrape, store and inspect gold prices",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  goldwatch scrape --source logammulia
  goldwatch scrape --all
  goldwatch purge --days 30
        """,
    )
    parser.add_argument("--log-level", help="Override LOG_LEVEL (e.g. DEBUG)")
    parser.add_argument("--json-logs", action="store_true", help="Emit JSON log lines")

    subparsers = parser.add_subparsers(dest="command", required=True)

    scrape = subparsers.add_parser("scrape", help="Run a scrape and store the results")
    target = scrape.add_mutually_exclusive_group()
    target.add_argument("--source", help=f"Source id (default: {settings.DEFAULT_SOURCE})")
    target.add_argument("--all", action="store_true", help="Scrape every registered source")
    scrape.add_argument("--quiet", action="store_true", help="Omit stored records from the output")

    subparsers.add_parser("latest", help="Latest price per gold type and vendor")
    subparsers.add_parser("stats", help="Table statistics")

    purge = subparsers.add_parser("purge", help="Delete old price records")
    purge.add_argument(
        "--days",
        type=int,
        default=settings.RETENTION_DAYS,
        help=f"Keep this many days of history (default: {settings.RETENTION_DAYS})",
    )

    subparsers.add_parser("init-db", help="Create missing tables and check connectivity")

    schedule = subparsers.add_parser("schedule", help="Scrape every source periodically")
    schedule.add_argument("--interval", type=int, help="Minutes between runs (default: SCRAPE_INTERVAL_MINUTES)")

    return parser


async def _run(args: argparse.Namespace) -> int:
    from goldwatch.db.utils import dispose_engine

    try:
        return await COMMANDS[args.command](args)
    finally:
        await dispose_engine()


def main(argv: Optional[List[str]] = None) -> int:
    """Parse arguments and run the command."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if getattr(args, "days", None) is not None and args.days < 0:
        parser.error("--days must be non-negative")

    configure_logging(level=args.log_level, json_logs=True if args.json_logs else None)

    try:
        return asyncio.run(_run(args))
    except KeyboardInterrupt:
        logger.info("interrupted", command=args.command)
        return 130


if __name__ == "__main__":
    sys.exit(main())
