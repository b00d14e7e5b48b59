"""
Command line entry point.

Usage:
    hotel-ads collect                              # current month, all clients, all platforms
    hotel-ads collect --period current-week --client=Havet
    hotel-ads collect --weeks=4 --platform=meta    # last 4 completed weeks
    hotel-ads collect --dry-run                    # fetch and aggregate, store nothing
    hotel-ads collect --month 2025-09 --platform=google
    hotel-ads collect --week-start 2025-10-06      # must be a Monday; or --iso-week 2025-W41
    hotel-ads report --client=Belmonte --period current-month [--csv out.csv]
    hotel-ads serve --port 8000
"""

import argparse
import logging
import sys
from datetime import timedelta
from typing import Optional

from .config import GOOGLE_ADS_CREDENTIALS, Settings
from .errors import ConfigError, HotelAdsError, InvalidPeriodError
from .logging_config import setup_logging
from .services import periods
from .services.aggregator import PeriodTotals
from .services.collector import Collector, make_fetcher
from .services.funnel import CampaignRow
from .services.report import print_report, write_campaigns_csv
from .services.smart_cache import SmartCache
from .services.store import SummaryStore

logger = logging.getLogger(__name__)

PLATFORM_CHOICES = ("meta", "google", "all")


def _add_period_arguments(parser: argparse.ArgumentParser, weeks: bool = False):
    group = parser.add_mutually_exclusive_group()
    group.add_argument("--period", default=periods.CURRENT_MONTH, choices=periods.INTENTS)
    group.add_argument("--month", default=None, metavar="YYYY-MM", help="An explicit calendar month")
    group.add_argument("--week-start", default=None, metavar="YYYY-MM-DD",
                       help="An explicit week; must be a Monday")
    group.add_argument("--iso-week", default=None, metavar="YYYY-Www", help="An explicit ISO week")
    if weeks:
        group.add_argument("--weeks", type=int, default=None,
                           help="The last N completed weeks")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="hotel-ads", description="Hotel ads funnel reporting")
    sub = parser.add_subparsers(dest="command", required=True)

    collect = sub.add_parser("collect", help="Fetch, aggregate and store period summaries")
    _add_period_arguments(collect, weeks=True)
    collect.add_argument("--client", default=None, help="Only clients whose name contains this")
    collect.add_argument("--platform", default="all", choices=PLATFORM_CHOICES)
    collect.add_argument("--dry-run", action="store_true", help="Do not write to the database")

    report = sub.add_parser("report", help="Print one client's totals for a period")
    report.add_argument("--client", required=True)
    _add_period_arguments(report)
    report.add_argument("--platform", default="meta", choices=("meta", "google"))
    report.add_argument("--force-refresh", action="store_true", help="Bypass the smart cache")
    report.add_argument("--csv", default=None, help="Also write the campaign breakdown to this CSV")

    serve = sub.add_parser("serve", help="Run the read-only metrics API")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)

    return parser


def _target_periods(args, today) -> list[periods.Period]:
    if getattr(args, "weeks", None) is not None:
        return periods.recent_weeks(args.weeks, today)
    if args.month:
        return [periods.parse_month(args.month, today)]
    if args.week_start:
        return [periods.week_starting(args.week_start, today)]
    if args.iso_week:
        return [periods.parse_iso_week(args.iso_week, today)]
    return [periods.resolve(args.period, today)]


def _platforms(choice: str, settings: Settings) -> list[str]:
    if choice == "meta":
        return ["meta"]
    if choice == "google":
        settings.require(*GOOGLE_ADS_CREDENTIALS)
        return ["google"]
    if settings.has_google_ads:
        return ["meta", "google"]
    logger.warning("Google Ads credentials not configured; collecting Meta only")
    return ["meta"]


def _open_store(settings: Settings) -> tuple[SummaryStore, Settings]:
    store = SummaryStore(settings.DATABASE_URL)
    store.create_all()
    return store, settings.with_overrides(store.get_settings())


def cmd_collect(args, settings: Settings) -> int:
    store, settings = _open_store(settings)
    platforms = _platforms(args.platform, settings)

    today = periods.today_in(settings.REPORTING_TIMEZONE)
    targets = _target_periods(args, today)

    clients = store.list_clients(args.client)
    if not clients:
        print(f"No clients found{f' matching {args.client!r}' if args.client else ''}.")
        return 1 if args.client else 0

    print(f"Collecting {', '.join(str(p) for p in targets)} for {len(clients)} client(s) "
          f"on {', '.join(platforms)}{' [DRY RUN]' if args.dry_run else ''}")

    collector = Collector(store, make_fetcher(settings), request_delay=settings.REQUEST_DELAY_SECONDS)
    result = collector.collect(clients, targets, platforms, dry_run=args.dry_run)

    print("\nUnit status:")
    for unit in result.units:
        if unit.ok:
            print(f"  {unit.client_name} / {unit.platform} / {unit.period_id}: OK "
                  f"({unit.totals.campaign_count} campaigns)")
        elif unit.needs_reauth:
            print(f"  {unit.client_name} / {unit.platform} / {unit.period_id}: NEEDS RE-AUTH - {unit.error}")
        else:
            print(f"  {unit.client_name} / {unit.platform} / {unit.period_id}: ERROR - {unit.error}")

    print(f"\n{len(result.succeeded)} succeeded, {len(result.failed)} failed")
    return 0


def cmd_report(args, settings: Settings) -> int:
    store, settings = _open_store(settings)
    if args.platform == "google":
        settings.require(*GOOGLE_ADS_CREDENTIALS)

    clients = store.list_clients(args.client)
    if not clients:
        print(f"No client matching {args.client!r}.")
        return 1

    exact = [c for c in clients if c.name.lower() == args.client.strip().lower()]
    if len(exact) == 1:
        clients = exact
    if len(clients) > 1:
        print(f"{len(clients)} clients match {args.client!r}; be more specific:")
        for match in clients:
            print(f"  {match.name}")
        return 1

    client = clients[0]
    period = _target_periods(args, periods.today_in(settings.REPORTING_TIMEZONE))[0]
    cache = SmartCache(store, make_fetcher(settings),
                       max_age=timedelta(hours=settings.CACHE_MAX_AGE_HOURS))
    result = cache.get(client, period, args.platform, force_refresh=args.force_refresh)

    totals = PeriodTotals(**result.data.get("stats", {}))
    campaigns = [CampaignRow.from_dict(c) for c in result.data.get("campaigns", [])]

    print_report(totals, title=f"{client.name} - {args.platform} - {period} [{result.source}]",
                 campaigns=campaigns)
    if args.csv:
        path = write_campaigns_csv(campaigns, args.csv)
        print(f"\nSaved {len(campaigns)} campaigns to {path}")
    return 0


def cmd_serve(args, settings: Settings) -> int:
    import uvicorn

    from .main import create_app

    uvicorn.run(create_app(settings), host=args.host, port=args.port)
    return 0


COMMANDS = {"collect": cmd_collect, "report": cmd_report, "serve": cmd_serve}


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        settings = Settings.from_env()
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    setup_logging(settings.LOG_LEVEL, settings.LOG_FORMAT)

    try:
        return COMMANDS[args.command](args, settings)
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        print("Please set the missing variables in your environment or .env file.", file=sys.stderr)
        return 1
    except InvalidPeriodError as e:
        print(f"Invalid period: {e}", file=sys.stderr)
        return 1
    except HotelAdsError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except Exception:
        logger.exception("Unhandled error")
        return 1


if __name__ == "__main__":
    sys.exit(main())
