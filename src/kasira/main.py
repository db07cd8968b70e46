"""Command-line entry point.

The CLI only parses arguments, builds the container and prints results; all
business rules live in the services.
"""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Callable, Optional, Sequence

from kasira.application.container import AppContainer, build_container
from kasira.config import get_app_paths, load_settings
from kasira.domain.errors import AppError
from kasira.logging_config import setup_logging
from kasira.services.account_service import require_action

log = logging.getLogger(__name__)


def _owner(container: AppContainer, args: argparse.Namespace):
    user = container.accounts.login(args.owner)
    require_action(user, "view_reports")
    return user


def run_report(container: AppContainer, args: argparse.Namespace) -> int:
    owner = _owner(container, args)
    _txs, stats = container.reporting.financial_report(owner.id, args.branch, args.start, args.end)
    print(f"Orders:        {stats.order_count}")
    print(f"Revenue:       {stats.revenue:,.2f}")
    print(f"COGS:          {stats.cogs:,.2f}")
    print(f"Gross profit:  {stats.gross_profit:,.2f}")
    print(f"Discounts:     {stats.total_discount:,.2f}")
    print(f"Net profit:    {stats.net_profit:,.2f}")
    print(f"Tax (PPN):     {stats.total_tax:,.2f}")
    if args.daily:
        for point in container.reporting.daily_report(owner.id, args.branch, args.start, args.end):
            print(f"{point.day}  revenue={point.revenue:,.2f}  profit={point.profit:,.2f}")
    return 0


def run_compare(container: AppContainer, args: argparse.Namespace) -> int:
    owner = _owner(container, args)
    for row in container.reporting.branch_comparison(owner.id, args.start, args.end):
        print(
            f"{row.branch_name:<24} orders={row.order_count:<5} revenue={row.revenue:,.2f} "
            f"net={row.net_profit:,.2f} best={row.best_seller} trend={row.trend}"
        )
    return 0


def run_export_csv(container: AppContainer, args: argparse.Namespace) -> int:
    owner = _owner(container, args)
    txs, _stats = container.reporting.financial_report(owner.id, args.branch, args.start, args.end)
    count = container.reporting.export_csv(args.output, txs)
    print(f"Wrote {count} rows to {args.output}")
    return 0


def run_export_excel(container: AppContainer, args: argparse.Namespace) -> int:
    owner = _owner(container, args)
    container.reporting.export_excel(args.output, owner.id, args.start, args.end)
    print(f"Wrote workbook to {args.output}")
    return 0


def run_low_stock(container: AppContainer, args: argparse.Namespace) -> int:
    owner = _owner(container, args)
    for p in container.catalog.low_stock_for_owner(owner, args.branch, args.threshold):
        print(f"{p.id:<16} {p.name:<30} stock={p.stock}")
    return 0


def run_expire_payments(container: AppContainer, args: argparse.Namespace) -> int:
    expired = container.settlement.expire_stale()
    print(f"Expired {len(expired)} pending transaction(s)")
    return 0


def run_insights(container: AppContainer, args: argparse.Namespace) -> int:
    owner = _owner(container, args)
    _txs, stats = container.reporting.financial_report(owner.id, None, args.start, args.end)
    branches = container.reporting.branch_comparison(owner.id, args.start, args.end)
    products = sum(len(container.catalog.list_products(b.branch_id)) for b in branches)
    period = f"{args.start or '-'} s/d {args.end or '-'}"
    print(container.insights.analyse(period, stats, branches, products))
    return 0


COMMANDS: dict[str, Callable[[AppContainer, argparse.Namespace], int]] = {
    "report": run_report,
    "compare": run_compare,
    "export-csv": run_export_csv,
    "export-excel": run_export_excel,
    "low-stock": run_low_stock,
    "expire-payments": run_expire_payments,
    "insights": run_insights,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="kasira", description="KASIRA point-of-sale back office tools.")
    parser.add_argument("--db", type=Path, default=None, help="SQLite database (defaults to the app data dir).")
    parser.add_argument("-v", "--verbose", action="store_true", help="Echo warnings and errors to stderr.")
    sub = parser.add_subparsers(dest="command", required=True, title="commands")

    def windowed(name: str, help_text: str, with_branch: bool = True) -> argparse.ArgumentParser:
        p = sub.add_parser(name, help=help_text)
        p.add_argument("--owner", required=True, help="Owner account email.")
        p.add_argument("--start", default=None, help="Window start (YYYY-MM-DD or ISO datetime).")
        p.add_argument("--end", default=None, help="Window end, inclusive.")
        if with_branch:
            p.add_argument("--branch", default=None, help="Branch id (default: all branches).")
        return p

    report = windowed("report", "Print financial statistics.")
    report.add_argument("--daily", action="store_true", help="Also print the per-day series.")
    windowed("compare", "Compare branch performance.", with_branch=False)
    windowed("export-csv", "Export successful transactions as CSV.").add_argument("--output", type=Path, required=True)
    windowed("export-excel", "Export an Excel workbook.", with_branch=False).add_argument(
        "--output", type=Path, required=True
    )
    windowed("insights", "Ask the insight service for advice.", with_branch=False)

    low = sub.add_parser("low-stock", help="List products below the stock threshold.")
    low.add_argument("--owner", required=True, help="Owner account email.")
    low.add_argument("--branch", default=None)
    low.add_argument("--threshold", type=int, default=None)

    sub.add_parser("expire-payments", help="Expire pending payments older than the configured limit.")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    paths = get_app_paths()
    settings = load_settings()
    setup_logging(paths.logs_dir, level=logging.INFO, console=args.verbose)

    container = build_container(args.db or paths.db_path, settings)
    try:
        return COMMANDS[args.command](container, args)
    except AppError as e:
        log.error("command_failed command=%s error=%s", args.command, e)
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
