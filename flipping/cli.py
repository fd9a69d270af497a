"""
Command-line interface for the trade store.

Provides print utilities and CLI entry point.
"""
from __future__ import annotations

import argparse
import logging
import sqlite3
import sys
from pathlib import Path
from typing import List, Optional

from flipping.database.errors import StorageError
from flipping.database.legacy_converter import ConversionReport
from flipping.logging_setup import setup_logging
from flipping.models import AccountData, FlippingItem
from flipping.trade_persister import TradePersister

logger = logging.getLogger(__name__)


def print_report(report: ConversionReport) -> None:
    """Pretty-print the outcome of a legacy conversion."""
    if report.converted_count == 0 and not report.skipped_files:
        print("Nothing to convert.")
        return

    for name in report.converted_accounts:
        print(f"  converted  {name}")
    if report.account_wide_converted:
        print("  converted  (account-wide data)")
    for name in report.skipped_files:
        print(f"  skipped    {name}")


def print_account(name: str, data: AccountData) -> None:
    """Pretty-print a summary of one account."""
    print(f"\n{'='*60}")
    print(f" {name}")
    print(f"{'='*60}")

    offers = sum(len(item.history) for item in data.trades)
    print(f"  Items: {len(data.trades)}   Offers: {offers}   "
          f"Recipe groups: {len(data.recipe_flip_groups)}")
    if data.last_stored_at:
        print(f"  Last stored: {data.last_stored_at:%Y-%m-%d %H:%M:%S} UTC")

    for item in data.trades:
        profit = FlippingItem.get_profit(item.history)
        print(f"  {item.item_id:>6} {item.item_name}: {len(item.history)} offers, "
              f"profit {profit:,}")

    for slot, offer in sorted(data.last_offers.items()):
        side = "buy" if offer.is_buy else "sell"
        print(f"  slot {slot}: {side} {offer.current_quantity_in_trade} x "
              f"{offer.item_id} @ {offer.price:,} ({offer.state.name})")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="flipping-store",
        description="Flipping trade store - migrate, convert and inspect trade history",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m flipping migrate                  # Bring the schema up to date
  python -m flipping convert                  # Convert legacy JSON documents
  python -m flipping accounts                 # List stored accounts
  python -m flipping show Zez                 # Summarise one account
  python -m flipping export Zez trades.csv    # Export an account's trades
        """
    )
    parser.add_argument("--data-dir", type=Path, default=None,
                        help="Data directory (default: ~/.runelite/flipping)")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("migrate", help="Apply pending schema migrations")
    sub.add_parser("convert", help="Convert legacy JSON documents (runs migrations first)")
    sub.add_parser("accounts", help="List stored account names")

    show = sub.add_parser("show", help="Show a summary of an account")
    show.add_argument("name", help="Account display name")

    export = sub.add_parser("export", help="Export an account's trades to CSV")
    export.add_argument("name", help="Account display name")
    export.add_argument("output", type=Path, help="CSV file to write")
    export.add_argument("--interval", default="All", help="Interval label for the header")

    return parser


def run(argv: Optional[List[str]] = None) -> int:
    """Run the CLI and return a process exit code."""
    args = build_parser().parse_args(argv)

    persister = TradePersister(args.data_dir)
    setup_logging(debug=args.debug, log_dir=persister.config.log_dir)

    with persister:
        try:
            if args.command == "migrate":
                version = persister.migrator.migrate()
                print(f"Schema is at v{version}")
                return 0

            report = persister.setup()

            if args.command == "convert":
                print_report(report)
            elif args.command == "accounts":
                for name in persister.account_names():
                    print(name)
            elif args.command == "show":
                if not persister.accounts.exists(args.name):
                    print(f"No account named {args.name!r}", file=sys.stderr)
                    return 1
                print_account(args.name, persister.load_account(args.name))
            elif args.command == "export":
                data = persister.load_account(args.name)
                rows = persister.export_to_csv(args.output, data.trades, args.interval)
                print(f"Wrote {rows} offers to {args.output}")
        except (StorageError, sqlite3.Error, OSError) as exc:
            logger.error(f"{exc}")
            print(f"Error: {exc}", file=sys.stderr)
            return 1

    return 0


def cli_main() -> None:
    """Command-line interface for the trade store."""
    sys.exit(run())
