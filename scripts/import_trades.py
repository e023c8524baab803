#!/usr/bin/env python3
"""Import a Deribit or Coincall CSV export into the structure ledger.

Usage:
    python scripts/import_trades.py trades.csv --exchange deribit --structure <position_id>
    python scripts/import_trades.py trades.csv --exchange coincall --unprocessed --client "Fund A"
    python scripts/import_trades.py trades.csv --backfill

Every non-empty record is written to the transaction log first.  Option rows
are then appended to a saved structure (--structure), parked as unprocessed
trades (--unprocessed), or used to fill in missing leg expiries (--backfill).
Without a target only the audit log and a duplicate report are produced.
"""

import argparse
import csv
import os
import sys
from pathlib import Path
from typing import Dict, List

from dotenv import load_dotenv
from loguru import logger

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from tradebook.database.db_manager import DatabaseManager
from tradebook.database.scope import ClientScope
from tradebook.importing.duplicates import filter_previously_imported
from tradebook.importing.rows import BACKFILL_MODE, IMPORT_MODE, build_log_entries, map_rows
from tradebook.positions import (
    append_trades_to_structure,
    backfill_leg_expiries,
    save_transaction_logs,
    save_unprocessed_trades,
)
from tradebook.venues.instruments import DEFAULT_EXCHANGE, SUPPORTED_EXCHANGES


def read_csv_rows(path: Path) -> List[Dict[str, str]]:
    with path.open(newline="", encoding="utf-8-sig") as handle:
        return [dict(row) for row in csv.DictReader(handle)]


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Import exchange CSV trades into the structure ledger")
    parser.add_argument("csv_path", type=Path, help="CSV export to import")
    parser.add_argument(
        "--exchange",
        choices=SUPPORTED_EXCHANGES,
        default=DEFAULT_EXCHANGE,
        help=f"Exchange the export came from (default: {DEFAULT_EXCHANGE})",
    )
    target = parser.add_mutually_exclusive_group()
    target.add_argument("--structure", help="Append option rows to this saved structure")
    target.add_argument("--unprocessed", action="store_true", help="Park option rows as unprocessed trades")
    target.add_argument("--backfill", action="store_true", help="Fill missing leg expiries from the export")
    parser.add_argument("--client", help="Client name the rows belong to")
    parser.add_argument("--created-by", help="User recorded on audit and unprocessed rows")
    parser.add_argument(
        "--allow-allocations",
        action="store_true",
        help="Keep rows whose ids were imported before (split executions)",
    )
    parser.add_argument("--db", help="Database URL (default: DATABASE_URL or sqlite:///tradebook.db)")
    parser.add_argument("--verbose", action="store_true", help="Enable verbose logging")
    return parser.parse_args(argv)


def run(args: argparse.Namespace, db: DatabaseManager) -> int:
    scope = ClientScope(client_name=args.client)
    raw_rows = read_csv_rows(args.csv_path)
    logger.info(f"Read {len(raw_rows)} records from {args.csv_path}")

    logged = save_transaction_logs(
        db, build_log_entries(raw_rows, args.exchange), client_scope=scope, created_by=args.created_by,
    )
    if not logged.ok:
        logger.error(f"Failed to write transaction log: {logged.error}")
        return 1
    logger.info(f"Transaction log: {logged.inserted} new, {logged.skipped} already recorded")

    mode = BACKFILL_MODE if args.backfill else IMPORT_MODE
    mapped = map_rows(raw_rows, args.exchange, mode=mode)
    if mapped.excluded_rows:
        logger.warning(f"{len(mapped.excluded_rows)} rows are not {mapped.exchange} options and were skipped")

    if args.backfill:
        result = backfill_leg_expiries(db, mapped.rows, client_scope=scope)
        if not result.ok:
            logger.error(f"Expiry backfill failed: {result.error}")
            return 1
        logger.info(f"Expiry backfill: {result.updated} legs updated, {result.skipped} skipped")
        return 0

    checked = filter_previously_imported(
        db, mapped.rows, client_scope=scope, allow_allocations=args.allow_allocations,
    )
    if not checked.ok:
        logger.error(f"Duplicate check failed: {checked.error}")
        return 1
    if checked.duplicates:
        logger.warning(f"Skipping {len(checked.duplicates)} rows imported earlier")
    rows = checked.filtered

    if args.structure:
        result = append_trades_to_structure(db, args.structure, rows, client_scope=scope)
        if not result.ok:
            logger.error(f"Failed to update saved structure {args.structure}: {result.error}")
            return 1
        logger.info(f"Appended {result.inserted} legs to structure {args.structure}")
    elif args.unprocessed:
        result = save_unprocessed_trades(db, rows, client_scope=scope, created_by=args.created_by)
        if not result.ok:
            logger.error(f"Failed to save unprocessed trades: {result.error}")
            return 1
        logger.info(f"Parked {result.inserted} unprocessed trades")
    else:
        logger.info(f"{len(rows)} new option rows ready; pass --structure or --unprocessed to store them")
    return 0


def main(argv=None) -> int:
    args = parse_args(argv)

    if args.verbose:
        logger.remove()
        logger.add(sys.stderr, level="DEBUG")

    load_dotenv()

    if not args.csv_path.is_file():
        logger.error(f"CSV file not found: {args.csv_path}")
        return 1

    db = DatabaseManager(db_url=args.db or os.getenv("DATABASE_URL"))
    db.initialize_database()
    try:
        return run(args, db)
    finally:
        db.dispose()


if __name__ == "__main__":
    sys.exit(main())
