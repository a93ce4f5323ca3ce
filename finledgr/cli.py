#!/usr/bin/env python3
"""
Pattern Learning Script

Learns categorization patterns from a CSV export of categorized
transactions and stores them in the SQLite pattern store.

Usage:
    finledgr-learn --user USER_ID --csv transactions.csv [--db state.sqlite3]

CSV columns:
    id, description, category_id, and optionally category_name,
    category_type (income / expenditure / capital), category_color

Environment Variables:
    FINLEDGR_STATE_DB - Default database path
"""

import argparse
import asyncio
import csv
import sys
from pathlib import Path
from typing import List, Optional

from finledgr.models.patterns import CategorizedTransaction, CategoryRef, CategoryType
from finledgr.services.history_learning import learn_from_history
from finledgr.services.logging import logger
from finledgr.services.pattern_store import DB_PATH, SQLitePatternStore


def load_transactions(path: Path) -> List[CategorizedTransaction]:
    """Read categorized transactions from a CSV file."""
    transactions: List[CategorizedTransaction] = []
    with path.open("r", encoding="utf-8", newline="") as f:
        for i, row in enumerate(csv.DictReader(f), start=1):
            category = None
            if row.get("category_name") and row.get("category_id"):
                category = CategoryRef(
                    id=row["category_id"],
                    name=row["category_name"],
                    type=CategoryType((row.get("category_type") or "expenditure").lower()),
                    color=row.get("category_color") or None,
                )
            transactions.append(
                CategorizedTransaction(
                    id=row.get("id") or str(i),
                    description=row.get("description") or None,
                    category_id=row.get("category_id") or None,
                    category=category,
                )
            )
    return transactions


async def run(user_id: str, csv_path: Path, db_path: str) -> int:
    store = SQLitePatternStore(db_path=db_path)
    transactions = load_transactions(csv_path)

    categories = {t.category.id: t.category for t in transactions if t.category}
    for category in categories.values():
        await store.save_category(category)

    print(f"Learning patterns from {len(transactions)} transactions...")
    result = await learn_from_history(transactions, user_id, store)

    if result.error:
        print(result.error)
        return 0

    print(f"Patterns created: {result.patterns_created}")
    print(f"Patterns updated: {result.patterns_updated}")
    print(f"Patterns skipped: {result.patterns_skipped}")
    if result.top_patterns:
        print("\nTop patterns:")
        for p in result.top_patterns:
            print(f"  {p.pattern:<40} {p.category_name:<20} {p.confidence:>3}% ({p.match_count} matches)")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Learn categorization patterns from categorized transactions"
    )
    parser.add_argument("--user", required=True, help="User id that owns the patterns")
    parser.add_argument("--csv", required=True, type=Path, help="CSV file of categorized transactions")
    parser.add_argument("--db", default=DB_PATH, help="SQLite database path")
    args = parser.parse_args(argv)

    if not args.csv.exists():
        print(f"Error: {args.csv} not found", file=sys.stderr)
        return 1

    try:
        return asyncio.run(run(args.user, args.csv, args.db))
    except ValueError as exc:
        logger.error("Could not read %s: %s", args.csv, exc)
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
