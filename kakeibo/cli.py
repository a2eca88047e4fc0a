#!/usr/bin/env python3
"""Command-line access to the kakeibo ledger.

Exit codes: 0 on success, 1 for invalid input, 2 for configuration errors,
3 when the database rejects a write.
"""

from __future__ import annotations

import argparse
import sys
from decimal import Decimal
from pathlib import Path
from typing import Dict, List, Optional

from .config import configure_logging
from .db import LedgerDatabase
from .errors import ConfigError, InvalidInputError, PersistenceError
from .formatting import format_currency, format_percentage, parse_amount
from .processor import CommandProcessor
from .reports import DateRange, balances_frame, spending_by_category

EXIT_OK = 0
EXIT_INVALID_INPUT = 1
EXIT_CONFIG_ERROR = 2
EXIT_PERSISTENCE_ERROR = 3


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='kakeibo', description=__doc__.splitlines()[0])
    parser.add_argument('--db', type=Path, default=None, help='Path to the sqlite database')
    parser.add_argument('-v', '--verbose', action='store_true', help='Log at INFO level')
    sub = parser.add_subparsers(dest='command', required=True)

    sub.add_parser('init', help='Create the database and seed default categories')

    funds = sub.add_parser('add-funds', help='Allocate new income across categories')
    funds.add_argument('amount')

    spend = sub.add_parser('spend', help='Record an expense against a category')
    spend.add_argument('category')
    spend.add_argument('amount')
    spend.add_argument('-d', '--description', default='')

    sub.add_parser('balances', help='Show category balances')

    report = sub.add_parser('report', help='Show transactions and totals')
    report.add_argument(
        '--range',
        dest='date_range',
        choices=[r.value for r in DateRange],
        default=DateRange.MONTH.value,
    )

    limit = sub.add_parser('set-limit', help='Change category percentages, e.g. Needs=25 Savings=55')
    limit.add_argument('assignments', nargs='+', metavar='CATEGORY=PERCENT')

    overflow = sub.add_parser('set-overflow', help="Change where a category overflows ('none' for terminal)")
    overflow.add_argument('category')
    overflow.add_argument('target')

    return parser


def _parse_assignments(assignments: List[str]) -> Dict[str, Decimal]:
    changes: Dict[str, Decimal] = {}
    for item in assignments:
        name, sep, percent = item.partition('=')
        if not sep or not name.strip():
            raise InvalidInputError(f"Expected CATEGORY=PERCENT, got {item!r}")
        changes[name.strip()] = parse_amount(percent.strip().rstrip('%'))
    return changes


def _print_balances(processor: CommandProcessor) -> None:
    df = balances_frame(processor.categories(), processor.balances())
    for row in df.itertuples(index=False):
        overflow = f" -> {row[2]}" if row[2] else ''
        print(
            f"{row[0]:<12} {format_percentage(row[1]):>6}{overflow:<15} "
            f"allocated {format_currency(row[3]):>16}  spent {format_currency(row[4]):>16}  "
            f"available {format_currency(row[5]):>16}"
        )


def _print_report(processor: CommandProcessor, date_range: DateRange) -> None:
    transactions = processor.transactions(date_range)
    print(f"Transactions ({date_range.label}): {len(transactions)}")
    for row in transactions.itertuples(index=False):
        absorbed = f" (from {row[5]})" if row[5] != row[2] else ''
        print(f"  {row[1]:%Y-%m-%d %H:%M}  {row[2]:<12} {format_currency(row[3]):>16}{absorbed}  {row[4]}")
    by_category = spending_by_category(transactions)
    if not by_category.empty:
        print('Spending by category:')
        for name, charged, absorbed in by_category.itertuples():
            print(f"  {name:<12} charged {format_currency(charged):>16}  absorbed {format_currency(absorbed):>16}")
    stats = processor.summary()
    print(f"Total funds added: {format_currency(stats.total_funds_added)}")
    print(f"Total spent:       {format_currency(stats.total_spent)}")


def run(args: argparse.Namespace) -> int:
    db = LedgerDatabase(args.db)
    db.init_db()
    processor = CommandProcessor(db)

    if args.command == 'init':
        print(f"Database ready at {db.db_path}")
    elif args.command == 'add-funds':
        result = processor.add_funds(parse_amount(args.amount))
        print(
            f"Added {format_currency(result.fund.amount)} in funds "
            f"(rolled over {format_currency(result.total_rollover)})"
        )
    elif args.command == 'spend':
        result = processor.add_expense(args.category, parse_amount(args.amount), args.description)
        graph = processor.categories()
        txn = result.transaction
        message = f"Added {format_currency(txn.amount)} expense to {graph.get(txn.category_id).name}"
        if txn.overflow_from_id is not None:
            message += f" (absorbed by {graph.get(txn.overflow_from_id).name})"
        print(message)
        for warning in result.warnings:
            print(
                f"Warning: {graph.get(warning.category_id).name} is overspent by "
                f"{format_currency(warning.shortfall)}",
                file=sys.stderr,
            )
    elif args.command == 'balances':
        _print_balances(processor)
    elif args.command == 'report':
        _print_report(processor, DateRange(args.date_range))
    elif args.command == 'set-limit':
        changes = _parse_assignments(args.assignments)
        processor.update_categories(
            {name: {'limit_percentage': percent} for name, percent in changes.items()}
        )
        for name, percent in changes.items():
            print(f"Updated {name} limit to {format_percentage(percent)}")
    elif args.command == 'set-overflow':
        target = None if args.target.lower() == 'none' else args.target
        processor.update_categories({args.category: {'overflow_to': target}})
        print(f"{args.category} now overflows to {target or 'nothing (terminal)'}")
    return EXIT_OK


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging('INFO' if args.verbose else None)
    try:
        return run(args)
    except InvalidInputError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_INVALID_INPUT
    except ConfigError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return EXIT_CONFIG_ERROR
    except PersistenceError as exc:
        print(f"Database error: {exc}", file=sys.stderr)
        return EXIT_PERSISTENCE_ERROR


if __name__ == "__main__":
    raise SystemExit(main())
