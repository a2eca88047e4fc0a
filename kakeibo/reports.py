"""Read-only reporting over committed ledger state.

Reports never take the command processor's lock: each query reads committed
rows only, so a report can never see half of an allocation or an expense.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Dict, Iterable, List, Optional

import pandas as pd

from .db import LedgerDatabase
from .graph import CategoryGraph
from .ledger import Ledger
from .models import HUNDRED, ZERO, Category, CategoryBalance


class DateRange(Enum):
    TODAY = 'today'
    LAST_7_DAYS = 'last-7-days'
    MONTH = 'month'
    YEAR = 'year'
    FIVE_YEARS = 'five-years'

    @property
    def label(self) -> str:
        return {
            DateRange.TODAY: 'Today',
            DateRange.LAST_7_DAYS: 'Last 7 Days',
            DateRange.MONTH: 'This Month',
            DateRange.YEAR: 'This Year',
            DateRange.FIVE_YEARS: 'Last 5 Years',
        }[self]

    def start(self, now: datetime) -> datetime:
        """Earliest timestamp included in the range ending at ``now``."""
        midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
        if self is DateRange.TODAY:
            return midnight
        if self is DateRange.LAST_7_DAYS:
            return now - timedelta(days=7)
        if self is DateRange.MONTH:
            return midnight.replace(day=1)
        if self is DateRange.YEAR:
            return midnight.replace(month=1, day=1)
        try:
            return midnight.replace(year=midnight.year - 5)
        except ValueError:
            # 29 February in a non-leap year
            return midnight.replace(year=midnight.year - 5, day=28)


@dataclass(frozen=True)
class SummaryStats:
    total_funds_added: Decimal
    total_spent: Decimal
    categories: List[Category]
    balances: List[CategoryBalance]

    @property
    def total_available(self) -> Decimal:
        return sum((b.available for b in self.balances), ZERO)


def summary_stats(db: LedgerDatabase) -> SummaryStats:
    """Totals over all history plus the current configuration and balances."""
    total_funds, total_spent = db.totals()
    graph, ledger = db.load_snapshot()
    return SummaryStats(
        total_funds_added=total_funds,
        total_spent=total_spent,
        categories=graph.categories,
        balances=[ledger.balance(c.id) for c in graph],
    )


def transactions_in_range(
    db: LedgerDatabase,
    date_range: DateRange,
    now: Optional[datetime] = None,
) -> pd.DataFrame:
    now = now or datetime.now()
    return db.fetch_transactions(start=date_range.start(now), end=now)


def spending_by_category(transactions: pd.DataFrame) -> pd.DataFrame:
    """Totals per nominal category next to totals per absorbing category.

    Returns a DataFrame indexed by category name with ``Charged`` (what was
    nominally spent on the category) and ``Absorbed`` (what its balance
    actually paid) columns, both exact Decimals.
    """
    if transactions.empty:
        return pd.DataFrame(columns=['Charged', 'Absorbed'])
    charged: Dict[str, Decimal] = {}
    absorbed: Dict[str, Decimal] = {}
    for nominal, absorber, amount in zip(
        transactions['Category'], transactions['Absorbed By'], transactions['Amount']
    ):
        charged[nominal] = charged.get(nominal, ZERO) + amount
        absorbed[absorber] = absorbed.get(absorber, ZERO) + amount
    names = sorted(set(charged) | set(absorbed))
    return pd.DataFrame(
        {
            'Charged': [charged.get(name, ZERO) for name in names],
            'Absorbed': [absorbed.get(name, ZERO) for name in names],
        },
        index=pd.Index(names, name='Category'),
    )


def balances_frame(graph: CategoryGraph, ledger: Ledger) -> pd.DataFrame:
    """One row per category in configuration order, ready for display."""
    rows = []
    for category in graph:
        balance = ledger.balance(category.id)
        target = graph.get(category.overflow_target).name if category.overflow_target in graph else ''
        rows.append({
            'Category': category.name,
            'Limit %': category.limit_percentage,
            'Overflow To': target,
            'Allocated': balance.allocated,
            'Spent': balance.spent,
            'Available': balance.available,
        })
    return pd.DataFrame(rows, columns=['Category', 'Limit %', 'Overflow To', 'Allocated', 'Spent', 'Available'])


def allocation_total_ok(categories: Iterable[Category]) -> bool:
    """True when the configured percentages add up to exactly 100."""
    return sum((c.limit_percentage for c in categories), ZERO) == HUNDRED
