"""Serialized command processing over the ledger store.

Allocation and expense resolution both read a full snapshot and compute
their writes from it, so two of them running side by side could each start
from stale balances. ``CommandProcessor`` runs every mutating command as
read snapshot, compute, commit inside one sqlite write transaction, which
serializes it against other processes on the same file, and under a lock
that serializes threads sharing this processor.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import replace
from datetime import datetime
from decimal import Decimal
from typing import Dict, Mapping, Optional, Union

import pandas as pd

from .allocation import AllocationResult, allocate, compute_rollover
from .db import LedgerDatabase
from .errors import InvalidInputError
from .expenses import ExpenseResult, apply
from .formatting import AmountLike, to_decimal
from .graph import CategoryGraph
from .ledger import Ledger
from .models import Category
from .recorder import TransactionRecorder
from .reports import DateRange, SummaryStats, summary_stats, transactions_in_range

logger = logging.getLogger(__name__)

CategoryRef = Union[int, str]

# Sentinel for "leave the overflow target unchanged"
_UNCHANGED = object()


class CommandProcessor:
    """Single entry point for every ledger-mutating command."""

    def __init__(self, db: Optional[LedgerDatabase] = None) -> None:
        self.db = db or LedgerDatabase()
        self.recorder = TransactionRecorder()
        self._lock = threading.Lock()

    # Commands ----------------------------------------------------------------

    def add_funds(self, amount: AmountLike, now: Optional[datetime] = None) -> AllocationResult:
        """Allocate a new income event and commit it."""
        with self._lock, self.db.transaction() as session:
            result = allocate(amount, now or datetime.now(), session.graph, session.ledger, self.recorder)
            batch = session.apply(result.batch)
        logger.info(
            "Added funds %s (rollover %s) as fund #%s",
            result.fund.amount, result.total_rollover, batch.fund.id,
        )
        return replace(result, fund=batch.fund, batch=batch)

    def add_expense(
        self,
        category: CategoryRef,
        amount: AmountLike,
        description: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> ExpenseResult:
        """Charge an expense to ``category`` (id or name) and commit it."""
        with self._lock, self.db.transaction() as session:
            graph = session.graph
            category_id = self._resolve(graph, category)
            result = apply(category_id, amount, description, now or datetime.now(), graph, session.ledger, self.recorder)
            batch = session.apply(result.batch)
        txn = batch.transaction
        logger.info(
            "Recorded expense #%s: %s on %s absorbed by %s",
            txn.id, txn.amount, graph.get(txn.category_id).name, graph.get(txn.absorbed_by).name,
        )
        return replace(result, transaction=txn, batch=batch)

    def update_categories(self, changes: Mapping[str, Mapping[str, object]]) -> CategoryGraph:
        """Edit percentages and overflow targets by category name.

        ``changes`` maps a category name to a dict with ``limit_percentage``
        and/or ``overflow_to`` (a category name, or None for the terminal).
        The edited graph must be acyclic, have one terminal and total 100%,
        otherwise nothing is saved.
        """
        with self._lock, self.db.transaction() as session:
            graph = session.graph
            edited: Dict[int, Category] = {c.id: c for c in graph}
            for name, fields in changes.items():
                category = graph.by_name(name)
                unknown = set(fields) - {'limit_percentage', 'overflow_to'}
                if unknown:
                    raise InvalidInputError(f"Unknown category fields: {', '.join(sorted(unknown))}")
                limit = fields.get('limit_percentage', category.limit_percentage)
                target_name = fields.get('overflow_to', _UNCHANGED)
                if target_name is _UNCHANGED:
                    target = category.overflow_target
                elif target_name is None:
                    target = None
                else:
                    target = graph.by_name(str(target_name)).id
                edited[category.id] = replace(
                    category, limit_percentage=to_decimal(limit), overflow_target=target
                )
            new_graph = CategoryGraph(edited.values())
            new_graph.validate(require_full_allocation=True)
            session.save_categories(new_graph.categories)
        logger.info("Saved configuration for %d categories", len(changes))
        return new_graph

    # Queries -----------------------------------------------------------------

    def categories(self) -> CategoryGraph:
        return self.db.load_graph()

    def balances(self) -> Ledger:
        return self.db.load_ledger()

    def transactions(self, date_range: DateRange = DateRange.MONTH, now: Optional[datetime] = None) -> pd.DataFrame:
        return transactions_in_range(self.db, date_range, now)

    def summary(self) -> SummaryStats:
        return summary_stats(self.db)

    def rollover_preview(self) -> Decimal:
        """Rollover the next ``add_funds`` would sweep, from committed state."""
        graph, ledger = self.db.load_snapshot()
        return compute_rollover(graph, ledger)

    @staticmethod
    def _resolve(graph: CategoryGraph, category: CategoryRef) -> int:
        if isinstance(category, int):
            return category
        return graph.by_name(category).id

