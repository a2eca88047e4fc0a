"""Income allocation with rollover sweep.

A new income event starts a new period. Whatever is left in the spending
categories is swept into the terminal category, every ``spent`` counter is
reset, and the income is split by the configured percentages.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from .errors import AllocationTotalError
from .formatting import AmountLike, require_positive
from .graph import CategoryGraph
from .ledger import Ledger
from .models import HUNDRED, ZERO, CategoryBalance, Fund
from .recorder import MutationBatch, TransactionRecorder

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AllocationResult:
    fund: Fund
    ledger: Ledger
    total_rollover: Decimal
    batch: MutationBatch


def compute_rollover(graph: CategoryGraph, ledger: Ledger) -> Decimal:
    """Sum of positive balances left in the non-terminal categories.

    Overdrawn categories contribute nothing; their deficit is not netted
    against the other categories.
    """
    total = ZERO
    for category_id in sorted(graph.non_terminal_categories()):
        total += max(ledger.available(category_id), ZERO)
    return total


def allocate(
    amount: AmountLike,
    now: datetime,
    graph: CategoryGraph,
    ledger: Ledger,
    recorder: Optional[TransactionRecorder] = None,
) -> AllocationResult:
    """Distribute ``amount`` across every category and start a new period.

    Args:
        amount: Income to distribute; must be positive.
        now: Timestamp stored on the new Fund.
        graph: Category configuration snapshot.
        ledger: Current balances. Not modified.
        recorder: Builds the Fund record and the commit batch.

    Returns:
        AllocationResult holding the Fund, the new ledger and the batch to
        commit.

    Raises:
        NonPositiveAmountError: If ``amount`` is zero or negative.
        AllocationTotalError: If the percentages do not add up to 100.
        ConfigError: If there is no single terminal category.
    """
    amount = require_positive(amount)
    total_pct = graph.total_percentage()
    if total_pct != HUNDRED:
        raise AllocationTotalError(total_pct)

    terminal = graph.terminal_id
    total_rollover = compute_rollover(graph, ledger)

    updated: List[CategoryBalance] = []
    for category in graph:
        portion = amount * category.limit_percentage / HUNDRED
        if category.id == terminal:
            portion += total_rollover
        updated.append(ledger.balance(category.id).reset(portion))

    recorder = recorder or TransactionRecorder()
    fund = recorder.record_fund(amount, now, total_rollover)
    new_ledger = ledger.with_balances(updated)
    batch = recorder.batch(updated, fund=fund)

    logger.debug(
        "Allocated %s with rollover %s into %d categories",
        amount, total_rollover, len(updated),
    )
    return AllocationResult(fund=fund, ledger=new_ledger, total_rollover=total_rollover, batch=batch)
