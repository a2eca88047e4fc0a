"""Expense resolution along the overflow chain.

The whole expense is taken from exactly one category: the first one in the
chain that can cover it. When nothing can, the terminal category takes it
anyway and goes negative, so the shortfall stays visible in the ledger.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Sequence, Tuple

from .formatting import AmountLike, require_positive
from .graph import CategoryGraph
from .ledger import Ledger
from .models import Transaction
from .recorder import MutationBatch, TransactionRecorder

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Overspent:
    """Warning attached to an expense that drove the terminal category negative."""

    category_id: int
    amount: Decimal
    available_before: Decimal
    available_after: Decimal

    @property
    def shortfall(self) -> Decimal:
        return -self.available_after

    def __str__(self) -> str:
        return (
            f"Overspent: category {self.category_id} is short by {self.shortfall} "
            f"after a charge of {self.amount}"
        )


@dataclass(frozen=True)
class ExpenseResult:
    transaction: Transaction
    ledger: Ledger
    absorber_id: int
    chain: Tuple[int, ...]
    batch: MutationBatch
    warnings: Tuple[Overspent, ...] = ()

    @property
    def overspent(self) -> bool:
        return bool(self.warnings)


def find_absorber(chain: Sequence[int], amount: Decimal, ledger: Ledger) -> int:
    """First category in ``chain`` able to cover ``amount``, else the last one."""
    for category_id in chain:
        if ledger.available(category_id) >= amount:
            return category_id
    return chain[-1]


def apply(
    category_id: int,
    amount: AmountLike,
    description: Optional[str],
    now: datetime,
    graph: CategoryGraph,
    ledger: Ledger,
    recorder: Optional[TransactionRecorder] = None,
) -> ExpenseResult:
    """Charge ``amount`` against ``category_id`` using first-fit overflow.

    Raises:
        NonPositiveAmountError: If ``amount`` is zero or negative.
        UnknownCategoryError: If ``category_id`` is not configured.
        ConfigError: If the overflow chain has a cycle or no terminal.
    """
    amount = require_positive(amount)
    chain = graph.chain_from(category_id)

    absorber = find_absorber(chain, amount, ledger)
    before = ledger.balance(absorber)
    after = before.charge(amount)

    warnings: List[Overspent] = []
    if after.available < 0:
        warning = Overspent(
            category_id=absorber,
            amount=amount,
            available_before=before.available,
            available_after=after.available,
        )
        warnings.append(warning)
        logger.warning(
            "%s overspent by %s (charged %s against %s)",
            graph.get(absorber).name, warning.shortfall, amount, graph.get(category_id).name,
        )

    recorder = recorder or TransactionRecorder()
    transaction = recorder.record_expense(category_id, amount, description, now, absorber)
    batch = recorder.batch([after], transaction=transaction)
    return ExpenseResult(
        transaction=transaction,
        ledger=ledger.with_balances([after]),
        absorber_id=absorber,
        chain=tuple(chain),
        batch=batch,
        warnings=tuple(warnings),
    )
