"""Builds the immutable records and row batches that persistence commits."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional, Tuple

from .models import CategoryBalance, Fund, Transaction


@dataclass(frozen=True)
class MutationBatch:
    """Everything one command writes, applied all-or-nothing."""

    balances: Tuple[CategoryBalance, ...]
    fund: Optional[Fund] = None
    transaction: Optional[Transaction] = None

    def with_record_id(self, record_id: int) -> 'MutationBatch':
        if self.fund is not None:
            return replace(self, fund=replace(self.fund, id=record_id))
        if self.transaction is not None:
            return replace(self, transaction=replace(self.transaction, id=record_id))
        return self


class TransactionRecorder:
    """Creates Fund and Transaction records for ledger-affecting events."""

    def record_fund(self, amount: Decimal, now: datetime, rollover_swept: Decimal) -> Fund:
        return Fund(amount=amount, added_at=now, rollover_swept=rollover_swept)

    def record_expense(
        self,
        category_id: int,
        amount: Decimal,
        description: Optional[str],
        now: datetime,
        absorber_id: int,
    ) -> Transaction:
        # overflow_from_id is only set when another category paid
        overflow_from = absorber_id if absorber_id != category_id else None
        return Transaction(
            category_id=category_id,
            amount=amount,
            description=(description or '').strip(),
            created_at=now,
            overflow_from_id=overflow_from,
        )

    def batch(
        self,
        balances: Iterable[CategoryBalance],
        fund: Optional[Fund] = None,
        transaction: Optional[Transaction] = None,
    ) -> MutationBatch:
        if (fund is None) == (transaction is None):
            raise ValueError("A batch carries exactly one fund or one transaction")
        ordered = tuple(sorted(balances, key=lambda b: b.category_id))
        return MutationBatch(balances=ordered, fund=fund, transaction=transaction)
