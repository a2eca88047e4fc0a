"""Per-category balance state threaded through allocation and expenses."""

from __future__ import annotations

from decimal import Decimal
from typing import Dict, Iterable, Iterator

from .models import CategoryBalance


class Ledger:
    """Snapshot of every category balance.

    A ledger is never mutated in place. ``with_balances`` returns a new
    snapshot so that a computation that fails halfway leaves the caller's
    snapshot untouched.
    """

    def __init__(self, balances: Iterable[CategoryBalance] = ()) -> None:
        self._balances: Dict[int, CategoryBalance] = {}
        for balance in balances:
            self._balances[balance.category_id] = balance

    @classmethod
    def empty(cls, category_ids: Iterable[int]) -> 'Ledger':
        return cls(CategoryBalance(category_id=cid) for cid in category_ids)

    def __iter__(self) -> Iterator[CategoryBalance]:
        return iter(self._balances.values())

    def __len__(self) -> int:
        return len(self._balances)

    def __contains__(self, category_id: object) -> bool:
        return category_id in self._balances

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Ledger):
            return NotImplemented
        return self._balances == other._balances

    def __repr__(self) -> str:
        return f"Ledger({list(self._balances.values())!r})"

    def balance(self, category_id: int) -> CategoryBalance:
        """Balance for ``category_id``; categories without a row start at zero."""
        existing = self._balances.get(category_id)
        if existing is None:
            return CategoryBalance(category_id=category_id)
        return existing

    def available(self, category_id: int) -> Decimal:
        return self.balance(category_id).available

    def with_balances(self, updates: Iterable[CategoryBalance]) -> 'Ledger':
        merged = dict(self._balances)
        for balance in updates:
            merged[balance.category_id] = balance
        return Ledger(merged.values())

