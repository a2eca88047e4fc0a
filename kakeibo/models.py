"""Data classes shared by the engine and the storage layer."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from typing import Optional

from .errors import LedgerInvariantError

ZERO = Decimal('0')
HUNDRED = Decimal('100')


@dataclass(frozen=True)
class Category:
    id: int
    name: str
    limit_percentage: Decimal
    overflow_target: Optional[int] = None

    @property
    def is_terminal(self) -> bool:
        return self.overflow_target is None


@dataclass(frozen=True)
class CategoryBalance:
    """Balance of one category for the current period.

    ``available`` is stored rather than derived so that persisted rows can be
    checked against ``allocated - spent`` when they are loaded.
    """

    category_id: int
    allocated: Decimal = ZERO
    spent: Decimal = ZERO
    available: Decimal = ZERO

    def __post_init__(self) -> None:
        if self.available != self.allocated - self.spent:
            raise LedgerInvariantError(
                f"Category {self.category_id}: available {self.available} != "
                f"allocated {self.allocated} - spent {self.spent}"
            )

    def reset(self, allocated: Decimal) -> 'CategoryBalance':
        """Start a new period with ``allocated`` and nothing spent."""
        return replace(self, allocated=allocated, spent=ZERO, available=allocated)

    def charge(self, amount: Decimal) -> 'CategoryBalance':
        return replace(self, spent=self.spent + amount, available=self.available - amount)


@dataclass(frozen=True)
class Fund:
    amount: Decimal
    added_at: datetime
    rollover_swept: Decimal = ZERO
    id: Optional[int] = None


@dataclass(frozen=True)
class Transaction:
    category_id: int
    amount: Decimal
    description: str
    created_at: datetime
    overflow_from_id: Optional[int] = None
    id: Optional[int] = None

    @property
    def absorbed_by(self) -> int:
        """Category whose balance actually carried the deduction."""
        if self.overflow_from_id is None:
            return self.category_id
        return self.overflow_from_id
