"""Overflow graph over the configured categories.

Each category may point at one ``overflow_target``. Following those pointers
from any category must end at the terminal absorber (the one category with no
target, conventionally "Savings"). The configuration is user-editable data,
so traversal is an explicit loop with a visited set rather than recursion.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Set

from .errors import (
    AllocationTotalError,
    ConfigError,
    NoTerminalError,
    OverflowCycleError,
    UnknownCategoryError,
)
from .models import HUNDRED, ZERO, Category


class CategoryGraph:
    """Read-only snapshot of categories and their overflow pointers."""

    def __init__(self, categories: Iterable[Category]) -> None:
        self._categories: Dict[int, Category] = {}
        self._by_name: Dict[str, int] = {}
        for category in categories:
            if category.id in self._categories:
                raise ConfigError(f"Duplicate category id: {category.id}")
            if category.name in self._by_name:
                raise ConfigError(f"Duplicate category name: {category.name}")
            if not ZERO <= category.limit_percentage <= HUNDRED:
                raise ConfigError(
                    f"Percentage for {category.name} must be between 0 and 100, "
                    f"got {category.limit_percentage}"
                )
            self._categories[category.id] = category
            self._by_name[category.name] = category.id
        self._next: Dict[int, Optional[int]] = {
            cid: cat.overflow_target for cid, cat in self._categories.items()
        }

    # Lookups -----------------------------------------------------------------

    def __contains__(self, category_id: object) -> bool:
        return category_id in self._categories

    def __iter__(self):
        return iter(self._categories.values())

    def __len__(self) -> int:
        return len(self._categories)

    @property
    def categories(self) -> List[Category]:
        return list(self._categories.values())

    def get(self, category_id: int) -> Category:
        try:
            return self._categories[category_id]
        except KeyError:
            raise UnknownCategoryError(category_id) from None

    def by_name(self, name: str) -> Category:
        if name not in self._by_name:
            # Fall back to a case-insensitive match for typed input
            lowered = {n.lower(): cid for n, cid in self._by_name.items()}
            if name.lower() not in lowered:
                raise UnknownCategoryError(name)
            return self._categories[lowered[name.lower()]]
        return self._categories[self._by_name[name]]

    def total_percentage(self) -> Decimal:
        return sum((c.limit_percentage for c in self._categories.values()), ZERO)

    # Traversal ---------------------------------------------------------------

    def chain_from(self, category_id: int) -> List[int]:
        """Return ``category_id`` followed by every overflow hop to the terminal."""
        if category_id not in self._categories:
            raise UnknownCategoryError(category_id)

        chain: List[int] = []
        visited: Set[int] = set()
        current: Optional[int] = category_id
        # A valid chain never needs more hops than there are categories
        for _ in range(len(self._categories) + 1):
            if current is None:
                return chain
            if current in visited:
                start = chain.index(current)
                raise OverflowCycleError(chain[start:] + [current])
            if current not in self._categories:
                raise NoTerminalError(
                    f"Overflow chain from {category_id} points at missing category {current}"
                )
            visited.add(current)
            chain.append(current)
            current = self._next[current]
        raise OverflowCycleError(chain)

    @property
    def terminal_id(self) -> int:
        """Id of the single category that absorbs rollover."""
        terminals = [cid for cid, nxt in self._next.items() if nxt is None]
        if not terminals:
            raise NoTerminalError("No category without an overflow target is configured")
        if len(terminals) > 1:
            names = ', '.join(sorted(self._categories[cid].name for cid in terminals))
            raise ConfigError(f"Exactly one terminal category is allowed, found: {names}")
        return terminals[0]

    def non_terminal_categories(self) -> Set[int]:
        terminal = self.terminal_id
        return {cid for cid in self._categories if cid != terminal}

    def validate(self, require_full_allocation: bool = False) -> None:
        """Check every chain and the terminal; raise the first problem found."""
        self.terminal_id  # raises when missing or ambiguous
        for category_id in self._categories:
            self.chain_from(category_id)
        if require_full_allocation:
            total = self.total_percentage()
            if total != HUNDRED:
                raise AllocationTotalError(total)
