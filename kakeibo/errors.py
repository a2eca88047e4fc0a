"""Exception hierarchy for the ledger engine.

Input problems and configuration problems are kept apart: an
``InvalidInputError`` means the caller should correct the request, a
``ConfigError`` means the category setup itself is broken and retrying the
same command will fail the same way.
"""

from __future__ import annotations

from typing import Sequence


class KakeiboError(Exception):
    """Base class for every error raised by the package."""


# ---------------------------------------------------------------------------
# Input errors
# ---------------------------------------------------------------------------


class InvalidInputError(KakeiboError, ValueError):
    """The request was rejected before any ledger mutation was computed."""


class NonPositiveAmountError(InvalidInputError):
    def __init__(self, amount) -> None:
        super().__init__(f"Amount must be positive, got {amount}")
        self.amount = amount


class InvalidAmountError(InvalidInputError):
    """Amount could not be read as an exact decimal."""


class UnknownCategoryError(InvalidInputError):
    def __init__(self, category) -> None:
        super().__init__(f"Category not found: {category}")
        self.category = category


# ---------------------------------------------------------------------------
# Configuration errors
# ---------------------------------------------------------------------------


class ConfigError(KakeiboError):
    """The category configuration violates a structural rule."""


class OverflowCycleError(ConfigError):
    def __init__(self, path: Sequence[int]) -> None:
        self.path = list(path)
        cycle = ' -> '.join(str(cid) for cid in self.path)
        super().__init__(f"Circular overflow chain detected: {cycle}")


class NoTerminalError(ConfigError):
    """No category without an overflow target can be reached."""


class AllocationTotalError(ConfigError):
    def __init__(self, total) -> None:
        super().__init__(f"Category percentages must total 100, got {total}")
        self.total = total


# ---------------------------------------------------------------------------
# Ledger and storage errors
# ---------------------------------------------------------------------------


class LedgerInvariantError(KakeiboError):
    """A balance row where available != allocated - spent."""


class PersistenceError(KakeiboError):
    """The store rejected a batch; nothing from the batch was written."""
