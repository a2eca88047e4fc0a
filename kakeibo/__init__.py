"""Kakeibo budgeting ledger.

Income is split across categories by configured percentages, unspent
balances roll into the terminal savings category on the next income event,
and an expense a category cannot cover falls through its overflow chain.

The primary modules are:

* ``graph`` – the category overflow graph and chain traversal
* ``allocation`` – income allocation with rollover sweep
* ``expenses`` – first-fit expense resolution along the overflow chain
* ``db`` – the sqlite store that commits each command atomically
* ``processor`` – the serialized command entry point

To use it from the command line:

```bash
kakeibo init
kakeibo add-funds 1000000
kakeibo spend Needs 250000 -d "groceries"
```
"""

from .allocation import AllocationResult, allocate
from .errors import (
    ConfigError,
    InvalidInputError,
    KakeiboError,
    NoTerminalError,
    NonPositiveAmountError,
    OverflowCycleError,
    PersistenceError,
    UnknownCategoryError,
)
from .expenses import ExpenseResult, Overspent, apply
from .graph import CategoryGraph
from .ledger import Ledger
from .models import Category, CategoryBalance, Fund, Transaction
from .processor import CommandProcessor

__all__ = [
    "AllocationResult",
    "Category",
    "CategoryBalance",
    "CategoryGraph",
    "CommandProcessor",
    "ConfigError",
    "ExpenseResult",
    "Fund",
    "InvalidInputError",
    "KakeiboError",
    "Ledger",
    "NoTerminalError",
    "NonPositiveAmountError",
    "OverflowCycleError",
    "Overspent",
    "PersistenceError",
    "Transaction",
    "UnknownCategoryError",
    "allocate",
    "apply",
]
