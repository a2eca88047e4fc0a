from datetime import datetime
from decimal import Decimal

import pytest

from kakeibo.errors import LedgerInvariantError
from kakeibo.ledger import Ledger
from kakeibo.models import CategoryBalance, Fund, Transaction
from kakeibo.recorder import MutationBatch, TransactionRecorder

NOW = datetime(2024, 1, 31, 12, 0)


def test_balance_invariant_is_enforced():
    with pytest.raises(LedgerInvariantError):
        CategoryBalance(1, allocated=Decimal('10'), spent=Decimal('2'), available=Decimal('9'))


def test_reset_and_charge_keep_invariant():
    balance = CategoryBalance(1, Decimal('10'), Decimal('4'), Decimal('6'))
    reset = balance.reset(Decimal('25'))
    assert (reset.allocated, reset.spent, reset.available) == (Decimal('25'), 0, Decimal('25'))
    charged = reset.charge(Decimal('30'))
    assert charged.spent == Decimal('30')
    assert charged.available == Decimal('-5')
    # originals are immutable
    assert balance.spent == Decimal('4')


def test_ledger_defaults_missing_rows_to_zero():
    ledger = Ledger([CategoryBalance(1, Decimal('5'), Decimal('0'), Decimal('5'))])
    assert ledger.available(1) == Decimal('5')
    assert ledger.balance(2) == CategoryBalance(2)
    assert 2 not in ledger


def test_with_balances_returns_new_snapshot():
    original = Ledger.empty([1, 2])
    updated = original.with_balances([CategoryBalance(2, Decimal('3'), Decimal('0'), Decimal('3'))])
    assert original.available(2) == 0
    assert updated.available(2) == Decimal('3')


def test_recorder_sets_overflow_only_when_absorber_differs():
    recorder = TransactionRecorder()
    same = recorder.record_expense(1, Decimal('5'), 'lunch', NOW, absorber_id=1)
    other = recorder.record_expense(1, Decimal('5'), 'lunch', NOW, absorber_id=3)
    assert same.overflow_from_id is None
    assert other.overflow_from_id == 3
    assert other.absorbed_by == 3
    assert same.absorbed_by == 1


def test_batch_requires_exactly_one_record():
    recorder = TransactionRecorder()
    fund = recorder.record_fund(Decimal('100'), NOW, Decimal('0'))
    txn = Transaction(1, Decimal('1'), '', NOW)
    with pytest.raises(ValueError):
        recorder.batch([], fund=fund, transaction=txn)
    with pytest.raises(ValueError):
        recorder.batch([])


def test_batch_with_record_id():
    fund_batch = MutationBatch(balances=(), fund=Fund(Decimal('1'), NOW))
    assert fund_batch.with_record_id(7).fund.id == 7
    txn_batch = MutationBatch(balances=(), transaction=Transaction(1, Decimal('1'), '', NOW))
    assert txn_batch.with_record_id(9).transaction.id == 9
