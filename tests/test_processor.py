import sqlite3
import threading
from datetime import datetime
from decimal import Decimal

import pytest

from kakeibo.db import LedgerDatabase
from kakeibo.errors import (
    AllocationTotalError,
    InvalidInputError,
    NonPositiveAmountError,
    OverflowCycleError,
    PersistenceError,
    UnknownCategoryError,
)
from kakeibo import processor as processor_module
from kakeibo.processor import CommandProcessor
from kakeibo.reports import DateRange

NOW = datetime(2024, 5, 10, 12, 0)


@pytest.fixture
def processor(tmp_path):
    db = LedgerDatabase(tmp_path / 'kakeibo.db')
    db.init_db()
    return CommandProcessor(db)


def _available(processor, name):
    graph = processor.categories()
    return processor.balances().balance(graph.by_name(name).id).available


def test_add_funds_commits_allocation(processor):
    result = processor.add_funds(Decimal('2000000'), now=NOW)

    assert result.fund.id == 1
    assert result.batch.fund.id == 1
    assert _available(processor, 'Savings') == Decimal('1000000')
    assert _available(processor, 'Unexpected') == Decimal('200000')
    assert _available(processor, 'Needs') == Decimal('600000')
    assert _available(processor, 'Wants') == Decimal('100000')
    assert _available(processor, 'Culture') == Decimal('100000')


def test_leftovers_roll_into_savings_on_next_income(processor):
    processor.add_funds(Decimal('1000'), now=NOW)
    processor.add_expense('Needs', Decimal('200'), 'groceries', now=NOW)

    # Unexpected 100 + Needs 100 + Wants 50 + Culture 50
    assert processor.rollover_preview() == Decimal('300')

    result = processor.add_funds(Decimal('1000'), now=NOW)
    assert result.total_rollover == Decimal('300')
    assert _available(processor, 'Savings') == Decimal('800')
    assert _available(processor, 'Needs') == Decimal('300')
    assert processor.rollover_preview() == Decimal('500')


def test_add_expense_by_name_and_id(processor):
    processor.add_funds(Decimal('1000'), now=NOW)
    needs_id = processor.categories().by_name('Needs').id

    by_name = processor.add_expense('needs', Decimal('10'), now=NOW)
    by_id = processor.add_expense(needs_id, Decimal('15'), now=NOW)

    assert by_name.transaction.category_id == needs_id
    assert by_name.transaction.id == 1
    assert by_id.transaction.id == 2
    assert _available(processor, 'Needs') == Decimal('275')


def test_expense_overflows_and_warns_at_terminal(processor):
    processor.add_funds(Decimal('100'), now=NOW)
    # Culture 5 and Unexpected 10 cannot cover 60; Savings (50) is overdrawn
    result = processor.add_expense('Culture', Decimal('60'), 'museum', now=NOW)

    savings_id = processor.categories().by_name('Savings').id
    assert result.absorber_id == savings_id
    assert result.transaction.overflow_from_id == savings_id
    assert result.overspent
    assert _available(processor, 'Savings') == Decimal('-10')
    assert _available(processor, 'Culture') == Decimal('5')


def test_rejected_commands_change_nothing(processor):
    processor.add_funds(Decimal('1000'), now=NOW)
    before = processor.balances()

    with pytest.raises(NonPositiveAmountError):
        processor.add_expense('Needs', Decimal('-1'), now=NOW)
    with pytest.raises(UnknownCategoryError):
        processor.add_expense('Holidays', Decimal('1'), now=NOW)
    with pytest.raises(NonPositiveAmountError):
        processor.add_funds(Decimal('0'), now=NOW)

    assert processor.balances() == before
    assert processor.db.load_transactions() == []
    assert len(processor.db.load_funds()) == 1


def test_update_categories_saves_valid_configuration(processor):
    graph = processor.update_categories({
        'Needs': {'limit_percentage': Decimal('25')},
        'Savings': {'limit_percentage': '55'},
        'Culture': {'overflow_to': 'Savings'},
    })

    assert graph.by_name('Needs').limit_percentage == Decimal('25')
    stored = processor.categories()
    assert stored.by_name('Savings').limit_percentage == Decimal('55')
    assert stored.get(stored.by_name('Culture').overflow_target).name == 'Savings'


@pytest.mark.parametrize('changes, error', [
    ({'Needs': {'limit_percentage': Decimal('40')}}, AllocationTotalError),
    ({'Unexpected': {'overflow_to': 'Needs'}}, OverflowCycleError),
    ({'Needs': {'colour': 'red'}}, InvalidInputError),
    ({'Holidays': {'limit_percentage': Decimal('5')}}, UnknownCategoryError),
])
def test_update_categories_rejects_invalid_configuration(processor, changes, error):
    before = processor.categories().categories

    with pytest.raises(error):
        processor.update_categories(changes)

    assert processor.categories().categories == before


def test_concurrent_expenses_are_serialized(processor):
    processor.add_funds(Decimal('1000'), now=NOW)
    errors = []

    def spend():
        try:
            for _ in range(5):
                processor.add_expense('Needs', Decimal('1'), now=NOW)
        except Exception as exc:  # pragma: no cover - surfaced below
            errors.append(exc)

    threads = [threading.Thread(target=spend) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    graph = processor.categories()
    needs = processor.balances().balance(graph.by_name('Needs').id)
    assert needs.spent == Decimal('20')
    assert needs.available == Decimal('280')
    assert len(processor.db.load_transactions()) == 20


def test_transactions_and_summary_queries(processor):
    processor.add_funds(Decimal('1000'), now=NOW)
    processor.add_expense('Wants', Decimal('20'), 'cinema', now=NOW)
    processor.add_expense('Needs', Decimal('30'), 'bus pass', now=datetime(2024, 4, 20, 9, 0))

    month = processor.transactions(DateRange.MONTH, now=datetime(2024, 5, 31, 23, 0))
    assert list(month['Description']) == ['cinema']
    year = processor.transactions(DateRange.YEAR, now=datetime(2024, 5, 31, 23, 0))
    assert len(year) == 2

    stats = processor.summary()
    assert stats.total_funds_added == Decimal('1000')
    assert stats.total_spent == Decimal('50')
    assert stats.total_available == Decimal('950')


def test_processors_sharing_one_file_do_not_lose_updates(tmp_path, monkeypatch):
    path = tmp_path / 'shared.db'
    first = CommandProcessor(LedgerDatabase(path))
    first.db.init_db()
    second = CommandProcessor(LedgerDatabase(path))
    first.add_funds(Decimal('1000'), now=NOW)

    real_apply = processor_module.apply
    competing = []

    def apply_while_second_processor_spends(*args, **kwargs):
        # Start a rival command after the first has read its snapshot
        if not competing:
            thread = threading.Thread(
                target=second.add_expense, args=('Needs', Decimal('10')), kwargs={'now': NOW}
            )
            competing.append(thread)
            thread.start()
            thread.join(timeout=0.3)
        return real_apply(*args, **kwargs)

    monkeypatch.setattr(processor_module, 'apply', apply_while_second_processor_spends)
    first.add_expense('Needs', Decimal('10'), now=NOW)
    competing[0].join()

    needs = second.balances().balance(second.categories().by_name('Needs').id)
    assert needs.spent == Decimal('20')
    assert needs.available == Decimal('280')
    assert len(first.db.load_transactions()) == 2


def test_failed_commit_leaves_processor_usable(processor, monkeypatch):
    processor.add_funds(Decimal('1000'), now=NOW)
    before = processor.balances()

    def failing_write(self, conn, balance, stamp):
        raise sqlite3.OperationalError('disk I/O error')

    monkeypatch.setattr(LedgerDatabase, '_write_balance', failing_write)
    with pytest.raises(PersistenceError):
        processor.add_expense('Needs', Decimal('100'), 'rent', now=NOW)
    monkeypatch.undo()

    assert processor.balances() == before
    assert processor.db.load_transactions() == []

    result = processor.add_expense('Needs', Decimal('100'), 'rent', now=NOW)
    assert result.transaction.id == 1
    assert _available(processor, 'Needs') == Decimal('200')
