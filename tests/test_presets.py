from decimal import Decimal

import pytest

from kakeibo.presets import get_category_preset, get_preset_value, load_preset


def test_default_preset_orders_targets_first():
    rows = get_category_preset()
    names = [row['name'] for row in rows]

    assert names[0] == 'Savings'
    for row in rows:
        if row['overflow_to'] is not None:
            assert names.index(row['overflow_to']) < names.index(row['name'])
    assert sum(row['limit_percentage'] for row in rows) == Decimal('100')


def test_preset_value_lookup():
    assert get_preset_value('categories', 'terminal') == 'Savings'
    assert get_preset_value('categories', 'missing', default='x') == 'x'
    assert get_preset_value('no-such-preset', 'terminal') is None


def test_missing_preset_raises():
    with pytest.raises(FileNotFoundError):
        load_preset('no-such-preset')
