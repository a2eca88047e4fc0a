from decimal import Decimal

import pytest

from kakeibo.errors import InvalidAmountError, InvalidInputError, NonPositiveAmountError
from kakeibo.formatting import (
    format_currency,
    format_idr,
    format_percentage,
    parse_amount,
    require_positive,
    to_decimal,
)


@pytest.mark.parametrize('amount, expected', [
    (Decimal('0'), '0'),
    (Decimal('999'), '999'),
    (Decimal('1000'), '1.000'),
    (Decimal('1000000'), '1.000.000'),
    (Decimal('1234567.89'), '1.234.567'),
    (Decimal('-2500'), '-2.500'),
])
def test_format_idr(amount, expected):
    assert format_idr(amount) == expected


def test_format_currency():
    assert format_currency(Decimal('2500000')) == 'IDR 2.500.000'
    assert format_currency(Decimal('2500000'), include_code=False) == '2.500.000'


@pytest.mark.parametrize('value, expected', [
    (Decimal('30'), '30%'),
    (Decimal('30.00'), '30%'),
    (Decimal('100'), '100%'),
    (Decimal('7.50'), '7.5%'),
])
def test_format_percentage(value, expected):
    assert format_percentage(value) == expected


@pytest.mark.parametrize('text, expected', [
    ('1500000', Decimal('1500000')),
    ('1,500,000', Decimal('1500000')),
    ('IDR 25000.50', Decimal('25000.50')),
    ('Rp 10_000', Decimal('10000')),
    ('  42 ', Decimal('42')),
])
def test_parse_amount(text, expected):
    assert parse_amount(text) == expected


@pytest.mark.parametrize('text', ['', 'IDR', 'abc', '1.2.3', 'NaN', 'inf'])
def test_parse_amount_rejects_garbage(text):
    with pytest.raises(InvalidAmountError):
        parse_amount(text)


def test_to_decimal_rejects_floats_and_bools():
    with pytest.raises(InvalidAmountError):
        to_decimal(0.1)
    with pytest.raises(InvalidAmountError):
        to_decimal(True)
    assert to_decimal(5) == Decimal('5')


def test_require_positive():
    assert require_positive('0.01') == Decimal('0.01')
    with pytest.raises(NonPositiveAmountError) as excinfo:
        require_positive('0')
    assert isinstance(excinfo.value, InvalidInputError)
