"""
Unit tests for amount and date parsing helpers.
"""

import pytest
from datetime import date, datetime
from decimal import Decimal

from tradeflow.exceptions import ValidationError
from tradeflow.utils.dates import parse_date, parse_datetime
from tradeflow.utils.number_format import parse_amount, to_money, blank_to_none


class TestParseAmount:

    def test_strips_thousands_separators(self):
        assert parse_amount('1,234.5') == Decimal('1234.50')

    def test_rounds_half_up_to_cents(self):
        assert parse_amount('10.005') == Decimal('10.01')

    @pytest.mark.parametrize('value', [None, '', '   ', 'abc', '-5', 'NaN', 'Infinity'])
    def test_rejects_malformed_values(self, value):
        with pytest.raises(ValidationError):
            parse_amount(value)

    def test_zero_needs_allow_zero(self):
        with pytest.raises(ValidationError):
            parse_amount('0')
        assert parse_amount('0', allow_zero=True) == Decimal('0.00')

    def test_error_names_the_field(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_amount('x', 'advance_amount')
        assert 'advance_amount' in exc_info.value.message


class TestHelpers:

    def test_to_money_handles_none(self):
        assert to_money(None) == Decimal('0.00')

    def test_blank_to_none(self):
        assert blank_to_none('  ') is None
        assert blank_to_none(' BK-1 ') == 'BK-1'
        assert blank_to_none(0) == 0

    def test_parse_date_accepts_datetime_prefix(self):
        assert parse_date('2025-06-15T10:30:00') == date(2025, 6, 15)
        assert parse_date(datetime(2025, 6, 15, 10, 30)) == date(2025, 6, 15)
        assert parse_date('') is None

    def test_parse_date_required_and_malformed(self):
        with pytest.raises(ValidationError):
            parse_date(None, 'po_date', required=True)
        with pytest.raises(ValidationError):
            parse_date('15/06/2025', 'po_date')

    def test_parse_datetime(self):
        assert parse_datetime('2025-06-15T10:30:00') == datetime(2025, 6, 15, 10, 30)
        with pytest.raises(ValidationError):
            parse_datetime('yesterday')
