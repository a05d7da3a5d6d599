"""
Unit tests for purchase order item validation and GST totals.
"""

import pytest
from decimal import Decimal

from tradeflow.exceptions import ValidationError
from tradeflow.services.purchase_order_service import build_items, calculate_totals


class TestCalculateTotals:

    def test_default_gst_is_six_plus_six(self):
        totals = calculate_totals([{'quantity': '10', 'rate': '100'}])
        assert totals == {
            'sub_total': Decimal('1000.00'),
            'cgst_amount': Decimal('60.00'),
            'sgst_amount': Decimal('60.00'),
            'total_amount': Decimal('1120.00'),
        }

    def test_explicit_amount_wins_over_quantity_times_rate(self):
        totals = calculate_totals([{'quantity': '3', 'rate': '10', 'amount': '25'}], cgst_rate=0, sgst_rate=0)
        assert totals['total_amount'] == Decimal('25.00')

    def test_accepts_built_items(self):
        items = build_items([
            {'item_description': 'Jute bags', 'quantity': '2.5', 'rate': '40'},
            {'description': 'Pallets', 'quantity': '4', 'rate': '12.50'},
        ])
        assert [item.amount for item in items] == [Decimal('100.00'), Decimal('50.00')]
        assert [item.line_number for item in items] == [1, 2]
        assert calculate_totals(items, 9, 9)['total_amount'] == Decimal('177.00')


class TestBuildItems:

    def test_empty_items_rejected(self):
        with pytest.raises(ValidationError):
            build_items([])

    def test_missing_description_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            build_items([{'quantity': '1', 'rate': '1'}])
        assert 'Item 1' in exc_info.value.message

    def test_malformed_quantity_rejected(self):
        with pytest.raises(ValidationError):
            build_items([{'item_description': 'Bags', 'quantity': 'ten', 'rate': '1'}])
