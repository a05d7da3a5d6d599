"""
Unit tests for document number formats and buckets.
"""

import pytest
from datetime import date, datetime

from tradeflow.exceptions import ValidationError
from tradeflow.models import DocumentKind
from tradeflow.services.sequence_service import (
    bucket_for, financial_year, format_number, scope_key_for
)


class TestFormats:

    def test_order_number(self):
        bucket = bucket_for(DocumentKind.ORDER, date(2025, 6, 15))
        assert bucket == '20250615'
        assert format_number(DocumentKind.ORDER, bucket, 7) == 'ORD-20250615-0007'

    def test_padding_is_a_minimum_width(self):
        assert format_number(DocumentKind.ORDER, '20250615', 12345) == 'ORD-20250615-12345'
        assert format_number(DocumentKind.SHIPMENT, '20250615', 1000) == 'SH202506151000'

    def test_purchase_order_uses_monthly_bucket(self):
        bucket = bucket_for(DocumentKind.PURCHASE_ORDER, datetime(2025, 6, 30, 23, 59))
        assert format_number(DocumentKind.PURCHASE_ORDER, bucket, 3) == 'PO-202506-0003'

    def test_shipment_number(self):
        bucket = bucket_for(DocumentKind.SHIPMENT, date(2025, 1, 2))
        assert format_number(DocumentKind.SHIPMENT, bucket, 1) == 'SH20250102001'

    @pytest.mark.parametrize('on, expected', [
        (date(2025, 4, 1), '25-26'),
        (date(2026, 3, 31), '25-26'),
        (date(2025, 3, 31), '24-25'),
        (date(2099, 12, 1), '99-00'),
    ])
    def test_financial_year(self, on, expected):
        assert financial_year(on) == expected

    def test_pi_invoice_number(self):
        bucket = bucket_for(DocumentKind.PI_INVOICE, date(2025, 6, 15))
        assert format_number(DocumentKind.PI_INVOICE, bucket, 4) == 'PI-004-25-26'


class TestScopeKeys:

    def test_orders_share_a_global_series_by_default(self):
        assert scope_key_for(DocumentKind.ORDER, 1) == 'global'
        assert scope_key_for(DocumentKind.ORDER, 2) == 'global'

    def test_other_kinds_are_per_company(self):
        assert scope_key_for(DocumentKind.PURCHASE_ORDER, 5) == 'company:5'
        assert scope_key_for(DocumentKind.SHIPMENT, 5) == 'company:5'

    def test_company_is_required_for_company_series(self):
        with pytest.raises(ValidationError):
            scope_key_for(DocumentKind.PURCHASE_ORDER, None)

    def test_order_scope_can_be_per_company(self, app):
        app.config['ORDER_NUMBER_SCOPE'] = 'company'
        try:
            with app.app_context():
                assert scope_key_for(DocumentKind.ORDER, 9) == 'company:9'
        finally:
            app.config['ORDER_NUMBER_SCOPE'] = 'global'
