"""
Integration tests for the JSON endpoints: identity, role checks and error mapping.
"""

from tradeflow.models import Order, Payment


class TestIdentity:

    def test_unauthenticated_request_is_rejected(self, client, session):
        response = client.get('/orders/')
        assert response.status_code == 401
        assert response.get_json()['status'] == 'error'

    def test_identity_from_another_company_is_rejected(self, client, session, other_company, admin_user):
        with client.session_transaction() as flask_session:
            flask_session['user_id'] = admin_user.id
            flask_session['company_id'] = other_company.id

        assert client.get('/invoices/').status_code == 401

    def test_staff_cannot_delete(self, staff_client, session, company, admin_user, invoice):
        order_response = staff_client.post(f'/invoices/{invoice.id}/confirm', json={})
        assert order_response.status_code == 201

        response = staff_client.delete(f"/orders/{order_response.get_json()['id']}")
        assert response.status_code == 403
        assert session.query(Order).count() == 1


class TestInvoiceEndpoints:

    def test_create_and_confirm(self, admin_client, session, customer):
        response = admin_client.post('/invoices/', json={
            'party_id': customer.id,
            'invoice_date': '2025-06-15',
            'advance_amount': '100',
            'lines': [{'product_name': 'Turmeric fingers', 'quantity': 5, 'rate': '40'}],
        })
        assert response.status_code == 201
        invoice = response.get_json()
        assert invoice['pi_number'] == 'PI-001-25-26'
        assert invoice['status'] == 'draft'

        confirmed = admin_client.post(f"/invoices/{invoice['id']}/confirm", json={'booking_number': 'BK-1'})
        assert confirmed.status_code == 201
        body = confirmed.get_json()
        assert body['order_number'].startswith('ORD-')
        assert body['booking_number'] == 'BK-1'

        again = admin_client.post(f"/invoices/{invoice['id']}/confirm", json={})
        assert again.status_code == 409
        assert again.get_json()['order_number'] == body['order_number']

    def test_missing_invoice_is_404(self, admin_client, session):
        response = admin_client.post('/invoices/999999/confirm', json={})
        assert response.status_code == 404

    def test_bad_line_is_422(self, admin_client, session):
        response = admin_client.post('/invoices/', json={'lines': [{'product_name': 'Rice', 'quantity': 'ten'}]})
        assert response.status_code == 422
        assert 'quantity' in response.get_json()['message']


class TestPaymentEndpoints:

    def test_receipt_above_balance_is_422(self, admin_client, session, company, admin_user, invoice):
        admin_client.post(f'/invoices/{invoice.id}/confirm', json={})
        payment = session.query(Payment).filter_by(pi_invoice_id=invoice.id).one()

        response = admin_client.post(f'/payments/{payment.id}/receipts', json={'amount': '5000'})
        assert response.status_code == 422
        assert response.get_json()['due_amount'] == '1000.00'

        ok = admin_client.post(f'/payments/{payment.id}/receipts', json={'amount': '250', 'reference': 'UTR-9'})
        assert ok.status_code == 201


class TestAccountingEndpoints:

    def test_profit_loss_after_confirmation(self, admin_client, session, invoice):
        admin_client.post(f'/invoices/{invoice.id}/confirm', json={})

        response = admin_client.get('/accounting/profit-loss?from=2025-06-01&to=2025-06-30')
        assert response.status_code == 200
        report = response.get_json()
        assert report['from_date'] == '2025-06-01'
        assert report['revenue'] == '1000.00'
        assert report['cash_received'] == '200.00'
        assert report['outstanding_receivables'] == '800.00'

    def test_bad_date_is_422(self, admin_client, session):
        assert admin_client.get('/accounting/ledger?from=June').status_code == 422

    def test_manual_entry_requires_admin(self, staff_client, session):
        response = staff_client.post('/accounting/entries', json={'amount': '10'})
        assert response.status_code == 403


class TestOperationalEndpoints:

    def test_health(self, client, session):
        response = client.get('/health')
        assert response.status_code == 200
        assert response.get_json()['database'] == 'connected'

    def test_cache_health_never_fails(self, client, session):
        response = client.get('/health/cache')
        assert response.status_code == 200
        assert response.get_json()['status'] in ('ok', 'degraded')

    def test_metrics(self, client, session):
        response = client.get('/metrics')
        assert response.status_code == 200
        assert b'http_requests_total' in response.data

    def test_issue_sequence_number(self, admin_client, session):
        first = admin_client.post('/sequences/purchase_order')
        second = admin_client.post('/sequences/PURCHASE_ORDER')

        assert first.status_code == 201
        assert first.get_json()['number'][-4:] == '0001'
        assert second.get_json()['number'][-4:] == '0002'
        assert admin_client.get('/sequences/PURCHASE_ORDER').get_json()['last_value'] == 2

    def test_unknown_sequence_kind_is_422(self, admin_client, session):
        assert admin_client.post('/sequences/INVENTORY').status_code == 422

    def test_dashboard_counts(self, admin_client, session, invoice):
        admin_client.post(f'/invoices/{invoice.id}/confirm', json={})

        counts = admin_client.get('/dashboard/').get_json()
        assert counts['pi_invoices'] == 1
        assert counts['orders'] == 1
        assert counts['open_payments'] == 1
