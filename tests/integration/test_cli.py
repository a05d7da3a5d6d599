"""
Integration tests for the Flask CLI commands.
"""

from tradeflow.models import (
    Company, AppUser, UserRole, DomainEvent, EventKind, EventStatus, Payment, PaymentStatus
)
from tradeflow.services import ledger_projector
from tradeflow.services.order_service import confirm_invoice_into_order


class TestCreateCompany:

    def test_creates_company_and_admin(self, app, session):
        runner = app.test_cli_runner()
        result = runner.invoke(args=[
            'create-company', '--name', 'Konkan Spices', '--admin-email', 'owner@konkan.test', '--currency', 'usd'
        ])

        assert result.exit_code == 0
        assert 'Company created' in result.output
        company = session.query(Company).filter_by(name='Konkan Spices').one()
        assert company.base_currency == 'USD'
        admin = session.query(AppUser).filter_by(email='owner@konkan.test').one()
        assert admin.role == UserRole.ADMIN
        assert admin.company_id == company.id

    def test_invalid_email_creates_nothing(self, app, session):
        result = app.test_cli_runner().invoke(args=['create-company', '--name', 'X', '--admin-email', 'nope'])

        assert 'Invalid email' in result.output
        assert session.query(Company).count() == 0


class TestLedgerCommands:

    def test_replay_processes_failed_events(self, app, session, company, admin_user, invoice, monkeypatch):
        def boom(session, source_id):
            raise RuntimeError('ledger offline')

        monkeypatch.setitem(ledger_projector.PROJECTIONS, EventKind.INVOICE_CONFIRMED, boom)
        confirm_invoice_into_order(session, invoice.id, company.id, admin_user.id)
        monkeypatch.undo()

        result = app.test_cli_runner().invoke(args=['ledger-replay', '--company-id', str(company.id)])

        assert result.exit_code == 0
        assert '1 processed, 0 failed' in result.output
        assert session.query(DomainEvent).one().status == EventStatus.PROCESSED

    def test_mark_overdue(self, app, session, company, admin_user, invoice):
        confirm_invoice_into_order(session, invoice.id, company.id, admin_user.id)
        payment = session.query(Payment).one()
        payment.due_date = payment.due_date.replace(year=2020)
        session.commit()

        result = app.test_cli_runner().invoke(args=['mark-overdue'])

        assert '1 payment(s) marked overdue' in result.output
        session.refresh(payment)
        assert payment.status == PaymentStatus.OVERDUE
