"""
Flask CLI commands.

Commands:
- flask init-db: Create all tables
- flask create-company: Create a company with its first admin user
- flask ledger-replay: Re-run pending/failed ledger projections
- flask ledger-reconcile: Re-project confirmed invoices without a SALES entry
- flask mark-overdue: Move past-due payment schedules to overdue
"""

import re

import click

from tradeflow.database import create_schema, get_session
from tradeflow.models import Company, AppUser, UserRole
from tradeflow.services.event_dispatcher import dispatch_pending, reconcile_confirmed_invoices
from tradeflow.services.payment_service import mark_overdue_payments

EMAIL_PATTERN = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'


def _print_summary(label, summary):
    color = 'red' if summary.get('failed') else 'green'
    click.echo(click.style(
        f"{label}: {summary.get('processed', 0)} processed, {summary.get('failed', 0)} failed",
        fg=color
    ))


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('init-db')
    def init_db_command():
        """Create all tables (idempotent)."""
        create_schema()
        click.echo(click.style('Database schema created.', fg='green'))

    @app.cli.command('create-company')
    @click.option('--name', prompt=True, help='Company name')
    @click.option('--admin-email', prompt=True, help='Email of the first admin user')
    @click.option('--currency', default='INR', show_default=True, help='Base currency')
    def create_company(name, admin_email, currency):
        """Create a company and its first ADMIN user."""
        if not re.match(EMAIL_PATTERN, admin_email):
            click.echo(click.style('Invalid email. Use user@example.com', fg='red'))
            return

        session = get_session()
        if session.query(AppUser.id).filter_by(email=admin_email).first():
            click.echo(click.style(f'A user with email {admin_email} already exists', fg='red'))
            return

        try:
            company = Company(name=name.strip(), base_currency=currency.upper())
            session.add(company)
            session.flush()
            admin = AppUser(company_id=company.id, email=admin_email, role=UserRole.ADMIN)
            session.add(admin)
            session.commit()
        except Exception:
            session.rollback()
            raise

        click.echo(click.style(f'Company created: {company.name} (id={company.id})', fg='green', bold=True))
        click.echo(f'   Admin: {admin.email} (id={admin.id})')

    @app.cli.command('ledger-replay')
    @click.option('--company-id', type=int, default=None, help='Limit to one company')
    @click.option('--limit', type=int, default=100, show_default=True)
    def ledger_replay(company_id, limit):
        """Re-run PENDING and FAILED ledger projections."""
        _print_summary('Ledger replay', dispatch_pending(get_session(), company_id=company_id, limit=limit))

    @app.cli.command('ledger-reconcile')
    @click.option('--company-id', type=int, default=None, help='Limit to one company')
    def ledger_reconcile(company_id):
        """Re-project confirmed invoices that have no SALES entry."""
        summary = reconcile_confirmed_invoices(get_session(), company_id=company_id)
        click.echo(f"Confirmed invoices missing a SALES entry: {summary['missing']}")
        _print_summary('Ledger reconcile', summary)

    @app.cli.command('mark-overdue')
    @click.option('--company-id', type=int, default=None, help='Limit to one company')
    def mark_overdue(company_id):
        """Mark pending/partial payments past their due date as overdue."""
        updated = mark_overdue_payments(get_session(), company_id=company_id)
        click.echo(click.style(f'{updated} payment(s) marked overdue', fg='yellow' if updated else 'green'))
