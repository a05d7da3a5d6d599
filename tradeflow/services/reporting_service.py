"""Reporting service - ledger listing, profit & loss and balance sheet."""
import logging
from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy import func, case
from sqlalchemy.orm import Session

from tradeflow.models import AccountingEntry, EntryType
from tradeflow.models.status import parse_status
from tradeflow.services.data_scope import DataScope
from tradeflow.utils.number_format import to_money

logger = logging.getLogger(__name__)

EXPENSE_TYPES = (EntryType.PURCHASE, EntryType.EXPENSE)


def _sum_of(*entry_types):
    return func.coalesce(
        func.sum(case((AccountingEntry.entry_type.in_(entry_types), AccountingEntry.amount), else_=0)),
        0
    )


def _decimal(value) -> Decimal:
    return to_money(Decimal(str(value)) if value is not None else Decimal('0'))


def current_month(today: Optional[date] = None):
    """First and last day of the calendar month containing ``today``."""
    today = today or date.today()
    start = today.replace(day=1)
    if start.month == 12:
        next_month = start.replace(year=start.year + 1, month=1)
    else:
        next_month = start.replace(month=start.month + 1)
    return start, date.fromordinal(next_month.toordinal() - 1)


def _entries_query(session: Session, scope: DataScope, from_date=None, to_date=None):
    query = scope.apply(session.query(AccountingEntry), AccountingEntry)
    if from_date:
        query = query.filter(AccountingEntry.entry_date >= from_date)
    if to_date:
        query = query.filter(AccountingEntry.entry_date <= to_date)
    return query


def get_ledger(session: Session, scope: DataScope, from_date: Optional[date] = None,
               to_date: Optional[date] = None, entry_type=None, party_name: Optional[str] = None) -> list:
    """
    Scoped ledger entries, newest first.

    Dates are inclusive; ``party_name`` is a case-insensitive substring match.
    """
    query = _entries_query(session, scope, from_date, to_date)
    if entry_type:
        query = query.filter(AccountingEntry.entry_type == parse_status(EntryType, entry_type))
    if party_name and party_name.strip():
        query = query.filter(AccountingEntry.party_name.ilike(f"%{party_name.strip()}%"))
    return query.order_by(AccountingEntry.entry_date.desc(), AccountingEntry.id.desc()).all()


def get_profit_loss(session: Session, scope: DataScope, from_date: Optional[date] = None,
                    to_date: Optional[date] = None, today: Optional[date] = None) -> dict:
    """
    Profit & loss for a window. A missing bound is taken from the current
    calendar month.

    Returns:
        Dict with from_date, to_date, revenue, expenses, gross_profit,
        cash_received, outstanding_receivables, cash_flow (Decimals).
    """
    if not from_date or not to_date:
        month_start, month_end = current_month(today)
        from_date = from_date or month_start
        to_date = to_date or month_end

    row = (
        scope.apply(session.query(
            _sum_of(EntryType.SALES).label('revenue'),
            _sum_of(*EXPENSE_TYPES).label('expenses'),
            _sum_of(EntryType.RECEIPT).label('cash_received'),
        ), AccountingEntry)
        .filter(AccountingEntry.entry_date >= from_date, AccountingEntry.entry_date <= to_date)
        .one()
    )

    revenue = _decimal(row.revenue)
    expenses = _decimal(row.expenses)
    cash_received = _decimal(row.cash_received)
    report = {
        'from_date': from_date,
        'to_date': to_date,
        'revenue': revenue,
        'expenses': expenses,
        'gross_profit': revenue - expenses,
        'cash_received': cash_received,
        'outstanding_receivables': revenue - cash_received,
        'cash_flow': cash_received - expenses,
    }
    logger.debug(f"[REPORT] P&L company={scope.company_id} {from_date}..{to_date}: {report}")
    return report


def get_balance_sheet(session: Session, scope: DataScope, as_of: Optional[date] = None) -> dict:
    """Receivables as of a date. Never negative, even when receipts exceed sales."""
    as_of = as_of or date.today()
    row = (
        scope.apply(session.query(
            _sum_of(EntryType.SALES).label('sales'),
            _sum_of(EntryType.RECEIPT).label('receipts'),
        ), AccountingEntry)
        .filter(AccountingEntry.entry_date <= as_of)
        .one()
    )
    receivable = max(Decimal('0.00'), _decimal(row.sales) - _decimal(row.receipts))
    return {
        'as_of': as_of,
        'accounts_receivable': receivable,
        'total_assets': receivable,
    }


def get_export_data(session: Session, scope: DataScope, from_date: Optional[date] = None,
                    to_date: Optional[date] = None) -> list:
    """Ledger rows oldest first, as plain dicts for an external CSV/Excel writer."""
    entries = (
        _entries_query(session, scope, from_date, to_date)
        .order_by(AccountingEntry.entry_date.asc(), AccountingEntry.id.asc())
        .all()
    )
    return [entry.to_dict() for entry in entries]
