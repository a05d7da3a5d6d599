"""Date parsing helpers for payloads and query strings."""
from datetime import date, datetime

from tradeflow.exceptions import ValidationError
from tradeflow.utils.number_format import blank_to_none


def parse_date(value, field='date', required=False):
    """
    Parse YYYY-MM-DD (a datetime prefix is accepted) into a date.

    Blank values return None unless ``required``.
    """
    value = blank_to_none(value)
    if value is None:
        if required:
            raise ValidationError(f"{field} is required")
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        raise ValidationError(f"{field} must be YYYY-MM-DD, got {value!r}")


def parse_datetime(value, field='datetime'):
    value = blank_to_none(value)
    if value is None or isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value))
    except ValueError:
        raise ValidationError(f"{field} must be an ISO date/time, got {value!r}")
