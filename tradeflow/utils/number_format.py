"""Amount parsing and normalisation helpers."""
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from tradeflow.exceptions import ValidationError

CENT = Decimal('0.01')


def to_money(value) -> Decimal:
    """Quantize a number to two decimal places (half-up)."""
    if value is None:
        return Decimal('0.00')
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def parse_amount(value, field='amount', allow_zero=False) -> Decimal:
    """
    Parse a monetary value from user input into a 2-place Decimal.

    Accepts Decimal, int, float or strings like '1234.50' / '1,234.50'.

    Raises:
        ValidationError: empty, non-numeric, negative, or zero when not allowed.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(f'{field} is required')

    cleaned = value.strip().replace(',', '') if isinstance(value, str) else value
    try:
        amount = Decimal(str(cleaned))
    except (InvalidOperation, ValueError):
        raise ValidationError(f'{field} must be a number, got {value!r}')

    if not amount.is_finite():
        raise ValidationError(f'{field} must be a finite number')
    if amount < 0:
        raise ValidationError(f'{field} cannot be negative')
    if amount == 0 and not allow_zero:
        raise ValidationError(f'{field} must be greater than zero')

    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def blank_to_none(value):
    """Store absent instead of '' for optional text fields."""
    if value is None:
        return None
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    return value
