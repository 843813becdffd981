from datetime import date
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Optional

from errors import ValidationCode, ValidationResult

CENT = Decimal('0.01')


def round_half_up(value: Decimal, places: Decimal = CENT) -> Decimal:
    """Round to 2 decimal places, halves away from zero"""
    return value.quantize(places, rounding=ROUND_HALF_UP)


def parse_amount(raw) -> Optional[Decimal]:
    """
    Parse user input into a Decimal amount.
    Returns None for empty, non-numeric or non-finite input.
    """
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, Decimal):
        value = raw
    elif isinstance(raw, (int, float)):
        value = Decimal(str(raw))
    else:
        text = str(raw).replace(',', '').strip()
        if not text:
            return None
        try:
            value = Decimal(text)
        except InvalidOperation:
            return None
    return value if value.is_finite() else None


def format_currency(amount) -> str:
    """Format an amount as VND: no decimals, dot thousands separator"""
    value = parse_amount(amount) or Decimal('0')
    whole = int(value.quantize(Decimal('1'), rounding=ROUND_HALF_UP))
    sign = '-' if whole < 0 else ''
    return f"{sign}{abs(whole):,}".replace(',', '.') + ' ₫'


def thousands_to_amount(thousands) -> Decimal:
    """Convert a thousands input to the actual amount (50 => 50000)"""
    value = parse_amount(thousands)
    return value * 1000 if value is not None else Decimal('0')


def amount_to_thousands(amount) -> str:
    """Convert an actual amount to thousands for display (50000 => 50)"""
    value = parse_amount(amount)
    if value is None:
        return ''
    return format((value / 1000).normalize(), 'f')


def current_date() -> str:
    """Get today's date as ISO string"""
    return date.today().isoformat()


def validate_expense_form(name: str, engine) -> ValidationResult:
    """
    Validate a whole expense form before submission.
    The name is checked first, then the allocation engine's rules.
    """
    if not name or not name.strip():
        return ValidationResult.failure(ValidationCode.NAME_REQUIRED, "Please enter an expense name")

    return engine.validate()
