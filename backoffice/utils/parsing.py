"""Input parsing utilities for amounts, quantities and dates (French formats)."""
import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation

# Thousands separators accepted in amounts: space, no-break space, narrow no-break space
THOUSANDS_SEPARATORS = " \u00a0\u202f"
FR_AMOUNT_PATTERN = re.compile("^(?:\\d{1,3}(?:[ \u00a0\u202f]\\d{3})+|\\d+)$")
FR_QUANTITY_PATTERN = re.compile(r"^\d+(?:[.,]\d+)?$")


def parse_amount(value) -> int:
    """
    Parse a whole-currency amount (FCFA has no sub-units) to int.

    Accepts ints, integral Decimals/floats and strings such as "80000" or
    "80 000". Negative values are returned as-is so callers can decide
    whether zero or negatives are legal.

    Raises:
        ValueError: if the value is empty, fractional or not a number.
    """
    if value is None or isinstance(value, bool):
        raise ValueError('Montant invalide.')

    if isinstance(value, int):
        return value

    if isinstance(value, (float, Decimal)):
        try:
            decimal_value = Decimal(str(value))
        except InvalidOperation:
            raise ValueError(f'Montant invalide : {value}')
        if decimal_value != decimal_value.to_integral_value():
            raise ValueError(f'Le montant doit être un nombre entier : {value}')
        return int(decimal_value)

    cleaned = str(value).strip()
    negative = cleaned.startswith('-')
    if negative:
        cleaned = cleaned[1:].strip()

    if not FR_AMOUNT_PATTERN.match(cleaned):
        raise ValueError(f'Montant invalide : {value}. Utilisez 80000 ou 80 000.')

    for separator in THOUSANDS_SEPARATORS:
        cleaned = cleaned.replace(separator, '')
    amount = int(cleaned)
    return -amount if negative else amount


def parse_quantity(value) -> Decimal:
    """
    Parse a quantity to Decimal. Accepts "2", "2.5" and "2,5".

    Raises:
        ValueError: if the value is empty or not a number.
    """
    if value is None or isinstance(value, bool):
        raise ValueError('Quantité invalide.')

    if isinstance(value, (int, Decimal)):
        return Decimal(value)

    if isinstance(value, float):
        return Decimal(str(value))

    cleaned = str(value).strip()
    negative = cleaned.startswith('-')
    if negative:
        cleaned = cleaned[1:].strip()

    if not FR_QUANTITY_PATTERN.match(cleaned):
        raise ValueError(f'Quantité invalide : {value}')

    try:
        quantity = Decimal(cleaned.replace(',', '.'))
    except (InvalidOperation, ValueError):
        raise ValueError(f'Quantité invalide : {value}')
    return -quantity if negative else quantity


def parse_iso_date(value, field_label='date'):
    """
    Parse an ISO date (YYYY-MM-DD). None and '' give None.

    Raises:
        ValueError: on any other unparsable value.
    """
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(str(value).strip()[:10], '%Y-%m-%d').date()
    except ValueError:
        raise ValueError(f'Format de {field_label} invalide. Utilisez AAAA-MM-JJ.')
