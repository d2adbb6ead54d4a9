"""
Utilitaires de formatage pour les documents (PDF).
Formats de nombres, montants et dates à la française.
"""
from decimal import Decimal, InvalidOperation
from datetime import date, datetime
from typing import Union, Optional

# Séparateur de milliers (espace simple, rendu par toutes les polices PDF standard)
THOUSANDS_SEPARATOR = ' '


def num_fr(value: Union[int, float, Decimal, str, None], decimals: Optional[int] = None) -> str:
    """
    Formate un nombre à la française:
    - Séparateur de milliers: espace
    - Séparateur décimal: virgule (,)
    - Sans décimales significatives, aucune n'est affichée

    Examples:
        num_fr(1500) -> "1 500"
        num_fr(1500.5) -> "1 500,5"
        num_fr(2.000) -> "2"
        num_fr(None) -> "-"
    """
    if value is None or value == "":
        return "-"

    try:
        if isinstance(value, str):
            value = value.replace(",", ".")
        num = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return "-"

    if num == 0:
        return "0"

    if decimals is not None:
        num = num.quantize(Decimal(10) ** -decimals)

    num_str = f"{num:f}"

    if '.' in num_str:
        integer_part, decimal_part = num_str.split('.')
        decimal_part = decimal_part.rstrip('0')
    else:
        integer_part = num_str
        decimal_part = ""

    if integer_part.startswith('-'):
        sign_str = '-'
        integer_part = integer_part[1:]
    else:
        sign_str = ''

    # Grouper par 3 depuis la droite
    reversed_int = integer_part[::-1]
    groups = [reversed_int[i:i+3] for i in range(0, len(reversed_int), 3)]
    integer_formatted = THOUSANDS_SEPARATOR.join(groups)[::-1]

    if decimal_part:
        return f"{sign_str}{integer_formatted},{decimal_part}"
    return f"{sign_str}{integer_formatted}"


def money_fcfa(value: Union[int, Decimal, str, None], currency: str = 'FCFA') -> str:
    """
    Formate un montant entier suivi de la devise.

    Examples:
        money_fcfa(236000) -> "236 000 FCFA"
    """
    formatted = num_fr(value)
    if formatted == "-":
        return formatted
    return f"{formatted} {currency}"


def date_fr(value: Union[date, datetime, None]) -> str:
    """
    Formate une date au format JJ/MM/AAAA.

    Examples:
        date_fr(date(2026, 10, 19)) -> "19/10/2026"
    """
    if value is None:
        return "-"

    if isinstance(value, datetime):
        value = value.date()

    if not isinstance(value, date):
        return "-"

    return value.strftime("%d/%m/%Y")
