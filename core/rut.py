"""
Chilean RUT (tax id) helpers.

A RUT is a numeric body plus a check digit (0-9 or K) computed with
the modulo-11 algorithm. Stored form: "12345678-5".
"""

import re

from django.core.exceptions import ValidationError

_NON_RUT_CHARS = re.compile(r'[^0-9kK]')


def format_tax_id(value: str) -> str:
    """
    Normalise a RUT typed by a user.

    Strips everything except digits and K, then inserts a dash before the
    check digit. Inputs shorter than 2 characters are returned cleaned
    but otherwise untouched.

    >>> format_tax_id('12.345.678-5')
    '12345678-5'
    """
    clean = _NON_RUT_CHARS.sub('', value or '').upper()
    if len(clean) < 2:
        return clean
    return f"{clean[:-1]}-{clean[-1]}"


def compute_check_digit(body: str) -> str:
    """Modulo-11 check digit for a numeric RUT body."""
    total = 0
    factor = 2
    for digit in reversed(body):
        total += int(digit) * factor
        factor = 2 if factor == 7 else factor + 1

    remainder = 11 - (total % 11)
    if remainder == 11:
        return '0'
    if remainder == 10:
        return 'K'
    return str(remainder)


def is_valid_tax_id(value: str) -> bool:
    formatted = format_tax_id(value)
    if '-' not in formatted:
        return False

    body, check_digit = formatted.split('-')
    if not body.isdigit():
        return False
    return compute_check_digit(body) == check_digit


def validate_tax_id(value: str):
    """Django validator: raises ValidationError on a wrong check digit."""
    if not is_valid_tax_id(value):
        raise ValidationError(
            f"RUT inválido: {value}",
            code='invalid_tax_id'
        )
