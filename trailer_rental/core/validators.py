"""Input validators shared by schemas and services."""

import re

_NON_DIGIT = re.compile(r"\D")
_ICO_WEIGHTS = (8, 7, 6, 5, 4, 3, 2)


def normalize_company_tax_id(value: str) -> str:
    """Strip separators and whitespace from a company identification number."""
    return _NON_DIGIT.sub("", value or "")


def is_valid_company_tax_id(value: str) -> bool:
    """
    Validate a Czech company identification number (IČO).

    An IČO has eight digits; the last one is a mod-11 check digit over the
    first seven weighted 8..2. A remainder of 0 maps to 1, 1 maps to 0 and
    anything else to ``11 - remainder``.
    """
    digits = normalize_company_tax_id(value)
    if len(digits) != 8:
        return False

    total = sum(int(digit) * weight for digit, weight in zip(digits[:7], _ICO_WEIGHTS))
    remainder = total % 11
    if remainder == 0:
        expected = 1
    elif remainder == 1:
        expected = 0
    else:
        expected = 11 - remainder
    return int(digits[7]) == expected
