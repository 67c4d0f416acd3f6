"""Tests for the Czech company identification number (IČO) checksum."""

import pytest

from trailer_rental.core.validators import is_valid_company_tax_id, normalize_company_tax_id


@pytest.mark.parametrize("value", ["12345679", "00000001", "25596641", "  123 456 79 "])
def test_valid_ico(value):
    assert is_valid_company_tax_id(value) is True


@pytest.mark.parametrize("value", ["12345678", "1234567", "123456789", "", "abcdefgh"])
def test_invalid_ico(value):
    assert is_valid_company_tax_id(value) is False


def test_normalize_strips_separators():
    assert normalize_company_tax_id("123 456-79") == "12345679"
