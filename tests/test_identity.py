"""Tests for identity normalization used by duplicate detection"""

import pytest

from intake_app.lifecycle.identity import (
    get_normalizer,
    normalize_aadhaar,
    normalize_bank_account,
    normalize_pan,
    normalize_phone,
)


class TestNormalizeAadhaar:
    @pytest.mark.parametrize("raw", ["123456789012", "1234 5678 9012", "1234-5678-9012", " 1234.5678.9012 "])
    def test_formatting_is_ignored(self, raw):
        assert normalize_aadhaar(raw) == "123456789012"

    @pytest.mark.parametrize("raw", [None, "", "   ", "----"])
    def test_blank_is_none(self, raw):
        assert normalize_aadhaar(raw) is None


class TestNormalizePhone:
    @pytest.mark.parametrize(
        "raw",
        ["9876543210", "+91 98765 43210", "91-9876543210", "098765 43210", "(987) 654-3210"],
    )
    def test_country_and_trunk_prefixes_dropped(self, raw):
        assert normalize_phone(raw) == "9876543210"

    def test_landline_and_short_numbers(self):
        assert normalize_phone("020 2612 3456") == "2026123456"
        assert normalize_phone("12345") == "12345"

    def test_blank_is_none(self):
        assert normalize_phone(None) is None
        assert normalize_phone(" + ") is None


def test_pan_and_bank_account_are_uppercased_alphanumerics():
    assert normalize_pan("abcde 1234f") == "ABCDE1234F"
    assert normalize_bank_account("0012-3456 78") == "0012345678"
    assert normalize_bank_account("") is None


def test_get_normalizer():
    assert get_normalizer("phone") is normalize_phone
    with pytest.raises(ValueError):
        get_normalizer("passport")
