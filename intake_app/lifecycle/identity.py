"""
Normalization helpers for the identity signals used in duplicate detection.

Each helper returns ``None`` for blank input so that "both non-empty" checks
reduce to ``left is not None and left == right``.
"""

from __future__ import annotations

import re

_NON_DIGIT = re.compile(r"\D+")
_NON_ALNUM = re.compile(r"[^0-9A-Za-z]+")


def _token(value: object | None) -> str | None:
    if value is None:
        return None
    token = str(value).strip()
    return token or None


def normalize_aadhaar(value: object | None) -> str | None:
    """Digits only; ``"1234 5678 9012"`` and ``"1234-5678-9012"`` compare equal."""

    token = _token(value)
    if token is None:
        return None
    digits = _NON_DIGIT.sub("", token)
    return digits or None


def normalize_phone(value: object | None) -> str | None:
    """
    Normalize an Indian mobile number to its ten-digit subscriber form.

    - Strip spaces, dashes, parentheses and other formatting
    - Drop a leading ``+91``/``91`` country code or ``0`` trunk prefix
    - Numbers of any other length are kept as their bare digits
    """

    token = _token(value)
    if token is None:
        return None
    digits = _NON_DIGIT.sub("", token)
    if not digits:
        return None
    if len(digits) == 12 and digits.startswith("91"):
        return digits[2:]
    if len(digits) == 11 and digits.startswith("0"):
        return digits[1:]
    return digits


def normalize_pan(value: object | None) -> str | None:
    """Upper-case alphanumerics; PAN is ``AAAAA9999A`` but entry is often lower-case."""

    token = _token(value)
    if token is None:
        return None
    cleaned = _NON_ALNUM.sub("", token).upper()
    return cleaned or None


def normalize_bank_account(value: object | None) -> str | None:
    token = _token(value)
    if token is None:
        return None
    cleaned = _NON_ALNUM.sub("", token).upper()
    # Leading zeros are significant for some banks; keep them.
    return cleaned or None


NORMALIZERS = {
    "aadhaar": normalize_aadhaar,
    "phone": normalize_phone,
    "pan": normalize_pan,
    "bank_account": normalize_bank_account,
}


def get_normalizer(name: str):
    try:
        return NORMALIZERS[name]
    except KeyError as exc:
        raise ValueError(f"Unknown identity normalizer '{name}'") from exc


__all__ = [
    "NORMALIZERS",
    "get_normalizer",
    "normalize_aadhaar",
    "normalize_bank_account",
    "normalize_pan",
    "normalize_phone",
]
