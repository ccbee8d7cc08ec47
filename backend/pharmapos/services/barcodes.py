# Overview: Barcode scheme detection and check-digit validation.

"""
Barcode schemes understood at the counter.

- EAN13 / EAN8 / UPCA: GS1 line barcodes, digits only, mod-10 check digit
  (weights 1,3,1,3... from the left of the body for EAN13, 3,1,3,1... for
  EAN8 and UPCA, which is the same as weighting from the right).
- HSN: 4, 6 or 8 digit tariff classification codes printed on shelf tags.
- INMED: tenant-issued medicine codes, "INMED-" followed by six digits.
- CUSTOM: anything else a tenant chooses to bind (stored normalized).
"""

from __future__ import annotations

import re


SCHEME_EAN13 = "EAN13"
SCHEME_EAN8 = "EAN8"
SCHEME_UPCA = "UPCA"
SCHEME_HSN = "HSN"
SCHEME_INMED = "INMED"
SCHEME_CUSTOM = "CUSTOM"

LINE_SCHEMES = (SCHEME_EAN13, SCHEME_EAN8, SCHEME_UPCA)
ALL_SCHEMES = (SCHEME_EAN13, SCHEME_EAN8, SCHEME_UPCA, SCHEME_HSN, SCHEME_INMED, SCHEME_CUSTOM)

MAX_CODE_LENGTH = 64

_INMED_RE = re.compile(r"^INMED-\d{6}$")
_HSN_RE = re.compile(r"^\d{4,8}$")
_DIGIT_SEPARATORS_RE = re.compile(r"[\s\-]")

_LINE_LENGTHS = {13: SCHEME_EAN13, 8: SCHEME_EAN8, 12: SCHEME_UPCA}


def normalize_code(value: str) -> str:
    """Normalize to uppercase, no whitespace."""
    return "".join(value.split()).upper()


def digits_only(value: str) -> str | None:
    """Strip spaces and dashes; return the digits if nothing else remains."""
    stripped = _DIGIT_SEPARATORS_RE.sub("", value)
    if stripped.isdigit():
        return stripped
    return None


def gs1_check_digit(body: str) -> int:
    """Mod-10 check digit for a GS1 body (EAN13 without its last digit, etc.)."""
    total = 0
    # weight 3 for the rightmost body digit, alternating leftwards
    for i, ch in enumerate(reversed(body)):
        total += int(ch) * (3 if i % 2 == 0 else 1)
    return (10 - total % 10) % 10


def has_valid_check_digit(code: str) -> bool:
    if not code.isdigit() or len(code) not in _LINE_LENGTHS:
        return False
    return gs1_check_digit(code[:-1]) == int(code[-1])


def detect_line_scheme(code: str) -> str | None:
    """Line-barcode scheme for a digits-only code with a valid check digit."""
    scheme = _LINE_LENGTHS.get(len(code))
    if scheme and has_valid_check_digit(code):
        return scheme
    return None


def is_inmed_code(value: str) -> bool:
    return bool(_INMED_RE.match(normalize_code(value)))


def is_hsn_pattern(value: str) -> bool:
    digits = digits_only(value)
    return digits is not None and bool(_HSN_RE.match(digits))


def validate_for_scheme(value: str, scheme: str) -> str:
    """
    Validate value against a declared scheme and return its stored form.

    Raises ValueError with a user-facing message on mismatch.
    """
    if scheme not in ALL_SCHEMES:
        raise ValueError(f"Unknown barcode scheme '{scheme}'")

    normalized = normalize_code(value)
    if not normalized:
        raise ValueError("Barcode is empty")
    if len(normalized) > MAX_CODE_LENGTH:
        raise ValueError(f"Barcode longer than {MAX_CODE_LENGTH} characters")

    if scheme in LINE_SCHEMES:
        digits = digits_only(value)
        if digits is None:
            raise ValueError("Barcode must be digits only")
        expected_length = {SCHEME_EAN13: 13, SCHEME_EAN8: 8, SCHEME_UPCA: 12}[scheme]
        if len(digits) != expected_length:
            raise ValueError(f"{scheme} barcode must have {expected_length} digits")
        if not has_valid_check_digit(digits):
            raise ValueError("Invalid check digit")
        return digits

    if scheme == SCHEME_HSN:
        digits = digits_only(value)
        if digits is None or len(digits) not in (4, 6, 8):
            raise ValueError("HSN code must have 4, 6 or 8 digits")
        return digits

    if scheme == SCHEME_INMED:
        if not _INMED_RE.match(normalized):
            raise ValueError("Invalid INMED format (expected INMED-000001)")
        return normalized

    return normalized
