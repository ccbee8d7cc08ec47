# Overview: Pytest coverage for barcode schemes, check digits and GST jurisdictions.

import pytest

from pharmapos.services.barcodes import (
    SCHEME_CUSTOM,
    SCHEME_EAN13,
    SCHEME_EAN8,
    SCHEME_HSN,
    SCHEME_INMED,
    SCHEME_UPCA,
    detect_line_scheme,
    digits_only,
    gs1_check_digit,
    has_valid_check_digit,
    is_hsn_pattern,
    is_inmed_code,
    normalize_code,
    validate_for_scheme,
)
from pharmapos.services.errors import ValidationError
from pharmapos.services.jurisdictions import (
    SUPPLY_INTER_STATE,
    SUPPLY_INTRA_STATE,
    is_valid_gstin,
    normalize_state_code,
    state_code_from_gstin,
    supply_type,
)


class TestCheckDigits:
    @pytest.mark.parametrize("code,scheme", [
        ("4006381333931", SCHEME_EAN13),
        ("5901234123457", SCHEME_EAN13),
        ("96385074", SCHEME_EAN8),
        ("036000291452", SCHEME_UPCA),
    ])
    def test_valid_line_codes(self, code, scheme):
        assert has_valid_check_digit(code)
        assert detect_line_scheme(code) == scheme

    def test_check_digit_of_body(self):
        assert gs1_check_digit("400638133393") == 1

    @pytest.mark.parametrize("code", ["4006381333932", "96385075", "036000291453", "12345", "ABCDEFGHIJKLM"])
    def test_invalid_line_codes(self, code):
        assert not has_valid_check_digit(code)
        assert detect_line_scheme(code) is None


class TestNormalization:
    def test_normalize_code(self):
        assert normalize_code("  inmed-000001 ") == "INMED-000001"
        assert normalize_code("ab c\td") == "ABCD"

    def test_digits_only_strips_separators(self):
        assert digits_only("400-6381 333931") == "4006381333931"
        assert digits_only("40063A") is None

    def test_patterns(self):
        assert is_inmed_code("inmed-000042")
        assert not is_inmed_code("INMED-42")
        assert is_hsn_pattern("3004")
        assert is_hsn_pattern("3004 90 11")
        assert not is_hsn_pattern("300")
        assert not is_hsn_pattern("300490112")


class TestValidateForScheme:
    def test_ean13_stored_digits_only(self):
        assert validate_for_scheme("4006381-333931", SCHEME_EAN13) == "4006381333931"

    def test_bad_check_digit_rejected(self):
        with pytest.raises(ValueError, match="check digit"):
            validate_for_scheme("4006381333932", SCHEME_EAN13)

    def test_wrong_length_rejected(self):
        with pytest.raises(ValueError, match="13 digits"):
            validate_for_scheme("96385074", SCHEME_EAN13)

    def test_hsn_lengths(self):
        assert validate_for_scheme("30049011", SCHEME_HSN) == "30049011"
        with pytest.raises(ValueError):
            validate_for_scheme("30049", SCHEME_HSN)

    def test_inmed_format(self):
        assert validate_for_scheme("inmed-000001", SCHEME_INMED) == "INMED-000001"
        with pytest.raises(ValueError, match="INMED"):
            validate_for_scheme("INMED-1", SCHEME_INMED)

    def test_custom_is_normalized(self):
        assert validate_for_scheme(" shelf 12 ", SCHEME_CUSTOM) == "SHELF12"

    def test_unknown_scheme(self):
        with pytest.raises(ValueError, match="Unknown"):
            validate_for_scheme("123", "QR")


class TestJurisdictions:
    def test_normalize_state_code(self):
        assert normalize_state_code("27") == "27"
        assert normalize_state_code(7) == "07"
        assert normalize_state_code("7") == "07"

    @pytest.mark.parametrize("code", [None, "", "00", "39", "KA", True, 3.0])
    def test_invalid_state_codes(self, code):
        with pytest.raises(ValidationError):
            normalize_state_code(code)

    def test_supply_type(self):
        assert supply_type("27", "27") == SUPPLY_INTRA_STATE
        assert supply_type("27", "29") == SUPPLY_INTER_STATE

    def test_gstin(self):
        assert is_valid_gstin("27ABCDE1234F1Z5")
        assert is_valid_gstin("29abcde1234f1z5")
        assert not is_valid_gstin("00ABCDE1234F1Z5")
        assert not is_valid_gstin("27ABCDE1234F1X5")
        assert state_code_from_gstin("29ABCDE1234F1Z5") == "29"
        with pytest.raises(ValidationError):
            state_code_from_gstin("not-a-gstin")
