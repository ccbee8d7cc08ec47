# Overview: GST state code table and GSTIN helpers.

"""
GST jurisdiction codes.

The two-digit code of the seller's registration is compared with the
buyer's place of supply: equal codes mean an intra-state supply (CGST +
SGST), different codes an inter-state supply (IGST). The table is fixed
and changes only with new legislation.
"""

from __future__ import annotations

import re

from .errors import ValidationError


STATE_CODES: dict[str, str] = {
    "01": "Jammu and Kashmir",
    "02": "Himachal Pradesh",
    "03": "Punjab",
    "04": "Chandigarh",
    "05": "Uttarakhand",
    "06": "Haryana",
    "07": "Delhi",
    "08": "Rajasthan",
    "09": "Uttar Pradesh",
    "10": "Bihar",
    "11": "Sikkim",
    "12": "Arunachal Pradesh",
    "13": "Nagaland",
    "14": "Manipur",
    "15": "Mizoram",
    "16": "Tripura",
    "17": "Meghalaya",
    "18": "Assam",
    "19": "West Bengal",
    "20": "Jharkhand",
    "21": "Odisha",
    "22": "Chhattisgarh",
    "23": "Madhya Pradesh",
    "24": "Gujarat",
    "25": "Daman and Diu",
    "26": "Dadra and Nagar Haveli and Daman and Diu",
    "27": "Maharashtra",
    "28": "Andhra Pradesh (Old)",
    "29": "Karnataka",
    "30": "Goa",
    "31": "Lakshadweep",
    "32": "Kerala",
    "33": "Tamil Nadu",
    "34": "Puducherry",
    "35": "Andaman and Nicobar Islands",
    "36": "Telangana",
    "37": "Andhra Pradesh",
    "38": "Ladakh",
    "97": "Other Territory",
    "99": "Centre Jurisdiction",
}

SUPPLY_INTRA_STATE = "INTRA_STATE"
SUPPLY_INTER_STATE = "INTER_STATE"

# 2 state digits, 10 PAN characters, entity number, 'Z', checksum
_GSTIN_RE = re.compile(r"^\d{2}[A-Z]{5}\d{4}[A-Z][1-9A-Z]Z[0-9A-Z]$")


def is_valid_state_code(code) -> bool:
    return isinstance(code, str) and code in STATE_CODES


def normalize_state_code(code) -> str:
    """
    Validate and return a canonical two-digit state code.

    Accepts ints and single-digit strings ("7" -> "07"). Raises
    ValidationError for anything not in the table; never guesses.
    """
    if code is None or (isinstance(code, str) and not code.strip()):
        raise ValidationError("State code is required")
    if isinstance(code, bool):
        raise ValidationError(f"Invalid GST state code '{code}'")
    if isinstance(code, int):
        code = f"{code:02d}"
    elif isinstance(code, str):
        code = code.strip()
        if code.isdigit() and len(code) == 1:
            code = f"0{code}"
    else:
        raise ValidationError(f"Invalid GST state code '{code}'")

    if not is_valid_state_code(code):
        raise ValidationError(f"Invalid GST state code '{code}'", details={"state_code": code})
    return code


def is_valid_gstin(gstin: str | None) -> bool:
    if not gstin:
        return False
    value = gstin.strip().upper()
    return bool(_GSTIN_RE.match(value)) and value[:2] in STATE_CODES


def state_code_from_gstin(gstin: str) -> str:
    """State code embedded in the first two characters of a GSTIN."""
    value = (gstin or "").strip().upper()
    if not is_valid_gstin(value):
        raise ValidationError(f"Invalid GSTIN '{gstin}'", details={"gstin": gstin})
    return value[:2]


def supply_type(seller_state_code: str, buyer_state_code: str) -> str:
    if seller_state_code == buyer_state_code:
        return SUPPLY_INTRA_STATE
    return SUPPLY_INTER_STATE
