"""
Normalizers

Pure, total and idempotent canonicalization functions used to compare
values that arrive in inconsistent shapes:

- phone numbers typed at signup vs. phone-shaped chat addresses
- freeform category names produced by the extraction oracle
"""

import re
from typing import Optional

COUNTRY_CODE = "55"
DEFAULT_CATEGORY = "Other"

_NON_DIGITS = re.compile(r"\D")


def digits_only(raw: Optional[str]) -> str:
    """Strip every non-digit character."""
    if not raw:
        return ""
    return _NON_DIGITS.sub("", raw)


def normalize_phone(raw: Optional[str]) -> str:
    """
    Canonicalize a phone string to a comparable key.

    The country code is stripped only when a full national number
    (area code + local number) remains, so a bare number whose area code
    happens to be 55 keeps its digits and the function stays idempotent.

    Numbers with at least 10 digits collapse to area code + last 8 digits,
    which makes the optional mobile "9" prefix irrelevant:

        normalize_phone("+55 (79) 99988-7766") == "7999887766"
        normalize_phone("79 9988-7766") == "7999887766"
    """
    digits = digits_only(raw)
    if digits.startswith(COUNTRY_CODE) and len(digits) - len(COUNTRY_CODE) >= 10:
        digits = digits[len(COUNTRY_CODE):]
    if len(digits) >= 10:
        return digits[:2] + digits[-8:]
    return digits


def normalize_category(raw: Optional[str]) -> str:
    """
    Canonicalize freeform category text to Title Case.

    Missing or blank input maps to "Other".
    """
    if not raw or not raw.strip():
        return DEFAULT_CATEGORY
    return " ".join(token[:1].upper() + token[1:].lower() for token in raw.split())
