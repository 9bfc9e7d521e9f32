"""
Chat address conventions.

Addresses look like `<user>@<suffix>`. Phone-backed addresses use the
`c.us` suffix and carry the full international number as the user part;
anonymized addresses use the `lid` suffix and carry an opaque id.
"""

from typing import Optional

from ledgerbot.normalization import digits_only

PHONE_SUFFIX = "@c.us"
ANONYMIZED_SUFFIX = "@lid"

MIN_PHONE_DIGITS = 10
MAX_PHONE_DIGITS = 13


def is_anonymized(address: Optional[str]) -> bool:
    return bool(address) and address.endswith(ANONYMIZED_SUFFIX)


def address_user(address: str) -> str:
    """The part before the `@`."""
    return address.split("@", 1)[0]


def is_phone_shaped(value: Optional[str]) -> bool:
    """True if the value's digits could be a phone number with area code."""
    return MIN_PHONE_DIGITS <= len(digits_only(value)) <= MAX_PHONE_DIGITS


def phone_from_address(address: Optional[str]) -> Optional[str]:
    """
    The phone behind a non-anonymized address, or None when the address
    is anonymized or its user part is not phone-shaped.
    """
    if not address or is_anonymized(address):
        return None
    user = address_user(address)
    return user if is_phone_shaped(user) else None


def address_from_phone(
    phone: str,
    country_code: str = "55",
    national_number_length: int = 11,
) -> str:
    """
    Build a phone-backed address from a stored phone, prefixing the
    country code when the phone is no longer than a national number.
    """
    digits = digits_only(phone)
    if len(digits) <= national_number_length:
        digits = country_code + digits
    return digits + PHONE_SUFFIX
