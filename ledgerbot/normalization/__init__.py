"""Normalization package."""

from ledgerbot.normalization.normalizers import (
    DEFAULT_CATEGORY,
    digits_only,
    normalize_category,
    normalize_phone,
)

__all__ = [
    "DEFAULT_CATEGORY",
    "digits_only",
    "normalize_category",
    "normalize_phone",
]
