"""Configuration package."""

from ledgerbot.config.settings import (
    AppSettings,
    GeminiSettings,
    GoogleSheetsSettings,
    Settings,
    WPPConnectSettings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "GeminiSettings",
    "GoogleSheetsSettings",
    "Settings",
    "WPPConnectSettings",
    "get_settings",
    "validate_all_settings",
]
