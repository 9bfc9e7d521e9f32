"""
Configuration Management for the Ledger Assistant

Uses pydantic-settings for type-safe configuration from environment variables.

One settings class per external collaborator (oracle, transport, store)
plus the application section. Sections are loaded lazily so that a
process can start with only the parts it needs configured.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class GeminiSettings(BaseSettings):
    """Gemini extraction oracle configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GEMINI_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    api_key: str = Field(
        ...,
        description="Google AI Studio key for the extraction oracle"
    )
    model_name: str = Field(
        default="gemini-2.5-flash",
        description="Model used for extraction"
    )
    max_tokens: int = Field(
        default=1024,
        ge=100,
        le=8192,
        description="Output token cap per extraction"
    )
    temperature: float = Field(
        default=0.1,
        ge=0.0,
        le=1.0,
        description="Sampling temperature; extraction wants it low"
    )


class WPPConnectSettings(BaseSettings):
    """WPPConnect server (chat transport) configuration."""

    model_config = SettingsConfigDict(
        env_prefix="WPPCONNECT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    base_url: str = Field(
        default="http://localhost:21465",
        description="Base URL of the WPPConnect server"
    )
    session: str = Field(
        default="ledger-session",
        description="WPPConnect session name"
    )
    token: str = Field(
        ...,
        description="Bearer token issued for the session"
    )
    request_timeout_seconds: float = Field(
        default=20.0,
        gt=0,
        description="Timeout for each transport HTTP call"
    )
    webhook_secret: Optional[str] = Field(
        default=None,
        description="Shared secret expected in the X-Webhook-Secret header"
    )

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets ledger store configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_SHEETS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    credentials_path: str = Field(
        ...,
        description="Service account JSON key file"
    )
    spreadsheet_id: str = Field(
        ...,
        description="Spreadsheet holding accounts, ledger and audit sheets"
    )

    # Worksheet titles
    accounts_sheet_name: str = Field(
        default="Accounts",
        description="Name of the sheet holding accounts"
    )
    ledger_sheet_name: str = Field(
        default="Ledger",
        description="Name of the sheet holding ledger entries"
    )
    audit_sheet_name: str = Field(
        default="AuditLog",
        description="Worksheet receiving audit rows"
    )

    poll_interval_seconds: float = Field(
        default=5.0,
        gt=0,
        description="How often the accounts sheet is polled for changes"
    )

    @field_validator("credentials_path")
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """Missing credentials only warn; the file may be mounted after startup."""
        if not Path(v).exists():
            import warnings
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "The sheets backend will fail to connect until it is mounted."
            )
        return v


class AppSettings(BaseSettings):
    """
    Runtime behaviour of the bot itself.

    Unprefixed environment variables, optionally from .env.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Environment
    app_environment: str = Field(
        default="development",
        description="Deployment name (development, production)"
    )
    debug_mode: bool = Field(
        default=False,
        description="Verbose logging"
    )

    storage_backend: Literal["sheets", "memory"] = Field(
        default="sheets",
        description="Ledger store backend"
    )

    # Message processing
    worker_count: int = Field(
        default=1,
        ge=1,
        le=32,
        description="Number of concurrent message workers"
    )
    queue_size: int = Field(
        default=100,
        ge=1,
        description="Maximum queued inbound messages"
    )
    timezone: str = Field(
        default="America/Sao_Paulo",
        description="Timezone used for the extraction reference date"
    )
    send_onboarding_prompt: bool = Field(
        default=True,
        description="Reply to unknown senders with signup instructions"
    )

    # Phone conventions
    country_code: str = Field(
        default="55",
        pattern=r"^\d{1,3}$",
        description="Country code injected when deriving chat addresses"
    )
    national_number_length: int = Field(
        default=11,
        ge=8,
        le=12,
        description="Longest phone that still lacks the country code"
    )

    currency_symbol: str = Field(
        default="R$",
        description="Currency prefix used in replies"
    )

    # HTTP surface
    http_host: str = Field(default="0.0.0.0")
    http_port: int = Field(default=3000, ge=1, le=65535)


class Settings(BaseSettings):
    """
    Root settings container.

    Each section is built on access, so a deployment only needs the
    sections it actually uses.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # These are loaded lazily to allow partial configuration

    @property
    def gemini(self) -> GeminiSettings:
        return GeminiSettings()

    @property
    def wppconnect(self) -> WPPConnectSettings:
        return WPPConnectSettings()

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Process-wide settings singleton.

    Tests call get_settings.cache_clear() after changing the environment.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Instantiate every section and report which ones fail validation.

    Returns a dict of {setting_name: is_valid}, with a
    `<name>_error` entry for each section that failed.
    """
    results = {}
    settings = get_settings()

    for name in ("gemini", "wppconnect", "google_sheets", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
