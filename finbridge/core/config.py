from __future__ import annotations

from functools import lru_cache
from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

PLAID_ENVIRONMENTS = {
    "sandbox": "https://sandbox.plaid.com",
    "development": "https://development.plaid.com",
    "production": "https://production.plaid.com",
}


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    Plaid credentials and product selection are static inputs to request
    construction; the polling and sync knobs feed PollConfig and SyncConfig.
    """

    # App basics
    ENV: Literal["development", "staging", "production"] = "development"
    """Environment mode: affects log rendering."""

    DEBUG: bool = True
    """Enable debug mode: DEBUG log level."""

    APP_PORT: int = 8000
    """Port used when running the server directly."""

    # Plaid
    PLAID_CLIENT_ID: Optional[str] = None
    """Plaid client id from the dashboard."""

    PLAID_SECRET: Optional[str] = None
    """Plaid secret for the selected environment."""

    PLAID_ENV: Literal["sandbox", "development", "production"] = "sandbox"
    """Plaid environment; selects the API base URL."""

    PLAID_PRODUCTS: str = "transactions"
    """Comma-separated products used when initializing Link.

    Must contain 'assets' for asset reports to work.
    """

    PLAID_COUNTRY_CODES: str = "US"
    """Comma-separated country codes for institution selection."""

    PLAID_REDIRECT_URI: str = ""
    """OAuth redirect URI registered in the Plaid dashboard."""

    PLAID_ANDROID_PACKAGE_NAME: str = ""
    """Android package name for the OAuth flow on Android."""

    PLAID_TIMEOUT: float = 30.0
    """Upstream request timeout in seconds."""

    PLAID_LOG_BODIES: bool = False
    """Log upstream response bodies at debug level, with tokens redacted."""

    # Report polling
    POLL_DELAY_SECONDS: float = 1.0
    POLL_MAX_ATTEMPTS: int = 20

    # Transaction sync
    SYNC_NOT_READY_DELAY_SECONDS: float = 2.0
    SYNC_MAX_PAGES: Optional[int] = 500
    SYNC_MAX_NOT_READY_WAITS: Optional[int] = 60
    SYNC_EXCLUDE_REMOVED: bool = True
    """Drop transactions listed in `removed` from the latest view."""

    FALLBACK_SYNC_NOT_READY_DELAY_SECONDS: float = 1.0
    FALLBACK_SYNC_MAX_RECORDS: int = 100

    # Model config
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    @property
    def plaid_base_url(self) -> str:
        return PLAID_ENVIRONMENTS[self.PLAID_ENV]

    @property
    def products(self) -> list[str]:
        return _split_list(self.PLAID_PRODUCTS)

    @property
    def country_codes(self) -> list[str]:
        return _split_list(self.PLAID_COUNTRY_CODES)

    @property
    def uses_cra(self) -> bool:
        """True when any Plaid Check (cra_*) product is configured."""
        return any(product.startswith("cra_") for product in self.products)


def _split_list(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance to avoid re-parsing .env repeatedly."""
    return Settings()
