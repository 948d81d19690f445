"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for TokenGate happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. This is
      the official FastAPI dependency injection pattern for config.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. database_url -> DATABASE_URL). Type coercion and validation are
      built in.

  @model_validator(mode="after"): Runs cross-field validation after all fields
      are resolved from environment. Used to reject session windows that could
      never renew and SMTP setups with no sender address.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("tokengate.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'tokengate.db'}"


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    database_url: str = _DEFAULT_DB_URL
    app_base_url: str = "http://localhost:8000"

    # ------------------------------------------------------------------
    # Sessions and purpose tokens
    # ------------------------------------------------------------------

    # A session lives 30 days from issue. Validation inside the last 15 days
    # pushes expiry back to now + 30 days.
    session_expire_days: int = 30
    session_renew_window_days: int = 15
    reset_password_expire_minutes: int = 10
    verify_email_expire_minutes: int = 10

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    rate_limit_enabled: bool = True
    login_rate_limit: str = "10/minute"
    forgot_password_rate_limit: str = "5/minute"
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost", "testserver"]
    cors_origins: list[str] = ["http://localhost", "http://localhost:3000", "http://127.0.0.1"]

    # ------------------------------------------------------------------
    # Email (empty smtp_host means "log the message instead of sending it")
    # ------------------------------------------------------------------

    smtp_host: str = ""
    smtp_port: int = 587
    smtp_username: str = ""
    smtp_password: str = ""
    email_from: str = ""

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_windows(self) -> "Settings":
        """Reject configurations that break the session or email contracts.

        The renewal window must be strictly shorter than the session lifetime,
        otherwise every validation would rewrite the expiry.

        Outside debug mode, configuring an SMTP host without EMAIL_FROM is a
        startup failure: messages would be rejected by most relays.
        """
        if self.session_expire_days <= 0:
            raise ValueError("SESSION_EXPIRE_DAYS must be positive.")
        if not 0 <= self.session_renew_window_days < self.session_expire_days:
            raise ValueError("SESSION_RENEW_WINDOW_DAYS must be between 0 and SESSION_EXPIRE_DAYS (exclusive).")
        if self.smtp_host and not self.email_from:
            if self.debug:
                self.email_from = "noreply@localhost"
                logger.warning("WARNING: EMAIL_FROM not set. Using noreply@localhost.")
            else:
                raise ValueError("EMAIL_FROM is required when SMTP_HOST is set.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
