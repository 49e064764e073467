"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for Doorman happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. secret_key -> SECRET_KEY). Type coercion and validation are built in.

  @model_validator(mode="after"): Cross-field validation after all fields are
      resolved. Development mode generates a session secret with a warning;
      production mode refuses to start without one.

Security notes:
  SECRET_KEY shorter than 32 chars is rejected outright. Session lookup keys
  are HMAC-SHA256(SECRET_KEY, token), so a short key weakens every session.

  ENVIRONMENT=production switches cookies to Secure + SameSite=strict and
  trusts X-Forwarded-* headers from the reverse proxy.

Layer rule: core/ is the kernel. This module may not import from api/, web/
or auth/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("doorman.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'doorman.db'}"


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

    environment: Literal["development", "production"] = "development"
    # Empty string is the sentinel for "not configured". The model_validator
    # below either generates a dev key or raises, so callers never see "".
    secret_key: str = ""
    log_level: str = "INFO"

    # ------------------------------------------------------------------
    # Server
    # ------------------------------------------------------------------

    host: str = "127.0.0.1"
    port: int = Field(default=3000, ge=1, le=65535)
    cors_origins: list[str] = ["http://localhost:3000"]

    # ------------------------------------------------------------------
    # Database
    # ------------------------------------------------------------------

    database_url: str = _DEFAULT_DB_URL
    db_timeout_seconds: float = Field(default=5.0, gt=0)

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    session_cookie_name: str = "doorman_sid"
    session_max_age_seconds: int = Field(default=24 * 60 * 60, gt=0)
    session_retention_seconds: int = Field(default=14 * 24 * 60 * 60, gt=0)
    session_purge_interval_seconds: int = Field(default=60 * 60, gt=0)

    # ------------------------------------------------------------------
    # Passwords
    # ------------------------------------------------------------------

    # bcrypt accepts 4..31. Tests drop this to 4 to keep the suite fast.
    bcrypt_rounds: int = Field(default=12, ge=4, le=31)

    # ------------------------------------------------------------------
    # Rate limiting
    # ------------------------------------------------------------------

    auth_rate_limit: str = "5 per 15 minutes"
    global_rate_limit: str = "100 per 15 minutes"

    # ------------------------------------------------------------------
    # Derived
    # ------------------------------------------------------------------

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def secure_cookies(self) -> bool:
        return self.is_production

    @property
    def cookie_samesite(self) -> str:
        return "strict" if self.is_production else "lax"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce the SECRET_KEY policy.

        Development: auto-generate a random key with a warning. Sessions
            will not survive a restart -- acceptable for local dev.

        Production: refuse to start if SECRET_KEY is missing. Every issued
            session would silently stop resolving after a restart.

        Both: reject keys shorter than 32 characters.
        """
        if not self.secret_key:
            if not self.is_production:
                self.secret_key = secrets.token_hex(32)
                logger.warning("Using auto-generated SECRET_KEY. Sessions will not persist across restarts.")
            else:
                raise ValueError(
                    "SECRET_KEY is required in production. "
                    "Set SECRET_KEY in your environment or .env file, "
                    "or run with ENVIRONMENT=development."
                )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
