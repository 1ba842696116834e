"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for wikimd happen here. No module should call
os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. secret_key -> SECRET_KEY, list_admin -> LIST_ADMIN).

  @model_validator(mode="after"): cross-field validation once every field is
      resolved. Dev mode generates a SECRET_KEY with a warning; production
      mode refuses to start without one.

Security notes:
  SECRET_KEY signs both the session cookie and the password-possession
  cookies. A key shorter than 32 chars is rejected outright.

Layer rule: core/ is the kernel. This module may not import from api/,
auth/, or content/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("wikimd.config")


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
    # Empty string is the sentinel for "not configured". The model_validator
    # below either generates a dev key or raises, so callers never see "".
    secret_key: str = ""

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    data_directory: str = "./data"
    # Overrides the SQLite file under data_directory when set.
    database_url: str = ""

    # ------------------------------------------------------------------
    # Sessions and credentials
    # ------------------------------------------------------------------

    secure_cookies: bool = False
    session_expire_days: int = Field(default=30, ge=1)
    password_access_hours: int = Field(default=24, ge=1)
    bcrypt_rounds: int = Field(default=10, ge=4, le=31)

    # ------------------------------------------------------------------
    # Invitations and bootstrap
    # ------------------------------------------------------------------

    invitation_ttl_days: int = Field(default=7, ge=0)
    invitation_sweep_interval_seconds: int = Field(default=6 * 60 * 60, ge=60)
    # "alice:Secret1,bob:Secret2" -- seeded as admins on every startup.
    list_admin: str = ""
    # Used to build invite links; request base URL is used when empty.
    public_base_url: str = ""

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce the SECRET_KEY policy.

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
            Sessions will not survive restart -- acceptable for local dev.

        Production mode: refuse to start if SECRET_KEY is missing. An
            unsigned or randomly keyed session would either be forgeable or
            be invalidated on every restart.
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning(
                    "WARNING: Using auto-generated SECRET_KEY. " "Sessions will not persist across restarts."
                )
            else:
                raise ValueError(
                    "SECRET_KEY is required in production mode. "
                    "Set SECRET_KEY in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        return self

    def resolved_database_url(self) -> str:
        """Return DATABASE_URL, or the wiki.db SQLite file under DATA_DIRECTORY.

        The data directory is created on first use so a fresh checkout can
        start without manual setup.
        """
        if self.database_url:
            return self.database_url
        data_dir = Path(self.data_directory)
        data_dir.mkdir(parents=True, exist_ok=True)
        return f"sqlite:///{data_dir / 'wiki.db'}"


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
