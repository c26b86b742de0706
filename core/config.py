"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for dashgate happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. This is
      the official FastAPI dependency injection pattern for config.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. data_dir -> DATA_DIR). Type coercion and validation are built in.

  @model_validator(mode="after"): Runs cross-field validation after all fields
      are resolved from environment.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("dashgate.config")

# bcrypt.gensalt() accepts log2 rounds in this closed range.
_MIN_BCRYPT_ROUNDS = 4
_MAX_BCRYPT_ROUNDS = 31


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file.

    Environment variable name mapping: field names are uppercased automatically.
    E.g. `session_ttl_seconds` reads from SESSION_TTL_SECONDS.
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

    # ------------------------------------------------------------------
    # Storage -- one JSON document per store, both under data_dir
    # ------------------------------------------------------------------

    data_dir: Path = Path("data")
    users_file: str = "users.json"
    sessions_file: str = "sessions.json"

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    # Fixed session lifetime: 24 hours from issue, no renewal.
    session_ttl_seconds: int = 24 * 60 * 60
    # bcrypt work factor (log2 rounds) used when hashing new passwords.
    # Verification reads the factor embedded in each stored hash.
    bcrypt_rounds: int = 12
    # Periodic expired-session sweep. 0 disables the background task.
    sweep_interval_seconds: int = 60 * 60
    logout_all_on_shutdown: bool = True

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    host: str = "0.0.0.0"  # nosec B104 -- single-node dashboard server
    port: int = 3089
    cors_allow_origins: list[str] = ["*"]
    login_rate_limit: str = "10/minute"

    # ------------------------------------------------------------------
    # Derived paths
    # ------------------------------------------------------------------

    @property
    def users_path(self) -> Path:
        return self.data_dir / self.users_file

    @property
    def sessions_path(self) -> Path:
        return self.data_dir / self.sessions_file

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_auth_settings(self) -> "Settings":
        """Reject values the auth core cannot work with.

        bcrypt_rounds outside 4..31 would make every admin bootstrap fail with
        a hashing error, so it is caught here at startup instead.
        """
        if not _MIN_BCRYPT_ROUNDS <= self.bcrypt_rounds <= _MAX_BCRYPT_ROUNDS:
            raise ValueError(
                f"BCRYPT_ROUNDS must be between {_MIN_BCRYPT_ROUNDS} and {_MAX_BCRYPT_ROUNDS}, "
                f"got {self.bcrypt_rounds}."
            )
        if self.session_ttl_seconds <= 0:
            raise ValueError("SESSION_TTL_SECONDS must be positive.")
        if self.sweep_interval_seconds < 0:
            raise ValueError("SWEEP_INTERVAL_SECONDS must be zero (disabled) or positive.")
        if self.bcrypt_rounds < 10:
            logger.warning("WARNING: BCRYPT_ROUNDS=%d is below the recommended minimum of 10.", self.bcrypt_rounds)
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    Uses lru_cache so Settings() is instantiated exactly once -- at first call.
    All modules should call get_settings() rather than constructing Settings() directly.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
