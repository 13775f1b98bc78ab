"""
Application configuration using Pydantic Settings.
"""
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Callable

from pydantic import field_validator
from pydantic_settings import BaseSettings

from keygate.core.durations import DurationUnit


# List of known insecure default secrets that should never be used
INSECURE_DEFAULTS = {
    "changeme",
    "admin",
    "password",
    "secret",
    "test",
    "dev",
    "development",
}

# Public payload name -> file name under PAYLOAD_DIR
DEFAULT_PAYLOADS = {
    "headless": "headless",
    "script": "read",
    "safe": "safe",
    "chainsaw": "chainsaw",
    "solo": "Solo",
}

# Hard ceiling for a single bulk-issue request
BULK_ISSUE_CEILING = 50


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    APP_NAME: str = "KeyGate API"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str = "sqlite:///./keygate.db"
    DB_CONNECT_TIMEOUT_SECONDS: int = 5
    AUTO_CREATE_TABLES: bool = True

    # Administrator shared secret
    ADMIN_PASSWORD: str = "changeme"

    # Key issuing
    DEFAULT_KEY_DAYS: int = 30
    PUBLIC_KEY_HOURS: int = 24
    PUBLIC_ISSUE_ENABLED: bool = True
    BULK_ISSUE_LIMIT: int = BULK_ISSUE_CEILING
    KEY_PREFIX: str = "KEY_"
    KEY_LENGTH: int = 8

    # Protected payloads served after a successful redemption
    PAYLOAD_DIR: str = "./payloads"
    PAYLOAD_FILES: dict[str, str] = DEFAULT_PAYLOADS

    @field_validator("ADMIN_PASSWORD")
    @classmethod
    def validate_admin_password(cls, v: str) -> str:
        """
        Validate the admin password is not trivially guessable.

        Requirements:
        - Not a known insecure default
        - At least 12 characters
        """
        if v.lower() in INSECURE_DEFAULTS:
            raise ValueError(
                "ADMIN_PASSWORD is set to an insecure default value. "
                "Please set a strong password via environment variable. "
                "Generate one with: python -c 'import secrets; print(secrets.token_urlsafe(16))'"
            )

        if len(v) < 12:
            raise ValueError(
                f"ADMIN_PASSWORD must be at least 12 characters long (got {len(v)})."
            )

        return v

    @field_validator("BULK_ISSUE_LIMIT")
    @classmethod
    def validate_bulk_limit(cls, v: int) -> int:
        if not 1 <= v <= BULK_ISSUE_CEILING:
            raise ValueError(f"BULK_ISSUE_LIMIT must be between 1 and {BULK_ISSUE_CEILING}")
        return v

    @field_validator("KEY_LENGTH")
    @classmethod
    def validate_key_length(cls, v: int) -> int:
        if v < 6:
            raise ValueError("KEY_LENGTH must be at least 6 characters")
        return v

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


KEY_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"


@dataclass
class KeyPolicy:
    """
    Explicit configuration handed to the gateway and lifecycle service.

    Nothing in the services reads process-wide settings directly, so tests can
    run several policies side by side (different secrets, clocks, id formats).
    """
    admin_secret: str
    default_duration: timedelta = timedelta(days=30)
    public_duration: timedelta = timedelta(hours=24)
    duplicate_unit: DurationUnit = DurationUnit.DAYS
    bulk_limit: int = BULK_ISSUE_CEILING
    key_prefix: str = "KEY_"
    key_length: int = 8
    clock: Callable[[], datetime] = utcnow
    id_factory: Callable[[], str] | None = field(default=None, repr=False)

    def now(self) -> datetime:
        return self.clock()

    def new_key_id(self) -> str:
        """Generate a fresh opaque key id, e.g. ``KEY_7QX2M0AB``."""
        if self.id_factory is not None:
            return self.id_factory()
        body = "".join(secrets.choice(KEY_ALPHABET) for _ in range(self.key_length))
        return f"{self.key_prefix}{body}"

    @classmethod
    def from_settings(cls, settings: Settings) -> "KeyPolicy":
        return cls(
            admin_secret=settings.ADMIN_PASSWORD,
            default_duration=timedelta(days=settings.DEFAULT_KEY_DAYS),
            public_duration=timedelta(hours=settings.PUBLIC_KEY_HOURS),
            bulk_limit=settings.BULK_ISSUE_LIMIT,
            key_prefix=settings.KEY_PREFIX,
            key_length=settings.KEY_LENGTH,
        )
