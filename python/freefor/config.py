"""Application settings loaded from environment variables.

Environment Configuration:
    FREEFOR_ENV: Deployment environment (local | test | staging | prod)
    DATABASE_URL: Database connection string (required)
    FREEFOR_INTERNAL_SECRET: Internal API secret (required in staging/prod)

Redis / Celery Configuration:
    REDIS_URL: Redis connection string (required for worker)
    CELERY_BROKER_URL: Celery broker URL (defaults to REDIS_URL)
    CELERY_RESULT_BACKEND: Celery result backend URL (defaults to REDIS_URL)

Auth Configuration (required in all environments):
    SUPABASE_JWKS_URL: Full URL to Supabase JWKS endpoint
    SUPABASE_ISSUER: Expected JWT issuer (trailing slash stripped)
    SUPABASE_AUDIENCES: Comma-separated list of allowed audiences

Web Push Configuration (optional; push is disabled when keys are missing):
    VAPID_PUBLIC_KEY / VAPID_PRIVATE_KEY: Application server keys
    VAPID_CONTACT_EMAIL: Contact address sent in the VAPID claims

Calendar Configuration:
    CALENDAR_HTTP_TIMEOUT_S: Timeout for calendar provider calls
    CALENDAR_SYNC_LOOKAHEAD_DAYS: Look-ahead window for event sync
"""

from enum import Enum
from functools import lru_cache
from typing import Annotated

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings


class Environment(str, Enum):
    """Valid deployment environments."""

    LOCAL = "local"
    TEST = "test"
    STAGING = "staging"
    PROD = "prod"


class Settings(BaseSettings):
    """Application configuration.

    Settings are loaded from environment variables.
    Validation rules:
    - DATABASE_URL is always required
    - SUPABASE_JWKS_URL, SUPABASE_ISSUER, SUPABASE_AUDIENCES are required in all environments
    - FREEFOR_INTERNAL_SECRET and FREEFOR_KEY_ENCRYPTION_KEY are required in staging and prod
    - VAPID keys must be set together or not at all
    """

    freefor_env: Environment = Field(default=Environment.LOCAL, alias="FREEFOR_ENV")
    database_url: Annotated[str, Field(alias="DATABASE_URL")]
    freefor_internal_secret: str | None = Field(default=None, alias="FREEFOR_INTERNAL_SECRET")

    # Redis / Celery settings
    redis_url: str | None = Field(default=None, alias="REDIS_URL")
    celery_broker_url: str | None = Field(default=None, alias="CELERY_BROKER_URL")
    celery_result_backend: str | None = Field(default=None, alias="CELERY_RESULT_BACKEND")

    # Supabase auth settings (required in all environments)
    supabase_jwks_url: str | None = Field(default=None, alias="SUPABASE_JWKS_URL")
    supabase_issuer: str | None = Field(default=None, alias="SUPABASE_ISSUER")
    supabase_audiences: str | None = Field(default=None, alias="SUPABASE_AUDIENCES")

    # Base64-encoded 32-byte key used to encrypt calendar credentials at rest
    freefor_key_encryption_key: str | None = Field(
        default=None, alias="FREEFOR_KEY_ENCRYPTION_KEY"
    )

    # Web push (VAPID)
    vapid_public_key: str | None = Field(default=None, alias="VAPID_PUBLIC_KEY")
    vapid_private_key: str | None = Field(default=None, alias="VAPID_PRIVATE_KEY")
    vapid_contact_email: str = Field(default="contact@freefor.games", alias="VAPID_CONTACT_EMAIL")
    push_timeout_s: float = Field(default=10.0, gt=0, alias="PUSH_TIMEOUT_S")

    # External calendar provider
    calendar_http_timeout_s: float = Field(default=10.0, gt=0, alias="CALENDAR_HTTP_TIMEOUT_S")
    calendar_sync_lookahead_days: int = Field(
        default=30, ge=1, le=365, alias="CALENDAR_SYNC_LOOKAHEAD_DAYS"
    )

    # Domain limits
    notification_ttl_days: int = Field(default=30, ge=1, alias="NOTIFICATION_TTL_DAYS")
    overlap_max_users: int = Field(default=10, ge=1, le=50, alias="OVERLAP_MAX_USERS")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @model_validator(mode="after")
    def require_auth_settings(self) -> "Settings":
        """JWT verification needs all three Supabase values, in every environment."""
        missing = [
            alias
            for alias, value in (
                ("SUPABASE_JWKS_URL", self.supabase_jwks_url),
                ("SUPABASE_ISSUER", self.supabase_issuer),
                ("SUPABASE_AUDIENCES", self.supabase_audiences),
            )
            if not value
        ]
        if missing:
            raise ValueError(
                f"Missing required Supabase auth settings: {', '.join(missing)}. "
                "Set these environment variables or add them to .env."
            )
        return self

    @model_validator(mode="after")
    def require_deployed_secrets(self) -> "Settings":
        """Staging and prod must carry the internal secret and the credential key."""
        if not self.requires_internal_header:
            return self
        for alias, value in (
            ("FREEFOR_INTERNAL_SECRET", self.freefor_internal_secret),
            ("FREEFOR_KEY_ENCRYPTION_KEY", self.freefor_key_encryption_key),
        ):
            if not value:
                raise ValueError(f"{alias} is required for FREEFOR_ENV={self.freefor_env.value}")
        return self

    @model_validator(mode="after")
    def require_vapid_pair(self) -> "Settings":
        if bool(self.vapid_public_key) != bool(self.vapid_private_key):
            raise ValueError("VAPID_PUBLIC_KEY and VAPID_PRIVATE_KEY must be set together")
        return self

    @property
    def requires_internal_header(self) -> bool:
        """Whether requests must include the internal secret header."""
        return self.freefor_env in (Environment.STAGING, Environment.PROD)

    @property
    def audience_list(self) -> list[str]:
        """Parse comma-separated audiences into a list."""
        if self.supabase_audiences:
            return [a.strip() for a in self.supabase_audiences.split(",") if a.strip()]
        return []

    @property
    def normalized_issuer(self) -> str | None:
        """Return issuer with trailing slash stripped."""
        if self.supabase_issuer:
            return self.supabase_issuer.rstrip("/")
        return None

    @property
    def push_enabled(self) -> bool:
        """Whether VAPID keys are configured."""
        return bool(self.vapid_public_key and self.vapid_private_key)

    @property
    def effective_celery_broker_url(self) -> str | None:
        """Return Celery broker URL, falling back to REDIS_URL if not set."""
        return self.celery_broker_url or self.redis_url

    @property
    def effective_celery_result_backend(self) -> str | None:
        """Return Celery result backend URL, falling back to REDIS_URL if not set."""
        return self.celery_result_backend or self.redis_url


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    Returns:
        Settings instance loaded from environment.

    Raises:
        ValidationError: If required settings are missing or invalid.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache. Useful for testing."""
    get_settings.cache_clear()
