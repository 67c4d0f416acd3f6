# trailer_rental/core/config.py
"""
Runtime configuration for the trailer rental backend.

Settings are read from the environment (and an optional ``.env`` file). The core
never reaches for a module-level singleton: services and integrations receive a
``Settings`` instance at construction. Composition roots (FastAPI dependency
providers, Celery tasks) obtain one through :func:`get_settings`.
"""

from functools import lru_cache
import logging
from typing import List, Literal, Optional

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
import pytz

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    environment: str = Field(default="development", alias="ENVIRONMENT")

    # Database
    database_url: str = Field(
        default="sqlite+pysqlite:///./trailer_rental.db",
        alias="DATABASE_URL",
        description="SQLAlchemy URL for the reservation store",
    )
    database_echo: bool = Field(default=False, alias="DATABASE_ECHO")

    # Users allowed on /admin endpoints, as asserted in X-User-Id
    admin_user_ids: List[str] = Field(default_factory=list, alias="ADMIN_USER_IDS")

    # Payment processor (Stripe)
    stripe_secret_key: SecretStr = Field(default=SecretStr(""), alias="STRIPE_SECRET_KEY")
    stripe_webhook_secret: SecretStr = Field(default=SecretStr(""), alias="STRIPE_WEBHOOK_SECRET")
    payment_currency: str = Field(default="czk", description="Currency for holds and captures")
    payment_timeout_seconds: float = Field(
        default=8.0,
        gt=0,
        description="Upper bound for a single payment processor call",
    )
    payment_max_network_retries: int = Field(default=1, ge=0)
    authorization_buffer_days: int = Field(
        default=3,
        ge=0,
        description="Extra additional-day charges held on top of the quoted price",
    )

    # Reservation lifecycle
    business_timezone: str = Field(
        default="Europe/Prague",
        description="Default local time zone for trailers and scheduled sweeps",
    )
    check_in_grace_hours: int = Field(default=24, ge=0)
    manual_extension_window_hours: int = Field(default=24, ge=0)
    confirmation_max_attempts: int = Field(default=3, ge=1)
    min_return_photos: int = Field(default=3, ge=0)

    # Scheduled sweeps
    auto_extension_hour: int = Field(default=0, ge=0, le=23)
    auto_extension_lookahead_hours: int = Field(default=24, ge=0)
    pin_sweep_minute: int = Field(default=0, ge=0, le=59)

    # Smart lock
    lock_provider: Literal["null", "http"] = Field(default="null", alias="LOCK_PROVIDER")
    lock_api_base_url: str = Field(default="", alias="LOCK_API_BASE_URL")
    lock_api_key: SecretStr = Field(default=SecretStr(""), alias="LOCK_API_KEY")
    lock_timeout_seconds: float = Field(default=10.0, gt=0)
    lock_revocation_max_attempts: int = Field(default=24, ge=1)

    # Notifications
    email_provider: Literal["console"] = Field(default="console", alias="EMAIL_PROVIDER")
    email_from_address: str = Field(default="rezervace@pripoj.to")
    support_email: str = Field(default="podpora@pripoj.to")

    # Celery
    celery_broker_url: str = Field(default="redis://localhost:6379/0", alias="CELERY_BROKER_URL")
    celery_result_backend: Optional[str] = Field(default=None, alias="CELERY_RESULT_BACKEND")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
        case_sensitive=False,
    )

    @field_validator("business_timezone")
    @classmethod
    def _validate_timezone(cls, value: str) -> str:
        try:
            pytz.timezone(value)
        except pytz.UnknownTimeZoneError as exc:
            raise ValueError(f"Unknown time zone: {value}") from exc
        return value

    @field_validator("payment_currency")
    @classmethod
    def _normalize_currency(cls, value: str) -> str:
        return value.strip().lower()

    @property
    def is_production(self) -> bool:
        return self.environment.lower() in {"prod", "production"}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the process-wide settings used by composition roots."""
    settings = Settings()
    logger.info(
        "[CONFIG] Loaded settings",
        extra={"environment": settings.environment, "lock_provider": settings.lock_provider},
    )
    return settings
