"""Application settings loaded from environment variables.

Environment Configuration:
    KIVENDI_ENV: Deployment environment (local | test | staging | prod)
    DATABASE_URL: Database connection string (required)
    JWT_SECRET: HS256 secret shared with the auth service (required)
    LOG_LEVEL: Root log level (default INFO)
    LOG_JSON: JSON log lines (default true); false renders for a console

Payment Gateway (KKiaPay):
    KKIAPAY_PUBLIC_KEY / KKIAPAY_PRIVATE_KEY: API credentials
    KKIAPAY_SECRET: Webhook HMAC secret (required in staging/prod)
    KKIAPAY_SANDBOX: Use the sandbox API and skip the amount check
    KKIAPAY_SANDBOX_AMOUNT_SUBSTITUTION: In sandbox, store the offer price
        when the gateway reports a zero amount

Object Store (S3):
    AWS_REGION, AWS_S3_BUCKET, AWS_ACCESS_KEY_ID, AWS_SECRET_ACCESS_KEY
    S3_PUBLIC_BASE_URL: Optional CDN prefix for public image URLs

Push (Firebase Cloud Messaging):
    FCM_CREDENTIALS_FILE: Service account JSON. Push is disabled when unset.

Redis / Celery Configuration:
    REDIS_URL: Redis connection string (required for worker)
    CELERY_BROKER_URL: Celery broker URL (defaults to REDIS_URL)
    CELERY_RESULT_BACKEND: Celery result backend URL (defaults to REDIS_URL)
    BOOST_EXPIRY_INTERVAL_S: Period of the boost expiration job
"""

from enum import Enum
from functools import lru_cache
from typing import Annotated

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings

DEV_JWT_SECRET = "kivendi-dev-secret"
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


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
    - JWT_SECRET must not be the development default in staging/prod
    - KKIAPAY_SECRET is required in staging and prod only
    """

    kivendi_env: Environment = Field(default=Environment.LOCAL, alias="KIVENDI_ENV")
    database_url: Annotated[str, Field(alias="DATABASE_URL")]

    # Auth
    jwt_secret: str = Field(default=DEV_JWT_SECRET, alias="JWT_SECRET")
    jwt_leeway_s: int = Field(default=30, alias="JWT_LEEWAY_S")

    # Logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_json: bool = Field(default=True, alias="LOG_JSON")

    # Redis / Celery settings
    redis_url: str | None = Field(default=None, alias="REDIS_URL")
    celery_broker_url: str | None = Field(default=None, alias="CELERY_BROKER_URL")
    celery_result_backend: str | None = Field(default=None, alias="CELERY_RESULT_BACKEND")

    # KKiaPay payment gateway
    kkiapay_public_key: str | None = Field(default=None, alias="KKIAPAY_PUBLIC_KEY")
    kkiapay_private_key: str | None = Field(default=None, alias="KKIAPAY_PRIVATE_KEY")
    kkiapay_secret: str | None = Field(default=None, alias="KKIAPAY_SECRET")
    kkiapay_sandbox: bool = Field(default=False, alias="KKIAPAY_SANDBOX")
    kkiapay_sandbox_amount_substitution: bool = Field(
        default=True, alias="KKIAPAY_SANDBOX_AMOUNT_SUBSTITUTION"
    )
    kkiapay_timeout_s: float = Field(default=10.0, alias="KKIAPAY_TIMEOUT_S")
    kkiapay_max_retries: int = Field(default=3, alias="KKIAPAY_MAX_RETRIES")

    # S3 object store
    aws_region: str = Field(default="eu-west-3", alias="AWS_REGION")
    aws_s3_bucket: str | None = Field(default=None, alias="AWS_S3_BUCKET")
    aws_access_key_id: str | None = Field(default=None, alias="AWS_ACCESS_KEY_ID")
    aws_secret_access_key: str | None = Field(default=None, alias="AWS_SECRET_ACCESS_KEY")
    s3_public_base_url: str | None = Field(default=None, alias="S3_PUBLIC_BASE_URL")
    max_image_bytes: int = Field(default=10 * 1024 * 1024, alias="MAX_IMAGE_BYTES")  # 10 MB
    max_images_per_message: int = Field(default=10, alias="MAX_IMAGES_PER_MESSAGE")

    # Firebase Cloud Messaging
    fcm_credentials_file: str | None = Field(default=None, alias="FCM_CREDENTIALS_FILE")

    # Boost expiration job
    boost_expiry_interval_s: int = Field(default=300, alias="BOOST_EXPIRY_INTERVAL_S")
    run_boost_expiry_loop: bool = Field(default=True, alias="RUN_BOOST_EXPIRY_LOOP")

    # Edge
    cors_origins: str = Field(default="*", alias="CORS_ORIGINS")
    ws_idle_timeout_s: float = Field(default=300.0, alias="WS_IDLE_TIMEOUT_S")
    ws_send_timeout_s: float = Field(default=5.0, alias="WS_SEND_TIMEOUT_S")
    ws_send_queue_size: int = Field(default=64, alias="WS_SEND_QUEUE_SIZE")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @model_validator(mode="after")
    def validate_required_settings(self) -> "Settings":
        """Refuse insecure defaults outside local/test."""
        if self.kivendi_env in (Environment.STAGING, Environment.PROD):
            if self.jwt_secret == DEV_JWT_SECRET:
                raise ValueError(
                    f"JWT_SECRET must be set for KIVENDI_ENV={self.kivendi_env.value}"
                )
            if not self.kkiapay_secret:
                raise ValueError(
                    f"KKIAPAY_SECRET is required for KIVENDI_ENV={self.kivendi_env.value}"
                )

        if self.kkiapay_max_retries < 1:
            raise ValueError("KKIAPAY_MAX_RETRIES must be at least 1")

        if self.ws_send_queue_size < 1:
            raise ValueError("WS_SEND_QUEUE_SIZE must be at least 1")

        if self.log_level.upper() not in LOG_LEVELS:
            raise ValueError(f"LOG_LEVEL must be one of {', '.join(LOG_LEVELS)}")

        return self

    @property
    def cors_origin_list(self) -> list[str]:
        """Parse comma-separated CORS origins into a list."""
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def substitute_sandbox_amount(self) -> bool:
        """Whether a zero sandbox amount is replaced by the offer price."""
        return self.kkiapay_sandbox and self.kkiapay_sandbox_amount_substitution

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
