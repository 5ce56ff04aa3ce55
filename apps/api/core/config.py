"""
Centralized configuration management with validation.

All environment variables are loaded and validated here so every
router, service and worker reads the same values.
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from typing import Literal, Optional
from dotenv import load_dotenv

load_dotenv()


class Settings(BaseSettings):
    """Application settings with validation."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore"
    )

    # Database Configuration
    # DATABASE_URL wins when set; otherwise it is assembled from POSTGRES_*.
    DATABASE_URL: Optional[str] = Field(default=None)
    POSTGRES_USER: str = Field(default="postgres")
    POSTGRES_PASSWORD: str = Field(default="postgres")
    POSTGRES_DB: str = Field(default="shonin")
    POSTGRES_HOST: str = Field(default="postgres")
    POSTGRES_PORT: int = Field(default=5432)

    # Database Pool Configuration
    DB_POOL_SIZE: int = Field(default=10)
    DB_MAX_OVERFLOW: int = Field(default=10)
    DB_POOL_TIMEOUT: int = Field(default=30)
    DB_POOL_RECYCLE: int = Field(default=3600)  # 1 hour

    # Redis Configuration
    REDIS_URL: str = Field(default="redis://redis:6379/0")

    # Encryption of reflections and feedback text at rest
    CONTENT_ENCRYPTION_KEY: Optional[str] = Field(default=None)

    # JWT Authentication - REQUIRED for token signing
    SECRET_KEY: str = Field(
        default=...,
        min_length=32,
        description="JWT signing key. Must be cryptographically secure (32+ chars). "
                    "Generate with: python -c \"import secrets; print(secrets.token_urlsafe(32))\""
    )
    JWT_ALGORITHM: str = Field(default="HS256")
    ACCESS_TOKEN_EXPIRE_DAYS: int = Field(default=30)

    # API Configuration
    API_HOST: str = Field(default="0.0.0.0")
    API_PORT: int = Field(default=8000)
    API_RELOAD: bool = Field(default=False)

    # Logging Configuration
    LOG_LEVEL: str = Field(default="INFO")
    LOG_FORMAT: Literal["json", "text"] = Field(default="json")

    # Rate Limiting
    RATE_LIMIT_ENABLED: bool = Field(default=True)
    RATE_LIMIT_AI_PER_MINUTE: int = Field(default=5)
    RATE_LIMIT_GENERAL_PER_MINUTE: int = Field(default=30)

    # Origin checks on state-changing requests
    CSRF_PROTECTION_ENABLED: bool = Field(default=True)

    # Celery Configuration
    CELERY_BROKER_URL: str = Field(default="redis://redis:6379/0")
    CELERY_RESULT_BACKEND: str = Field(default="redis://redis:6379/0")

    # Email Configuration
    EMAIL_ENABLED: bool = Field(default=False)
    SMTP_SERVER: str = Field(default="localhost")
    SMTP_PORT: int = Field(default=587)
    SMTP_USERNAME: Optional[str] = Field(default=None)
    SMTP_PASSWORD: Optional[str] = Field(default=None)
    FROM_EMAIL: str = Field(default="noreply@shonin.app")
    FROM_NAME: str = Field(default="Shonin")

    # Cache Configuration
    CACHE_TTL_ACTIVE_USERS: int = Field(default=30)

    # Environment
    ENVIRONMENT: str = Field(default="development")
    DEBUG: bool = Field(default=False)

    # CORS - comma-separated list of allowed origins for production
    CORS_ORIGINS: Optional[str] = Field(default=None)

    # Public base URL of the web app (checkout redirects, email links, origin checks).
    BASE_URL: str = Field(default="http://localhost:3000")

    # Uploaded session photos
    UPLOADS_DIR: str = Field(default="/uploads")
    MEDIA_MAX_BYTES: int = Field(default=10 * 1024 * 1024)

    # Shared secret for the scheduled feedback endpoint
    CRON_SECRET: Optional[str] = Field(default=None)

    # Anthropic (AI feedback)
    ANTHROPIC_API_KEY: Optional[str] = Field(default=None)
    AI_WEEKLY_MODEL: str = Field(default="claude-sonnet-4-20250514")
    AI_MONTHLY_MODEL: str = Field(default="claude-opus-4-20250514")
    AI_PLACEHOLDER_MODEL: str = Field(default="claude-sonnet-4-20250514")
    AI_TEMPERATURE: float = Field(default=0.7)
    AI_MAX_ATTEMPTS: int = Field(default=3)

    # Stripe (hosted checkout/portal)
    STRIPE_SECRET_KEY: Optional[str] = Field(default=None)
    STRIPE_WEBHOOK_SECRET: Optional[str] = Field(default=None)
    STRIPE_PRICE_STANDARD_MONTHLY_ID: Optional[str] = Field(default="price_1SELBSIaAOyL3ERQzh3nDxnr")
    STRIPE_PRICE_STANDARD_YEARLY_ID: Optional[str] = Field(default="price_1SabtaIaAOyL3ERQmoX2SwRo")
    STRIPE_PRICE_PREMIUM_MONTHLY_ID: Optional[str] = Field(default=None)
    STRIPE_PRICE_PREMIUM_YEARLY_ID: Optional[str] = Field(default=None)

    # Sentry Error Tracking
    SENTRY_DSN: Optional[str] = Field(default=None)
    SENTRY_TRACES_SAMPLE_RATE: float = Field(default=0.1)
    SENTRY_PROFILES_SAMPLE_RATE: float = Field(default=0.1)

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql://{self.POSTGRES_USER}:"
            f"{self.POSTGRES_PASSWORD}@"
            f"{self.POSTGRES_HOST}:"
            f"{self.POSTGRES_PORT}/"
            f"{self.POSTGRES_DB}"
        )


# Global settings instance
settings = Settings()
