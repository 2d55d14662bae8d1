"""
Centralized configuration management with validation.

All environment variables are loaded and validated here.
This ensures consistent configuration across the application.
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from typing import Optional
from dotenv import load_dotenv

load_dotenv()


class Settings(BaseSettings):
    """Application settings with validation."""

    # Pydantic v2 configuration
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore"
    )

    # Database Configuration
    POSTGRES_USER: str = Field(default="postgres")
    POSTGRES_PASSWORD: str = Field(default="postgres")
    POSTGRES_DB: str = Field(default="fitcheck")
    POSTGRES_HOST: str = Field(default="postgres")
    POSTGRES_PORT: int = Field(default=5432)
    # Full URL override (e.g. "sqlite://" for tests and local runs)
    DATABASE_URL: Optional[str] = Field(default=None)

    # Database Pool Configuration
    DB_POOL_SIZE: int = Field(default=20)
    DB_MAX_OVERFLOW: int = Field(default=10)
    DB_POOL_TIMEOUT: int = Field(default=30)
    DB_POOL_RECYCLE: int = Field(default=3600)  # 1 hour

    # Redis Configuration (rate limiting)
    REDIS_URL: str = Field(default="redis://redis:6379/0")

    # JWT Authentication - REQUIRED for token signing
    # Must be set via environment variable, never use default in production
    SECRET_KEY: str = Field(
        default=...,  # Required - no default
        description="JWT signing key. Must be cryptographically secure (32+ chars). "
                    "Generate with: python -c \"import secrets; print(secrets.token_urlsafe(32))\""
    )

    # API Configuration
    API_HOST: str = Field(default="0.0.0.0")
    API_PORT: int = Field(default=8000)
    API_RELOAD: bool = Field(default=False)

    # Logging Configuration
    LOG_LEVEL: str = Field(default="INFO")
    LOG_FORMAT: str = Field(default="json")  # json or text

    # Rate Limiting
    RATE_LIMIT_ENABLED: bool = Field(default=True)
    RATE_LIMIT_PER_MINUTE: int = Field(default=60)
    RATE_LIMIT_COACH_CHAT_PER_MINUTE: int = Field(default=10)

    # Environment
    ENVIRONMENT: str = Field(default="development")
    DEBUG: bool = Field(default=False)

    # CORS - comma-separated list of allowed origins for production
    # e.g., "https://fitcheck.app,https://www.fitcheck.app"
    CORS_ORIGINS: Optional[str] = Field(default=None)

    # Frontend base URL used in referral invitation links.
    # Empty -> relative links ("/register?ref=CODE").
    FRONTEND_URL: str = Field(default="")

    # OpenAI (coach chat + intent classification)
    OPENAI_API_KEY: Optional[str] = Field(default=None)
    COACH_CHAT_MODEL: str = Field(default="gpt-4o-mini")
    COACH_CLASSIFICATION_MODEL: str = Field(default="gpt-4o-mini")
    COACH_CHAT_MAX_TOKENS: int = Field(default=500)
    COACH_CHAT_TEMPERATURE: float = Field(default=0.7)
    EXTERNAL_API_TIMEOUT: int = Field(default=30)

    # Coach quota / referral program
    COACH_BASE_WEEKLY_REQUESTS: int = Field(default=5, ge=0)
    COACH_REFERRAL_BONUS_REQUESTS: int = Field(default=10, ge=0)
    COACH_MAX_REFERRALS: int = Field(default=5, ge=0)
    REFERRAL_CODE_LENGTH: int = Field(default=8, ge=4, le=32)

    # Persisting coach replies as per-exercise advice is disabled until the
    # extraction step is designed; the advice read path is always on.
    COACH_ADVICE_PERSISTENCE_ENABLED: bool = Field(default=False)


# Global settings instance
settings = Settings()
