"""
Mainstream - Configuration
==========================

All application settings loaded from environment variables.
Uses pydantic-settings for validation and type conversion.
"""

from functools import lru_cache
from typing import Literal

from pydantic import computed_field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==========================================================================
    # Application
    # ==========================================================================
    APP_NAME: str = "Mainstream"
    APP_VERSION: str = "0.1.0"
    APP_URL: str = "http://localhost:3000"
    ENVIRONMENT: Literal["development", "staging", "production", "test"] = "development"
    DEBUG: bool = False

    # ==========================================================================
    # API
    # ==========================================================================
    API_V1_PREFIX: str = "/api/v1"
    CORS_ORIGINS: list[str] = ["http://localhost:3000", "http://localhost:5173"]

    # ==========================================================================
    # Database (supports SQLite and PostgreSQL)
    # ==========================================================================
    DATABASE_URL: str = "sqlite+aiosqlite:///./mainstream.db"
    DATABASE_POOL_SIZE: int = 5
    DATABASE_MAX_OVERFLOW: int = 10
    DATABASE_ECHO: bool = False

    @computed_field  # type: ignore[misc]
    @property
    def is_sqlite(self) -> bool:
        return "sqlite" in self.DATABASE_URL

    # ==========================================================================
    # Authentication
    # ==========================================================================
    SECRET_KEY: str = "CHANGE-ME-IN-PRODUCTION-USE-LONG-RANDOM-STRING"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30
    REFRESH_TOKEN_EXPIRE_DAYS: int = 7

    # 64 hex characters (32 bytes); derived from SECRET_KEY when unset
    ENCRYPTION_KEY: str | None = None

    @field_validator("ENCRYPTION_KEY")
    @classmethod
    def validate_encryption_key(cls, v: str | None) -> str | None:
        if not v:
            return None
        try:
            key = bytes.fromhex(v)
        except ValueError:
            raise ValueError("ENCRYPTION_KEY must be hex encoded")
        if len(key) != 32:
            raise ValueError("ENCRYPTION_KEY must be 64 hex characters (32 bytes)")
        return v

    # ==========================================================================
    # Email (Resend)
    # ==========================================================================
    RESEND_API_KEY: str | None = None
    RESEND_API_URL: str = "https://api.resend.com"
    DROPS_EMAIL_FROM: str = "Mainstream <drops@mainstream.app>"

    # ==========================================================================
    # AI Summaries (LiteLLM proxy)
    # ==========================================================================
    LITELLM_BASE_URL: str | None = None
    LITELLM_API_KEY: str | None = None
    LITELLM_MODEL: str = "gemini/gemini-2.5-flash"
    LITELLM_MAX_TOKENS: int = 2000

    # ==========================================================================
    # Embeds
    # ==========================================================================
    FIGMA_OEMBED_URL: str = "https://www.figma.com/api/oembed"
    FIGMA_API_URL: str = "https://api.figma.com"
    HTTP_TIMEOUT_SECONDS: float = 30.0

    # ==========================================================================
    # Computed Properties
    # ==========================================================================
    @computed_field  # type: ignore[misc]
    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT == "development"

    @computed_field  # type: ignore[misc]
    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    @computed_field  # type: ignore[misc]
    @property
    def is_test(self) -> bool:
        return self.ENVIRONMENT == "test"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Convenience export
settings = get_settings()
