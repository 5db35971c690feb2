"""
Application configuration management using Pydantic Settings.
"""
from functools import lru_cache
from typing import Any, Dict, List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    """
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Application
    APP_NAME: str = "Platform Identity"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False
    ENVIRONMENT: str = Field(default="development", pattern="^(development|staging|production|test)$")

    # API
    API_V1_PREFIX: str = "/api/v1"
    PROJECT_NAME: str = "Platform Identity API"
    BACKEND_CORS_ORIGINS: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:8000"]
    )

    # Security
    SECRET_KEY: str = Field(..., min_length=32)
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    REFRESH_TOKEN_EXPIRE_DAYS: int = 14
    # Pending identities get only this, for filing a base-role request
    ENROLLMENT_TOKEN_EXPIRE_MINUTES: int = 30

    # JWT Settings
    JWT_ALGORITHM: str = "HS256"
    JWT_ISSUER: str = "platform-identity"

    # API keys
    API_KEY_PREFIX: str = "pk_"
    API_KEY_MAX_PER_IDENTITY: int = 10

    # Database
    POSTGRES_USER: str = "platform"
    POSTGRES_PASSWORD: str = "platform"
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = "platform_identity"
    DATABASE_URL: Optional[str] = None
    DATABASE_POOL_SIZE: int = 20
    DATABASE_MAX_OVERFLOW: int = 40

    # Redis
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: Optional[str] = None
    REDIS_URL: Optional[str] = None
    REDIS_MAX_CONNECTIONS: int = 50

    # Rate limits (requests per minute / per day) by tier
    RATE_LIMIT_EXPLORATOR_PER_MINUTE: int = 30
    RATE_LIMIT_EXPLORATOR_PER_DAY: int = 1000
    RATE_LIMIT_CURATOR_PER_MINUTE: int = 60
    RATE_LIMIT_CURATOR_PER_DAY: int = 5000
    RATE_LIMIT_ANALYTICS_PER_MINUTE: int = 120
    RATE_LIMIT_ANALYTICS_PER_DAY: int = 20000
    RATE_LIMIT_ADMINISTRATOR_PER_MINUTE: int = 300
    RATE_LIMIT_ADMINISTRATOR_PER_DAY: int = 100000
    RATE_LIMIT_FAIL_OPEN: bool = True

    # OAuth Settings
    GOOGLE_CLIENT_ID: Optional[str] = None
    GOOGLE_CLIENT_SECRET: Optional[str] = None
    OAUTH_TIMEOUT_SECONDS: float = 10.0

    # Identities created as active administrators on first login
    BOOTSTRAP_ADMIN_EMAILS: List[str] = Field(default_factory=list)

    # URLs
    API_BASE_URL: str = "http://localhost:8000"
    FRONTEND_URL: str = "http://localhost:3000"

    # Sentry
    SENTRY_DSN: Optional[str] = None
    SENTRY_ENVIRONMENT: Optional[str] = None
    SENTRY_TRACES_SAMPLE_RATE: float = 0.1

    # Audit pagination
    AUDIT_DEFAULT_PAGE_SIZE: int = 50
    AUDIT_MAX_PAGE_SIZE: int = 500

    @field_validator("DATABASE_URL", mode="before")
    @classmethod
    def assemble_db_connection(cls, v: Optional[str], info) -> str:
        if v:
            return v
        values = info.data
        user = values.get("POSTGRES_USER")
        password = values.get("POSTGRES_PASSWORD")
        host = values.get("POSTGRES_HOST", "localhost")
        port = values.get("POSTGRES_PORT", 5432)
        db = values.get("POSTGRES_DB", "platform_identity")
        return f"postgresql+asyncpg://{user}:{password}@{host}:{port}/{db}"

    @field_validator("REDIS_URL", mode="before")
    @classmethod
    def assemble_redis_connection(cls, v: Optional[str], info) -> str:
        if v:
            return v
        values = info.data
        host = values.get("REDIS_HOST", "localhost")
        port = values.get("REDIS_PORT", 6379)
        db = values.get("REDIS_DB", 0)
        password = values.get("REDIS_PASSWORD")
        if password:
            return f"redis://:{password}@{host}:{port}/{db}"
        return f"redis://{host}:{port}/{db}"

    @field_validator("BACKEND_CORS_ORIGINS", "BOOTSTRAP_ADMIN_EMAILS", mode="before")
    @classmethod
    def split_comma_separated(cls, v: str | List[str]) -> List[str]:
        if isinstance(v, str):
            return [i.strip() for i in v.split(",") if i.strip()]
        return v

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.ENVIRONMENT == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.ENVIRONMENT == "development"

    def get_rate_limit_tiers(self) -> Dict[str, Dict[str, int]]:
        """Per-tier request ceilings used for identity subjects."""
        return {
            "explorator": {
                "per_minute": self.RATE_LIMIT_EXPLORATOR_PER_MINUTE,
                "per_day": self.RATE_LIMIT_EXPLORATOR_PER_DAY,
            },
            "curator": {
                "per_minute": self.RATE_LIMIT_CURATOR_PER_MINUTE,
                "per_day": self.RATE_LIMIT_CURATOR_PER_DAY,
            },
            "analytics": {
                "per_minute": self.RATE_LIMIT_ANALYTICS_PER_MINUTE,
                "per_day": self.RATE_LIMIT_ANALYTICS_PER_DAY,
            },
            "administrator": {
                "per_minute": self.RATE_LIMIT_ADMINISTRATOR_PER_MINUTE,
                "per_day": self.RATE_LIMIT_ADMINISTRATOR_PER_DAY,
            },
        }

    def get_oauth_config(self) -> Dict[str, Any]:
        """Get identity provider configuration."""
        return {
            "google_enabled": bool(self.GOOGLE_CLIENT_ID and self.GOOGLE_CLIENT_SECRET),
            "timeout": self.OAUTH_TIMEOUT_SECONDS,
            "redirect_base": f"{self.API_BASE_URL}{self.API_V1_PREFIX}/auth",
        }


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings: Application settings
    """
    return Settings()


# Create a settings instance for easy import
settings = get_settings()
