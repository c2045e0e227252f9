# opticlinic/config.py - Configuration management
from dotenv import load_dotenv

load_dotenv()
from typing import Optional, Union
from functools import lru_cache

from cryptography.fernet import Fernet
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator


class Settings(BaseSettings):
    """Application settings with validation and environment variable support"""

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="allow",
        case_sensitive=False,
        populate_by_name=True,
    )

    # Application
    app_name: str = "OptiClinic API"
    app_version: str = "1.0.0"
    environment: str = Field(default="development", alias="ENVIRONMENT")
    debug: bool = Field(default=False, alias="DEBUG")
    public_base_url: str = Field(default="", alias="PUBLIC_BASE_URL")

    # Database
    database_url: str = Field(..., alias="DATABASE_URL")
    database_pool_size: int = Field(default=10, alias="DATABASE_POOL_SIZE")
    database_max_overflow: int = Field(default=20, alias="DATABASE_MAX_OVERFLOW")

    # Security
    secret_key: str = Field(..., alias="SECRET_KEY")
    algorithm: str = Field(default="HS256", alias="ALGORITHM")
    access_token_expire_minutes: int = Field(default=60, alias="ACCESS_TOKEN_EXPIRE_MINUTES")

    # Encryption (guest PDF tokens). Derived from SECRET_KEY when unset.
    encryption_key: Optional[str] = Field(default=None, alias="ENCRYPTION_KEY")
    guest_token_expire_minutes: int = Field(default=60, alias="GUEST_TOKEN_EXPIRE_MINUTES")

    # CORS
    cors_origins: Union[str, list[str]] = Field(default=["http://localhost:3000", "http://localhost:5173"], alias="CORS_ORIGINS")

    # Redis (token denylist); in-memory when unset
    redis_url: Optional[str] = Field(default=None, alias="REDIS_URL")

    # Rate limiting
    rate_limit_enabled: bool = Field(default=True, alias="RATE_LIMIT_ENABLED")
    login_rate_limit: str = Field(default="10/minute", alias="LOGIN_RATE_LIMIT")

    # Clinical workflow
    auto_complete_on_prescription: bool = Field(default=False, alias="AUTO_COMPLETE_ON_PRESCRIPTION")
    require_evolution_for_prescription: bool = Field(default=False, alias="REQUIRE_EVOLUTION_FOR_PRESCRIPTION")

    # Logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_json: bool = Field(default=False, alias="LOG_JSON")

    # Bootstrap admin
    admin_default_name: str = Field(default="Administrator", alias="ADMIN_DEFAULT_NAME")
    admin_default_email: Optional[str] = Field(default=None, alias="ADMIN_DEFAULT_EMAIL")
    admin_default_password: Optional[str] = Field(default=None, alias="ADMIN_DEFAULT_PASSWORD")

    @field_validator("cors_origins", mode='before')
    @classmethod
    def parse_cors_origins(cls, v):
        if isinstance(v, str):
            if not v.strip():
                return ["http://localhost:3000", "http://localhost:5173"]
            return [origin.strip() for origin in v.split(',') if origin.strip()]
        return v

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v):
        if not v:
            raise ValueError("DATABASE_URL is required")
        if not v.startswith(("postgresql://", "postgresql+psycopg2://", "sqlite://")):
            raise ValueError("DATABASE_URL must be a valid PostgreSQL or SQLite URL")
        return v

    @field_validator("secret_key")
    @classmethod
    def validate_key_length(cls, v):
        if not v or len(v) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters long")
        return v

    @field_validator("encryption_key")
    @classmethod
    def validate_encryption_key(cls, v):
        if v is None or not v.strip():
            return None
        try:
            Fernet(v.encode())
        except (ValueError, TypeError):
            raise ValueError("ENCRYPTION_KEY must be a url-safe base64 encoded 32-byte Fernet key")
        return v

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def is_development(self) -> bool:
        return self.environment.lower() == "development"

    @property
    def redis_enabled(self) -> bool:
        return bool(self.redis_url)

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()

# Note: Do not instantiate settings at import time to avoid failing
# on missing environment variables. Use `get_settings()` instead.
