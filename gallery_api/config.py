"""
Application configuration using Pydantic Settings.
Manages all environment variables and settings.
"""
import os
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import List

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings

DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./gallery.db"

# Sub-directories of static_root served over HTTP
STATIC_DIRECTORIES = ("gallery", "thumbnails", "archives", "covers")


class Environment(str, Enum):
    """Application environment modes."""
    DEV = "DEV"
    PRODUCTION = "PRODUCTION"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Environment
    environment: Environment = Field(
        default=Environment.DEV,
        description="Application environment: DEV or PRODUCTION"
    )

    # Application
    app_name: str = Field(default="Gallery API")
    app_version: str = Field(default="1.0.0")
    debug: bool = Field(default=False)

    @model_validator(mode='after')
    def set_debug_from_environment(self):
        """Set debug mode based on environment if not explicitly set via environment variable."""
        if 'DEBUG' not in os.environ:
            self.debug = self.environment == Environment.DEV
        return self

    @property
    def is_dev(self) -> bool:
        """Check if running in development mode."""
        return self.environment == Environment.DEV

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == Environment.PRODUCTION

    # Database
    database_url: str = Field(default=DEFAULT_DATABASE_URL)
    db_pool_size: int = Field(default=12)
    db_max_overflow: int = Field(default=8)
    db_pool_timeout: int = Field(default=30)
    db_pool_recycle: int = Field(default=1800)

    @field_validator("database_url", mode="before")
    @classmethod
    def coerce_empty_database_url(cls, v: str) -> str:
        if not v or not str(v).strip():
            return DEFAULT_DATABASE_URL
        return v

    # JWT
    auth_secret: str = Field(default="auth-secret-change-in-production")
    jwt_algorithm: str = Field(default="HS256")
    jwt_issuer: str = Field(default="gallery-api")
    access_token_expire_minutes: int = Field(default=180)

    # CORS allowlist (production / development)
    main_app_base_url: str = Field(default="")
    manage_app_base_url: str = Field(default="")
    api_base_url: str = Field(default="")
    main_app_base_url_dev: str = Field(default="http://localhost:3000")
    manage_app_base_url_dev: str = Field(default="http://localhost:3001")
    api_base_url_dev: str = Field(default="http://localhost:8000")

    @property
    def cors_origins(self) -> List[str]:
        """Origins allowed to call the API in the current environment."""
        if self.is_production:
            origins = [self.main_app_base_url, self.manage_app_base_url, self.api_base_url]
        else:
            origins = [self.main_app_base_url_dev, self.manage_app_base_url_dev, self.api_base_url_dev]
        return [origin for origin in origins if origin]

    # Server / workers
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)
    workers_number: int = Field(default=0, description="0 uses the host CPU count")

    @property
    def worker_count(self) -> int:
        return self.workers_number or os.cpu_count() or 1

    # Static files
    static_root: Path = Field(default=Path("static"))
    max_upload_size: int = Field(default=16 * 1024 * 1024)

    def static_dir(self, name: str) -> Path:
        """Path of one of the served static sub-directories."""
        return self.static_root / name

    def ensure_static_dirs(self) -> None:
        for name in STATIC_DIRECTORIES:
            self.static_dir(name).mkdir(parents=True, exist_ok=True)

    # Rate limiting
    rate_limit_enabled: bool = Field(default=True)
    rate_limit_per_minute: int = Field(default=100)

    # Scheduled tasks
    tasks_enabled: bool = Field(default=True)

    # Sitemap
    cdn_base_url: str = Field(default="")

    # Google Analytics Data API
    analytics_property_id: str = Field(default="")
    analytics_credentials_file: str = Field(default="")

    # Logging
    log_dir: str = Field(default="", description="NDJSON log directory; empty disables file logs")

    class Config:
        env_file = None
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Using lru_cache to avoid re-reading the environment on every request.
    """
    return Settings()
