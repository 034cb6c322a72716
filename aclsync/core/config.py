"""
Application configuration settings.

Central configuration module using Pydantic BaseSettings with environment variable support.
Loads from .env file and environment variables.
"""
import json
from functools import lru_cache
from pathlib import Path
from typing import List, Optional, Union

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env file if it exists (python-dotenv)
env_path = Path(".env")
if env_path.exists():
    load_dotenv(dotenv_path=env_path)


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # App settings
    APP_NAME: str = "ACL Sync"
    APP_ENV: str = Field(default="local")
    DEBUG: bool = Field(default=False)

    # Database settings
    DATABASE_URL: Optional[str] = Field(
        default=None,
        description="Database connection URL; SQLite in the working directory when unset",
    )

    @property
    def sqlalchemy_database_uri(self) -> str:
        """DATABASE_URL if set, otherwise a local SQLite file."""
        if self.DATABASE_URL:
            # Some platforms hand out postgres:// URLs, which SQLAlchemy rejects
            if self.DATABASE_URL.startswith("postgres://"):
                return self.DATABASE_URL.replace("postgres://", "postgresql://", 1)
            return self.DATABASE_URL
        return "sqlite:///./aclsync.db"

    # CORS settings
    CORS_ORIGINS: Union[str, List[str]] = Field(
        default='["http://localhost:3000", "http://localhost:8000"]',
    )

    @field_validator("CORS_ORIGINS")
    @classmethod
    def parse_cors_origins(cls, v):
        """Parse CORS_ORIGINS from string or list."""
        if isinstance(v, str):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                # If not JSON, treat as comma-separated
                return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    # Logging
    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    LOG_DIR: str = Field(default="logs")

    # API Authentication
    API_KEY: Optional[str] = Field(
        default=None,
        description="API key for write operations on managed ACLs. Leave empty to disable authentication.",
    )

    # Kafka admin connection
    KAFKA_BOOTSTRAP_SERVERS: str = Field(
        default="localhost:9092",
        description="Comma-separated broker list",
    )
    KAFKA_CLIENT_ID: str = Field(default="aclsync")
    KAFKA_SECURITY_PROTOCOL: str = Field(
        default="PLAINTEXT",
        description="PLAINTEXT, SSL, SASL_PLAINTEXT or SASL_SSL",
    )
    KAFKA_SASL_MECHANISM: Optional[str] = Field(
        default=None,
        description="PLAIN, SCRAM-SHA-256 or SCRAM-SHA-512",
    )
    KAFKA_SASL_USERNAME: Optional[str] = None
    KAFKA_SASL_PASSWORD: Optional[str] = None
    KAFKA_CREDENTIALS_FILE: Optional[str] = Field(
        default=None,
        description="JSON credentials document; overrides the KAFKA_* connection settings",
    )
    KAFKA_REQUEST_TIMEOUT_MS: int = Field(default=30000, ge=1)

    # Reconciliation loop
    RECONCILE_ENABLED: bool = Field(
        default=True,
        description="Start the reconciliation workers with the API",
    )
    RECONCILE_WORKERS: int = Field(default=2, ge=1)
    RECONCILE_POLL_INTERVAL_SECONDS: float = Field(default=60.0, gt=0)
    RECONCILE_BACKOFF_BASE_SECONDS: float = Field(default=1.0, gt=0)
    RECONCILE_BACKOFF_MAX_SECONDS: float = Field(default=60.0, gt=0)
    RECONCILE_CREATE_REQUEUE_SECONDS: float = Field(default=5.0, gt=0)

    def is_auth_enabled(self) -> bool:
        """Check if an API key is configured and not empty."""
        return self.API_KEY is not None and self.API_KEY.strip() != ""


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()

# Module-level settings instance, patched in tests
settings = get_settings()
