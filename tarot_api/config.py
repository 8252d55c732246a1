"""
Application Configuration - Pydantic Settings for type-safe config.

Settings are loaded once at process start, frozen, and handed to the
application factory. Nothing reads configuration from module globals.
FAIL FAST - Critical config is validated at startup.
"""

import sys
from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(Exception):
    """Raised when critical configuration is missing or invalid."""

    pass


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database Configuration - NO DEFAULT for production safety
    database_url: str = ""
    database_pool_size: int = 10
    database_max_overflow: int = 5
    database_pool_timeout: int = 30
    database_pool_recycle: int = 3600
    auto_create_schema: bool = False  # metadata.create_all on startup (dev/tests)
    run_migrations_on_startup: bool = False  # alembic upgrade head on startup

    # API Configuration
    api_host: str = "0.0.0.0"
    api_port: int = 3702
    api_title: str = "Tarot Reading Gateway"
    api_version: str = "0.1.0"
    api_description: str = "Metered access control for AI tarot readings"
    cors_origins: str = "*"  # Comma-separated list

    # Admin dispatcher shared secret (X-Admin-Secret header)
    admin_secret_key: str = ""

    # Generative text provider (Google Gemini)
    gemini_api_key: str = ""
    gemini_model: str = "gemini-2.5-pro"
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    upstream_timeout_seconds: float = 60.0

    # Account policy
    allow_legacy_passwords: bool = True  # Accept plaintext/sha256 rows, upgrade on login
    reject_inactive_accounts: bool = False  # Banned/deleted tokens rejected at the gate
    serialize_account_requests: bool = True  # Per-account lock around metered calls
    seed_demo_accounts: bool = False

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"  # json or console

    # Observability - Metrics
    metrics_enabled: bool = True

    # Observability - Tracing
    tracing_enabled: bool = False
    otlp_endpoint: str = "http://otel-collector:4317"
    otlp_insecure: bool = True
    service_name: str = "tarot-gateway-api"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
    )

    @model_validator(mode="after")
    def validate_critical_config(self) -> "Settings":
        """
        FAIL FAST: Validate critical configuration at startup.

        The app MUST NOT start if critical config is missing.
        """
        errors: list[str] = []

        if not self.database_url:
            errors.append("DATABASE_URL is required but empty or missing")
        elif not self.database_url.startswith(("postgresql", "postgres", "sqlite")):
            errors.append(
                f"DATABASE_URL must be a PostgreSQL or SQLite URL, got: {self.database_url[:20]}..."
            )

        if self.log_format not in ("json", "console"):
            errors.append(f"LOG_FORMAT must be 'json' or 'console', got: {self.log_format}")

        if self.upstream_timeout_seconds <= 0:
            errors.append("UPSTREAM_TIMEOUT_SECONDS must be positive")

        if errors:
            error_msg = "\n".join(
                [
                    "",
                    "=" * 60,
                    "CRITICAL CONFIGURATION ERROR - APPLICATION CANNOT START",
                    "=" * 60,
                    *[f"  ✗ {e}" for e in errors],
                    "=" * 60,
                    "",
                ]
            )
            print(error_msg, file=sys.stderr)
            raise ConfigurationError(error_msg)

        return self

    @property
    def is_sqlite(self) -> bool:
        """True when the durable store is SQLite."""
        return self.database_url.startswith("sqlite")

    @property
    def upstream_configured(self) -> bool:
        """True when a generative provider key is present."""
        return bool(self.gemini_api_key)

    @property
    def allowed_cors_origins(self) -> list[str]:
        """Parse CORS_ORIGINS into a list."""
        origins = [o.strip() for o in self.cors_origins.split(",") if o.strip()]
        return origins or ["*"]


@lru_cache
def get_settings() -> Settings:
    """Build the process-wide settings once."""
    return Settings()
