"""Configuration management for EHS Identity.

Uses pydantic-settings to load configuration from environment variables.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _find_env_file() -> Path | None:
    """Search for .env file in common locations."""
    cwd = Path.cwd()
    check_dir = cwd
    for _ in range(5):
        if (check_dir / ".env").exists():
            return check_dir / ".env"
        parent = check_dir.parent
        if parent == check_dir:
            break
        check_dir = parent

    # Relative to this file (src/ehs_identity/config.py -> project root)
    project_root = Path(__file__).resolve().parent.parent.parent
    if (project_root / ".env").exists():
        return project_root / ".env"

    return None


_env_file = _find_env_file()


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=str(_env_file) if _env_file else ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # =========================
    # Environment
    # =========================
    environment: Literal["development", "staging", "production"] = "development"

    # =========================
    # API Settings
    # =========================
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_debug: bool = False
    cors_origins: str = "http://localhost:5173,http://localhost:3000"

    # =========================
    # PostgreSQL
    # =========================
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_db: str = "ehs_enforcement"
    postgres_user: str = "ehs"
    postgres_password: str = Field(default="", repr=False)

    # Any SQLAlchemy async URL, e.g. sqlite+aiosqlite:///./local.db
    database_url_override: str | None = Field(default=None, repr=False)

    @computed_field
    @property
    def database_url(self) -> str:
        """SQLAlchemy async database URL."""
        if self.database_url_override:
            return self.database_url_override
        return (
            f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    # =========================
    # Cache
    # =========================
    redis_url: str = "redis://localhost:6379/0"
    cache_backend: Literal["memory", "redis"] = "memory"
    registry_cache_ttl_seconds: int = 86400

    # =========================
    # Companies House
    # =========================
    companies_house_api_key: str = Field(default="", repr=False)
    companies_house_base_url: str = "https://api.company-information.service.gov.uk"
    companies_house_timeout_seconds: float = 10.0

    # =========================
    # Resolution tuning
    # =========================
    fuzzy_candidate_limit: int = Field(default=10, ge=1, le=100)
    trigram_search_threshold: float = Field(default=0.3, ge=0.0, le=1.0)
    offender_duplicate_scan_limit: int = Field(default=500, ge=1)

    # Threshold overrides; None keeps the defaults in resolution.scoring
    offender_match_threshold: float | None = Field(default=None, ge=0.0, le=1.0)
    legislation_match_threshold: float | None = Field(default=None, ge=0.0, le=1.0)
    merge_validation_threshold: float | None = Field(default=None, ge=0.0, le=1.0)

    # =========================
    # Logging
    # =========================
    log_level: str = "INFO"
    log_format: Literal["json", "text"] = "json"

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins as a list."""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
