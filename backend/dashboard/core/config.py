"""
Centralized configuration management.

All dashboard configuration is loaded and validated here.
"""
import os
import logging
from typing import List, Optional
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

DEFAULT_DATA_URL = (
    "https://raw.githubusercontent.com/HEMANGANI/Enrollment-Forecast/refs/heads/main/test%20data.csv"
)


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Settings(BaseModel):
    """Application settings with validation."""

    # Upload settings
    max_file_size_mb: int = Field(default=50, ge=1, le=1000, description="Maximum upload size in MB")
    max_preview_rows: int = Field(default=100, ge=10, le=10000, description="Maximum rows per preview page")

    # Rate limiting (load and upload endpoints)
    rate_limit_per_minute: int = Field(default=30, ge=1, le=1000, description="Load requests per minute per IP")

    # Timeouts
    request_timeout_seconds: int = Field(default=120, ge=1, le=3600, description="Request timeout in seconds")
    url_fetch_timeout_seconds: float = Field(default=15.0, gt=0, le=300, description="Timeout for remote CSV fetches")

    # CORS
    allowed_origins: str = Field(
        default="http://localhost:3000,http://localhost:3001",
        description="Comma-separated list of allowed CORS origins"
    )

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="text", description="'text' or 'json'")

    # Sessions
    session_ttl_seconds: int = Field(default=3600, ge=60, le=86400, description="Idle session lifetime")

    # Charts
    histogram_bins: int = Field(default=30, ge=1, le=500, description="Equal-width bins for numeric histograms")
    default_ci_level: float = Field(default=0.95, ge=0.80, le=0.99, description="Initial forest plot confidence level")
    forest_plot_enabled: bool = Field(default=True, description="Whether this deployment can render forest plots")
    forest_missing_groups: str = Field(default="exclude", description="'exclude' or 'separate'")

    # Data sources
    default_data_url: str = Field(default=DEFAULT_DATA_URL, description="URL pre-filled for the url data source")

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of {valid_levels}, got '{v}'")
        return v.upper()

    @field_validator('log_format')
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        if v.lower() not in ("text", "json"):
            raise ValueError(f"LOG_FORMAT must be 'text' or 'json', got '{v}'")
        return v.lower()

    @field_validator('forest_missing_groups')
    @classmethod
    def validate_missing_groups(cls, v: str) -> str:
        if v.lower() not in ("exclude", "separate"):
            raise ValueError(f"FOREST_MISSING_GROUPS must be 'exclude' or 'separate', got '{v}'")
        return v.lower()

    @property
    def max_file_size_bytes(self) -> int:
        """Get max upload size in bytes."""
        return self.max_file_size_mb * 1024 * 1024

    @property
    def allowed_origins_list(self) -> List[str]:
        """Get allowed origins as a list."""
        return [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]

    @classmethod
    def from_env(cls) -> "Settings":
        """Load settings from environment variables."""
        return cls(
            max_file_size_mb=int(os.getenv("MAX_FILE_SIZE_MB", "50")),
            max_preview_rows=int(os.getenv("MAX_PREVIEW_ROWS", "100")),
            rate_limit_per_minute=int(os.getenv("RATE_LIMIT_PER_MINUTE", "30")),
            request_timeout_seconds=int(os.getenv("REQUEST_TIMEOUT_SECONDS", "120")),
            url_fetch_timeout_seconds=float(os.getenv("URL_FETCH_TIMEOUT_SECONDS", "15")),
            allowed_origins=os.getenv("ALLOWED_ORIGINS", "http://localhost:3000,http://localhost:3001"),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "text"),
            session_ttl_seconds=int(os.getenv("SESSION_TTL_SECONDS", "3600")),
            histogram_bins=int(os.getenv("HISTOGRAM_BINS", "30")),
            default_ci_level=float(os.getenv("DEFAULT_CI_LEVEL", "0.95")),
            forest_plot_enabled=_env_bool("FOREST_PLOT_ENABLED", "true"),
            forest_missing_groups=os.getenv("FOREST_MISSING_GROUPS", "exclude"),
            default_data_url=os.getenv("DEFAULT_DATA_URL", DEFAULT_DATA_URL),
        )


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get application settings (singleton pattern)."""
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
        logger.info("Configuration loaded and validated successfully")
    return _settings


def reload_settings() -> Settings:
    """Reload settings (useful for testing)."""
    global _settings
    _settings = None
    return get_settings()
