"""
Engine Configuration

Uses pydantic-settings for environment variable loading with validation.
All configuration is centralized here for easy management.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Engine settings loaded from environment variables.

    Environment variables can be set directly or via .env file.
    """

    model_config = SettingsConfigDict(
        env_prefix="DYNPAGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==========================================================================
    # Environment
    # ==========================================================================
    environment: Literal["development", "testing", "production"] = Field(
        default="development",
        description="Runtime environment"
    )

    log_level: str = Field(
        default="INFO",
        description="Log level for the dynpage logger"
    )

    # ==========================================================================
    # Transport
    # ==========================================================================
    api_base_url: str = Field(
        default="http://localhost:8080/api",
        description="Base URL prepended to relative descriptor and action URLs"
    )

    api_token: str | None = Field(
        default=None,
        description="Auth token attached to every request"
    )

    auth_header_name: str = Field(
        default="avToken",
        description="Header that carries the auth token"
    )

    request_timeout_seconds: float | None = Field(
        default=None,
        description="Request timeout in seconds (None = wait until the server answers)"
    )

    # ==========================================================================
    # Pagination
    # ==========================================================================
    default_page_size: int = Field(
        default=10,
        description="Page size used when the descriptor does not declare one"
    )

    page_no_param: str = Field(
        default="pageNo",
        description="Query parameter carrying the 0-based page number"
    )

    page_size_param: str = Field(
        default="pageSize",
        description="Query parameter carrying the page size"
    )

    audit_page_size: int = Field(
        default=10,
        description="Page size for audit trail requests"
    )

    # ==========================================================================
    # Rendering
    # ==========================================================================
    image_placeholder_url: str = Field(
        default="https://via.placeholder.com/100x60?text=No+Image",
        description="Thumbnail substituted when an image fails to load"
    )

    empty_state_text: str = Field(
        default="No data found",
        description="Fallback text for tables with zero rows"
    )

    @computed_field
    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == "production"


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()
