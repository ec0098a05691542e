"""
Configuration management for rapid-entities.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="Rapid Entities")
    debug: bool = Field(default=False)
    environment: str = Field(default="development")

    # API
    api_host: str = Field(default="0.0.0.0")
    api_port: int = Field(default=8000)
    base_url: str = Field(
        default="",
        description="Prefix for all data manager routes, e.g. '/api'.",
    )

    # Database
    database_url: str = Field(default="sqlite+aiosqlite:///./rapid_entities.db")
    schema_path: Optional[str] = Field(
        default=None,
        description="JSON file holding the model definitions to load at startup.",
    )

    # Cascading persistence
    atomic_cascades: bool = Field(
        default=True,
        description="Run cascading creates, updates and relation edits in one transaction.",
    )
    max_cascade_depth: int = Field(default=16, ge=1)

    # Logging
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")


# Global settings instance
settings = Settings()


def get_settings() -> Settings:
    """Get application settings."""
    return settings
