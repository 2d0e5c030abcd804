"""
Configuration settings for the variable analysis system.
Uses Pydantic Settings for type-safe configuration with validation.
"""

from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Every field has a default so the package imports without a .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",  # Ignore extra env vars
    )

    # Database
    DATABASE_URL: str = Field(
        default="sqlite:///variables.db",
        description="SQLAlchemy URL for definitions, suites, settings and variable values",
    )

    # Logging
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    LOG_FORMAT: Literal["console", "json"] = Field(
        default="console",
        description="console for local development, json for log shipping",
    )

    # Model used for suite analysis
    MODEL_ANALYSIS: str = Field(
        default="claude-haiku-4-5-20251001",
        description="Model for variable extraction runs",
    )
    ANALYSIS_TEMPERATURE: float = Field(
        default=0.7,
        description="Sampling temperature for analysis requests",
        ge=0.0,
        le=2.0,
    )
    ANALYSIS_MAX_TOKENS: int = Field(
        default=4000,
        description="Maximum tokens in an analysis response",
        ge=1,
    )

    # ==================== Queue / Trigger Configuration ====================

    DEFAULT_SNAPSHOT_MODE: bool = Field(
        default=True,
        description="Use the chat length recorded at enqueue time instead of the live length "
                    "at processing time. Suites can override this per task.",
    )
    DEFAULT_TRIGGER_INTERVAL: int = Field(
        default=5,
        description="Message count for interval triggers that do not set their own interval",
        ge=1,
    )

    # ==================== Resolver Configuration ====================

    DEFAULT_CHAT_CONTENT_COUNT: int = Field(
        default=20,
        description="Floor count for 'latest' chat content ranges without an explicit count",
        ge=1,
    )
    MACRO_MAX_DEPTH: int = Field(
        default=10,
        description="Maximum passes when resolving nested macros",
        ge=1,
        le=50,
    )
    CHAT_FLOOR_MACRO_NAME: str = Field(
        default="floors",
        description="Macro name that addresses raw conversation floors, e.g. {{floors@1-5}}",
        min_length=1,
    )

    @field_validator("DATABASE_URL")
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        """Ensure database URL is properly formatted."""
        if not v.startswith(("sqlite://", "postgresql://", "postgresql+psycopg2://")):
            raise ValueError("DATABASE_URL must start with sqlite:// or postgresql://")
        return v


# Create singleton instance with validation
# This will automatically load from .env and validate all fields
settings = Settings()
