"""
Configuration module using Pydantic Settings.
Handles environment variables and analytics configuration.
"""

from typing import Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # App settings
    app_name: str = Field(default="finlytics", description="Application name")
    version: str = Field(default="1.0.0", description="Application version")
    debug: bool = Field(default=False, description="Debug mode")
    environment: str = Field(default="production", description="Environment name")

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="json", description="Log renderer: json or console")

    # Historical windows (days) loaded before the requested period
    prediction_lookback_days: int = Field(default=365, ge=1, description="Spending prediction history")
    trend_lookback_days: int = Field(default=180, ge=1, description="Trend analysis history")
    forecast_lookback_days: int = Field(default=365, ge=1, description="Financial forecast history")
    cash_flow_lookback_days: int = Field(default=90, ge=1, description="Cash flow prediction history")
    category_baseline_days: int = Field(default=90, ge=1, description="Category anomaly baseline window")

    # Database
    firestore_project_id: Optional[str] = Field(default=None, description="Firestore project ID")
    firestore_database: str = Field(default="(default)", description="Firestore database name")
    use_firestore_emulator: bool = Field(default=False, description="Use Firestore emulator")
    firestore_emulator_host: str = Field(default="localhost:8081", description="Firestore emulator host")
    google_credentials_path: Optional[str] = Field(default=None, description="Path to Google credentials JSON file")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level. Must be one of: {valid_levels}")
        return v.upper()

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v):
        """Validate log renderer."""
        valid_formats = ["json", "console"]
        if v.lower() not in valid_formats:
            raise ValueError(f"Invalid log format. Must be one of: {valid_formats}")
        return v.lower()

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v):
        """Validate environment."""
        valid_envs = ["development", "testing", "staging", "production"]
        if v.lower() not in valid_envs:
            raise ValueError(f"Invalid environment. Must be one of: {valid_envs}")
        return v.lower()

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment == "development"

    @property
    def is_testing(self) -> bool:
        """Check if running in testing mode."""
        return self.environment == "testing"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == "production"


# Global settings instance
settings = Settings()


def get_settings() -> Settings:
    """Get settings instance. Useful for dependency injection."""
    return settings
