"""
Application settings using Pydantic.

Provides environment-based configuration loading with LAKEDEPLOY_ prefix.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="LAKEDEPLOY_",
    )

    # Logging
    log_file: str = "lakedeploy.log"
    log_level: str = "INFO"

    # Azure Resource Manager (control plane)
    subscription_id: str | None = None
    location: str = "eastus"
    arm_base_url: str = "https://management.azure.com"
    arm_api_version: str = "2021-04-01"
    arm_token: str | None = None

    # HTTP client settings
    http_timeout: float = 60.0

    # Deployment polling
    deployment_poll_interval: float = 10.0
    deployment_timeout: float = 3600.0

    # Data plane
    sqlcmd_path: str = "sqlcmd"
    sql_timeout: int = 30
    sql_query_timeout: int = 600


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
