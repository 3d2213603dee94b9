"""Service settings for stress-analytics.

Settings are read from the environment with the STRESS_ANALYTICS_ prefix,
e.g. ``STRESS_ANALYTICS_DATABASE_URL``.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings for the stress analytics API and recompute job.

    Environment variable prefix: STRESS_ANALYTICS_
    """

    service_name: str = "stress-analytics"

    # Storage
    database_url: str = "postgresql+asyncpg://localhost:5432/stress_analytics"
    database_echo: bool = False

    # Logging
    log_level: str = "INFO"
    log_json: bool = True

    model_config = SettingsConfigDict(env_prefix="STRESS_ANALYTICS_")
