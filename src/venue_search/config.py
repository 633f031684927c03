"""Application configuration via pydantic-settings."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """All runtime configuration, loaded from environment / .env file."""

    elasticsearch_url: str = "http://localhost:9200"
    elasticsearch_index: str = "contacts"
    elasticsearch_api_key: str | None = None
    request_timeout_seconds: float = 60.0
    tier_timeout_seconds: float = 10.0
    default_limit: int = 100
    log_level: str = "INFO"
    environment: str = "development"

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


# Module-level singleton; imported by the HTTP layer and facade defaults.
settings = Settings()
