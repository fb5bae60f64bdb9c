from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables or a .env file."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", case_sensitive=False)

    app_name: str = "Report Relay"
    app_version: str = "0.1.0"
    environment: str = "local"

    host: str = "0.0.0.0"
    port: int = 3000

    log_json: bool = False
    log_level: str = "INFO"

    # API key -> mPulse REST secret, as a flat JSON object.
    apps_file: str = "apps.json"
    # Attach the raw report (and script location, where present) to each beacon error.
    include_full_report: bool = False

    mpulse_config_url: str = "https://c.go-mpulse.net/api/config.json"
    mpulse_user_agent: str = "report-uri-mpulse"
    mpulse_timeout_seconds: float = 5.0
    mpulse_config_ttl_seconds: int = 300

    sentry_dsn: str | None = None
    sentry_traces_sample_rate: float = 0.0
    sentry_enable_logs: bool = False
    sentry_log_level: str = "error"


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
