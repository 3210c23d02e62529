"""
Application configuration using pydantic-settings.
Only the database URL is required at startup. Provider credentials are
checked when an endpoint needs them so one missing key never takes the
whole service down.
"""
from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    # Application
    app_env: str = "development"
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    app_base_url: str = "http://localhost:8000"
    log_level: str = "INFO"
    allowed_origins: str = ""  # Comma-separated dashboard origins

    # Database
    database_url: str
    database_pool_size: int = 20
    database_max_overflow: int = 10

    # Redis
    redis_url: str = "redis://localhost:6379/0"
    feature_flag_cache_ttl_seconds: int = 60

    # Retell (voice AI calls)
    retell_api_key: str = ""
    retell_api_base_url: str = "https://api.retellai.com"
    retell_fetch_call_details: bool = True

    # Twilio (outbound SMS)
    twilio_account_sid: str = ""
    twilio_auth_token: str = ""
    twilio_phone_number: str = ""

    # CINC lead source
    cinc_webhook_secret: str = ""

    # Outbound HTTP
    http_timeout_seconds: float = 10.0

    # Stale call sweeper
    stale_call_sweeper_enabled: bool = True
    stale_call_timeout_minutes: int = 30
    stale_call_sweep_interval_seconds: int = 300

    # Sentry
    sentry_dsn: str = ""

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache()
def get_settings() -> Settings:
    return Settings()
