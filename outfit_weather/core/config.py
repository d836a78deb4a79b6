"""Application configuration using Pydantic settings."""

from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Application
    app_name: str = "Outfit Weather"
    app_version: str = "1.0.0"
    debug: bool = False
    host: str = "0.0.0.0"
    port: int = 8000

    # Upstream APIs
    weather_api_url: str = "https://api.open-meteo.com/v1/forecast"
    reverse_geocoding_url: str = "https://api.bigdatacloud.net/data/reverse-geocode-client"
    request_timeout: int = 10
    temperature_unit: Literal["celsius", "fahrenheit"] = "celsius"
    wind_speed_unit: Literal["kmh", "mph", "ms", "kn"] = "kmh"

    # Retry policy
    retry_max_retries: int = 3
    retry_initial_delay_ms: int = 1000
    retry_backoff_multiplier: float = 2
    retry_max_delay_ms: int = 10000

    # Cache slot
    cache_backend: Literal["redis", "memory"] = "redis"
    cache_key: str = "outfit_weather_cache"
    cache_max_age_seconds: int = 1800  # 30 minutes
    cache_coord_threshold: float = 0.01  # ~1 km

    # Redis
    redis_host: str = "redis"
    redis_port: int = 6379
    redis_db: int = 0
    redis_password: str | None = None

    # Coordinator
    refresh_interval_seconds: float = 1800
    skeleton_delay_seconds: float = 1.0
    default_latitude: float | None = None
    default_longitude: float | None = None

    # Logging
    log_level: str = "INFO"
    log_json: bool = True


settings = Settings()
