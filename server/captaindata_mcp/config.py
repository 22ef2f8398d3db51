from urllib.parse import urlparse

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _is_http_url(value: str) -> bool:
    parsed = urlparse(value)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=None, case_sensitive=False)

    environment: str = "development"
    log_level: str = "INFO"

    cd_api_base: str = "https://api.captaindata.com"
    api_timeout_seconds: float = 30.0
    max_retries: int = 2
    retry_delay_seconds: float = 1.0
    validate_api_keys: bool = True

    session_tokens_enabled: bool = True
    session_ttl_seconds: int = 86400

    redis_url: str | None = None
    redis_connect_timeout_seconds: float = 5.0
    redis_command_timeout_seconds: float = 3.0
    redis_max_connection_attempts: int = 3
    redis_reconnect_delay_seconds: float = 1.0
    redis_max_reconnect_delay_seconds: float = 30.0
    redis_health_check_interval_seconds: float = 30.0

    memory_store_capacity: int = 1000
    memory_store_sweep_interval_seconds: float = 300.0

    cors_origins: str = ""

    rate_limit_enabled: bool = True
    rate_limit_max: int = 100
    rate_limit_window_seconds: int = 60

    otel_exporter_otlp_endpoint: str | None = None
    datadog_api_key: str | None = None

    @property
    def cors_origin_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @model_validator(mode="after")
    def validate_urls(self) -> "Settings":
        if not _is_http_url(self.cd_api_base):
            raise ValueError("CD_API_BASE must be a valid URL")
        self.cd_api_base = self.cd_api_base.rstrip("/")
        if self.redis_url:
            if urlparse(self.redis_url).scheme not in ("redis", "rediss", "unix"):
                raise ValueError("REDIS_URL must use the redis://, rediss:// or unix:// scheme")
        else:
            self.redis_url = None
        if self.environment.lower() == "production":
            for origin in self.cors_origin_list:
                if not _is_http_url(origin):
                    raise ValueError(f"Invalid CORS origin: {origin}. Must be a valid URL.")
        if self.memory_store_capacity < 1:
            raise ValueError("MEMORY_STORE_CAPACITY must be at least 1")
        if self.rate_limit_max < 1 or self.rate_limit_window_seconds < 1:
            raise ValueError("RATE_LIMIT_MAX and RATE_LIMIT_WINDOW_SECONDS must be positive")
        return self


settings = Settings()
