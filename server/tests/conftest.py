import os


def _set_default(key: str, value: str) -> None:
    os.environ.setdefault(key, value)


_set_default("ENVIRONMENT", "test")
_set_default("CD_API_BASE", "https://api.captaindata.test")
_set_default("VALIDATE_API_KEYS", "false")
_set_default("LOG_LEVEL", "WARNING")
_set_default("RETRY_DELAY_SECONDS", "0")
os.environ.pop("REDIS_URL", None)
os.environ.pop("OTEL_EXPORTER_OTLP_ENDPOINT", None)
