import logging
import sys
from typing import Any, Dict

import structlog

from .config import settings

_REDACTED = "[REDACTED]"
_SENSITIVE_KEYS = frozenset(
    {
        "api_key",
        "apikey",
        "x-api-key",
        "x_api_key",
        "authorization",
        "token",
        "session_token",
        "password",
        "secret",
    }
)


def _add_app_context(_: Any, __: Any, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    event_dict.setdefault("service", "captaindata-mcp")
    event_dict.setdefault("env", settings.environment)
    return event_dict


def _redact(value: Any) -> Any:
    if isinstance(value, dict):
        return {
            key: _REDACTED if str(key).lower() in _SENSITIVE_KEYS else _redact(item)
            for key, item in value.items()
        }
    return value


def redact_sensitive(_: Any, __: Any, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    return _redact(event_dict)


def configure_logging() -> None:
    timestamper = structlog.processors.TimeStamper(fmt="iso")
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            timestamper,
            _add_app_context,
            redact_sensitive,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(settings.log_level.upper())
