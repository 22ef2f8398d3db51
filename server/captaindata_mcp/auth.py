import re
from typing import Mapping

import structlog

from .errors import (
    InvalidAuthorizationFormat,
    InvalidOrExpiredToken,
    MissingAuthentication,
    SessionFeatureDisabled,
    redact_token,
)
from .session import SessionManager

logger = structlog.get_logger(__name__)

API_KEY_HEADER = "x-api-key"
AUTHORIZATION_HEADER = "authorization"

_BEARER_PREFIX = re.compile(r"^Bearer\s+", re.IGNORECASE)


def _lower_headers(headers: Mapping[str, str]) -> dict[str, str]:
    return {key.lower(): value for key, value in headers.items()}


async def extract_api_key(headers: Mapping[str, str], sessions: SessionManager) -> str:
    """Return the Captain Data API key to use for a request.

    A non-empty ``X-API-Key`` header always wins. Otherwise the
    ``Authorization: Bearer <token>`` session token is resolved through
    ``sessions``. Failures raise an :class:`~.errors.AuthError` subclass.
    """
    lowered = _lower_headers(headers)

    direct_key = lowered.get(API_KEY_HEADER)
    if isinstance(direct_key, str) and direct_key.strip():
        return direct_key.strip()

    auth_header = lowered.get(AUTHORIZATION_HEADER)
    if not isinstance(auth_header, str) or not auth_header:
        raise MissingAuthentication()

    if not _BEARER_PREFIX.match(auth_header):
        raise InvalidAuthorizationFormat()
    token = _BEARER_PREFIX.sub("", auth_header, count=1).strip()
    if not token:
        raise InvalidAuthorizationFormat()

    if not sessions.enabled:
        raise SessionFeatureDisabled()

    try:
        api_key = await sessions.get_session_token(token)
    except Exception as exc:
        logger.warning(
            "session_token_lookup_failed", token_prefix=redact_token(token), error=str(exc)
        )
        raise InvalidOrExpiredToken(token) from exc
    if not api_key:
        raise InvalidOrExpiredToken(token)
    return api_key
