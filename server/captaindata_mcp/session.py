import secrets
from dataclasses import dataclass

import structlog

from .cache import InMemorySessionStore
from .errors import redact_token
from .token_store import RedisSessionStore

logger = structlog.get_logger(__name__)

DEFAULT_SESSION_TTL_SECONDS = 86400


@dataclass(frozen=True)
class IssuedToken:
    session_token: str
    expires_in: int


def generate_session_token() -> str:
    return secrets.token_urlsafe(32)


class SessionManager:
    """Single token store over Redis with an in-memory fallback.

    Redis is used whenever it reports itself available; any failure there
    falls through to the in-memory store without surfacing to the caller.
    The two stores are not kept in sync.
    """

    def __init__(
        self,
        durable: RedisSessionStore,
        fallback: InMemorySessionStore,
        default_ttl_seconds: int = DEFAULT_SESSION_TTL_SECONDS,
        enabled: bool = True,
    ) -> None:
        self._durable = durable
        self._fallback = fallback
        self._default_ttl = default_ttl_seconds
        self._enabled = enabled

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def durable(self) -> RedisSessionStore:
        return self._durable

    @property
    def fallback(self) -> InMemorySessionStore:
        return self._fallback

    async def start(self) -> None:
        await self._durable.start()
        self._fallback.start()

    async def close(self) -> None:
        await self._durable.close()
        await self._fallback.close()

    async def issue_token(self, api_key: str, ttl_seconds: int | None = None) -> IssuedToken:
        ttl = self._default_ttl if ttl_seconds is None else ttl_seconds
        token = generate_session_token()
        await self.store_session_token(token, api_key, ttl)
        logger.info("session_token_issued", token_prefix=redact_token(token), expires_in=ttl)
        return IssuedToken(session_token=token, expires_in=ttl)

    async def store_session_token(
        self, token: str, api_key: str, ttl_seconds: int | None = None
    ) -> None:
        ttl = self._default_ttl if ttl_seconds is None else ttl_seconds
        if self._durable.is_available():
            try:
                await self._durable.set(token, api_key, ttl)
                return
            except Exception as exc:
                logger.warning(
                    "session_store_fallback", operation="set", error=str(exc)
                )
        self._fallback.store(token, api_key, ttl)

    async def get_session_token(self, token: str) -> str | None:
        if self._durable.is_available():
            try:
                return await self._durable.get(token)
            except Exception as exc:
                logger.warning(
                    "session_store_fallback", operation="get", error=str(exc)
                )
        return self._fallback.resolve(token)

    async def delete_session_token(self, token: str) -> None:
        if self._durable.is_available():
            try:
                await self._durable.delete(token)
                return
            except Exception as exc:
                logger.warning(
                    "session_store_fallback", operation="delete", error=str(exc)
                )
        self._fallback.delete(token)
