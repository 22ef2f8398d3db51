import asyncio
import contextlib
import enum
from dataclasses import asdict, dataclass
from typing import Any, Callable

import redis.asyncio as aioredis
import structlog
from redis.exceptions import RedisError

from .errors import StoreUnavailable
from .tasks import PeriodicTask

logger = structlog.get_logger(__name__)

_CONNECTION_ERRORS = (RedisError, OSError)


class ConnectionState(str, enum.Enum):
    UNINITIALIZED = "uninitialized"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


@dataclass(frozen=True)
class StoreStatus:
    state: str
    connected: bool
    healthy: bool
    connection_attempts: int

    def as_dict(self) -> dict:
        return asdict(self)


def _default_client_factory(
    url: str, connect_timeout: float, command_timeout: float
) -> Any:
    return aioredis.Redis.from_url(
        url,
        socket_connect_timeout=connect_timeout,
        socket_timeout=command_timeout,
        socket_keepalive=True,
        decode_responses=True,
    )


class RedisSessionStore:
    """Durable ``session:<token>`` -> API key store backed by Redis.

    Without a URL the store stays uninitialized and reports itself
    unavailable. Connection failures trigger a bounded, backed-off reconnect
    loop; once the attempts are exhausted the client is dropped and the store
    remains unavailable until :meth:`reconnect` is called.
    """

    def __init__(
        self,
        url: str | None,
        *,
        max_connection_attempts: int = 3,
        reconnect_delay_seconds: float = 1.0,
        max_reconnect_delay_seconds: float = 30.0,
        health_check_interval_seconds: float = 30.0,
        connect_timeout_seconds: float = 5.0,
        command_timeout_seconds: float = 3.0,
        client_factory: Callable[[str, float, float], Any] = _default_client_factory,
    ) -> None:
        self._url = url
        self._client: Any = None
        self._state = ConnectionState.UNINITIALIZED
        self._healthy = False
        self._connection_attempts = 0
        self._max_connection_attempts = max_connection_attempts
        self._reconnect_delay = reconnect_delay_seconds
        self._max_reconnect_delay = max_reconnect_delay_seconds
        self._connect_timeout = connect_timeout_seconds
        self._command_timeout = command_timeout_seconds
        self._client_factory = client_factory
        self._reconnect_task: asyncio.Task | None = None
        self._health_check = PeriodicTask(
            "redis-health-check", health_check_interval_seconds, self._check_health
        )
        if not url:
            logger.info("redis_not_configured", fallback="memory")

    @property
    def configured(self) -> bool:
        return bool(self._url)

    def _key(self, token: str) -> str:
        return f"session:{token}"

    async def start(self) -> None:
        """Try Redis once. Further attempts run in the background."""
        if not self._url or self._client is not None:
            return
        self._client = self._client_factory(
            self._url, self._connect_timeout, self._command_timeout
        )
        self._health_check.start()
        if not await self._attempt_connect():
            self._schedule_reconnect()

    async def reconnect(self) -> bool:
        """Start over after the store gave up on its connection."""
        if not self._url:
            return False
        await self._cancel_reconnect()
        if self._client is None:
            self._client = self._client_factory(
                self._url, self._connect_timeout, self._command_timeout
            )
        self._connection_attempts = 0
        self._health_check.start()
        if await self._attempt_connect():
            return True
        return await self._reconnect_loop()

    async def close(self) -> None:
        await self._health_check.stop()
        await self._cancel_reconnect()
        await self._discard_client()
        if self._url:
            self._state = ConnectionState.DISCONNECTED

    def is_available(self) -> bool:
        return (
            self._client is not None
            and self._state is ConnectionState.CONNECTED
            and self._healthy
        )

    def get_status(self) -> StoreStatus:
        return StoreStatus(
            state=self._state.value,
            connected=self._state is ConnectionState.CONNECTED,
            healthy=self._healthy,
            connection_attempts=self._connection_attempts,
        )

    async def set(self, token: str, api_key: str, ttl_seconds: int) -> None:
        client = self._require_client()
        try:
            if ttl_seconds <= 0:
                await client.delete(self._key(token))
            else:
                await client.setex(self._key(token), ttl_seconds, api_key)
        except _CONNECTION_ERRORS as exc:
            logger.warning("redis_set_failed", error=str(exc))
            self._mark_disconnected()
            raise StoreUnavailable("Redis SET failed") from exc

    async def get(self, token: str) -> str | None:
        client = self._require_client()
        try:
            value = await client.get(self._key(token))
        except _CONNECTION_ERRORS as exc:
            logger.warning("redis_get_failed", error=str(exc))
            self._mark_disconnected()
            raise StoreUnavailable("Redis GET failed") from exc
        if isinstance(value, bytes):
            return value.decode("utf-8")
        return value

    async def delete(self, token: str) -> None:
        client = self._require_client()
        try:
            await client.delete(self._key(token))
        except _CONNECTION_ERRORS as exc:
            logger.warning("redis_delete_failed", error=str(exc))
            self._mark_disconnected()
            raise StoreUnavailable("Redis DEL failed") from exc

    async def ping(self) -> str | None:
        if self._client is None or self._state is not ConnectionState.CONNECTED:
            return None
        try:
            result = await self._client.ping()
        except _CONNECTION_ERRORS as exc:
            logger.warning("redis_ping_failed", error=str(exc))
            return None
        if result is True:
            return "PONG"
        if isinstance(result, bytes):
            return result.decode("utf-8")
        return str(result) if result else None

    def _require_client(self) -> Any:
        if not self.is_available():
            raise StoreUnavailable("Redis not available")
        return self._client

    def _backoff(self, attempt: int) -> float:
        return min(attempt * self._reconnect_delay, self._max_reconnect_delay)

    async def _attempt_connect(self) -> bool:
        if self._client is None:
            return False
        self._connection_attempts += 1
        self._state = ConnectionState.CONNECTING
        try:
            await self._client.ping()
        except _CONNECTION_ERRORS as exc:
            self._state = ConnectionState.DISCONNECTED
            self._healthy = False
            logger.warning(
                "redis_connect_failed", attempt=self._connection_attempts, error=str(exc)
            )
            if self._connection_attempts >= self._max_connection_attempts:
                logger.error(
                    "redis_max_connection_attempts_reached",
                    attempts=self._connection_attempts,
                    fallback="memory",
                )
                await self._discard_client()
            return False
        self._state = ConnectionState.CONNECTED
        self._healthy = True
        self._connection_attempts = 0
        logger.info("redis_connected")
        return True

    async def _reconnect_loop(self) -> bool:
        while self._client is not None:
            delay = self._backoff(max(1, self._connection_attempts))
            logger.info("redis_reconnecting", delay_seconds=delay)
            await asyncio.sleep(delay)
            if await self._attempt_connect():
                return True
        return False

    def _schedule_reconnect(self) -> None:
        if self._reconnect_task is None or self._reconnect_task.done():
            self._reconnect_task = asyncio.get_running_loop().create_task(
                self._reconnect_loop(), name="redis-reconnect"
            )

    def _mark_disconnected(self) -> None:
        if self._state is not ConnectionState.CONNECTED:
            return
        self._state = ConnectionState.DISCONNECTED
        self._healthy = False
        self._schedule_reconnect()

    async def _check_health(self) -> None:
        if self._client is None or self._state is not ConnectionState.CONNECTED:
            return
        try:
            await self._client.ping()
        except _CONNECTION_ERRORS as exc:
            if self._healthy:
                logger.warning("redis_health_check_failed", error=str(exc))
            self._healthy = False
            return
        if not self._healthy:
            logger.info("redis_health_restored")
        self._healthy = True

    async def _cancel_reconnect(self) -> None:
        task, self._reconnect_task = self._reconnect_task, None
        if task is None or task.done():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def _discard_client(self) -> None:
        client, self._client = self._client, None
        self._healthy = False
        if client is None:
            return
        try:
            await client.aclose()
        except _CONNECTION_ERRORS as exc:
            logger.warning("redis_close_failed", error=str(exc))
