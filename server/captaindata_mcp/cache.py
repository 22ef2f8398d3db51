import heapq
import time
from dataclasses import dataclass

import structlog

from .tasks import PeriodicTask

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class SessionRecord:
    api_key: str
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


class InMemorySessionStore:
    """Bounded token -> API key map used when Redis is absent or failing.

    Records expire lazily on read and through a periodic sweep. When the
    store is full, the records closest to expiry are evicted first.
    """

    def __init__(self, capacity: int = 1000, sweep_interval_seconds: float = 300.0) -> None:
        self._capacity = capacity
        self._records: dict[str, SessionRecord] = {}
        self._sweeper = PeriodicTask(
            "memory-session-sweep", sweep_interval_seconds, self._run_sweep
        )

    @property
    def capacity(self) -> int:
        return self._capacity

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, token: object) -> bool:
        return token in self._records

    def now(self) -> float:
        return time.time()

    def store(self, token: str, api_key: str, ttl_seconds: int) -> None:
        self._records[token] = SessionRecord(api_key, self.now() + ttl_seconds)
        # The new record is itself a candidate: a short-lived newcomer goes first.
        if len(self._records) > self._capacity:
            evicted = self._evict_soonest(max(1, self._capacity // 10))
            logger.info("memory_store_evicted", evicted=evicted, capacity=self._capacity)

    def resolve(self, token: str) -> str | None:
        record = self._records.get(token)
        if record is None:
            return None
        if record.is_expired(self.now()):
            self._records.pop(token, None)
            return None
        return record.api_key

    def delete(self, token: str) -> None:
        self._records.pop(token, None)

    def sweep(self) -> int:
        now = self.now()
        expired = [token for token, record in self._records.items() if record.is_expired(now)]
        for token in expired:
            del self._records[token]
        removed = len(expired)
        excess = len(self._records) - self._capacity
        if excess > 0:
            removed += self._evict_soonest(excess + max(1, self._capacity // 5))
        if removed:
            logger.info("memory_store_swept", removed=removed, size=len(self._records))
        return removed

    def start(self) -> None:
        self._sweeper.start()

    async def close(self) -> None:
        await self._sweeper.stop()

    def _evict_soonest(self, count: int) -> int:
        victims = heapq.nsmallest(
            count, self._records.items(), key=lambda item: item[1].expires_at
        )
        for token, _ in victims:
            del self._records[token]
        return len(victims)

    async def _run_sweep(self) -> None:
        self.sweep()
