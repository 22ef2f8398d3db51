import math
import time
from dataclasses import dataclass

import structlog

logger = structlog.get_logger(__name__)

# Above this many tracked clients, stale windows are pruned on the next hit.
_PRUNE_THRESHOLD = 10_000


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    reset_after: int

    def headers(self) -> dict[str, str]:
        headers = {
            "x-ratelimit-limit": str(self.limit),
            "x-ratelimit-remaining": str(self.remaining),
            "x-ratelimit-reset": str(self.reset_after),
        }
        if not self.allowed:
            headers["retry-after"] = str(self.reset_after)
        return headers


@dataclass
class _Window:
    started_at: float
    count: int


class FixedWindowRateLimiter:
    """Per-client request counter that resets every ``window_seconds``."""

    def __init__(self, max_requests: int, window_seconds: int) -> None:
        self._max_requests = max_requests
        self._window_seconds = window_seconds
        self._windows: dict[str, _Window] = {}

    def now(self) -> float:
        return time.monotonic()

    def hit(self, client_key: str) -> RateLimitDecision:
        now = self.now()
        if len(self._windows) > _PRUNE_THRESHOLD:
            self._prune(now)

        window = self._windows.get(client_key)
        if window is None or now - window.started_at >= self._window_seconds:
            window = _Window(started_at=now, count=0)
            self._windows[client_key] = window

        reset_after = max(1, math.ceil(window.started_at + self._window_seconds - now))
        if window.count >= self._max_requests:
            logger.warning("rate_limit_exceeded", client=client_key, limit=self._max_requests)
            return RateLimitDecision(False, self._max_requests, 0, reset_after)

        window.count += 1
        return RateLimitDecision(
            True, self._max_requests, self._max_requests - window.count, reset_after
        )

    def reset(self) -> None:
        self._windows.clear()

    def _prune(self, now: float) -> None:
        stale = [
            key
            for key, window in self._windows.items()
            if now - window.started_at >= self._window_seconds
        ]
        for key in stale:
            del self._windows[key]
