import asyncio
import contextlib
from typing import Awaitable, Callable

import structlog

logger = structlog.get_logger(__name__)


class PeriodicTask:
    """Runs ``callback`` every ``interval_seconds`` on the running event loop.

    The task is owned by whoever starts it. ``stop`` cancels the loop and is
    safe to call any number of times, including before ``start``.
    """

    def __init__(
        self,
        name: str,
        interval_seconds: float,
        callback: Callable[[], Awaitable[None]],
    ) -> None:
        self._name = name
        self._interval = interval_seconds
        self._callback = callback
        self._task: asyncio.Task | None = None

    @property
    def name(self) -> str:
        return self._name

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        loop = asyncio.get_running_loop()
        self._task = loop.create_task(self._run(), name=self._name)

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None or task.done():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                await self._callback()
            except Exception:
                logger.exception("periodic_task_failed", task=self._name)
