"""
Background loops for cache refresh and retention.

Each loop runs its action, then sleeps for a fixed interval until a stop
signal arrives. Stopping interrupts the sleep immediately but never an
action in progress; stop() waits for that action up to a grace period.
"""

import asyncio
from typing import Any, Awaitable, Callable, List, Optional

from loguru import logger

from .cache import CacheService
from .retention import RetentionService

DEFAULT_CACHE_INTERVAL = 10 * 60
DEFAULT_RETENTION_INTERVAL = 60 * 60


class BackgroundLoop:
    """A named periodic task with cooperative stop."""

    def __init__(self, name: str, action: Callable[[], Awaitable[Any]], interval_seconds: float):
        self.name = name
        self.action = action
        self.interval_seconds = interval_seconds
        self.iterations = 0
        self.failures = 0
        self._stop_event: Optional[asyncio.Event] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Schedule the loop on the running event loop."""
        if self.is_running:
            return
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._run(), name=f"bomrepo-{self.name}")

    async def _sleep(self) -> bool:
        """Sleep for one interval; returns True if stop was requested."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_seconds)
            return True
        except asyncio.TimeoutError:
            return False

    async def _run(self) -> None:
        logger.info(f"{self.name} loop started (interval {self.interval_seconds}s)")
        while not self._stop_event.is_set():
            self.iterations += 1
            logger.info(f"Running {self.name}...")
            try:
                await self.action()
            except Exception as e:
                self.failures += 1
                logger.exception(f"{self.name} iteration {self.iterations} failed: {e!r}")
            if await self._sleep():
                break
        logger.info(f"{self.name} loop stopped")

    async def stop(self, grace_seconds: Optional[float] = None) -> None:
        """
        Signal the loop to stop and wait for it.

        Args:
            grace_seconds: How long to wait for an iteration in progress;
                None waits indefinitely. When it runs out the task is cancelled.
        """
        if self._task is None:
            return
        self._stop_event.set()
        try:
            await asyncio.wait_for(asyncio.shield(self._task), timeout=grace_seconds)
        except asyncio.TimeoutError:
            logger.warning(f"{self.name} did not finish within {grace_seconds}s, cancelling")
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
        finally:
            self._task = None


class BackgroundScheduler:
    """Owns the cache refresh loop and the retention loop."""

    def __init__(self, cache: CacheService, retention: RetentionService,
                 cache_interval_seconds: float = DEFAULT_CACHE_INTERVAL,
                 retention_interval_seconds: float = DEFAULT_RETENTION_INTERVAL):
        self.cache_loop = BackgroundLoop("cache refresh", cache.update_cache, cache_interval_seconds)
        self.retention_loop = BackgroundLoop("retention", retention.process_retention, retention_interval_seconds)

    @property
    def loops(self) -> List[BackgroundLoop]:
        return [self.cache_loop, self.retention_loop]

    def start(self) -> None:
        for loop in self.loops:
            loop.start()

    async def stop(self, grace_seconds: Optional[float] = None) -> None:
        await asyncio.gather(*(loop.stop(grace_seconds) for loop in self.loops))
