import asyncio
from typing import Awaitable, Callable, List, Optional

from access_codes import AccessCodeStore
from constants import (
    CODE_SWEEP_INTERVAL_SECONDS,
    SESSION_IDLE_TIMEOUT_SECONDS,
    SESSION_SWEEP_INTERVAL_SECONDS,
)
from logging_config import get_logger
from sessions import SessionRegistry

logger = get_logger(__name__)


class Janitor:
    """Two independent periodic sweeps: idle sessions and expired access codes."""

    def __init__(self, registry: SessionRegistry, code_store: AccessCodeStore,
                 session_interval: float = SESSION_SWEEP_INTERVAL_SECONDS,
                 session_idle_timeout: float = SESSION_IDLE_TIMEOUT_SECONDS,
                 code_interval: float = CODE_SWEEP_INTERVAL_SECONDS):
        self.registry = registry
        self.code_store = code_store
        self.session_interval = session_interval
        self.session_idle_timeout = session_idle_timeout
        self.code_interval = code_interval
        self._tasks: List[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    async def sweep_sessions(self) -> int:
        removed = self.registry.sweep(self.session_idle_timeout)
        if removed:
            logger.info(f"Session sweep removed {removed} idle sessions")
        return removed

    async def sweep_codes(self) -> int:
        # backend calls block, keep them off the event loop
        loop = asyncio.get_running_loop()
        removed = await loop.run_in_executor(None, self.code_store.sweep_expired)
        if removed:
            logger.info(f"Code sweep removed {removed} expired codes")
        return removed

    async def _run_periodic(self, name: str, interval: float, sweep: Callable[[], Awaitable[int]],
                            iterations: Optional[int] = None):
        logger.info(f"Starting {name} sweep every {interval} seconds")
        count = 0
        while iterations is None or count < iterations:
            await asyncio.sleep(interval)
            count += 1
            try:
                await sweep()
            except Exception as e:
                logger.error(f"Error in {name} sweep: {e}", exc_info=True)

    def start(self):
        if self.running:
            return
        self._tasks = [
            asyncio.create_task(self._run_periodic("session", self.session_interval, self.sweep_sessions)),
            asyncio.create_task(self._run_periodic("code", self.code_interval, self.sweep_codes)),
        ]

    async def stop(self):
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks = []
        logger.info("Janitor stopped")
