"""
Periodic detector base - one cooperatively scheduled task per detector
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Optional

from ..utils.logging import log_detection_error

logger = logging.getLogger(__name__)


ReportCallback = Callable[[Any, str], Awaitable[Any]]


class PeriodicDetector(ABC):
    """
    Runs check() every `interval` seconds on its own asyncio task.

    A detector only suspends at its own interval boundary or while its
    report is in flight, so a slow detector never delays another. Errors
    raised by check() are detection noise: logged and otherwise ignored.
    """

    name = "detector"

    def __init__(self, interval: float, report: ReportCallback, identity: str = ""):
        self.interval = interval
        self.report = report
        self.identity = identity
        self.errors = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> asyncio.Task:
        if not self.running:
            self._task = asyncio.get_running_loop().create_task(self._run(), name=self.name)
            logger.debug(f"{self.name} started (every {self.interval}s)")
        return self._task

    def stop(self):
        """Cancel the pending timer; safe from synchronous code"""
        if self._task is not None:
            self._task.cancel()
            self._task = None

    async def _run(self):
        while True:
            await asyncio.sleep(self.interval)
            await self.tick()

    async def tick(self):
        """Run one check, swallowing detection noise"""
        try:
            await self.check()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.errors += 1
            log_detection_error(self.identity, self.name, e)

    @abstractmethod
    async def check(self):
        """One observation cycle; call self.report(type, details) to emit"""
