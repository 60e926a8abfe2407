import asyncio
import time
from typing import Callable, Optional

from breathhold.ports.scheduler_port import Scheduler, ScheduledTask
from breathhold.utils.logging_handler import setup_logger

logger = setup_logger(__name__)


class _LoopTask(ScheduledTask):
    def __init__(self):
        self._handle: Optional[asyncio.TimerHandle] = None
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None


class AsyncioScheduler(Scheduler):
    """
    Scheduler backed by an asyncio event loop.

    Repeating callbacks are re-armed against the loop's monotonic clock so the
    cadence does not drift with callback run time. ``now`` is wall-clock time.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop):
        self.loop = loop

    def call_every(self, interval: float, callback: Callable[[], None]) -> ScheduledTask:
        task = _LoopTask()
        next_at = self.loop.time() + interval

        def fire():
            nonlocal next_at
            if task.cancelled:
                return
            next_at += interval
            # re-arm first so a slow callback does not push the next tick back
            task._handle = self.loop.call_at(next_at, fire)
            self._run(callback)

        task._handle = self.loop.call_at(next_at, fire)
        return task

    def call_later(self, delay: float, callback: Callable[[], None]) -> ScheduledTask:
        task = _LoopTask()

        def fire():
            if task.cancelled:
                return
            task._handle = None
            self._run(callback)

        task._handle = self.loop.call_later(delay, fire)
        return task

    def post(self, callback: Callable[[], None]) -> None:
        self.loop.call_soon_threadsafe(self._run, callback)

    def now(self) -> float:
        return time.time()

    @staticmethod
    def _run(callback):
        try:
            callback()
        except Exception:
            logger.exception("Unhandled exception in scheduled callback")
