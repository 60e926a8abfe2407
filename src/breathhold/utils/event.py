import asyncio
import inspect
from typing import Callable, List, Optional, Tuple

from breathhold.utils import setup_logger

logger = setup_logger(__name__)


class Event:
    """Synchronous multicast hook used by clocks, the session and the trainer.

    Listeners run in registration order on the emitting thread. A listener that
    returns a coroutine is scheduled on ``loop``; a failing listener is logged and
    never interrupts the emitter or the remaining listeners.
    """

    def __init__(self, name: str = "event", loop: Optional[asyncio.AbstractEventLoop] = None):
        self.name = name
        self.loop = loop
        self._listeners: List[Tuple[Callable, bool]] = []

    def add_listener(self, listener: Callable, once: bool = False) -> Callable:
        """Register ``listener``; with ``once`` it is dropped after its first call."""
        if not callable(listener):
            raise ValueError("Listener must be callable")
        self._listeners.append((listener, once))
        return listener

    def remove_listener(self, listener: Callable):
        self._listeners = [(fn, once) for fn, once in self._listeners if fn != listener]

    def clear(self):
        self._listeners.clear()

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def emit(self, *args, **kwargs) -> int:
        """Call every listener. Returns the number of listeners that raised."""
        failures = 0
        for listener, once in list(self._listeners):
            if once:
                self.remove_listener(listener)
            try:
                result = listener(*args, **kwargs)
            except Exception:
                failures += 1
                logger.exception(f"Error in {self.name} listener")
                continue
            if inspect.iscoroutine(result):
                self._schedule(result)
        return failures

    def _schedule(self, coro):
        if self.loop is None or self.loop.is_closed():
            coro.close()
            logger.error(f"Async {self.name} listener needs a running event loop; dropped")
            return
        self.loop.call_soon_threadsafe(lambda: self.loop.create_task(self._safe_task(coro)))

    async def _safe_task(self, coro):
        try:
            await coro
        except Exception:
            logger.exception(f"Unhandled exception in async {self.name} listener")
