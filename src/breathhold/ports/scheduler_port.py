from abc import ABC, abstractmethod
from typing import Callable


class ScheduledTask(ABC):
    """Handle returned by a Scheduler. A cancelled task never fires again."""

    @abstractmethod
    def cancel(self) -> None:
        pass

    @property
    @abstractmethod
    def cancelled(self) -> bool:
        pass


class Scheduler(ABC):
    """Source of time for clocks and the session.

    All callbacks are delivered one at a time on the scheduler's own thread, so
    everything driven by a scheduler shares a single-threaded view of the session.
    """

    @abstractmethod
    def call_every(self, interval: float, callback: Callable[[], None]) -> ScheduledTask:
        """Invoke ``callback`` every ``interval`` seconds until cancelled."""
        pass

    @abstractmethod
    def call_later(self, delay: float, callback: Callable[[], None]) -> ScheduledTask:
        """Invoke ``callback`` once after ``delay`` seconds unless cancelled."""
        pass

    @abstractmethod
    def post(self, callback: Callable[[], None]) -> None:
        """Hand a callback from another thread to the scheduler thread."""
        pass

    @abstractmethod
    def now(self) -> float:
        """Wall-clock time in seconds."""
        pass
