from abc import ABC, abstractmethod
from breathhold.ports.scheduler_port import Scheduler, ScheduledTask
from breathhold.utils.logging_handler import setup_logger
from breathhold.utils import Event

logger = setup_logger(__name__)


class TimeTool(ABC):
    """
    An abstract base class for tick-driven time tools.
    It handles the fundamental state logic for starting, pausing, resuming and
    stopping, and emits an event for each of them. Ticks come from an injected
    Scheduler rather than a private thread, so a test can deliver them by hand.
    """
    def __init__(self, scheduler: Scheduler, interval: float = 1.0):
        """Initializes the TimeTool with default states and event hooks."""
        self._scheduler = scheduler
        self._interval = interval
        self._task: ScheduledTask | None = None
        self._is_running = False
        self.paused = False

        self.on_tick = Event("on_tick")
        self.on_start = Event("on_start")
        self.on_pause = Event("on_pause")
        self.on_resume = Event("on_resume")
        self.on_stop = Event("on_stop")
        self.on_reset = Event("on_reset")

    @property
    def is_running(self):
        """Property that returns True if the tool is currently ticking."""
        return self._is_running

    @abstractmethod
    def start(self, *args, **kwargs):
        """
        Abstract method to start the tool.
        Must be implemented by subclasses to define specific start behavior.
        """
        pass

    def pause(self):
        """
        Pauses the current operation. The pending tick is cancelled; the tool's
        counters are left exactly as they are.
        """
        if self._is_running:
            self._is_running = False
            self.paused = True
            self._cancel_task()
            self.on_pause.emit()
            logger.debug(f"{self.__class__.__name__} paused.")

    def resume(self):
        """
        Resumes the operation from the paused state with a fresh tick interval.
        """
        if not self._is_running and self.paused:
            self._is_running = True
            self.paused = False
            self._schedule()
            self.on_resume.emit()
            logger.debug(f"{self.__class__.__name__} resumed.")

    def stop(self):
        """
        Stops the tool completely. A tick that is already due is dropped.
        """
        was_active = self._is_running or self.paused
        self._is_running = False
        self.paused = False
        self._cancel_task()
        if was_active:
            self.on_stop.emit()
            logger.debug(f"{self.__class__.__name__} stopped.")

    @abstractmethod
    def reset(self):
        """
        Resets internal counters and flags to their initial state.
        """
        self.stop()
        self.on_reset.emit()
        logger.debug(f"{self.__class__.__name__} reset.")

    @abstractmethod
    def get_status(self):
        """
        Should return a dictionary containing relevant state data.
        """
        pass

    @abstractmethod
    def _run(self):
        """
        Handles a single tick. Only called while the tool is running.
        """
        pass

    def _begin(self):
        """Marks the tool running and schedules ticks at the configured interval."""
        self._cancel_task()
        self._is_running = True
        self.paused = False
        self._schedule()

    def _schedule(self):
        self._task = self._scheduler.call_every(self._interval, self._on_scheduled_tick)

    def _cancel_task(self):
        if self._task is not None:
            self._task.cancel()
            self._task = None

    def _on_scheduled_tick(self):
        if not self._is_running:
            return
        self._run()
