from breathhold.tools.time_tools.base_tool import TimeTool
from breathhold.ports.scheduler_port import Scheduler
from breathhold.utils import Event
from breathhold.utils.time_conversions import format_seconds_to_mm_ss
from breathhold.utils.logging_handler import setup_logger

logger = setup_logger(__name__)


class PhaseClock(TimeTool):
    """
    One-second clock bound to the current phase.

    Counting down, ``remaining`` drops by one per tick, clamps at zero and
    ``on_expired`` fires exactly once. Counting up (tap-mode hold), ``remaining``
    holds the elapsed tick count and grows without bound; it never expires.

    Each ``start`` opens a new run; ``run_id`` lets listeners ignore signals
    belonging to a phase that has already been left.
    """
    def __init__(self, scheduler: Scheduler, interval: float = 1.0):
        super().__init__(scheduler, interval)
        self._remaining = 0
        self._count_up = False
        self._expired = False
        self._run_id = 0

        self.on_expired = Event("on_expired")

    @property
    def remaining(self) -> int:
        return self._remaining

    @property
    def count_up(self) -> bool:
        return self._count_up

    @property
    def expired(self) -> bool:
        return self._expired

    @property
    def run_id(self) -> int:
        return self._run_id

    def start(self, initial_remaining: int, count_up: bool = False) -> int:
        """
        Starts a new run and returns its id.

        Args:
            initial_remaining (int): Seconds left for a countdown, or the elapsed
                                     starting point (normally 0) when counting up.
            count_up (bool): Count elapsed time instead of remaining time.
        """
        if initial_remaining < 0:
            raise ValueError("initial_remaining cannot be negative")
        self._run_id += 1
        self._remaining = int(initial_remaining)
        self._count_up = count_up
        self._expired = False
        self._begin()
        self.on_start.emit(run_id=self._run_id, remaining=self._remaining, count_up=count_up)
        logger.debug(
            f"Clock run {self._run_id} started at {format_seconds_to_mm_ss(self._remaining)} "
            f"({'up' if count_up else 'down'})."
        )
        return self._run_id

    def reset(self):
        super().reset()
        self._remaining = 0
        self._count_up = False
        self._expired = False

    def get_status(self):
        return {
            "is_running": self._is_running,
            "paused": self.paused,
            "run_id": self._run_id,
            "remaining": self._remaining,
            "count_up": self._count_up,
            "expired": self._expired,
            "remaining_formatted": format_seconds_to_mm_ss(self._remaining),
        }

    def _run(self):
        run_id = self._run_id
        if self._count_up:
            self._remaining += 1
            self.on_tick.emit(remaining=self._remaining, run_id=run_id)
            return

        self._remaining = max(0, self._remaining - 1)
        self.on_tick.emit(remaining=self._remaining, run_id=run_id)
        # a tick listener may already have moved on to another run
        if run_id != self._run_id or not self._is_running:
            return
        if self._remaining == 0 and not self._expired:
            self._expired = True
            self.stop()
            self.on_expired.emit(run_id=run_id)
