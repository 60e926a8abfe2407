"""
Breath-hold session state machine.

idle -> breathe(0) -> hold(0) -> breathe(1) -> ... -> hold(n-1) -> complete

Timed phases end when the phase clock expires. A tap-mode hold counts up and
only ends on ``tap_end_hold``. ``stop`` either discards the session (back to
idle) or keeps what was achieved so far (complete).
"""
import math
from dataclasses import dataclass
from typing import Any, Callable, Optional, Sequence, Tuple

from breathhold.core import announcements
from breathhold.core.announcements import AnnouncementPolicy, phase_entry_text
from breathhold.core.models import BreathCycle, CycleResult, SessionSnapshot
from breathhold.core.results import ResultAggregator
from breathhold.core.settings import TimerSettings
from breathhold.core.speech_queue import SpeechDispatchQueue
from breathhold.core.status import SessionPhase
from breathhold.ports.scheduler_port import Scheduler, ScheduledTask
from breathhold.tools.time_tools.phase_clock import PhaseClock
from breathhold.utils import Event
from breathhold.utils.logging_handler import setup_logger

logger = setup_logger(__name__)

AUTO_SAVE_DELAY = 1.0

AutoSave = Callable[[Tuple[CycleResult, ...], str], Any]


def _round_seconds(seconds: float) -> int:
    return int(math.floor(seconds + 0.5))


@dataclass
class _SessionState:
    phase: SessionPhase = SessionPhase.IDLE
    current_cycle_index: int = 0
    time_remaining: int = 0
    total_phase_time: int = 0
    is_running: bool = False
    progress: float = 0.0
    is_tap_mode: bool = False


class BreathHoldSession:
    """
    Owns the session state and is the only thing that changes it.

    Consumers read ``snapshot()`` or listen to ``on_state_change``; they act
    through ``start``, ``pause``, ``resume``, ``stop`` and ``tap_end_hold``.
    Actions that do not apply in the current state are ignored.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        speech_queue: Optional[SpeechDispatchQueue] = None,
        settings: Optional[TimerSettings] = None,
        auto_save: Optional[AutoSave] = None,
    ):
        self._scheduler = scheduler
        self._speech = speech_queue or SpeechDispatchQueue()
        self._settings = settings or TimerSettings()
        self._policy = AnnouncementPolicy(self._settings)
        self._results = ResultAggregator()
        self._auto_save = auto_save

        self._clock = PhaseClock(scheduler)
        self._clock.on_tick.add_listener(self._handle_tick)
        self._clock.on_expired.add_listener(self._handle_expired)

        self._state = _SessionState()
        self._cycles: Tuple[BreathCycle, ...] = ()
        self._table_id: Optional[str] = None
        self._active_run_id: Optional[int] = None
        self._phase_started_at: Optional[float] = None
        self._transitioning = False
        self._auto_save_task: Optional[ScheduledTask] = None

        self.on_state_change = Event("on_state_change")
        self.on_phase_change = Event("on_phase_change")
        self.on_complete = Event("on_complete")

    # ------------------------------------------------------------------
    # read side
    # ------------------------------------------------------------------
    @property
    def phase(self) -> SessionPhase:
        return self._state.phase

    @property
    def settings(self) -> TimerSettings:
        return self._settings

    @property
    def table_id(self) -> Optional[str]:
        return self._table_id

    @property
    def results(self) -> Tuple[CycleResult, ...]:
        return self._results.snapshot()

    def snapshot(self) -> SessionSnapshot:
        state = self._state
        tap_hold = state.phase is SessionPhase.HOLD and state.is_tap_mode
        return SessionSnapshot(
            phase=state.phase,
            current_cycle_index=state.current_cycle_index,
            time_remaining=state.time_remaining,
            total_phase_time=state.total_phase_time,
            is_running=state.is_running,
            progress=None if tap_hold else state.progress,
            total_cycles=len(self._cycles),
            is_tap_mode=state.is_tap_mode,
            cycle_results=self._results.snapshot(),
            table_id=self._table_id,
        )

    def update_settings(self, settings: TimerSettings) -> None:
        """New settings apply from the next phase transition onwards."""
        self._settings = settings

    # ------------------------------------------------------------------
    # actions
    # ------------------------------------------------------------------
    def start(self, cycles: Sequence[BreathCycle], table_id: Optional[str] = None) -> bool:
        cycles = tuple(cycles)
        if not cycles:
            logger.debug("Ignoring start with an empty cycle sequence.")
            return False

        self._clock.stop()
        self._cancel_auto_save()
        self._speech.clear()
        self._results.clear()
        self._cycles = cycles
        self._table_id = table_id
        self._state = _SessionState()
        self._phase_started_at = None
        self._transitioning = False

        logger.info(f"Session started: {len(cycles)} cycles, table={table_id}.")
        self._enter_breathe(0)
        self._publish()
        return True

    def pause(self) -> bool:
        state = self._state
        if not state.phase.is_active or not state.is_running:
            logger.debug(f"Ignoring pause in {state.phase.value} (running={state.is_running}).")
            return False
        self._clock.pause()
        state.is_running = False
        self._speech.enqueue(announcements.PAUSED)
        logger.info(f"Paused in {state.phase.value} of cycle {state.current_cycle_index} at {state.time_remaining}s.")
        self._publish()
        return True

    def resume(self) -> bool:
        state = self._state
        if not state.phase.is_active or state.is_running:
            logger.debug(f"Ignoring resume in {state.phase.value} (running={state.is_running}).")
            return False
        self._clock.resume()
        state.is_running = True
        self._speech.enqueue(announcements.RESUMING)
        logger.info(f"Resumed {state.phase.value} of cycle {state.current_cycle_index}.")
        self._publish()
        return True

    def tap_end_hold(self) -> bool:
        """Ends a running tap-mode hold; the elapsed tick count becomes the hold time."""
        state = self._state
        if state.phase is not SessionPhase.HOLD or not state.is_tap_mode or not state.is_running:
            logger.debug("Ignoring tap outside a running tap-mode hold.")
            return False
        if self._transitioning:
            logger.debug("Ignoring tap while a transition is in progress.")
            return False
        elapsed = self._clock.remaining
        # the manual end wins over anything the old run might still signal
        self._active_run_id = None
        self._clock.stop()
        return self._transition(self._finish_hold, elapsed)

    def stop(self, save_as_completed: bool = False) -> Tuple[CycleResult, ...]:
        """
        Stops the session.

        With ``save_as_completed`` an active session moves to complete and keeps
        its results (an interrupted hold is recorded first). Without it the
        results are discarded and the session returns to idle.
        """
        state = self._state
        phase = state.phase
        self._clock.stop()
        self._active_run_id = None
        self._speech.clear()
        self._policy.reset()

        if save_as_completed and phase.is_active:
            if phase is SessionPhase.HOLD:
                self._record_hold(self._measure_hold())
            state.phase = SessionPhase.COMPLETE
            self._speech.enqueue(announcements.COMPLETE)
            logger.info(f"Session stopped and kept with {len(self._results)} results.")
            self.on_phase_change.emit(phase=SessionPhase.COMPLETE, cycle_index=state.current_cycle_index)
        elif not save_as_completed:
            self._cancel_auto_save()
            self._results.clear()
            state.phase = SessionPhase.IDLE
            state.current_cycle_index = 0
            logger.info("Session stopped and discarded.")
            if phase is not SessionPhase.IDLE:
                self.on_phase_change.emit(phase=SessionPhase.IDLE, cycle_index=0)

        state.is_running = False
        state.time_remaining = 0
        state.progress = 0.0
        state.is_tap_mode = False
        self._phase_started_at = None
        self._publish()
        return self._results.snapshot()

    # ------------------------------------------------------------------
    # clock callbacks
    # ------------------------------------------------------------------
    def _handle_tick(self, remaining: int, run_id: int):
        if run_id != self._active_run_id:
            return
        state = self._state
        state.time_remaining = remaining
        if not (state.phase is SessionPhase.HOLD and state.is_tap_mode):
            if state.total_phase_time > 0:
                done = (state.total_phase_time - remaining) / state.total_phase_time * 100
                state.progress = min(done, 100.0)
            for text in self._policy.evaluate(remaining):
                self._speech.enqueue(text)
        self._publish()

    def _handle_expired(self, run_id: int):
        if run_id != self._active_run_id:
            logger.debug(f"Dropping expiry of stale clock run {run_id}.")
            return
        phase = self._state.phase
        if phase is SessionPhase.BREATHE:
            self._transition(self._enter_hold)
        elif phase is SessionPhase.HOLD and not self._state.is_tap_mode:
            self._transition(self._finish_hold, self._measure_hold())

    # ------------------------------------------------------------------
    # transitions
    # ------------------------------------------------------------------
    def _transition(self, step, *args) -> bool:
        if self._transitioning:
            logger.debug("Transition already in progress; ignoring re-entry.")
            return False
        self._transitioning = True
        try:
            step(*args)
        finally:
            self._transitioning = False
        self._publish()
        return True

    def _begin_phase(self):
        self._policy.reset(self._settings)
        self._speech.volume = self._settings.volume

    def _enter_breathe(self, index: int):
        cycle = self._cycles[index]
        self._begin_phase()
        state = self._state
        state.phase = SessionPhase.BREATHE
        state.current_cycle_index = index
        state.time_remaining = cycle.breathe_time
        state.total_phase_time = cycle.breathe_time
        state.progress = 0.0
        state.is_tap_mode = cycle.tap_mode
        state.is_running = True
        self._phase_started_at = self._scheduler.now()
        self._active_run_id = self._clock.start(cycle.breathe_time)
        self._speech.enqueue(announcements.BREATHE)
        logger.info(f"Cycle {index + 1}/{len(self._cycles)}: breathe for {cycle.breathe_time}s.")
        self.on_phase_change.emit(phase=SessionPhase.BREATHE, cycle_index=index)

    def _enter_hold(self):
        index = self._state.current_cycle_index
        cycle = self._cycles[index]
        self._begin_phase()
        state = self._state
        state.phase = SessionPhase.HOLD
        state.total_phase_time = cycle.hold_time
        state.progress = 0.0
        state.is_tap_mode = cycle.tap_mode
        state.is_running = True
        self._phase_started_at = self._scheduler.now()
        if cycle.tap_mode:
            state.time_remaining = 0
            self._active_run_id = self._clock.start(0, count_up=True)
        else:
            state.time_remaining = cycle.hold_time
            self._active_run_id = self._clock.start(cycle.hold_time)
        self._speech.enqueue(phase_entry_text(SessionPhase.HOLD, cycle.tap_mode))
        logger.info(
            f"Cycle {index + 1}/{len(self._cycles)}: hold "
            + ("until tap." if cycle.tap_mode else f"for {cycle.hold_time}s.")
        )
        self.on_phase_change.emit(phase=SessionPhase.HOLD, cycle_index=index)

    def _finish_hold(self, actual_hold_time: int):
        self._record_hold(actual_hold_time)
        next_index = self._state.current_cycle_index + 1
        if next_index < len(self._cycles):
            self._enter_breathe(next_index)
        else:
            self._complete()

    def _complete(self):
        state = self._state
        self._clock.stop()
        self._active_run_id = None
        self._policy.reset()
        state.phase = SessionPhase.COMPLETE
        state.is_running = False
        state.is_tap_mode = False
        self._phase_started_at = None
        self._speech.enqueue(announcements.COMPLETE)
        results = self._results.snapshot()
        logger.info(f"Training complete: {len(results)} cycles recorded.")
        self.on_phase_change.emit(phase=SessionPhase.COMPLETE, cycle_index=state.current_cycle_index)
        self.on_complete.emit(results=results, table_id=self._table_id)
        self._schedule_auto_save()

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------
    def _measure_hold(self) -> int:
        """Tap mode counts ticks; timed holds use the wall clock so missed ticks do not matter."""
        if self._state.is_tap_mode:
            return self._clock.remaining
        if self._phase_started_at is None:
            return 0
        return max(0, _round_seconds(self._scheduler.now() - self._phase_started_at))

    def _record_hold(self, actual_hold_time: int):
        index = self._state.current_cycle_index
        cycle = self._cycles[index]
        result = CycleResult(
            cycle_index=index,
            breathe_time=cycle.breathe_time,
            hold_time=cycle.hold_time,
            actual_hold_time=actual_hold_time,
            was_tap_mode=cycle.tap_mode,
        )
        if self._results.record(result):
            logger.info(f"Cycle {index + 1}: held {actual_hold_time}s (planned {cycle.hold_time}s).")

    def _schedule_auto_save(self):
        if self._auto_save is None or self._table_id is None:
            return
        self._cancel_auto_save()
        results = self._results.snapshot()
        table_id = self._table_id
        self._auto_save_task = self._scheduler.call_later(
            AUTO_SAVE_DELAY, lambda: self._run_auto_save(results, table_id)
        )

    def _run_auto_save(self, results, table_id):
        self._auto_save_task = None
        try:
            self._auto_save(results, table_id)
        except Exception:
            logger.exception("Automatic save of the practice record failed.")

    def cancel_pending_save(self) -> bool:
        """Drop a scheduled automatic save. Returns True when one was pending."""
        pending = self._auto_save_task is not None
        self._cancel_auto_save()
        return pending

    def _cancel_auto_save(self):
        if self._auto_save_task is not None:
            self._auto_save_task.cancel()
            self._auto_save_task = None

    def _publish(self):
        self.on_state_change.emit(snapshot=self.snapshot())
