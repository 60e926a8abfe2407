"""
Session State Machine Tests
===========================

Drives BreathHoldSession with the manual scheduler and checks phases,
results, announcements and the stop/tap/pause controls.

Test Categories:
    - Natural completion and result recording
    - Tap-mode holds
    - Pause / resume
    - Stop with and without save
    - Announcements and settings snapshots
    - Automatic save scheduling
"""

import pytest

from breathhold.core import announcements
from breathhold.core.models import BreathCycle, CycleResult
from breathhold.core.session import BreathHoldSession
from breathhold.core.settings import TimerSettings
from breathhold.core.speech_queue import SpeechDispatchQueue
from breathhold.core.status import SessionPhase
from tests.mocks.speech import RecordingSpeaker


# ============================================================================
# Completion
# ============================================================================

@pytest.mark.unit
class TestNaturalCompletion:

    def test_single_cycle_scenario(self, session, scheduler):
        session.start([BreathCycle(3, 3)])

        scheduler.tick(3)
        assert session.phase is SessionPhase.HOLD

        scheduler.tick(3)
        assert session.phase is SessionPhase.COMPLETE
        assert session.results == (
            CycleResult(cycle_index=0, breathe_time=3, hold_time=3, actual_hold_time=3, was_tap_mode=False),
        )

    def test_every_cycle_recorded_in_order(self, session, scheduler):
        cycles = [BreathCycle(3, 3), BreathCycle(2, 2), BreathCycle(1, 4)]
        session.start(cycles)

        scheduler.tick(sum(c.breathe_time + c.hold_time for c in cycles))

        snapshot = session.snapshot()
        assert snapshot.phase is SessionPhase.COMPLETE
        assert len(snapshot.cycle_results) == len(cycles)
        assert [r.cycle_index for r in snapshot.cycle_results] == [0, 1, 2]
        assert [r.actual_hold_time for r in snapshot.cycle_results] == [3, 2, 4]
        assert not snapshot.is_running

    def test_no_ticks_after_completion(self, session, scheduler):
        session.start([BreathCycle(1, 1)])
        scheduler.tick(2)
        assert session.phase is SessionPhase.COMPLETE
        assert scheduler.active_tasks == []

    def test_start_loads_first_cycle(self, session):
        assert session.start([BreathCycle(4, 8, tap_mode=True), BreathCycle(5, 5)])
        snapshot = session.snapshot()
        assert snapshot.phase is SessionPhase.BREATHE
        assert snapshot.current_cycle_index == 0
        assert snapshot.time_remaining == 4
        assert snapshot.total_phase_time == 4
        assert snapshot.is_tap_mode
        assert snapshot.is_running
        assert snapshot.total_cycles == 2

    def test_empty_start_is_noop(self, session, speaker):
        states = []
        session.on_state_change.add_listener(lambda snapshot: states.append(snapshot))

        assert not session.start([])

        assert session.phase is SessionPhase.IDLE
        assert states == []
        assert speaker.spoken == []

    def test_hold_time_uses_wall_clock_when_ticks_are_missed(self, session, scheduler):
        session.start([BreathCycle(2, 3)])
        scheduler.tick(2)
        scheduler.tick(1)
        scheduler.skip(5)
        scheduler.tick(2)

        assert session.phase is SessionPhase.COMPLETE
        assert session.results[0].actual_hold_time == 8

    def test_progress_for_countdown_phases(self, session, scheduler):
        session.start([BreathCycle(4, 4)])
        scheduler.tick(1)
        assert session.snapshot().progress == 25.0
        scheduler.tick(3)
        snapshot = session.snapshot()
        assert snapshot.phase is SessionPhase.HOLD
        assert snapshot.progress == 0.0


# ============================================================================
# Tap Mode
# ============================================================================

@pytest.mark.unit
class TestTapMode:

    def test_tap_scenario(self, session, scheduler):
        session.start([BreathCycle(2, 5, tap_mode=True)])
        scheduler.tick(2)

        snapshot = session.snapshot()
        assert snapshot.phase is SessionPhase.HOLD
        assert snapshot.is_tap_mode
        assert snapshot.time_remaining == 0

        scheduler.tick(4)
        assert session.snapshot().time_remaining == 4

        assert session.tap_end_hold()
        assert session.phase is SessionPhase.COMPLETE
        assert session.results[0].actual_hold_time == 4
        assert session.results[0].was_tap_mode

    def test_tap_hold_never_expires(self, session, scheduler):
        session.start([BreathCycle(1, 5, tap_mode=True)])
        scheduler.tick(1 + 30)
        assert session.phase is SessionPhase.HOLD
        assert session.snapshot().time_remaining == 30

    def test_tap_hold_has_no_progress(self, session, scheduler):
        session.start([BreathCycle(1, 5, tap_mode=True)])
        scheduler.tick(3)
        snapshot = session.snapshot()
        assert snapshot.progress is None
        assert snapshot.to_dict()["progress"] is None

    def test_tap_moves_to_next_breathe(self, session, scheduler):
        session.start([BreathCycle(1, 5, tap_mode=True), BreathCycle(3, 3)])
        scheduler.tick(1 + 7)
        session.tap_end_hold()

        snapshot = session.snapshot()
        assert snapshot.phase is SessionPhase.BREATHE
        assert snapshot.current_cycle_index == 1
        assert snapshot.time_remaining == 3
        assert not snapshot.is_tap_mode
        assert session.results[0].actual_hold_time == 7

    @pytest.mark.parametrize("ticks", [0, 1])
    def test_tap_ignored_outside_tap_hold(self, session, scheduler, ticks):
        session.start([BreathCycle(2, 5)])
        scheduler.tick(ticks)
        assert not session.tap_end_hold()
        assert session.results == ()

    def test_tap_ignored_in_timed_hold(self, session, scheduler):
        session.start([BreathCycle(1, 5)])
        scheduler.tick(2)
        assert session.phase is SessionPhase.HOLD
        assert not session.tap_end_hold()

    def test_tap_ignored_while_paused(self, session, scheduler):
        session.start([BreathCycle(1, 5, tap_mode=True)])
        scheduler.tick(3)
        session.pause()
        assert not session.tap_end_hold()
        assert session.phase is SessionPhase.HOLD

    def test_tap_during_transition_is_ignored(self, session, scheduler):
        taps = []

        def tap_on_hold(phase, cycle_index):
            if phase is SessionPhase.HOLD:
                taps.append(session.tap_end_hold())

        session.on_phase_change.add_listener(tap_on_hold)
        session.start([BreathCycle(1, 5, tap_mode=True)])
        scheduler.tick(1)

        assert taps == [False]
        scheduler.tick(2)
        assert session.phase is SessionPhase.HOLD
        assert session.snapshot().time_remaining == 2

    def test_paused_tap_hold_keeps_elapsed(self, session, scheduler):
        session.start([BreathCycle(1, 5, tap_mode=True)])
        scheduler.tick(1 + 3)
        session.pause()
        scheduler.tick(20)
        session.resume()
        scheduler.tick(2)
        session.tap_end_hold()
        assert session.results[0].actual_hold_time == 5


# ============================================================================
# Pause / Resume
# ============================================================================

@pytest.mark.unit
class TestPauseResume:

    def test_double_pause(self, session, scheduler):
        session.start([BreathCycle(10, 10)])
        scheduler.tick(2)
        assert session.pause()
        assert not session.pause()
        snapshot = session.snapshot()
        assert not snapshot.is_running
        assert snapshot.time_remaining == 8

    def test_pause_resume_round_trip(self, session, scheduler):
        session.start([BreathCycle(10, 10)])
        scheduler.tick(3)
        session.pause()
        session.resume()
        snapshot = session.snapshot()
        assert snapshot.time_remaining == 7
        assert snapshot.is_running

    def test_no_ticks_while_paused(self, session, scheduler):
        session.start([BreathCycle(10, 10)])
        session.pause()
        scheduler.tick(30)
        assert session.phase is SessionPhase.BREATHE
        assert session.snapshot().time_remaining == 10

    def test_announces_pause_and_resume(self, session, scheduler, speaker):
        session.start([BreathCycle(10, 10)])
        session.pause()
        session.resume()
        assert speaker.spoken[-2:] == ["Paused", "Resuming"]

    def test_resume_from_idle_and_complete_is_noop(self, session, scheduler):
        assert not session.resume()
        session.start([BreathCycle(1, 1)])
        scheduler.tick(2)
        assert not session.resume()
        assert not session.pause()
        assert session.phase is SessionPhase.COMPLETE

    def test_paused_timed_hold_counts_wall_clock(self, session, scheduler):
        session.start([BreathCycle(1, 3)])
        scheduler.tick(1)
        session.pause()
        scheduler.advance(10)
        session.resume()
        scheduler.tick(3)
        assert session.results[0].actual_hold_time == 13


# ============================================================================
# Stop
# ============================================================================

@pytest.mark.unit
class TestStop:

    def test_stop_with_save_mid_hold(self, session, scheduler):
        session.start([BreathCycle(5, 60)])
        scheduler.tick(5)
        scheduler.tick(10)

        results = session.stop(save_as_completed=True)

        assert session.phase is SessionPhase.COMPLETE
        assert len(results) == 1
        assert results[0].actual_hold_time == 10
        assert results[0].hold_time == 60

    def test_stop_with_save_mid_tap_hold_uses_ticks(self, session, scheduler):
        session.start([BreathCycle(1, 60, tap_mode=True)])
        scheduler.tick(1 + 6)
        results = session.stop(save_as_completed=True)
        assert results[0].actual_hold_time == 6
        assert results[0].was_tap_mode

    def test_stop_with_save_mid_breathe_keeps_earlier_results(self, session, scheduler, speaker):
        session.start([BreathCycle(1, 1), BreathCycle(5, 5)])
        scheduler.tick(2 + 2)

        results = session.stop(save_as_completed=True)

        assert session.phase is SessionPhase.COMPLETE
        assert [r.cycle_index for r in results] == [0]
        assert speaker.spoken[-1] == announcements.COMPLETE

    @pytest.mark.parametrize("ticks", [0, 2, 5, 12])
    def test_stop_without_save(self, session, scheduler, ticks):
        session.start([BreathCycle(2, 3), BreathCycle(2, 3)])
        scheduler.tick(ticks)

        session.stop(save_as_completed=False)

        snapshot = session.snapshot()
        assert snapshot.phase is SessionPhase.IDLE
        assert snapshot.cycle_results == ()
        assert snapshot.current_cycle_index == 0
        assert not snapshot.is_tap_mode
        assert not snapshot.is_running

    def test_stop_cancels_clock(self, session, scheduler):
        states = []
        session.start([BreathCycle(5, 5)])
        session.stop()
        session.on_state_change.add_listener(lambda snapshot: states.append(snapshot))
        scheduler.tick(20)
        assert states == []

    def test_stop_clears_tap_mode(self, session, scheduler):
        session.start([BreathCycle(1, 60, tap_mode=True)])
        scheduler.tick(2)
        session.stop(save_as_completed=True)
        assert not session.snapshot().is_tap_mode

    def test_stop_clears_pending_speech(self, scheduler):
        speaker = RecordingSpeaker(auto_complete=False)
        queue = SpeechDispatchQueue(speaker)
        session = BreathHoldSession(scheduler, speech_queue=queue)
        session.start([BreathCycle(6, 6)])
        scheduler.tick(3)
        assert queue.pending

        session.stop()

        assert queue.pending == []
        assert queue.speaking is None
        assert speaker.cancel_count == 1

    def test_restart_after_stop(self, session, scheduler):
        session.start([BreathCycle(1, 1)])
        scheduler.tick(1)
        session.stop()
        session.start([BreathCycle(2, 2)])
        scheduler.tick(4)
        assert session.results[0].breathe_time == 2


# ============================================================================
# Announcements
# ============================================================================

@pytest.mark.unit
class TestSessionAnnouncements:

    def test_countdown_and_phase_texts(self, session, scheduler, speaker):
        session.start([BreathCycle(7, 3)])
        scheduler.tick(10)
        assert speaker.spoken == [
            "Breathe", "5", "4", "3", "2", "1",
            "Hold your breath", "2", "1",
            "Training complete",
        ]

    def test_tap_hold_has_no_countdown(self, session, scheduler, speaker):
        session.start([BreathCycle(1, 5, tap_mode=True)])
        scheduler.tick(1 + 8)
        assert speaker.spoken == ["Breathe", announcements.HOLD_TAP]

    def test_settings_apply_from_next_phase(self, session, scheduler, speaker):
        session.start([BreathCycle(6, 4)])
        scheduler.tick(1)
        session.update_settings(TimerSettings(countdown_start=2))
        scheduler.tick(9)
        assert speaker.spoken == [
            "Breathe", "5", "4", "3", "2", "1",
            "Hold your breath", "2", "1",
            "Training complete",
        ]

    def test_volume_snapshot_per_phase(self, session, scheduler, speaker):
        session.start([BreathCycle(1, 1)])
        session.update_settings(TimerSettings(volume=0.2))
        scheduler.tick(1)
        assert speaker.volumes[0] == 0.7
        assert speaker.volumes[-1] == 0.2

    def test_silent_session_still_runs(self, scheduler):
        session = BreathHoldSession(scheduler, speech_queue=SpeechDispatchQueue(None))
        session.start([BreathCycle(2, 2)])
        scheduler.tick(4)
        assert session.phase is SessionPhase.COMPLETE


# ============================================================================
# Automatic Save
# ============================================================================

@pytest.mark.unit
class TestAutoSave:

    @pytest.fixture
    def saves(self):
        return []

    @pytest.fixture
    def saving_session(self, scheduler, speech_queue, saves):
        return BreathHoldSession(
            scheduler,
            speech_queue=speech_queue,
            auto_save=lambda results, table_id: saves.append((results, table_id)),
        )

    def test_saves_once_a_second_after_completion(self, saving_session, scheduler, saves):
        saving_session.start([BreathCycle(1, 1)], table_id="t1")
        scheduler.tick(2)
        assert saves == []

        scheduler.tick(1)
        assert len(saves) == 1
        results, table_id = saves[0]
        assert table_id == "t1"
        assert results[0].actual_hold_time == 1

        scheduler.tick(5)
        assert len(saves) == 1

    def test_no_save_without_table(self, saving_session, scheduler, saves):
        saving_session.start([BreathCycle(1, 1)])
        scheduler.tick(5)
        assert saves == []

    def test_discarding_stop_cancels_pending_save(self, saving_session, scheduler, saves):
        saving_session.start([BreathCycle(1, 1)], table_id="t1")
        scheduler.tick(2)
        saving_session.stop(save_as_completed=False)
        scheduler.tick(2)
        assert saves == []

    def test_new_start_cancels_pending_save(self, saving_session, scheduler, saves):
        saving_session.start([BreathCycle(1, 1)], table_id="t1")
        scheduler.tick(2)
        saving_session.start([BreathCycle(10, 10)], table_id="t2")
        scheduler.tick(2)
        assert saves == []

    def test_failing_save_does_not_break_session(self, scheduler, speech_queue):
        def broken(results, table_id):
            raise RuntimeError("boom")

        session = BreathHoldSession(scheduler, speech_queue=speech_queue, auto_save=broken)
        session.start([BreathCycle(1, 1)], table_id="t1")
        scheduler.tick(3)
        assert session.phase is SessionPhase.COMPLETE
        assert len(session.results) == 1

    def test_complete_event(self, session, scheduler):
        events = []
        session.on_complete.add_listener(lambda results, table_id: events.append((results, table_id)))
        session.start([BreathCycle(1, 1)], table_id="abc")
        scheduler.tick(2)
        assert len(events) == 1
        assert events[0][1] == "abc"
