"""
Model and Settings Tests
========================
"""

from datetime import datetime, timezone

import pytest

from breathhold.core.models import (
    DEFAULT_TABLES,
    BreathCycle,
    CycleResult,
    PracticeRecord,
    validate_cycle,
)
from breathhold.core.settings import TimerSettings
from breathhold.core.status import SessionPhase
from breathhold.utils import custom_exception as ce


@pytest.mark.unit
class TestCycleValidation:

    @pytest.mark.parametrize("breathe, hold, message", [
        (0, 10, "Breathe and hold times must be greater than 0"),
        (10, -1, "Breathe and hold times must be greater than 0"),
        (301, 10, "Breathe and hold times cannot exceed 5 minutes (300 seconds)"),
        ("10", 10, "Breathe and hold times must be numbers"),
        (True, 10, "Breathe and hold times must be numbers"),
        (float("nan"), 10, "Breathe and hold times must be numbers"),
    ])
    def test_invalid(self, breathe, hold, message):
        assert validate_cycle(breathe, hold) == message

    def test_limits_are_inclusive(self):
        assert validate_cycle(1, 300) is None

    def test_from_dict_accepts_both_key_styles(self):
        assert BreathCycle.from_dict({"breatheTime": 30, "holdTime": 90, "tapMode": True}) == \
            BreathCycle(30, 90, True)
        assert BreathCycle.from_dict({"breathe_time": 30, "hold_time": 90}) == BreathCycle(30, 90)

    def test_from_dict_validates(self):
        with pytest.raises(ce.InvalidCycleError):
            BreathCycle.from_dict({"breathe_time": 30})


@pytest.mark.unit
class TestRecords:

    def test_total_duration(self):
        record = PracticeRecord(
            record_id="r1",
            table_id="t1",
            table_name="CO2",
            completed_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
            results=[
                CycleResult(0, 60, 60, 62),
                CycleResult(1, 45, 75, 70),
            ],
        )
        assert record.total_duration_seconds == 237
        assert record.format_total_duration() == "3 minutes 57 seconds"
        assert record.to_dict()["total_duration"] == "3 minutes 57 seconds"

    def test_cycle_result_from_camel_case(self):
        result = CycleResult.from_dict(
            {"cycleIndex": 2, "breatheTime": 30, "holdTime": 90, "actualHoldTime": 88, "wasTapMode": True}
        )
        assert result == CycleResult(2, 30, 90, 88, True)

    def test_default_tables_are_valid(self):
        for _, cycles in DEFAULT_TABLES:
            for cycle in cycles:
                cycle.validate()

    def test_phase_activity(self):
        assert SessionPhase.BREATHE.is_active
        assert SessionPhase.HOLD.is_active
        assert not SessionPhase.IDLE.is_active
        assert not SessionPhase.COMPLETE.is_active


@pytest.mark.unit
class TestTimerSettings:

    def test_defaults(self):
        settings = TimerSettings()
        assert settings.countdown_start == 5
        assert settings.use_continuous_countdown
        assert not settings.use_specific_announcements
        assert settings.announce_times == frozenset({60, 30, 20, 10, 5})
        assert settings.volume == 0.7

    @pytest.mark.parametrize("changes", [
        {"countdown_start": 21},
        {"countdown_start": -1},
        {"announce_times": [0]},
        {"announce_times": [601]},
        {"volume": 1.1},
        {"volume": -0.1},
    ])
    def test_out_of_range(self, changes):
        with pytest.raises(ce.InvalidSettingsError):
            TimerSettings().updated(**changes)

    def test_updated_accepts_camel_case(self):
        settings = TimerSettings().updated(countdownStart=10, useSpecificAnnouncements=True)
        assert settings.countdown_start == 10
        assert settings.use_specific_announcements

    def test_from_dict_merges_over_defaults(self):
        settings = TimerSettings.from_dict({"announceTimes": [45, 15], "unknown": 1})
        assert settings.announce_times == frozenset({45, 15})
        assert settings.countdown_start == 5

    def test_from_dict_ignores_malformed_times(self):
        assert TimerSettings.from_dict({"announce_times": "60"}).announce_times == TimerSettings().announce_times

    def test_from_dict_none(self):
        assert TimerSettings.from_dict(None) == TimerSettings()

    def test_to_dict_sorts_times(self):
        assert TimerSettings().to_dict()["announce_times"] == [60, 30, 20, 10, 5]
