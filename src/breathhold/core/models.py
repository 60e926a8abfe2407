"""Plain data carried between the session, its collaborators and the outer surfaces."""
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from numbers import Real
from typing import Any, Dict, List, Optional, Tuple

from breathhold.core.status import SessionPhase
from breathhold.utils import custom_exception as ce
from breathhold.utils.time_conversions import format_seconds_to_words

MAX_PHASE_SECONDS = 300


def validate_cycle(breathe, hold) -> Optional[str]:
    """Return an error message for an unusable breathe/hold pair, or None."""
    if not isinstance(breathe, Real) or not isinstance(hold, Real) \
            or isinstance(breathe, bool) or isinstance(hold, bool) \
            or breathe != breathe or hold != hold:
        return "Breathe and hold times must be numbers"
    if breathe <= 0 or hold <= 0:
        return "Breathe and hold times must be greater than 0"
    if breathe > MAX_PHASE_SECONDS or hold > MAX_PHASE_SECONDS:
        return "Breathe and hold times cannot exceed 5 minutes (300 seconds)"
    return None


@dataclass(frozen=True)
class BreathCycle:
    """One breathe + hold pair. With ``tap_mode`` the hold time is only an estimate."""
    breathe_time: int
    hold_time: int
    tap_mode: bool = False

    def validate(self) -> "BreathCycle":
        error = validate_cycle(self.breathe_time, self.hold_time)
        if error:
            raise ce.InvalidCycleError(error)
        return self

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BreathCycle":
        breathe = data.get("breathe_time", data.get("breatheTime"))
        hold = data.get("hold_time", data.get("holdTime"))
        tap_mode = data.get("tap_mode", data.get("tapMode", False))
        return cls(breathe, hold, bool(tap_mode)).validate()

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class CycleResult:
    cycle_index: int
    breathe_time: int
    hold_time: int
    actual_hold_time: int
    was_tap_mode: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CycleResult":
        return cls(
            cycle_index=int(data.get("cycle_index", data.get("cycleIndex"))),
            breathe_time=int(data.get("breathe_time", data.get("breatheTime"))),
            hold_time=int(data.get("hold_time", data.get("holdTime"))),
            actual_hold_time=int(data.get("actual_hold_time", data.get("actualHoldTime"))),
            was_tap_mode=bool(data.get("was_tap_mode", data.get("wasTapMode", False))),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class TrainingTable:
    table_id: str
    name: str
    cycles: List[BreathCycle]
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "table_id": self.table_id,
            "name": self.name,
            "cycles": [cycle.to_dict() for cycle in self.cycles],
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class PracticeRecord:
    record_id: str
    table_id: str
    table_name: str
    completed_at: datetime
    results: List[CycleResult]

    @property
    def total_duration_seconds(self) -> int:
        return sum(r.breathe_time + r.actual_hold_time for r in self.results)

    def format_total_duration(self) -> str:
        return format_seconds_to_words(self.total_duration_seconds)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "record_id": self.record_id,
            "table_id": self.table_id,
            "table_name": self.table_name,
            "completed_at": self.completed_at.isoformat(),
            "results": [r.to_dict() for r in self.results],
            "total_duration": self.format_total_duration(),
        }


@dataclass(frozen=True)
class SessionSnapshot:
    """Read-only view of the session handed to presenters."""
    phase: SessionPhase
    current_cycle_index: int
    time_remaining: int
    total_phase_time: int
    is_running: bool
    progress: Optional[float]
    total_cycles: int
    is_tap_mode: bool
    cycle_results: Tuple[CycleResult, ...]
    table_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "phase": self.phase.value,
            "current_cycle_index": self.current_cycle_index,
            "time_remaining": self.time_remaining,
            "total_phase_time": self.total_phase_time,
            "is_running": self.is_running,
            "progress": self.progress,
            "total_cycles": self.total_cycles,
            "is_tap_mode": self.is_tap_mode,
            "cycle_results": [r.to_dict() for r in self.cycle_results],
            "table_id": self.table_id,
        }


DEFAULT_TABLES: List[Tuple[str, List[BreathCycle]]] = [
    ("CO2 Training Table", [
        BreathCycle(60, 60),
        BreathCycle(45, 75),
        BreathCycle(45, 90),
        BreathCycle(30, 105),
        BreathCycle(30, 120),
        BreathCycle(30, 135),
    ]),
    ("O2 Training Table", [BreathCycle(120, hold) for hold in range(60, 136, 15)]),
]

FALLBACK_CYCLE = BreathCycle(60, 60)
