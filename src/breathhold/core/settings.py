from dataclasses import dataclass, field, replace
from typing import Any, Dict, FrozenSet, Mapping

from breathhold.utils import custom_exception as ce

DEFAULT_ANNOUNCE_TIMES = frozenset({60, 30, 20, 10, 5})

# stored mappings may still use the original camelCase keys
_ALIASES = {
    "countdownStart": "countdown_start",
    "useVoice": "use_voice",
    "useContinuousCountdown": "use_continuous_countdown",
    "useSpecificAnnouncements": "use_specific_announcements",
    "announceTimes": "announce_times",
}


@dataclass(frozen=True)
class TimerSettings:
    """Announcement and volume options. A session reads a snapshot at each phase transition."""
    countdown_start: int = 5
    use_continuous_countdown: bool = True
    use_specific_announcements: bool = False
    announce_times: FrozenSet[int] = field(default=DEFAULT_ANNOUNCE_TIMES)
    volume: float = 0.7
    use_voice: bool = True

    def __post_init__(self):
        object.__setattr__(self, "announce_times", frozenset(int(t) for t in self.announce_times))
        # voice announcements cannot be switched off
        object.__setattr__(self, "use_voice", True)

    def validate(self) -> "TimerSettings":
        if not 0 <= self.countdown_start <= 20:
            raise ce.InvalidSettingsError("countdown_start must be between 0 and 20 seconds")
        bad = sorted(t for t in self.announce_times if not 1 <= t <= 600)
        if bad:
            raise ce.InvalidSettingsError(f"announce_times must be between 1 and 600 seconds, got {bad}")
        if not 0.0 <= self.volume <= 1.0:
            raise ce.InvalidSettingsError("volume must be between 0 and 1")
        return self

    def updated(self, **changes) -> "TimerSettings":
        changes = {_ALIASES.get(k, k): v for k, v in changes.items()}
        return replace(self, **changes).validate()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> "TimerSettings":
        """Merge a partial stored mapping over the defaults."""
        values: Dict[str, Any] = {}
        for key, value in (data or {}).items():
            key = _ALIASES.get(key, key)
            if key in cls.__dataclass_fields__:
                values[key] = value
        times = values.get("announce_times")
        if not isinstance(times, (list, tuple, set, frozenset)):
            values.pop("announce_times", None)
        return cls(**values)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "countdown_start": self.countdown_start,
            "use_continuous_countdown": self.use_continuous_countdown,
            "use_specific_announcements": self.use_specific_announcements,
            "announce_times": sorted(self.announce_times, reverse=True),
            "volume": self.volume,
            "use_voice": self.use_voice,
        }
