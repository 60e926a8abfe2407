# breathhold/core/status.py
from enum import Enum


class SessionPhase(Enum):
    IDLE = "idle"
    BREATHE = "breathe"
    HOLD = "hold"
    COMPLETE = "complete"

    @property
    def is_active(self) -> bool:
        return self in (SessionPhase.BREATHE, SessionPhase.HOLD)
