"""Decides what is spoken and when during a session."""
from typing import List, Optional, Set

from breathhold.core.settings import TimerSettings
from breathhold.core.status import SessionPhase
from breathhold.utils.time_conversions import format_announcement

BREATHE = "Breathe"
HOLD = "Hold your breath"
HOLD_TAP = "Hold your breath. Tap when you need to breathe."
COMPLETE = "Training complete"
PAUSED = "Paused"
RESUMING = "Resuming"
VOICE_TEST = "This is a voice test. 3, 2, 1..."


def phase_entry_text(phase: SessionPhase, tap_mode: bool = False) -> Optional[str]:
    """Fixed announcement for entering ``phase``."""
    if phase is SessionPhase.BREATHE:
        return BREATHE
    if phase is SessionPhase.HOLD:
        return HOLD_TAP if tap_mode else HOLD
    if phase is SessionPhase.COMPLETE:
        return COMPLETE
    return None


class AnnouncementPolicy:
    """
    Countdown announcements for one phase at a time.

    Two modes may be active together: the continuous countdown speaks the bare
    number for every value in ``(0, countdown_start]``, and specific announcements
    speak a phrase for each configured time. Each mode remembers the values it has
    already spoken in the current phase; ``reset`` forgets them and may adopt a
    new settings snapshot.
    """

    def __init__(self, settings: Optional[TimerSettings] = None):
        self._settings = settings or TimerSettings()
        self._countdown_announced: Set[int] = set()
        self._specific_announced: Set[int] = set()

    @property
    def settings(self) -> TimerSettings:
        return self._settings

    def reset(self, settings: Optional[TimerSettings] = None) -> None:
        if settings is not None:
            self._settings = settings
        self._countdown_announced.clear()
        self._specific_announced.clear()

    def evaluate(self, time_remaining: int) -> List[str]:
        """Texts to enqueue for a countdown phase now showing ``time_remaining``."""
        texts: List[str] = []
        if time_remaining <= 0:
            return texts
        settings = self._settings

        if settings.use_continuous_countdown \
                and time_remaining <= settings.countdown_start \
                and time_remaining not in self._countdown_announced:
            self._countdown_announced.add(time_remaining)
            texts.append(str(time_remaining))

        if settings.use_specific_announcements \
                and time_remaining in settings.announce_times \
                and time_remaining not in self._specific_announced:
            self._specific_announced.add(time_remaining)
            texts.append(format_announcement(time_remaining))

        return texts
