from collections import deque
from functools import partial
from typing import List, Optional

from breathhold.ports.act_port import Speaker
from breathhold.utils.logging_handler import setup_logger

logger = setup_logger(__name__)


class SpeechDispatchQueue:
    """
    Serialises announcements onto a speaker that can only say one thing at a time.

    Text already waiting or being spoken is not queued again. The queue never
    waits on the speaker: ``enqueue`` returns at once and the next utterance is
    started from the speaker's completion callback.
    """

    def __init__(self, speaker: Optional[Speaker] = None, volume: float = 0.7):
        self._speaker = speaker
        self.volume = volume
        self._pending: deque[str] = deque()
        self._current: Optional[str] = None
        self._draining = False
        self._dispatch_id = 0

    @property
    def pending(self) -> List[str]:
        return list(self._pending)

    @property
    def speaking(self) -> Optional[str]:
        return self._current

    @property
    def idle(self) -> bool:
        """True when nothing is being spoken or waiting."""
        return self._current is None and not self._pending

    @property
    def enabled(self) -> bool:
        return self._speaker is not None and self._speaker.available

    def enqueue(self, text: str) -> bool:
        """Queue ``text``; returns False when it was dropped."""
        if not text:
            return False
        if not self.enabled:
            logger.debug(f"Speech unavailable, dropping: {text!r}")
            return False
        if text == self._current or text in self._pending:
            logger.debug(f"Skipping duplicate announcement: {text!r}")
            return False
        self._pending.append(text)
        self._drain()
        return True

    def clear(self) -> None:
        """Drop everything waiting and interrupt the current utterance."""
        self._pending.clear()
        if self._current is not None and self._speaker is not None:
            try:
                self._speaker.cancel()
            except Exception:
                logger.warning("Speaker failed to cancel the current utterance", exc_info=True)
        self._current = None
        self._dispatch_id += 1

    def _drain(self) -> None:
        if self._draining:
            return
        self._draining = True
        try:
            while self._current is None and self._pending:
                text = self._pending.popleft()
                self._current = text
                self._dispatch_id += 1
                dispatch_id = self._dispatch_id
                try:
                    self._speaker.speak(text, self.volume, partial(self._on_spoken, dispatch_id, text))
                except Exception:
                    logger.warning(f"Speech failed for {text!r}", exc_info=True)
                    if dispatch_id == self._dispatch_id:
                        self._current = None
        finally:
            self._draining = False

    def _on_spoken(self, dispatch_id: int, text: str, error: Optional[Exception] = None) -> None:
        if error is not None:
            logger.warning(f"Speech error for {text!r}: {error}")
        if dispatch_id != self._dispatch_id:
            # completion of an utterance that clear() already released
            logger.debug(f"Ignoring stale completion for {text!r}")
            return
        self._current = None
        self._drain()
