from abc import ABC, abstractmethod
from typing import Callable, Optional

SpeechDone = Callable[[Optional[Exception]], None]


class Speaker(ABC):
    """This class handles telling the output through sound. Only one utterance is spoken at a time."""

    @property
    def available(self) -> bool:
        return True

    @abstractmethod
    def speak(self, text: str, volume: float, on_done: SpeechDone) -> None:
        """Start speaking ``text`` and call ``on_done(error)`` once it has finished or failed."""
        pass

    def cancel(self) -> None:
        """Stop the current utterance if the engine supports it."""
        pass
