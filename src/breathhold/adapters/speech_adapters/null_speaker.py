from breathhold.ports.act_port import Speaker, SpeechDone


class NullSpeaker(Speaker):
    """Used when speech is switched off; every announcement is dropped."""

    @property
    def available(self) -> bool:
        return False

    def speak(self, text: str, volume: float, on_done: SpeechDone) -> None:
        on_done(None)
