import queue
import threading
from typing import Optional

from breathhold.ports.act_port import Speaker, SpeechDone
from breathhold.ports.scheduler_port import Scheduler
from breathhold.utils.logging_handler import setup_logger

logger = setup_logger(__name__)

_SHUTDOWN = object()


class Pyttsx3Speaker(Speaker):
    """
    Speaks through the local pyttsx3 engine.

    The engine is created and driven by one daemon worker thread; completions are
    handed back to the scheduler thread with ``Scheduler.post``. If the engine
    cannot be initialised the speaker reports itself unavailable.
    """

    def __init__(self, scheduler: Scheduler, voice_hint: Optional[str] = "en", rate: int = 170):
        self._scheduler = scheduler
        self._voice_hint = (voice_hint or "").lower()
        self._rate = rate
        self._jobs: queue.Queue = queue.Queue()
        self._engine = None
        self._ready = threading.Event()
        self._available = False
        self._thread = threading.Thread(target=self._worker, name="pyttsx3_speaker", daemon=True)
        self._thread.start()
        self._ready.wait(timeout=5.0)

    @property
    def available(self) -> bool:
        return self._available

    def speak(self, text: str, volume: float, on_done: SpeechDone) -> None:
        if not self._available:
            self._scheduler.post(lambda: on_done(RuntimeError("speech engine unavailable")))
            return
        self._jobs.put((text, volume, on_done))

    def cancel(self) -> None:
        engine = self._engine
        if engine is not None:
            try:
                engine.stop()
            except Exception:
                logger.warning("pyttsx3 stop failed", exc_info=True)

    def close(self) -> None:
        self._jobs.put(_SHUTDOWN)
        self._thread.join(timeout=1.0)

    # --- worker thread ---
    def _init_engine(self):
        import pyttsx3

        engine = pyttsx3.init()
        engine.setProperty("rate", self._rate)
        if self._voice_hint:
            for voice in engine.getProperty("voices") or []:
                languages = " ".join(str(lang) for lang in (getattr(voice, "languages", None) or []))
                label = f"{voice.id} {voice.name} {languages}".lower()
                if self._voice_hint in label:
                    engine.setProperty("voice", voice.id)
                    logger.info(f"Selected voice: {voice.name}")
                    break
            else:
                logger.info("No matching voice found, using default")
        return engine

    def _worker(self):
        try:
            self._engine = self._init_engine()
            self._available = True
            logger.info("pyttsx3 speech engine initialized")
        except Exception as e:
            logger.error(f"Failed to initialize pyttsx3 engine: {e}")
            self._available = False
        finally:
            self._ready.set()

        if not self._available:
            return

        while True:
            job = self._jobs.get()
            if job is _SHUTDOWN:
                break
            text, volume, on_done = job
            error = None
            try:
                self._engine.setProperty("volume", max(0.0, min(1.0, volume)))
                self._engine.say(text)
                self._engine.runAndWait()
            except Exception as e:
                error = e
            self._scheduler.post(lambda on_done=on_done, error=error: on_done(error))
