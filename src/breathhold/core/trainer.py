# core/trainer.py
from typing import List, Optional, Sequence, Tuple

from breathhold.core import announcements
from breathhold.core.models import DEFAULT_TABLES, BreathCycle, CycleResult, PracticeRecord, SessionSnapshot
from breathhold.core.session import BreathHoldSession
from breathhold.core.settings import TimerSettings
from breathhold.core.speech_queue import SpeechDispatchQueue
from breathhold.ports.memory_port import MemoryPort
from breathhold.ports.scheduler_port import Scheduler
from breathhold.utils import Event
from breathhold.utils import custom_exception as ce
from breathhold.utils.logging_handler import setup_logger

logger = setup_logger(__name__)


class Trainer:
    """Wires a session to the stored tables, settings and practice history."""

    def __init__(
        self,
        scheduler: Scheduler,
        memory: MemoryPort,
        speech_queue: Optional[SpeechDispatchQueue] = None,
        profile: str = "default",
    ):
        self.memory = memory
        self.profile = profile
        self.speech = speech_queue or SpeechDispatchQueue()
        self.settings = self._load_settings()
        self.speech.volume = self.settings.volume
        self.session = BreathHoldSession(
            scheduler,
            speech_queue=self.speech,
            settings=self.settings,
            auto_save=self._auto_save,
        )

        self.on_record_saved = Event("on_record_saved")
        self.on_save_failed = Event("on_save_failed")

    def _load_settings(self) -> TimerSettings:
        try:
            stored = self.memory.load_settings(self.profile)
            return TimerSettings.from_dict(stored).validate()
        except (ce.InvalidSettingsError, TypeError, ValueError) as e:
            logger.warning(f"Stored settings unusable, falling back to defaults: {e}")
            return TimerSettings()

    # --- tables ---
    def ensure_default_tables(self) -> List[str]:
        """Seed the CO2 and O2 tables when the store holds none. Returns the new table ids."""
        if self.memory.list_tables():
            return []
        created = []
        for name, cycles in DEFAULT_TABLES:
            created.append(self.memory.create_table(name, cycles).table_id)
        logger.info(f"Created default tables: {created}")
        return created

    # --- session control ---
    def start_table(self, table_id: str) -> bool:
        cycles = self.memory.get_cycles(table_id)
        return self.session.start(cycles, table_id=table_id)

    def start_cycles(self, cycles: Sequence[BreathCycle]) -> bool:
        for cycle in cycles:
            cycle.validate()
        return self.session.start(cycles)

    def pause(self) -> bool:
        return self.session.pause()

    def resume(self) -> bool:
        return self.session.resume()

    def tap(self) -> bool:
        return self.session.tap_end_hold()

    def stop(self, save: bool = False) -> Optional[PracticeRecord]:
        """Stop the session; with ``save`` keep the results and persist them once."""
        self.session.stop(save_as_completed=save)
        if save:
            return self.save_practice_record()
        return None

    def snapshot(self) -> SessionSnapshot:
        return self.session.snapshot()

    # --- persistence ---
    def save_practice_record(self) -> Optional[PracticeRecord]:
        """
        Persist the current results for the session's table.

        Returns None when there is nothing to save. Raises PersistenceError when
        the store fails, or TableNotFoundError when the table has been deleted;
        the results stay in the session either way. A successful save replaces
        the automatic save scheduled at completion.
        """
        snapshot = self.session.snapshot()
        if snapshot.table_id is None or not snapshot.cycle_results:
            logger.info("Cannot save practice record: missing table or results.")
            return None
        record = self._save(snapshot.cycle_results, snapshot.table_id)
        if self.session.cancel_pending_save():
            logger.debug("Explicit save replaced the pending automatic save.")
        return record

    def _save(self, results: Tuple[CycleResult, ...], table_id: str) -> PracticeRecord:
        try:
            record = self.memory.save_result(list(results), table_id)
        except (ce.PersistenceError, ce.TableNotFoundError) as e:
            logger.error(f"Error saving practice record: {e}")
            self.on_save_failed.emit(error=e, table_id=table_id)
            raise
        logger.info(f"Practice record {record.record_id} saved for table {table_id}.")
        self.on_record_saved.emit(record=record)
        return record

    def _auto_save(self, results: Tuple[CycleResult, ...], table_id: str):
        if not results:
            return
        try:
            self._save(results, table_id)
        except (ce.PersistenceError, ce.TableNotFoundError):
            # reported through on_save_failed; no retry
            pass

    # --- settings ---
    def update_settings(self, **changes) -> TimerSettings:
        settings = self.settings.updated(**changes)
        self.memory.save_settings(settings.to_dict(), self.profile)
        self.settings = settings
        self.session.update_settings(settings)
        if not self.session.phase.is_active:
            self.speech.volume = settings.volume
        logger.info(f"Settings updated: {settings.to_dict()}")
        return settings

    def test_voice(self) -> bool:
        return self.speech.enqueue(announcements.VOICE_TEST)
