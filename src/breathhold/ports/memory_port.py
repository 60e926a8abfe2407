from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from breathhold.core.models import BreathCycle, CycleResult, PracticeRecord, TrainingTable


class TableStore(ABC):
    """Training tables and their ordered cycle definitions."""

    @abstractmethod
    def list_tables(self) -> List[TrainingTable]:
        pass

    @abstractmethod
    def get_table(self, table_id: str) -> TrainingTable:
        """Raises TableNotFoundError for an unknown id."""
        pass

    def get_cycles(self, table_id: str) -> List[BreathCycle]:
        """Ordered snapshot of a table's cycles."""
        return list(self.get_table(table_id).cycles)

    @abstractmethod
    def create_table(self, name: str, cycles: List[BreathCycle]) -> TrainingTable:
        pass

    @abstractmethod
    def update_table(self, table_id: str, name: str, cycles: List[BreathCycle]) -> TrainingTable:
        pass

    @abstractmethod
    def delete_table(self, table_id: str) -> bool:
        pass


class PracticeRecordStore(ABC):
    """Completed (or saved-early) sessions."""

    @abstractmethod
    def save_result(self, results: List[CycleResult], table_id: str) -> PracticeRecord:
        """Persist one record. Raises PersistenceError on failure."""
        pass

    @abstractmethod
    def list_records(self, table_id: Optional[str] = None) -> List[PracticeRecord]:
        pass

    @abstractmethod
    def delete_record(self, record_id: str) -> bool:
        pass


class SettingsStore(ABC):

    @abstractmethod
    def load_settings(self, profile: str = "default") -> Optional[Dict[str, Any]]:
        pass

    @abstractmethod
    def save_settings(self, settings: Dict[str, Any], profile: str = "default") -> None:
        pass


class MemoryPort(TableStore, PracticeRecordStore, SettingsStore):
    """Everything the trainer keeps between sessions, behind one adapter."""

    def close(self) -> None:
        pass
