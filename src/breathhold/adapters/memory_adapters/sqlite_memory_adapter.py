import json
import os
import sqlite3
import threading
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from breathhold.core.models import FALLBACK_CYCLE, BreathCycle, CycleResult, PracticeRecord, TrainingTable
from breathhold.ports.memory_port import MemoryPort
from breathhold.utils import custom_exception as ce
from breathhold.utils.logging_handler import setup_logger


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class SqliteMemoryAdapter(MemoryPort):
    def __init__(self, db_path: str = ":memory:"):
        self.logger = setup_logger(__name__)
        if db_path != ":memory:":
            os.makedirs(os.path.dirname(os.path.abspath(db_path)), exist_ok=True)
        self._lock = threading.Lock()
        self.conn = sqlite3.connect(db_path, check_same_thread=False)
        self.cur = self.conn.cursor()
        self.cur.execute("PRAGMA foreign_keys = ON;")
        self._initialize_tables()

    def _initialize_tables(self):
        """Private method to ensure schema exists."""
        self.cur.execute("""
        CREATE TABLE IF NOT EXISTS TrainingTables(
            TableID TEXT PRIMARY KEY,
            Name TEXT NOT NULL,
            CreatedAt TEXT NOT NULL
        );""")
        self.cur.execute("""
        CREATE TABLE IF NOT EXISTS BreathCycles(
            TableID TEXT NOT NULL,
            CycleIndex INTEGER NOT NULL,
            BreatheTime INTEGER NOT NULL,
            HoldTime INTEGER NOT NULL,
            TapMode INTEGER NOT NULL DEFAULT 0,
            PRIMARY KEY (TableID, CycleIndex),
            FOREIGN KEY (TableID) REFERENCES TrainingTables(TableID) ON DELETE CASCADE
        );""")
        self.cur.execute("""
        CREATE TABLE IF NOT EXISTS PracticeRecords(
            RecordID TEXT PRIMARY KEY,
            TableID TEXT NOT NULL,
            TableName TEXT NOT NULL,
            CompletedAt TEXT NOT NULL,
            Results TEXT NOT NULL
        );""")
        self.cur.execute("""
        CREATE TABLE IF NOT EXISTS Settings(
            Profile TEXT PRIMARY KEY,
            Data TEXT NOT NULL,
            UpdatedAt TEXT NOT NULL
        );""")
        self.conn.commit()

    def close(self):
        with self._lock:
            self.conn.close()

    # --- tables ---
    def list_tables(self) -> List[TrainingTable]:
        with self._lock:
            try:
                self.cur.execute("SELECT TableID, Name, CreatedAt FROM TrainingTables ORDER BY CreatedAt, Name")
                rows = self.cur.fetchall()
                return [self._load_table(*row) for row in rows]
            except sqlite3.Error as e:
                self.logger.exception(f"Database error in list_tables: {e}")
                return []

    def get_table(self, table_id: str) -> TrainingTable:
        with self._lock:
            try:
                self.cur.execute("SELECT TableID, Name, CreatedAt FROM TrainingTables WHERE TableID = ?", (table_id,))
                row = self.cur.fetchone()
            except sqlite3.Error as e:
                self.logger.exception(f"Database error in get_table: {e}")
                raise ce.PersistenceError(str(e)) from e
            if row is None:
                raise ce.TableNotFoundError(f"Table '{table_id}' not found.")
            return self._load_table(*row)

    def create_table(self, name: str, cycles: List[BreathCycle]) -> TrainingTable:
        cycles = [cycle.validate() for cycle in cycles]
        table_id = uuid.uuid4().hex
        created_at = _now_iso()
        with self._lock:
            try:
                self.cur.execute(
                    "INSERT INTO TrainingTables (TableID, Name, CreatedAt) VALUES (?, ?, ?)",
                    (table_id, name, created_at),
                )
                self._insert_cycles(table_id, cycles)
                self.conn.commit()
            except sqlite3.Error as e:
                self.conn.rollback()
                self.logger.exception(f"Database error in create_table: {e}")
                raise ce.PersistenceError(str(e)) from e
        return TrainingTable(table_id, name, list(cycles), datetime.fromisoformat(created_at))

    def update_table(self, table_id: str, name: str, cycles: List[BreathCycle]) -> TrainingTable:
        cycles = [cycle.validate() for cycle in cycles]
        with self._lock:
            try:
                self.cur.execute("UPDATE TrainingTables SET Name = ? WHERE TableID = ?", (name, table_id))
                if self.cur.rowcount == 0:
                    raise ce.TableNotFoundError(f"Table '{table_id}' not found.")
                self.cur.execute("DELETE FROM BreathCycles WHERE TableID = ?", (table_id,))
                self._insert_cycles(table_id, cycles)
                self.conn.commit()
            except sqlite3.Error as e:
                self.conn.rollback()
                self.logger.exception(f"Database error in update_table: {e}")
                raise ce.PersistenceError(str(e)) from e
        return self.get_table(table_id)

    def delete_table(self, table_id: str) -> bool:
        with self._lock:
            try:
                self.cur.execute("DELETE FROM TrainingTables WHERE TableID = ?", (table_id,))
                self.conn.commit()
                return self.cur.rowcount > 0
            except sqlite3.Error as e:
                self.logger.exception(f"Database error in delete_table: {e}")
                raise ce.PersistenceError(str(e)) from e

    def _insert_cycles(self, table_id: str, cycles: List[BreathCycle]):
        self.cur.executemany(
            """INSERT INTO BreathCycles (TableID, CycleIndex, BreatheTime, HoldTime, TapMode)
            VALUES (?, ?, ?, ?, ?)""",
            [(table_id, i, c.breathe_time, c.hold_time, int(c.tap_mode)) for i, c in enumerate(cycles)],
        )

    def _load_table(self, table_id: str, name: str, created_at: str) -> TrainingTable:
        self.cur.execute(
            "SELECT BreatheTime, HoldTime, TapMode FROM BreathCycles WHERE TableID = ? ORDER BY CycleIndex",
            (table_id,),
        )
        cycles = [BreathCycle(b, h, bool(t)) for b, h, t in self.cur.fetchall()]
        return TrainingTable(
            table_id=table_id,
            name=name,
            cycles=cycles or [FALLBACK_CYCLE],
            created_at=datetime.fromisoformat(created_at),
        )

    # --- practice records ---
    def save_result(self, results: List[CycleResult], table_id: str) -> PracticeRecord:
        table = self.get_table(table_id)
        record = PracticeRecord(
            record_id=uuid.uuid4().hex,
            table_id=table_id,
            table_name=table.name,
            completed_at=datetime.now(timezone.utc),
            results=list(results),
        )
        with self._lock:
            try:
                self.cur.execute(
                    """INSERT INTO PracticeRecords (RecordID, TableID, TableName, CompletedAt, Results)
                    VALUES (?, ?, ?, ?, ?)""",
                    (
                        record.record_id,
                        record.table_id,
                        record.table_name,
                        record.completed_at.isoformat(),
                        json.dumps([r.to_dict() for r in record.results]),
                    ),
                )
                self.conn.commit()
            except sqlite3.Error as e:
                self.logger.exception(f"Database error in save_result: {e}")
                raise ce.PersistenceError(str(e)) from e
        return record

    def list_records(self, table_id: Optional[str] = None) -> List[PracticeRecord]:
        query = "SELECT RecordID, TableID, TableName, CompletedAt, Results FROM PracticeRecords"
        params: tuple = ()
        if table_id is not None:
            query += " WHERE TableID = ?"
            params = (table_id,)
        query += " ORDER BY CompletedAt DESC"
        with self._lock:
            try:
                self.cur.execute(query, params)
                rows = self.cur.fetchall()
            except sqlite3.Error as e:
                self.logger.exception(f"Database error in list_records: {e}")
                return []
        return [
            PracticeRecord(
                record_id=rid,
                table_id=tid,
                table_name=tname,
                completed_at=datetime.fromisoformat(completed),
                results=[CycleResult.from_dict(r) for r in json.loads(raw)],
            )
            for rid, tid, tname, completed, raw in rows
        ]

    def delete_record(self, record_id: str) -> bool:
        with self._lock:
            try:
                self.cur.execute("DELETE FROM PracticeRecords WHERE RecordID = ?", (record_id,))
                self.conn.commit()
                return self.cur.rowcount > 0
            except sqlite3.Error as e:
                self.logger.exception(f"Database error in delete_record: {e}")
                raise ce.PersistenceError(str(e)) from e

    # --- settings ---
    def load_settings(self, profile: str = "default") -> Optional[Dict[str, Any]]:
        with self._lock:
            try:
                self.cur.execute("SELECT Data FROM Settings WHERE Profile = ?", (profile,))
                row = self.cur.fetchone()
            except sqlite3.Error as e:
                self.logger.exception(f"Database error in load_settings: {e}")
                return None
        return json.loads(row[0]) if row else None

    def save_settings(self, settings: Dict[str, Any], profile: str = "default") -> None:
        with self._lock:
            try:
                self.cur.execute(
                    """INSERT INTO Settings (Profile, Data, UpdatedAt) VALUES (?, ?, ?)
                    ON CONFLICT(Profile) DO UPDATE SET Data = excluded.Data, UpdatedAt = excluded.UpdatedAt""",
                    (profile, json.dumps(settings), _now_iso()),
                )
                self.conn.commit()
            except sqlite3.Error as e:
                self.logger.exception(f"Database error in save_settings: {e}")
                raise ce.PersistenceError(str(e)) from e
