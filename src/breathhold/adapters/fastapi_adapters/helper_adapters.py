import json
import asyncio
import threading
from typing import Any, List, Optional
from fastapi import WebSocket

from breathhold.core.models import PracticeRecord, SessionSnapshot
from breathhold.utils.logging_handler import setup_logger

logger = setup_logger(__name__)


# --- CONNECTION MANAGER ---
class ConnectionManager:
    """
    Tracks the open /ws sockets and fans messages out to them.

    ``broadcast`` may be called from any thread; sending always happens on ``loop``.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop):
        self.active_connections: set[WebSocket] = set()
        self._lock = threading.Lock()
        self.loop = loop

    @property
    def connection_count(self) -> int:
        with self._lock:
            return len(self.active_connections)

    async def connect(self, websocket: WebSocket):
        await websocket.accept()
        with self._lock:
            self.active_connections.add(websocket)
        logger.debug(f"websocket connected ({self.connection_count} open)")

    def disconnect(self, websocket: WebSocket):
        with self._lock:
            self.active_connections.discard(websocket)

    def broadcast(self, msg_type: str, data: Any) -> None:
        if self.loop.is_closed() or not self.connection_count:
            return
        message = json.dumps({"type": msg_type, "data": data})
        asyncio.run_coroutine_threadsafe(self._send_to_all(message), self.loop)

    async def _send_to_all(self, message: str):
        with self._lock:
            sockets = list(self.active_connections)
        dead: List[WebSocket] = []
        for ws in sockets:
            try:
                await ws.send_text(message)
            except Exception:
                logger.debug("Dropping websocket after failed send", exc_info=True)
                dead.append(ws)
        for ws in dead:
            self.disconnect(ws)


class StateBroadcaster:
    """Pushes every session snapshot and practice-record outcome to the websocket clients."""

    def __init__(self, connection_manager: ConnectionManager):
        self.manager = connection_manager
        self.last_snapshot: Optional[SessionSnapshot] = None

    def on_state_change(self, snapshot: SessionSnapshot):
        self.last_snapshot = snapshot
        self.manager.broadcast("state", snapshot.to_dict())

    def on_record_saved(self, record: PracticeRecord):
        self.manager.broadcast("record_saved", record.to_dict())

    def on_save_failed(self, error: Exception, table_id: Optional[str] = None):
        self.manager.broadcast("save_failed", {"table_id": table_id, "error": str(error)})
