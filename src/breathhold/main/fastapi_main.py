import json
import asyncio
import argparse
from dataclasses import dataclass, field
from contextlib import asynccontextmanager
from typing import List, Optional

import uvicorn
from pydantic import BaseModel
from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect

from breathhold.config import AppConfig
from breathhold.core.models import BreathCycle
from breathhold.core.speech_queue import SpeechDispatchQueue
from breathhold.core.trainer import Trainer
from breathhold.adapters.fastapi_adapters.helper_adapters import ConnectionManager, StateBroadcaster
from breathhold.adapters.memory_adapters.sqlite_memory_adapter import SqliteMemoryAdapter
from breathhold.adapters.scheduler_adapters.asyncio_scheduler import AsyncioScheduler
from breathhold.adapters.speech_adapters.null_speaker import NullSpeaker
from breathhold.utils import custom_exception as ce
from breathhold.utils.logging_handler import setup_logger

logger = setup_logger(__name__)


@dataclass
class Args:
    config: AppConfig = field(default_factory=AppConfig.from_env)


# --- REQUEST BODIES ---
class CycleIn(BaseModel):
    breathe_time: int
    hold_time: int
    tap_mode: bool = False

    def to_cycle(self) -> BreathCycle:
        return BreathCycle(self.breathe_time, self.hold_time, self.tap_mode).validate()


class StartRequest(BaseModel):
    table_id: Optional[str] = None
    cycles: Optional[List[CycleIn]] = None


class StopRequest(BaseModel):
    save: bool = False


class TableIn(BaseModel):
    name: str
    cycles: List[CycleIn]


class SettingsIn(BaseModel):
    countdown_start: Optional[int] = None
    use_continuous_countdown: Optional[bool] = None
    use_specific_announcements: Optional[bool] = None
    announce_times: Optional[List[int]] = None
    volume: Optional[float] = None


def _http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, ce.TableNotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, (ce.InvalidCycleError, ce.InvalidSettingsError)):
        return HTTPException(status_code=422, detail=str(exc))
    if isinstance(exc, ce.PersistenceError):
        return HTTPException(status_code=502, detail=str(exc))
    raise exc


def build_speaker(config: AppConfig, scheduler):
    if not config.speech:
        return NullSpeaker()
    from breathhold.adapters.speech_adapters.pyttsx3_adapter import Pyttsx3Speaker
    return Pyttsx3Speaker(scheduler, voice_hint=config.voice)


# --- APP FACTORY ---
def create_app(args: Args, memory=None, scheduler_factory=None, speaker_factory=None):
    """
    Build the HTTP/WebSocket surface around one Trainer.

    ``memory``, ``scheduler_factory(loop)`` and ``speaker_factory(scheduler)``
    replace the sqlite store, the asyncio scheduler and the speech engine.
    """
    config = args.config

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        loop = asyncio.get_running_loop()
        scheduler = scheduler_factory(loop) if scheduler_factory else AsyncioScheduler(loop)
        store = memory if memory is not None else SqliteMemoryAdapter(config.db_path)
        speaker = speaker_factory(scheduler) if speaker_factory else build_speaker(config, scheduler)

        trainer = Trainer(scheduler, store, SpeechDispatchQueue(speaker), profile=config.profile)
        trainer.ensure_default_tables()

        manager = ConnectionManager(loop=loop)
        broadcaster = StateBroadcaster(manager)
        trainer.session.on_state_change.add_listener(broadcaster.on_state_change)
        trainer.on_record_saved.add_listener(broadcaster.on_record_saved)
        trainer.on_save_failed.add_listener(broadcaster.on_save_failed)

        app.state.scheduler = scheduler
        app.state.trainer = trainer
        app.state.connection_manager = manager

        yield

        # Cleanup
        trainer.session.stop(save_as_completed=False)
        if hasattr(speaker, "close"):
            speaker.close()
        if memory is None:
            store.close()

    app = FastAPI(lifespan=lifespan)

    def trainer_of() -> Trainer:
        return app.state.trainer

    def state_payload(applied: bool = True):
        return {"applied": applied, "state": trainer_of().snapshot().to_dict()}

    # --- session ---
    @app.get("/state")
    async def get_state():
        return trainer_of().snapshot().to_dict()

    @app.post("/session/start")
    async def start_session(body: StartRequest):
        trainer = trainer_of()
        try:
            if body.table_id is not None:
                applied = trainer.start_table(body.table_id)
            elif body.cycles:
                applied = trainer.start_cycles([c.to_cycle() for c in body.cycles])
            else:
                raise HTTPException(status_code=422, detail="Provide table_id or a non-empty cycles list")
        except (ce.TableNotFoundError, ce.InvalidCycleError) as e:
            raise _http_error(e)
        return state_payload(applied)

    @app.post("/session/pause")
    async def pause_session():
        return state_payload(trainer_of().pause())

    @app.post("/session/resume")
    async def resume_session():
        return state_payload(trainer_of().resume())

    @app.post("/session/tap")
    async def tap_session():
        return state_payload(trainer_of().tap())

    @app.post("/session/stop")
    async def stop_session(body: StopRequest):
        try:
            record = trainer_of().stop(save=body.save)
        except (ce.PersistenceError, ce.TableNotFoundError) as e:
            raise _http_error(e)
        payload = state_payload()
        payload["record"] = record.to_dict() if record else None
        return payload

    @app.post("/session/save")
    async def save_session():
        try:
            record = trainer_of().save_practice_record()
        except (ce.PersistenceError, ce.TableNotFoundError) as e:
            raise _http_error(e)
        return {"record": record.to_dict() if record else None}

    # --- settings ---
    @app.get("/settings")
    async def get_settings():
        return trainer_of().settings.to_dict()

    @app.put("/settings")
    async def put_settings(body: SettingsIn):
        changes = {k: v for k, v in body.model_dump().items() if v is not None}
        try:
            settings = trainer_of().update_settings(**changes)
        except (ce.InvalidSettingsError, ce.PersistenceError) as e:
            raise _http_error(e)
        return settings.to_dict()

    @app.post("/settings/test-voice")
    async def test_voice():
        return {"queued": trainer_of().test_voice()}

    # --- tables ---
    @app.get("/tables")
    async def list_tables():
        return [t.to_dict() for t in trainer_of().memory.list_tables()]

    @app.post("/tables", status_code=201)
    async def create_table(body: TableIn):
        try:
            table = trainer_of().memory.create_table(body.name, [c.to_cycle() for c in body.cycles])
        except (ce.InvalidCycleError, ce.PersistenceError) as e:
            raise _http_error(e)
        return table.to_dict()

    @app.get("/tables/{table_id}")
    async def get_table(table_id: str):
        try:
            return trainer_of().memory.get_table(table_id).to_dict()
        except (ce.TableNotFoundError, ce.PersistenceError) as e:
            raise _http_error(e)

    @app.put("/tables/{table_id}")
    async def update_table(table_id: str, body: TableIn):
        try:
            table = trainer_of().memory.update_table(table_id, body.name, [c.to_cycle() for c in body.cycles])
        except (ce.TableNotFoundError, ce.InvalidCycleError, ce.PersistenceError) as e:
            raise _http_error(e)
        return table.to_dict()

    @app.delete("/tables/{table_id}")
    async def delete_table(table_id: str):
        try:
            deleted = trainer_of().memory.delete_table(table_id)
        except ce.PersistenceError as e:
            raise _http_error(e)
        if not deleted:
            raise HTTPException(status_code=404, detail=f"Table '{table_id}' not found.")
        return {"deleted": True}

    # --- records ---
    @app.get("/records")
    async def list_records(table_id: Optional[str] = None):
        return [r.to_dict() for r in trainer_of().memory.list_records(table_id)]

    @app.delete("/records/{record_id}")
    async def delete_record(record_id: str):
        try:
            deleted = trainer_of().memory.delete_record(record_id)
        except ce.PersistenceError as e:
            raise _http_error(e)
        if not deleted:
            raise HTTPException(status_code=404, detail=f"Record '{record_id}' not found.")
        return {"deleted": True}

    # --- live updates ---
    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket):
        manager = app.state.connection_manager
        trainer = trainer_of()

        await manager.connect(websocket)
        try:
            await websocket.send_text(json.dumps({"type": "state", "data": trainer.snapshot().to_dict()}))
            actions = {
                "pause": trainer.pause,
                "resume": trainer.resume,
                "tap": trainer.tap,
                "stop": lambda: trainer.stop(save=False),
            }
            while True:
                data = await websocket.receive_text()
                try:
                    msg = json.loads(data)
                except json.JSONDecodeError:
                    continue

                if msg.get("type") == "action":
                    action = actions.get(msg.get("data"))
                    if action is None:
                        logger.warning(f"Unknown websocket action: {msg.get('data')}")
                        continue
                    action()

        except WebSocketDisconnect:
            manager.disconnect(websocket)
        except Exception as e:
            logger.error(f"WS Error: {e}")
            manager.disconnect(websocket)

    return app


def run_app(args: Args) -> None:
    app = create_app(args)
    try:
        uvicorn.run(app, host=args.config.host, port=args.config.port)
    except Exception as e:
        logger.error(f"error in run_app: {e}")


def main() -> None:
    config = AppConfig.from_env()
    parser = argparse.ArgumentParser(description="Breath-hold trainer HTTP server.")
    parser.add_argument("--host", type=str, default=config.host)
    parser.add_argument("--port", type=int, default=config.port)
    parser.add_argument("--db-path", type=str, default=config.db_path)
    parser.add_argument("--voice", type=str, default=config.voice)
    parser.add_argument("--no-speech", action="store_true")
    parsed = parser.parse_args()
    config.host = parsed.host
    config.port = parsed.port
    config.db_path = parsed.db_path
    config.voice = parsed.voice
    config.speech = config.speech and not parsed.no_speech
    run_app(Args(config=config))


if __name__ == "__main__":
    logger.info("=" * 50)
    main()
