# main/cli_entry.py
import asyncio
import argparse
import threading
from typing import List

from breathhold.config import AppConfig
from breathhold.core.models import BreathCycle
from breathhold.core.speech_queue import SpeechDispatchQueue
from breathhold.core.status import SessionPhase
from breathhold.core.trainer import Trainer
from breathhold.adapters.memory_adapters.sqlite_memory_adapter import SqliteMemoryAdapter
from breathhold.adapters.scheduler_adapters.asyncio_scheduler import AsyncioScheduler
from breathhold.main.fastapi_main import build_speaker
from breathhold.utils import custom_exception as ce
from breathhold.utils.logging_handler import setup_logger
from breathhold.utils.time_conversions import format_seconds_to_mm_ss, parse_time_string

logger = setup_logger(__name__, console=False)

HELP = "keys: [p]ause  [r]esume  [t]ap  [s]top and save  [q]uit"


def parse_cycles(text: str) -> List[BreathCycle]:
    """
    Parse "60:90,45:90:tap" into cycles. Each item is breathe:hold with an
    optional ":tap"; times accept anything parse_time_string does ("1m30s").
    """
    cycles = []
    for item in text.split(","):
        item = item.strip()
        if not item:
            continue
        parts = item.split(":")
        if len(parts) not in (2, 3) or (len(parts) == 3 and parts[2].lower() != "tap"):
            raise ValueError(f"Bad cycle {item!r}, expected breathe:hold[:tap]")
        cycle = BreathCycle(
            parse_time_string(parts[0]),
            parse_time_string(parts[1]),
            tap_mode=len(parts) == 3,
        )
        cycles.append(cycle.validate())
    return cycles


def render(snapshot) -> str:
    if snapshot.phase is SessionPhase.IDLE:
        return "idle"
    if snapshot.phase is SessionPhase.COMPLETE:
        holds = ", ".join(f"{r.actual_hold_time}s" for r in snapshot.cycle_results)
        return f"complete - holds: {holds or 'none'}"
    label = "BREATHE" if snapshot.phase is SessionPhase.BREATHE else "HOLD"
    if snapshot.phase is SessionPhase.HOLD and snapshot.is_tap_mode:
        label += " (tap to end)"
    paused = "" if snapshot.is_running else " [paused]"
    return (
        f"cycle {snapshot.current_cycle_index + 1}/{snapshot.total_cycles} "
        f"{label} {format_seconds_to_mm_ss(snapshot.time_remaining)}{paused}"
    )


def _read_stdin(loop: asyncio.AbstractEventLoop, lines: asyncio.Queue):
    # daemon: a blocked input() must not outlive the session
    while True:
        try:
            line = input(">>> ")
        except EOFError:
            loop.call_soon_threadsafe(lines.put_nowait, "q")
            return
        loop.call_soon_threadsafe(lines.put_nowait, line)


async def user_input_loop(trainer: Trainer, done: asyncio.Event, loop=None):
    loop = asyncio.get_running_loop() if loop is None else loop
    lines: asyncio.Queue = asyncio.Queue()
    threading.Thread(target=_read_stdin, args=(loop, lines), name="cli_input", daemon=True).start()
    while not done.is_set():
        user_input = (await lines.get()).strip().lower()
        if user_input == "p":
            trainer.pause()
        elif user_input == "r":
            trainer.resume()
        elif user_input == "t":
            trainer.tap()
        elif user_input == "s":
            try:
                record = trainer.stop(save=True)
            except ce.PersistenceError as e:
                print(f"could not save: {e}")
            else:
                if record:
                    print(f"saved, total {record.format_total_duration()}")
            done.set()
        elif user_input == "q":
            trainer.stop(save=False)
            done.set()
        else:
            print(HELP)


async def wait_for_speech(queue: SpeechDispatchQueue, timeout: float = 5.0, poll: float = 0.1) -> bool:
    """Let the last announcement finish. Returns False if the queue is still busy after ``timeout``."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not queue.idle:
        if loop.time() >= deadline:
            return False
        await asyncio.sleep(poll)
    return True


async def run(args) -> None:
    config = AppConfig.from_env()
    if args.db_path:
        config.db_path = args.db_path
    if args.no_speech or args.list_tables:
        config.speech = False

    loop = asyncio.get_running_loop()
    scheduler = AsyncioScheduler(loop)
    memory = SqliteMemoryAdapter(config.db_path)
    speaker = build_speaker(config, scheduler)
    trainer = Trainer(scheduler, memory, SpeechDispatchQueue(speaker), profile=config.profile)
    trainer.ensure_default_tables()

    if args.list_tables:
        for table in memory.list_tables():
            print(f"{table.table_id}  {table.name} ({len(table.cycles)} cycles)")
        memory.close()
        return

    done = asyncio.Event()
    trainer.session.on_state_change.add_listener(lambda snapshot: print(f"\r{render(snapshot)}"))
    # a stored table is finished once its record is written; inline cycles are never saved
    trainer.session.on_complete.add_listener(
        lambda results, table_id: None if table_id else done.set()
    )
    trainer.on_record_saved.add_listener(lambda record: done.set(), once=True)
    trainer.on_save_failed.add_listener(lambda error, table_id=None: done.set(), once=True)

    try:
        if args.table:
            started = trainer.start_table(args.table)
        else:
            started = trainer.start_cycles(parse_cycles(args.cycles))
        if not started:
            print("nothing to run")
            return
        print(HELP)
        input_task = asyncio.create_task(user_input_loop(trainer, done, loop=loop))
        await done.wait()
        input_task.cancel()
        if trainer.session.phase is SessionPhase.COMPLETE:
            await wait_for_speech(trainer.speech)
    finally:
        # a completed run keeps its results and final announcement
        if trainer.session.phase.is_active:
            trainer.session.stop(save_as_completed=False)
        if hasattr(speaker, "close"):
            speaker.close()
        memory.close()


def main() -> None:
    parser = argparse.ArgumentParser(description="Run a breath-hold table in the terminal.")
    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument("--table", type=str, help="id of a stored training table")
    group.add_argument("--cycles", type=str, help='inline cycles, e.g. "60:90,45:90:tap"')
    group.add_argument("--list-tables", action="store_true", help="print stored tables and exit")
    parser.add_argument("--db-path", type=str, default=None)
    parser.add_argument("--no-speech", action="store_true")
    args = parser.parse_args()

    try:
        asyncio.run(run(args))
    except (ce.TableNotFoundError, ce.InvalidCycleError, ValueError) as e:
        parser.exit(2, f"error: {e}\n")
    except KeyboardInterrupt:
        logger.info("=" * 50)
        logger.info("Exiting.")
        logger.info("=" * 50)


if __name__ == "__main__":
    main()
