import logging
import os
from typing import Optional
from breathhold.utils import BASE_DIR

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def log_dir() -> str:
    """Directory for app.log; BREATHHOLD_LOG_DIR overrides <package>/logs."""
    path = os.getenv("BREATHHOLD_LOG_DIR") or os.path.join(BASE_DIR, "logs")
    os.makedirs(path, exist_ok=True)
    return path


def _level_from_env(default: int) -> int:
    name = os.getenv("BREATHHOLD_LOG_LEVEL")
    if not name:
        return default
    level = logging.getLevelName(name.strip().upper())
    return level if isinstance(level, int) else default


def setup_logger(
    name: str,
    log_file: str = "app.log",
    level: int = logging.DEBUG,
    console: bool = True,
    handler_level: Optional[int] = None,
) -> logging.Logger:
    """
    Return the logger for ``name`` with a file handler and, unless ``console``
    is False, a console handler. Handlers are attached on the first call only.

    The console shows INFO and above by default so per-tick DEBUG output only
    reaches the file.
    """
    level = _level_from_env(level)
    logger = logging.getLogger(name)
    logger.setLevel(level)
    if logger.handlers:
        return logger

    formatter = logging.Formatter(LOG_FORMAT)

    file_handler = logging.FileHandler(os.path.join(log_dir(), log_file))
    file_handler.setLevel(handler_level or level)
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    if console:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(handler_level or max(level, logging.INFO))
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    return logger
