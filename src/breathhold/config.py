import os
from dataclasses import dataclass, field

import dotenv

from breathhold.utils import BASE_DIR

dotenv.load_dotenv()


def _default_db_path() -> str:
    return os.path.join(BASE_DIR, "data", "breathhold.db")


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class AppConfig:
    db_path: str = field(default_factory=_default_db_path)
    host: str = "127.0.0.1"
    port: int = 8000
    voice: str = "en"
    speech: bool = True
    profile: str = "default"

    @classmethod
    def from_env(cls) -> "AppConfig":
        default = cls()
        return cls(
            db_path=os.getenv("BREATHHOLD_DB_PATH", default.db_path),
            host=os.getenv("BREATHHOLD_HOST", default.host),
            port=int(os.getenv("BREATHHOLD_PORT", default.port)),
            voice=os.getenv("BREATHHOLD_VOICE", default.voice),
            speech=_env_flag("BREATHHOLD_SPEECH", default.speech),
            profile=os.getenv("BREATHHOLD_PROFILE", default.profile),
        )
