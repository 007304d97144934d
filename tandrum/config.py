import os
import logging
from dataclasses import dataclass
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

LOG_FORMAT = '%(asctime)s [%(levelname)s] %(name)s: %(message)s'


@dataclass(frozen=True)
class Settings:
    """Runtime settings, read from the environment (and .env)."""
    db_backend: str = "sqlite"
    database_path: str = "data/tandrum.db"
    mongo_uri: str = ""
    timezone: str = "UTC"
    log_level: str = "INFO"


def get_settings():
    """Build Settings from the current environment."""
    return Settings(
        db_backend=os.getenv("TANDRUM_DB_BACKEND", "sqlite").strip().lower(),
        database_path=os.getenv("DATABASE_PATH", "data/tandrum.db"),
        mongo_uri=os.getenv("MONGO_URI", ""),
        timezone=os.getenv("TANDRUM_TIMEZONE", "UTC"),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )


def setup_logging(level=None):
    """Attach a stream handler to the root logger once."""
    root = logging.getLogger()
    root.setLevel(level or get_settings().log_level)
    if not any(getattr(h, "_tandrum", False) for h in root.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._tandrum = True
        root.addHandler(handler)
    return root
