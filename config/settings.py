"""Application settings loaded from .env file."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from dotenv import load_dotenv


def _project_root() -> Path:
    return Path(__file__).resolve().parent.parent


def _int_env(key: str, default: int) -> int:
    raw = os.getenv(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


@dataclass
class Settings:
    """Central configuration for the signal engine."""

    # Paths
    project_root: Path = field(default_factory=_project_root)
    db_path: Path = field(default=None)
    log_dir: Path = field(default=None)

    # Logging
    log_level: str = "INFO"

    # Daily run
    timezone: str = "UTC"
    outcome_batch_limit: int = 400
    run_hour: int = 22
    run_minute: int = 0

    # Optional narrative decorator
    groq_api_key: str = ""
    groq_model: str = "llama-3.3-70b-versatile"

    def __post_init__(self):
        if self.db_path is None:
            self.db_path = self.project_root / "data" / "horsai.db"
        if self.log_dir is None:
            self.log_dir = self.project_root / "data" / "logs"

        # Ensure directories exist
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.log_dir.mkdir(parents=True, exist_ok=True)


_settings: Settings | None = None


def get_settings() -> Settings:
    """Load settings from .env or environment."""
    global _settings
    if _settings is not None:
        return _settings

    root = _project_root()
    load_dotenv(root / ".env")

    _settings = Settings(
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        db_path=Path(os.getenv("DB_PATH", root / "data" / "horsai.db")),
        log_dir=Path(os.getenv("LOG_DIR", root / "data" / "logs")),
        timezone=os.getenv("HORSAI_TIMEZONE", "UTC"),
        outcome_batch_limit=_int_env("HORSAI_OUTCOME_BATCH_LIMIT", 400),
        run_hour=_int_env("HORSAI_RUN_HOUR", 22),
        run_minute=_int_env("HORSAI_RUN_MINUTE", 0),
        groq_api_key=os.getenv("GROQ_API_KEY", ""),
        groq_model=os.getenv("GROQ_MODEL", "llama-3.3-70b-versatile"),
    )
    return _settings
