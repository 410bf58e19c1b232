from pathlib import Path
import os
from typing import List, Optional

from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict


class ServerSettings(BaseSettings):
    model_config = SettingsConfigDict(
        # Priority: environment variables > .env file
        env_file_encoding="utf-8",
        env_ignore_empty=True,
        case_sensitive=True,
        extra="ignore",
    )

    HOST: str = "0.0.0.0"
    PORT: int = 5000
    # Persistence connection string; reported at startup only
    MONGO_URI: Optional[str] = None
    CORS_ALLOWED_ORIGINS: str = "http://localhost:5173"
    LOG_LEVEL: str = "INFO"

    @property
    def cors_origins(self) -> List[str]:
        return [x.strip() for x in self.CORS_ALLOWED_ORIGINS.split(",") if x.strip()]


def logging_config(level: str = "INFO") -> dict:
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "handlers": {"console": {"class": "logging.StreamHandler"}},
        "root": {"handlers": ["console"], "level": (level or "INFO").upper()},
    }


# Try to load .env file before creating Settings instance
current_dir = Path(__file__).resolve().parent
env_paths = [
    current_dir.parent.parent / ".env",  # server/.env
    Path(os.getcwd()) / ".env",          # Current working directory
]
for env_path in env_paths:
    if env_path.exists():
        load_dotenv(env_path, override=False)
        break

config = ServerSettings()
