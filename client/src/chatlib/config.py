from pathlib import Path
import logging.config
import os
from typing import Optional

from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict

from chatlib.helpers import socket_base_url

DEFAULT_API_BASE_URL = "http://localhost:5000/api"


class ClientSettings(BaseSettings):
    model_config = SettingsConfigDict(
        # Priority: environment variables > .env file
        env_file_encoding="utf-8",
        env_ignore_empty=True,
        case_sensitive=True,
        extra="ignore",
    )

    CHAT_API_BASE_URL: str = DEFAULT_API_BASE_URL
    # Optional: derived from CHAT_API_BASE_URL (trailing /api stripped) when unset
    CHAT_SOCKET_URL: Optional[str] = None
    CHAT_SOCKET_RECONNECTION_ATTEMPTS: int = 5
    CHAT_REQUEST_TIMEOUT_SECONDS: float = 10.0
    CHAT_COOKIE_JAR_PATH: Optional[Path] = None
    CHAT_LOG_LEVEL: str = "INFO"

    @property
    def socket_url(self) -> str:
        return self.CHAT_SOCKET_URL or socket_base_url(self.CHAT_API_BASE_URL)


def logging_config(level: str = "INFO") -> dict:
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"plain": {"format": "%(asctime)s %(levelname)s %(name)s: %(message)s"}},
        "handlers": {"console": {"class": "logging.StreamHandler", "formatter": "plain"}},
        "root": {"handlers": ["console"], "level": (level or "INFO").upper()},
    }


def configure_logging(level: str = "INFO") -> None:
    logging.config.dictConfig(logging_config(level))


# Load .env from the working directory before creating the settings instance
load_dotenv(Path(os.getcwd()) / ".env", override=False)

config = ClientSettings()
