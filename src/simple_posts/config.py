from __future__ import annotations

import logging
import logging.config
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv, find_dotenv

# Picks up the nearest .env; variables already set in the environment win.
load_dotenv(find_dotenv(usecwd=True))


def _env_bool(name: str, default: bool = False) -> bool:
    v = os.getenv(name)
    if v is None:
        return default
    return v.strip().lower() in {"1", "true", "yes", "on"}


def _env_list(name: str, default: str) -> list[str]:
    raw = os.getenv(name, default)
    return [item.strip() for item in raw.split(",") if item.strip()]


@dataclass(frozen=True)
class Settings:
    database_url: str = "sqlite:///./database.sqlite"
    uploads_dir: Path = Path("uploads")
    reset_db_on_startup: bool = False
    cors_origins: list[str] = field(default_factory=lambda: ["*"])
    log_level: str = "INFO"
    orphan_grace_seconds: float = 60.0
    host: str = "127.0.0.1"
    port: int = 3001
    reload: bool = False

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            database_url=os.getenv("DATABASE_URL", cls.database_url),
            uploads_dir=Path(os.getenv("UPLOADS_DIR", "uploads")).resolve(),
            reset_db_on_startup=_env_bool("RESET_DB_ON_STARTUP"),
            cors_origins=_env_list("CORS_ORIGINS", "*"),
            log_level=os.getenv("LOG_LEVEL", cls.log_level).upper(),
            orphan_grace_seconds=float(os.getenv("ORPHAN_GRACE_SECONDS", "60")),
            host=os.getenv("HOST", cls.host),
            port=int(os.getenv("PORT", str(cls.port))),
            reload=_env_bool("RELOAD"),
        )


def setup_logging(log_level: str = "INFO") -> None:
    """Console logging for the service, uvicorn and SQLAlchemy."""
    config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            }
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "stream": sys.stdout,
                "formatter": "standard",
                "level": log_level,
            }
        },
        "loggers": {
            "simple_posts": {"level": log_level, "handlers": ["console"], "propagate": False},
            # SQL statements are noise at INFO
            "sqlalchemy.engine": {"level": "WARNING", "handlers": ["console"], "propagate": False},
        },
        "root": {"level": log_level, "handlers": ["console"]},
    }
    logging.config.dictConfig(config)
