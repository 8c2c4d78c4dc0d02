"""Environment configuration."""
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv


@dataclass
class Settings:
    database_url: Optional[str] = None
    queue_table: str = "fetch_jobs"
    batch_size: int = 10
    poll_interval: float = 5.0
    stats_interval: float = 30.0
    log_level: str = "INFO"

    def require_database_url(self) -> str:
        if not self.database_url:
            raise RuntimeError(
                "Database credentials not configured. "
                "Set DATABASE_URL (or PG_DSN) or PG_USER, PG_PASS and PG_DB."
            )
        return self.database_url


def _database_url() -> Optional[str]:
    """DATABASE_URL, then PG_DSN, then a DSN built from PG_* parts."""
    if dsn := os.getenv("DATABASE_URL") or os.getenv("PG_DSN"):
        return dsn

    user = os.getenv("PG_USER")
    password = os.getenv("PG_PASS")
    database = os.getenv("PG_DB")
    if not (user and password and database):
        return None
    host = os.getenv("PG_HOST", "localhost")
    port = os.getenv("PG_PORT", "5432")
    return f"postgresql://{user}:{password}@{host}:{port}/{database}"


def load_settings(env_file: Optional[str] = None) -> Settings:
    load_dotenv(env_file)
    return Settings(
        database_url=_database_url(),
        queue_table=os.getenv("QUEUE_TABLE", "fetch_jobs"),
        batch_size=int(os.getenv("WORKER_BATCH_SIZE", "10")),
        poll_interval=float(os.getenv("POLL_INTERVAL", "5.0")),
        stats_interval=float(os.getenv("STATS_INTERVAL", "30.0")),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )
