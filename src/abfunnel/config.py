"""Runtime configuration.

All settings come from environment variables with local-dev defaults.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_DB_PATH = Path("data/abfunnel.db")
DEFAULT_CORS_ORIGINS = ("http://localhost:3000", "http://127.0.0.1:3000")
DEFAULT_SUGGEST_MODEL = "claude-sonnet-4-6"


def _split_origins(raw: str | None) -> tuple[str, ...]:
    if not raw:
        return DEFAULT_CORS_ORIGINS
    return tuple(origin.strip() for origin in raw.split(",") if origin.strip())


@dataclass(frozen=True)
class Settings:
    """Process-wide settings."""

    db_path: Path = DEFAULT_DB_PATH
    cors_origins: tuple[str, ...] = field(default=DEFAULT_CORS_ORIGINS)
    suggest_model: str = DEFAULT_SUGGEST_MODEL
    suggest_max_tokens: int = 1024
    scheduler_max_retries: int = 3
    scheduler_retry_delay: float = 1.0

    @classmethod
    def from_env(cls) -> Settings:
        """Build settings from ABFUNNEL_* environment variables."""
        env = os.environ
        return cls(
            db_path=Path(env.get("ABFUNNEL_DB_PATH", str(DEFAULT_DB_PATH))),
            cors_origins=_split_origins(env.get("ABFUNNEL_CORS_ORIGINS")),
            suggest_model=env.get("ABFUNNEL_SUGGEST_MODEL", DEFAULT_SUGGEST_MODEL),
            suggest_max_tokens=int(env.get("ABFUNNEL_SUGGEST_MAX_TOKENS", "1024")),
            scheduler_max_retries=int(env.get("ABFUNNEL_SCHEDULER_MAX_RETRIES", "3")),
            scheduler_retry_delay=float(env.get("ABFUNNEL_SCHEDULER_RETRY_DELAY", "1.0")),
        )


def get_settings() -> Settings:
    """Return settings for the current environment.

    Read on every call so tests can patch the environment.
    """
    return Settings.from_env()
